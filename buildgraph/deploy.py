"""
Upload of the distributable tree to a remote host.

Credentials are only ever read from an external JSON file at deploy time.
Destination paths are derived from the source tree, so re-running a deploy after
a partial failure converges the remote onto the local tree. Deploys only add and
overwrite: a file removed locally stays on the remote until it is deleted there.
"""

import ftplib
import json
import logging
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Protocol

import anyio
from pydantic import BaseModel, ConfigDict, PositiveInt, SecretStr

from .exceptions import DeployError, MissingSourceError, TransferFailure
from .pipeline import resolve_sources

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Callable, Iterable

logger = logging.getLogger(__name__)


class TransferCredentials(BaseModel):
    host: str
    user: str
    password: SecretStr
    port: PositiveInt = 21
    parallel: PositiveInt = 10
    timeout: PositiveInt = 30

    model_config = ConfigDict(extra="ignore", frozen=True)


def load_credentials(path: "Path | str") -> TransferCredentials:
    with open(path, encoding="utf-8") as f:
        return TransferCredentials.model_validate(json.load(f))


class Transport(Protocol):
    def ensure_dir(self, path: PurePosixPath) -> None: ...

    def upload(self, local: Path, remote: PurePosixPath) -> None: ...

    def close(self) -> None: ...


class FtpTransport:
    """One FTP connection. Not thread safe; use one transport per worker."""

    def __init__(self, credentials: TransferCredentials) -> None:
        self._ftp = ftplib.FTP()
        self._ftp.connect(credentials.host, credentials.port, credentials.timeout)
        self._ftp.login(credentials.user, credentials.password.get_secret_value())
        self._known_dirs: set[PurePosixPath] = set()

    def ensure_dir(self, path: PurePosixPath) -> None:
        for directory in reversed([path, *path.parents]):
            if directory in self._known_dirs or str(directory) in ("/", "."):
                continue

            try:
                self._ftp.mkd(str(directory))
            except ftplib.error_perm as e:
                # 550: already exists
                if not str(e).startswith("550"):
                    raise
            self._known_dirs.add(directory)

    def upload(self, local: Path, remote: PurePosixPath) -> None:
        with open(local, "rb") as f:
            self._ftp.storbinary(f"STOR {remote}", f)

    def close(self) -> None:
        try:
            self._ftp.quit()
        except ftplib.all_errors:
            self._ftp.close()


async def deploy(
    source: "Iterable[str] | str",
    remote_root: "PurePosixPath | str",
    credentials: TransferCredentials,
    *,
    cwd: "Path | str" = ".",
    base: "Path | str | None" = None,
    transport_factory: "Callable[[TransferCredentials], Transport]" = FtpTransport,
    parallel: int | None = None,
) -> list[PurePosixPath]:
    """
    Upload every file of the source set, at most `credentials.parallel` at a time
    (further capped by `parallel` when given).
    Failures are collected per file and raised together as a `DeployError` once
    every other upload has finished.
    """
    cwd = Path(cwd)
    sources = resolve_sources(source, cwd, base)
    if not sources:
        raise MissingSourceError([source] if isinstance(source, str) else list(source))

    remote_root = PurePosixPath(remote_root)
    pending = [(path, remote_root / relative) for path, relative, _ in sources]

    uploaded: list[PurePosixPath] = []
    failures: list[TransferFailure] = []
    workers = credentials.parallel
    if parallel is not None:
        workers = min(workers, parallel)
    limiter = anyio.CapacityLimiter(workers)
    send_stream, receive_stream = anyio.create_memory_object_stream[
        tuple[Path, PurePosixPath]
    ](len(pending))
    for job in pending:
        send_stream.send_nowait(job)
    send_stream.close()

    def _work(transport: Transport, local: Path, remote: PurePosixPath) -> None:
        transport.ensure_dir(remote.parent)
        transport.upload(local, remote)

    async def _worker() -> None:
        transport: Transport | None = None
        try:
            async for local, remote in receive_stream:
                try:
                    if transport is None:
                        transport = await anyio.to_thread.run_sync(
                            transport_factory, credentials, limiter=limiter
                        )
                    await anyio.to_thread.run_sync(
                        _work, transport, local, remote, limiter=limiter
                    )
                except Exception as e:
                    failures.append(TransferFailure(local, e))
                    logger.error("Transfer of %s failed: %s", local, e)
                else:
                    uploaded.append(remote)
                    logger.debug("Uploaded %s -> %s", local, remote)
        finally:
            if transport is not None:
                await anyio.to_thread.run_sync(transport.close)

    async with receive_stream, anyio.create_task_group() as tg:
        for _ in range(min(workers, len(pending))):
            tg.start_soon(_worker)

    logger.info(
        "Uploaded %d/%d file(s) to %s", len(uploaded), len(pending), remote_root
    )

    if failures:
        raise DeployError(failures)

    return uploaded
