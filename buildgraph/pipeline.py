"""
File pipelines: read a source file set, push it through transformation stages in
declared order and write the result to a destination.
"""

import inspect
import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

import anyio

from .exceptions import MissingSourceError
from .globs import compile_glob, glob_base, is_glob, split_patterns

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import AsyncIterator, Awaitable, Callable, Iterable, Sequence

    from .reload import ReloadHub

    Stage = Callable[[list["FileItem"]], list["FileItem"] | Awaitable[list["FileItem"]]]

logger = logging.getLogger(__name__)


@dataclass(kw_only=True, frozen=True, slots=True)
class FileItem:
    path: PurePosixPath
    """Path relative to `base`; this is where the item lands under a destination."""

    base: Path
    contents: bytes

    @property
    def source(self) -> Path:
        return self.base / self.path

    def text(self, encoding: str = "utf-8") -> str:
        return self.contents.decode(encoding)

    def with_contents(self, contents: "bytes | str") -> "FileItem":
        if isinstance(contents, str):
            contents = contents.encode()

        return replace(self, contents=contents)

    def with_path(self, path: "PurePosixPath | str") -> "FileItem":
        return replace(self, path=PurePosixPath(path))


def _walk(directory: Path) -> "Iterable[Path]":
    for root, _, files in os.walk(directory):
        for file in files:
            yield Path(root) / file


def resolve_sources(
    patterns: "Iterable[str] | str", cwd: Path, base: "Path | str | None" = None
) -> list[tuple[Path, PurePosixPath, Path]]:
    """
    Resolve glob patterns (`!` negates) against `cwd`. Returns each absolute path,
    its path relative to its base and that base, without duplicates and in a
    stable order. The base defaults to the glob-free prefix of the pattern.
    """
    positive, negative = split_patterns(patterns)
    excluded = [compile_glob(n) for n in negative]

    found: dict[Path, tuple[PurePosixPath, Path]] = {}
    for pattern in positive:
        root = cwd / glob_base(pattern)
        pattern_base = cwd / base if base is not None else root
        compiled = compile_glob(pattern)

        if is_glob(pattern):
            candidates = sorted(_walk(root)) if root.is_dir() else []
        else:
            candidates = [cwd / pattern] if (cwd / pattern).is_file() else []

        for candidate in candidates:
            relative_to_cwd = candidate.relative_to(cwd).as_posix()
            if not compiled.match(relative_to_cwd) or any(
                e.match(relative_to_cwd) for e in excluded
            ):
                continue

            try:
                relative = candidate.relative_to(pattern_base)
                item_base = pattern_base
            except ValueError:
                relative = Path(candidate.name)
                item_base = candidate.parent

            found.setdefault(
                candidate, (PurePosixPath(relative.as_posix()), item_base)
            )

    return [(path, relative, base) for path, (relative, base) in found.items()]


async def src(
    patterns: "Iterable[str] | str",
    cwd: "Path | str" = ".",
    base: "Path | str | None" = None,
) -> list[FileItem]:
    items: list[FileItem] = []
    for absolute, relative, item_base in resolve_sources(patterns, Path(cwd), base):
        contents = await anyio.Path(absolute).read_bytes()
        items.append(FileItem(path=relative, base=item_base, contents=contents))

    return items


async def dest(items: "Sequence[FileItem]", directory: "Path | str") -> list[Path]:
    written: list[Path] = []
    for item in items:
        target = anyio.Path(directory) / item.path
        await target.parent.mkdir(parents=True, exist_ok=True)
        await target.write_bytes(item.contents)
        written.append(Path(target))

    return written


async def apply_stages(
    items: list[FileItem], stages: "Sequence[Stage]"
) -> list[FileItem]:
    for stage in stages:
        result = stage(items)
        if inspect.isawaitable(result):
            result = await result
        items = list(result)

    return items


class FilePipeline:
    """
    Action for file-producing tasks. Calling it returns a stream of the written
    paths; nothing is written unless every stage succeeded.

    ```python
    registry.define(
        "styles",
        action=FilePipeline(
            "app/styles/*.scss",
            [CommandStage(SassOptions(precision=10))],
            dest=".tmp/styles",
            cwd=config.root,
            reload=hub,
        ),
    )
    ```
    """

    def __init__(
        self,
        source: "Iterable[str] | str",
        stages: "Sequence[Stage]" = (),
        dest: "Path | str | Sequence[Path | str] | None" = None,
        *,
        cwd: "Path | str" = ".",
        base: "Path | str | None" = None,
        expect_files: bool = False,
        reload: "ReloadHub | None" = None,
        reload_once: bool = False,
    ) -> None:
        self.source = [source] if isinstance(source, str) else list(source)
        self.stages = list(stages)
        if dest is None:
            self.destinations: list[Path] = []
        elif isinstance(dest, (str, Path)):
            self.destinations = [Path(dest)]
        else:
            self.destinations = [Path(d) for d in dest]
        self.cwd = Path(cwd)
        self.base = base
        self.expect_files = expect_files
        self.reload = reload
        self.reload_once = reload_once

    async def transform(self) -> list[FileItem]:
        items = await src(self.source, cwd=self.cwd, base=self.base)
        if self.expect_files and not items:
            raise MissingSourceError(self.source)

        return await apply_stages(items, self.stages)

    async def __call__(self) -> "AsyncIterator[Path]":
        items = await self.transform()

        written: list[Path] = []
        for destination in self.destinations:
            # an absolute destination ignores cwd
            written.extend(await dest(items, self.cwd / destination))

        logger.debug("Wrote %d file(s) from %s", len(written), ", ".join(self.source))

        if self.reload is not None:
            # check-only pipelines (e.g. linting) report their sources
            changed = written if self.destinations else [i.source for i in items]
            self.reload.notify(
                (
                    p.relative_to(self.cwd).as_posix()
                    if p.is_relative_to(self.cwd)
                    else p.as_posix()
                    for p in changed
                ),
                once=self.reload_once,
            )

        for path in written:
            yield path
