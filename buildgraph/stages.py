"""
Stages for `FilePipeline`. External tools are wrapped by `CommandStage`, driven
by one explicit options record per tool so that misconfiguration fails when the
build file is loaded, not when the tool runs.
"""

import inspect
import json
import logging
import os
import re
from collections.abc import Callable
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Annotated, ClassVar, Literal

import anyio
from pydantic import BaseModel, ConfigDict, Field, PositiveInt

from .exceptions import LintError, ToolError
from .globs import matches

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Iterable

    from anyio.abc import ByteReceiveStream, ByteSendStream

    from .pipeline import FileItem, Stage

logger = logging.getLogger(__name__)


##
## IN-PROCESS STAGES
##


def concat(filename: str, separator: str = "\n") -> "Stage":
    """Join every item into a single file named `filename`."""

    def _concat(items: list["FileItem"]) -> list["FileItem"]:
        if not items:
            return []

        joined = separator.encode().join(item.contents for item in items)
        return [items[0].with_path(filename).with_contents(joined)]

    _concat.__name__ = f"concat({filename})"
    return _concat


def when(patterns: "Iterable[str] | str", stage: "Stage") -> "Stage":
    """Apply `stage` only to the items whose path matches `patterns`."""

    async def _when(items: list["FileItem"]) -> list["FileItem"]:
        selected = [item for item in items if matches(item.path, patterns)]
        rest = [item for item in items if not matches(item.path, patterns)]
        if not selected:
            return items

        result = stage(selected)
        if inspect.isawaitable(result):
            result = await result

        return rest + list(result)

    return _when


def rename(fn: Callable[[PurePosixPath], "PurePosixPath | str"]) -> "Stage":
    def _rename(items: list["FileItem"]) -> list["FileItem"]:
        return [item.with_path(fn(item.path)) for item in items]

    return _rename


##
## EXTERNAL TOOLS
##


class CommandOptions(BaseModel):
    program: ClassVar[tuple[str, ...]] = ()
    output_suffix: ClassVar[str | None] = None
    batch: ClassVar[bool] = False
    """Batch tools run once over every source path instead of once per item."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    def arguments(self, item: "FileItem | None" = None) -> list[str]:
        return []

    def environment(self) -> dict[str, str] | None:
        return None

    def argv(self, item: "FileItem | None" = None) -> list[str]:
        return [*self.program, *self.arguments(item)]


class SassOptions(CommandOptions):
    program = ("sassc", "--stdin")
    output_suffix = ".css"

    output_style: Literal["nested", "expanded", "compact", "compressed"] = "expanded"
    precision: PositiveInt = 10
    include_paths: tuple[str, ...] = (".",)
    source_map: bool = True

    def arguments(self, item: "FileItem | None" = None) -> list[str]:
        args = ["--style", self.output_style, "--precision", str(self.precision)]
        for path in self.include_paths:
            args += ["--load-path", path]
        if item is not None:
            args += ["--load-path", str(item.source.parent)]
        if self.source_map:
            args.append("--sourcemap=inline")
        return args


class AutoprefixerOptions(CommandOptions):
    program = ("postcss", "--use", "autoprefixer")

    browsers: tuple[str, ...] = Field(min_length=1)

    def environment(self) -> dict[str, str]:
        return {"BROWSERSLIST": ", ".join(self.browsers)}


class TemplateOptions(CommandOptions):
    program = ("pug",)
    output_suffix = ".html"

    pretty: bool = True
    basedir: str | None = None

    def arguments(self, item: "FileItem | None" = None) -> list[str]:
        args = []
        if self.pretty:
            args.append("--pretty")
        if self.basedir:
            args += ["--basedir", self.basedir]
        if item is not None:
            # includes resolve relative to the template's own location
            args += ["--path", str(item.source)]
        return args


class HtmlMinifierOptions(CommandOptions):
    program = ("html-minifier",)

    conditionals: bool = True
    loose: bool = True

    def arguments(self, item: "FileItem | None" = None) -> list[str]:
        args = ["--collapse-whitespace"]
        if self.loose:
            args.append("--conservative-collapse")
        if self.conditionals:
            args.append("--process-conditional-comments")
        return args


class ImageOptimizerOptions(CommandOptions):
    program = ("imagemin",)

    progressive: bool = True
    interlaced: bool = True
    # IDs in SVGs are often used as hooks for embedding and styling
    cleanup_ids: bool = False

    def arguments(self, item: "FileItem | None" = None) -> list[str]:
        args = []
        if self.progressive:
            args.append("--plugin.mozjpeg.progressive=true")
        if self.interlaced:
            args.append("--plugin.gifsicle.interlaced=true")
        args.append(f"--plugin.svgo.plugins.cleanupIDs={str(self.cleanup_ids).lower()}")
        return args


class PolyfillOptions(CommandOptions):
    program = ("autopolyfiller",)
    batch = True

    browsers: tuple[str, ...] = Field(min_length=1)
    filename: str = "polyfills-generated.js"

    def arguments(self, item: "FileItem | None" = None) -> list[str]:
        return ["--browsers", ", ".join(self.browsers)]


class LintOptions(CommandOptions):
    program = ("eslint", "--format", "stylish")

    env: tuple[str, ...] = ()
    config: str | None = None

    def arguments(self, item: "FileItem | None" = None) -> list[str]:
        args = []
        for env in self.env:
            args += ["--env", env]
        if self.config:
            args += ["--config", self.config]
        args.append("--stdin")
        if item is not None:
            args += ["--stdin-filename", str(item.source)]
        return args


class FaviconOptions(CommandOptions):
    """
    Icon set generation with the RealFaviconGenerator command line. The tool
    writes the icons to `dest` and the markup to inject into `markup_file`.
    """

    program = ("real-favicon", "generate")

    master_picture: str
    app_name: str
    dest: str = ".tmp/favicon"
    description_file: str = ".tmp/faviconDescription.json"
    markup_file: str = "faviconData.json"
    icons_path: str = "/"
    background_color: str = "#ffffff"
    theme_color: str = "#eed911"
    windows_color: str = "#da532c"
    ios_margin: str = "14%"
    android_margin: str = "13%"
    safari_threshold: Annotated[int, Field(ge=0, le=100)] = 90
    compression: Annotated[int, Field(ge=0, le=5)] = 2
    scaling_algorithm: str = "Mitchell"

    def description(self) -> dict:
        return {
            "masterPicture": self.master_picture,
            "iconsPath": self.icons_path,
            "design": {
                "ios": {
                    "pictureAspect": "backgroundAndMargin",
                    "backgroundColor": self.background_color,
                    "margin": self.ios_margin,
                    "appName": self.app_name,
                },
                "desktopBrowser": {},
                "windows": {
                    "pictureAspect": "noChange",
                    "backgroundColor": self.windows_color,
                    "onConflict": "override",
                    "appName": self.app_name,
                },
                "androidChrome": {
                    "pictureAspect": "backgroundAndMargin",
                    "margin": self.android_margin,
                    "backgroundColor": self.background_color,
                    "themeColor": self.theme_color,
                    "manifest": {
                        "name": self.app_name,
                        "display": "standalone",
                        "orientation": "notSet",
                        "onConflict": "override",
                    },
                },
                "safariPinnedTab": {
                    "pictureAspect": "blackAndWhite",
                    "threshold": self.safari_threshold,
                    "themeColor": self.theme_color,
                },
            },
            "settings": {
                "compression": self.compression,
                "scalingAlgorithm": self.scaling_algorithm,
                "errorOnImageTooSmall": False,
            },
        }

    def arguments(self, item: "FileItem | None" = None) -> list[str]:
        return [self.description_file, self.markup_file, self.dest]


async def _drain(stream: "ByteReceiveStream", sink: bytearray) -> None:
    async for chunk in stream:
        sink.extend(chunk)


async def _feed(stdin: "ByteSendStream", contents: bytes | None) -> None:
    try:
        if contents:
            await stdin.send(contents)
        await stdin.aclose()
    except (
        anyio.BrokenResourceError,
        anyio.ClosedResourceError,
        BrokenPipeError,
        ConnectionResetError,
    ):
        # the tool exited without reading all of its input; its exit status decides
        logger.debug("Tool closed its input early")


async def _run_tool(
    options: CommandOptions,
    argv: list[str],
    stdin: bytes | None = None,
    cwd: "Path | None" = None,
) -> bytes:
    env = None
    if extra := options.environment():
        env = {**os.environ, **extra}

    try:
        process = await anyio.open_process(argv, env=env, cwd=cwd)
    except FileNotFoundError as e:
        raise ToolError(argv[0], 127, f"{argv[0]} is not installed") from e

    stdout, stderr = bytearray(), bytearray()
    async with process:
        async with anyio.create_task_group() as tg:
            tg.start_soon(_drain, process.stdout, stdout)
            tg.start_soon(_drain, process.stderr, stderr)
            tg.start_soon(_feed, process.stdin, stdin)

        returncode = await process.wait()

    if returncode != 0:
        raise ToolError(
            argv[0],
            returncode,
            stderr.decode(errors="replace") or stdout.decode(errors="replace"),
        )

    return bytes(stdout)


class CommandStage:
    """
    Pipe every item through an external tool (stdin to stdout). The first failing
    item aborts the stage with a `ToolError`.
    """

    def __init__(self, options: CommandOptions) -> None:
        self.options = options

    async def __call__(self, items: list["FileItem"]) -> list["FileItem"]:
        if self.options.batch:
            return await self._batch(items)

        transformed: list["FileItem"] = []
        for item in items:
            output = await _run_tool(
                self.options, self.options.argv(item), item.contents
            )
            result = item.with_contents(output)
            if self.options.output_suffix:
                result = result.with_path(
                    item.path.with_suffix(self.options.output_suffix)
                )
            transformed.append(result)

        return transformed

    async def _batch(self, items: list["FileItem"]) -> list["FileItem"]:
        if not items:
            return []

        argv = [*self.options.argv(), *(str(item.source) for item in items)]
        output = await _run_tool(self.options, argv)
        filename = getattr(self.options, "filename", items[0].path.name)
        return [items[0].with_path(filename).with_contents(output)]


class LintStage:
    """
    Lint every item and pass it through unchanged. Problems fail the stage unless
    the stage is tolerant, e.g. while a live preview is being served.
    """

    def __init__(
        self, options: LintOptions, tolerant: "bool | Callable[[], bool]" = False
    ) -> None:
        self.options = options
        self.tolerant = tolerant

    def _is_tolerant(self) -> bool:
        return self.tolerant() if callable(self.tolerant) else self.tolerant

    async def __call__(self, items: list["FileItem"]) -> list["FileItem"]:
        problems: dict[str, str] = {}
        for item in items:
            try:
                await _run_tool(self.options, self.options.argv(item), item.contents)
            except ToolError as e:
                problems[item.path.as_posix()] = e.stderr.strip() or str(e)

        if problems:
            if not self._is_tolerant():
                raise LintError(problems)

            for path, message in problems.items():
                logger.warning("Lint: %s: %s", path, message)

        return items


_HEAD_END = re.compile(rb"</head\s*>", re.IGNORECASE)


class FaviconStage(CommandStage):
    """
    Generate the icon set once per batch, then inject the generated markup into
    the head of every HTML item.
    """

    options: FaviconOptions

    def __init__(self, options: FaviconOptions, cwd: "Path | str" = ".") -> None:
        super().__init__(options)
        self.cwd = Path(cwd)

    async def generate(self) -> str:
        description = anyio.Path(self.cwd / self.options.description_file)
        await description.parent.mkdir(parents=True, exist_ok=True)
        await description.write_text(json.dumps(self.options.description()))

        await _run_tool(self.options, self.options.argv(), cwd=self.cwd)

        markup = await anyio.Path(self.cwd / self.options.markup_file).read_text()
        return json.loads(markup)["favicon"]["html_code"]

    async def __call__(self, items: list["FileItem"]) -> list["FileItem"]:
        html_code = (await self.generate()).encode()

        injected: list["FileItem"] = []
        for item in items:
            if matches(item.path, "*.html") and _HEAD_END.search(item.contents):
                item = item.with_contents(
                    _HEAD_END.sub(
                        lambda m: html_code + b"\n" + m.group(0), item.contents, 1
                    )
                )
            injected.append(item)

        return injected
