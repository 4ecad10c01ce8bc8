import json
import shutil
from pathlib import Path, PurePosixPath

import pytest
from pydantic import ValidationError

from buildgraph import FileItem
from buildgraph.exceptions import LintError, ToolError
from buildgraph.stages import (
    AutoprefixerOptions,
    CommandOptions,
    CommandStage,
    FaviconOptions,
    FaviconStage,
    LintOptions,
    LintStage,
    SassOptions,
    TemplateOptions,
)

pytestmark = pytest.mark.skipif(
    not (shutil.which("cat") and shutil.which("false")),
    reason="requires posix cat and false",
)


class CatOptions(CommandOptions):
    program = ("cat",)
    output_suffix = ".out"


class FailOptions(CommandOptions):
    program = ("false",)


class ShoutOptions(CommandOptions):
    program = ("sh", "-c", 'printf "%s" "$SHOUT"')

    def environment(self) -> dict[str, str]:
        return {"SHOUT": "hey"}


class MissingToolOptions(CommandOptions):
    program = ("definitely-not-an-installed-tool",)


def item(path: str, contents: str) -> FileItem:
    return FileItem(path=PurePosixPath(path), base=Path("."), contents=contents.encode())


@pytest.mark.anyio
async def test_command_stage_pipes_each_item():
    result = await CommandStage(CatOptions())([item("a.txt", "A"), item("b.txt", "B")])

    assert [(str(i.path), i.contents) for i in result] == [
        ("a.out", b"A"),
        ("b.out", b"B"),
    ]


@pytest.mark.anyio
async def test_command_stage_environment():
    (result,) = await CommandStage(ShoutOptions())([item("a.txt", "")])

    assert result.contents == b"hey"


@pytest.mark.anyio
async def test_command_stage_failure():
    with pytest.raises(ToolError) as exc_info:
        await CommandStage(FailOptions())([item("a.txt", "A")])

    assert exc_info.value.tool == "false"
    assert exc_info.value.returncode == 1


@pytest.mark.anyio
async def test_missing_tool():
    with pytest.raises(ToolError, match="not installed"):
        await CommandStage(MissingToolOptions())([item("a.txt", "A")])


class FailingLint(LintOptions):
    program = ("sh", "-c", "echo 'no-undef' && exit 1")

    def arguments(self, item=None) -> list[str]:
        return []


@pytest.mark.anyio
async def test_lint_stage_strict():
    with pytest.raises(LintError) as exc_info:
        await LintStage(FailingLint())([item("main.js", "x")])

    assert exc_info.value.problems == {"main.js": "no-undef"}


@pytest.mark.anyio
async def test_lint_stage_tolerant(caplog):
    items = [item("main.js", "x")]
    serving = True

    result = await LintStage(FailingLint(), tolerant=lambda: serving)(items)

    assert result == items
    assert "no-undef" in caplog.text


class EarlyExitLint(LintOptions):
    program = ("sh", "-c", "echo 'no-undef' >&2; exit 1")

    def arguments(self, item=None) -> list[str]:
        return []


@pytest.mark.anyio
async def test_tool_exiting_before_reading_input():
    large = item("vendor.js", "x" * 200_000)

    with pytest.raises(ToolError) as exc_info:
        await CommandStage(EarlyExitLint())([large])

    assert exc_info.value.returncode == 1
    assert "no-undef" in exc_info.value.stderr


@pytest.mark.anyio
async def test_lint_stage_tolerant_when_linter_exits_early():
    items = [item("vendor.js", "x" * 200_000)]

    assert await LintStage(EarlyExitLint(), tolerant=True)(items) == items
    with pytest.raises(LintError) as exc_info:
        await LintStage(EarlyExitLint())(items)

    assert exc_info.value.problems == {"vendor.js": "no-undef"}


def test_options_reject_unknown_settings():
    with pytest.raises(ValidationError):
        SassOptions(outputStyle="expanded")

    with pytest.raises(ValidationError):
        AutoprefixerOptions(browsers=())


def test_options_argv():
    assert SassOptions(include_paths=("lib",), source_map=False).argv() == [
        "sassc",
        "--stdin",
        "--style",
        "expanded",
        "--precision",
        "10",
        "--load-path",
        "lib",
    ]
    assert AutoprefixerOptions(browsers=("> 1%", "last 2 versions")).environment() == {
        "BROWSERSLIST": "> 1%, last 2 versions"
    }
    assert TemplateOptions(pretty=True).argv(item("pages/index.jade", "")) == [
        "pug",
        "--pretty",
        "--path",
        "pages/index.jade",
    ]


class FakeFaviconOptions(FaviconOptions):
    # stands in for the generator: $2 is the markup file, $3 the icon directory
    program = (
        "sh",
        "-c",
        'mkdir -p "$3" && echo icon > "$3/favicon.ico"'
        ' && echo \'{"favicon": {"html_code": "<link rel=icon>"}}\' > "$2"',
        "real-favicon",
    )


@pytest.mark.anyio
async def test_favicon_stage(tmp_path):
    options = FakeFaviconOptions(
        master_picture="app/images/logo.svg", app_name="Club", dest=".tmp/favicon"
    )
    page = item("index.html", "<html><head><title>x</title></head></html>")
    text = item("robots.txt", "</head>")

    result = await FaviconStage(options, cwd=tmp_path)([page, text])

    assert result[0].text() == (
        "<html><head><title>x</title><link rel=icon>\n</head></html>"
    )
    assert result[1] == text
    assert (tmp_path / ".tmp/favicon/favicon.ico").exists()
    description = json.loads((tmp_path / ".tmp/faviconDescription.json").read_text())
    assert description["masterPicture"] == "app/images/logo.svg"
    assert description["design"]["windows"]["appName"] == "Club"


def test_favicon_options_argv():
    options = FaviconOptions(master_picture="logo.svg", app_name="Club")

    assert options.argv() == [
        "real-favicon",
        "generate",
        ".tmp/faviconDescription.json",
        "faviconData.json",
        ".tmp/favicon",
    ]
    with pytest.raises(ValidationError):
        FaviconOptions(master_picture="logo.svg", app_name="Club", compression=9)
