import re
from functools import lru_cache
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Iterable
    from pathlib import PurePath

_MAGIC = re.compile(r"[*?\[{]")


def _expand_braces(pattern: str) -> list[str]:
    match = re.search(r"\{([^{}]*)\}", pattern)
    if not match:
        return [pattern]

    head, tail = pattern[: match.start()], pattern[match.end() :]
    return [
        expanded
        for option in match.group(1).split(",")
        for expanded in _expand_braces(head + option + tail)
    ]


def _translate(pattern: str) -> str:
    parts: list[str] = []
    i = 0
    while i < len(pattern):
        char = pattern[i]
        if pattern.startswith("**/", i):
            parts.append("(?:.*/)?")
            i += 3
            continue
        elif pattern.startswith("**", i):
            parts.append(".*")
            i += 2
            continue
        elif char == "*":
            parts.append("[^/]*")
        elif char == "?":
            parts.append("[^/]")
        elif char == "[":
            end = pattern.find("]", i + 1)
            if end == -1:
                parts.append(re.escape(char))
            else:
                body = pattern[i + 1 : end]
                if body.startswith("!"):
                    body = "^" + body[1:]
                parts.append(f"[{body}]")
                i = end
        else:
            parts.append(re.escape(char))
        i += 1

    return "".join(parts)


@lru_cache(maxsize=512)
def compile_glob(pattern: str) -> "re.Pattern[str]":
    """Compile a glob supporting `**`, `*`, `?`, `[...]` and `{a,b}`."""
    alternatives = (_translate(p) for p in _expand_braces(pattern))
    return re.compile(r"\A(?:" + "|".join(alternatives) + r")\Z")


def is_glob(pattern: str) -> bool:
    return bool(_MAGIC.search(pattern))


def glob_base(pattern: str) -> PurePosixPath:
    """The leading directories of a pattern that contain no glob characters."""
    parts: list[str] = []
    for part in PurePosixPath(pattern).parts:
        if is_glob(part):
            break
        parts.append(part)
    else:
        # a literal path; its base is the containing directory
        parts = parts[:-1]

    return PurePosixPath(*parts) if parts else PurePosixPath(".")


def split_patterns(patterns: "Iterable[str] | str") -> tuple[list[str], list[str]]:
    """Split patterns into positive ones and `!`-negated ones."""
    if isinstance(patterns, str):
        patterns = [patterns]

    positive: list[str] = []
    negative: list[str] = []
    for pattern in patterns:
        if pattern.startswith("!"):
            negative.append(pattern[1:])
        else:
            positive.append(pattern)

    return positive, negative


def matches(path: "PurePath | str", patterns: "Iterable[str] | str") -> bool:
    """Whether `path` (posix, relative) matches any positive and no negated pattern."""
    positive, negative = split_patterns(patterns)
    candidate = PurePosixPath(path).as_posix()
    if candidate.startswith("./"):
        candidate = candidate[2:]

    return any(compile_glob(p).match(candidate) for p in positive) and not any(
        compile_glob(n).match(candidate) for n in negative
    )
