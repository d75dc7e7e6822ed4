"""Ignore rules deciding which files of a build context are packaged.

Pattern grammar
---------------

* A leading ``!`` marks a force-include rule; the remainder is the pattern.
* Host separators are normalised to ``/``. Leading ``./`` and ``/`` and
  trailing ``/`` are dropped from the pattern.
* ``**`` matches any run of characters including ``/`` (``**/`` also
  matches zero directories), ``*`` any run of characters except ``/``,
  ``?`` a single character except ``/``. ``[...]`` is a character class,
  negated with ``[!...]`` or ``[^...]``. On POSIX hosts ``\\`` escapes the
  next character; on Windows it is a separator. Everything else is literal.
* A pattern without ``/`` is matched against the last path component at
  any depth; a pattern containing ``/`` is anchored at the context root.
* Matching is a full match of the relative path.

Rules are evaluated in declaration order and the first matching rule
decides. When no rule matches, the path is included.
"""

from __future__ import annotations

import enum
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

# Names that are never packaged, wherever they appear in the tree.
COMMON_IGNORE = frozenset(
    {
        ".git",
        ".hg",
        ".svn",
        ".DS_Store",
        "Thumbs.db",
    }
)

NEGATION_PREFIX = "!"


class Decision(str, enum.Enum):
    """Outcome of evaluating the ignore rules for a path."""

    INCLUDE = "include"
    EXCLUDE = "exclude"


@dataclass(frozen=True)
class IgnoreRule:
    """A compiled ignore pattern and its polarity."""

    pattern: str
    regex: "re.Pattern[str]"
    is_ignore: bool = True

    @property
    def decision(self) -> Decision:
        return Decision.EXCLUDE if self.is_ignore else Decision.INCLUDE


def normalize_path(path: Union[str, "os.PathLike[str]"]) -> str:
    """Replace the host separator(s) with ``/``."""
    value = os.fspath(path)
    value = value.replace(os.sep, "/")
    if os.altsep:
        value = value.replace(os.altsep, "/")
    return value


def is_common_ignore(name: str) -> bool:
    return name in COMMON_IGNORE


def compile_rule(raw: str) -> IgnoreRule:
    """Compile one raw ignore string into an :class:`IgnoreRule`.

    Raises:
        ConfigurationError: If the pattern is empty or malformed.
    """
    if not isinstance(raw, str):
        raise ConfigurationError(
            f"Ignore patterns must be strings, got {type(raw).__name__}: {raw!r}"
        )

    is_ignore = True
    body = raw.strip()
    if body.startswith(NEGATION_PREFIX):
        is_ignore = False
        body = body[len(NEGATION_PREFIX) :].strip()

    if "\x00" in body:
        raise ConfigurationError(f"Ignore pattern {raw!r} contains a NUL character.")

    body = normalize_path(body)

    while body.startswith("./"):
        body = body[2:]
    body = body.strip("/")
    if not body:
        raise ConfigurationError(f"Ignore pattern {raw!r} is empty.")

    expression = _translate(body, raw)
    if "/" not in body:
        expression = "(?:.*/)?" + expression

    try:
        regex = re.compile(expression, re.DOTALL)
    except re.error as exc:
        raise ConfigurationError(f"Invalid ignore pattern {raw!r}: {exc}") from exc

    logger.debug("Compiled ignore pattern %r -> %s", raw, expression)
    return IgnoreRule(pattern=raw, regex=regex, is_ignore=is_ignore)


def compile_rules(raw_patterns: Optional[Iterable[str]]) -> Tuple[IgnoreRule, ...]:
    """Compile an ordered ignore list. ``None`` or empty yields no rules."""
    if not raw_patterns:
        return ()
    return tuple(compile_rule(raw) for raw in raw_patterns)


def matches(rule: IgnoreRule, relative_path: str) -> bool:
    path = normalize_path(relative_path).strip("/")
    return rule.regex.fullmatch(path) is not None


def decide(rules: Sequence[IgnoreRule], relative_path: str) -> Decision:
    """Return the decision of the first matching rule, or INCLUDE."""
    for rule in rules:
        if matches(rule, relative_path):
            return rule.decision
    return Decision.INCLUDE


def read_ignore_file(path: Union[str, "os.PathLike[str]"]) -> List[str]:
    """Read a ``.dockerignore``-style file into an ordered pattern list.

    Blank lines and lines starting with ``#`` are skipped. A missing file
    yields an empty list.
    """
    ignore_path = Path(path)
    if not ignore_path.is_file():
        return []

    patterns: List[str] = []
    with ignore_path.open("r", encoding="utf-8", errors="replace") as handle:
        for line in handle:
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                continue
            patterns.append(stripped)
    logger.debug("Read %d ignore patterns from %s", len(patterns), ignore_path)
    return patterns


def _translate(body: str, raw: str) -> str:
    parts: List[str] = []
    i, n = 0, len(body)
    while i < n:
        char = body[i]
        if char == "*":
            if body.startswith("**", i):
                i += 2
                if i < n and body[i] == "/":
                    parts.append("(?:.*/)?")
                    i += 1
                else:
                    parts.append(".*")
                continue
            parts.append("[^/]*")
        elif char == "?":
            parts.append("[^/]")
        elif char == "[":
            expression, i = _translate_class(body, i, raw)
            parts.append(expression)
            continue
        elif char == "\\":
            if i + 1 >= n:
                raise ConfigurationError(
                    f"Invalid ignore pattern {raw!r}: trailing escape character."
                )
            parts.append(re.escape(body[i + 1]))
            i += 2
            continue
        else:
            parts.append(re.escape(char))
        i += 1
    return "".join(parts)


def _translate_class(body: str, start: int, raw: str) -> Tuple[str, int]:
    """Translate the ``[...]`` class starting at ``start``; return (regex, next index)."""
    i = start + 1
    negate = False
    if i < len(body) and body[i] in "!^":
        negate = True
        i += 1

    members: List[str] = []
    first = True
    while i < len(body):
        char = body[i]
        if char == "]" and not first:
            break
        if char == "\\":
            if i + 1 >= len(body):
                raise ConfigurationError(
                    f"Invalid ignore pattern {raw!r}: trailing escape character."
                )
            members.append(re.escape(body[i + 1]))
            i += 2
            first = False
            continue
        members.append("\\" + char if char in "\\[]^" else char)
        first = False
        i += 1
    else:
        raise ConfigurationError(
            f"Invalid ignore pattern {raw!r}: unterminated character class."
        )

    content = "".join(members)
    if negate:
        return f"[^/{content}]", i + 1
    return f"[{content}]", i + 1
