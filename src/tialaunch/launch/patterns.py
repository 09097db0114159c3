"""Class-name filter normalization.

Users write class filters the way they write test-task include/exclude
patterns: file-path globs such as ``com/example/**/*Test.class``. The spawned
executor matches fully qualified class names against regular expressions, so
each glob is rewritten to dotted form and compiled here.

Wildcards after rewriting:
- ``*``  any run of characters except ``.``
- ``**`` any run of characters including ``.``
- ``?``  exactly one character except ``.``
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from tialaunch.core.errors import PatternError

MATCH_ALL = ".*"

_CLASS_SUFFIX = re.compile(r"\.class$")
_SEPARATORS = re.compile(r"[/\\]")
# A double wildcard absorbs the separators and single wildcards around it.
_DOUBLE_WILDCARD = re.compile(r"[.*]*\*\*[.*]*")
_UNSUPPORTED = frozenset("[]{}")


@dataclass(frozen=True)
class ExactPattern:
    """A normalized class filter.

    ``glob`` is the rewritten dotted glob, ``regex`` the form handed to the
    spawned process.
    """

    glob: str
    regex: str

    def matches(self, class_name: str) -> bool:
        return re.fullmatch(self.regex, class_name) is not None

    def __str__(self) -> str:
        return self.regex


def rewrite(pattern: str) -> str:
    """Apply the textual rewrites in order: suffix, separators, ``**`` collapse."""
    rewritten = _CLASS_SUFFIX.sub("", pattern)
    rewritten = _SEPARATORS.sub(".", rewritten)
    return _DOUBLE_WILDCARD.sub("**", rewritten)


def _compile(glob: str, raw: str) -> str:
    if not glob:
        raise PatternError.invalid_pattern(raw, "pattern is empty")

    parts: list[str] = []
    i = 0
    while i < len(glob):
        char = glob[i]
        if glob.startswith("**", i):
            parts.append(".*")
            i += 2
            continue
        if char == "*":
            parts.append("[^.]*")
        elif char == "?":
            parts.append("[^.]")
        elif char in _UNSUPPORTED:
            raise PatternError.invalid_pattern(raw, f"unsupported construct '{char}'")
        elif char.isspace():
            raise PatternError.invalid_pattern(raw, "class patterns cannot contain whitespace")
        else:
            parts.append(re.escape(char))
        i += 1
    return "".join(parts)


def normalize(pattern: str | ExactPattern) -> ExactPattern:
    """Normalize a glob class filter into an exact pattern.

    Raises:
        PatternError: The rewritten glob is empty or uses an unsupported
            construct (character classes, alternation braces, whitespace).
    """
    raw = pattern.glob if isinstance(pattern, ExactPattern) else pattern
    glob = rewrite(raw)
    return ExactPattern(glob=glob, regex=_compile(glob, raw))
