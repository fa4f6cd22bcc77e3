"""
Glob matching for policy patterns.

Three pattern kinds share one small wildcard language:

    path     Segment-aware. ``*`` matches any run of characters inside a
             single path segment and never crosses ``/``. ``**`` is a whole
             segment that matches zero or more segments.
    domain   Case-insensitive, whole string. ``*.example.com`` also matches
             the bare ``example.com``. A literal matches only itself.
    command  Case-sensitive, whole string. ``*`` matches anything, including
             spaces, slashes and shell separators.

There is no ``?``, no character classes and no escaping. Every other
character is literal.

Security Note:
    Commands are matched as opaque strings, not parsed as shell. Chained
    commands such as ``ls; rm -rf /`` are only caught when the policy lists
    a pattern like ``*;*`` in its denylist.
"""

from enum import Enum
from functools import lru_cache

from toolgate.errors import PatternError


class PatternKind(str, Enum):
    """The resource a pattern is matched against."""

    PATH = "path"
    DOMAIN = "domain"
    COMMAND = "command"


# =============================================================================
# Matching
# =============================================================================


def wildcard_match(pattern: str, text: str) -> bool:
    """
    Match ``text`` against ``pattern`` where ``*`` matches any run of characters.

    Greedy two-pointer scan with single backtrack point, so long command
    strings cannot blow the stack.
    """
    p = t = 0
    star = -1
    mark = 0
    while t < len(text):
        if p < len(pattern) and pattern[p] == "*":
            star = p
            mark = t
            p += 1
        elif p < len(pattern) and pattern[p] == text[t]:
            p += 1
            t += 1
        elif star != -1:
            p = star + 1
            mark += 1
            t = mark
        else:
            return False

    while p < len(pattern) and pattern[p] == "*":
        p += 1
    return p == len(pattern)


def split_segments(path: str) -> tuple[str, ...]:
    """
    Split a slash-separated path into segments.

    Absolute paths keep a leading empty segment so that ``/ws/**`` cannot
    match the relative path ``ws/x``. Trailing slashes are ignored.
    """
    if path == "/":
        return ("",)
    return tuple(path.rstrip("/").split("/"))


def match_path(pattern: str, path: str) -> bool:
    """
    Check if a normalized path matches a segment-aware glob.

    Examples:
        /ws/** matches /ws, /ws/a and /ws/a/b/c
        /ws/*.txt matches /ws/a.txt but not /ws/sub/a.txt
        **/*.pem matches /home/user/project/server.pem
    """
    pattern_parts = split_segments(pattern)
    path_parts = split_segments(path)

    @lru_cache(maxsize=None)
    def walk(i: int, j: int) -> bool:
        if i == len(pattern_parts):
            return j == len(path_parts)
        if pattern_parts[i] == "**":
            return any(walk(i + 1, k) for k in range(j, len(path_parts) + 1))
        if j == len(path_parts):
            return False
        return wildcard_match(pattern_parts[i], path_parts[j]) and walk(i + 1, j + 1)

    return walk(0, 0)


def match_domain(pattern: str, domain: str) -> bool:
    """
    Check if a domain matches a domain pattern.

    Examples:
        api.example.com matches api.example.com only
        *.trusted.com matches sub.trusted.com, a.b.trusted.com and trusted.com
    """
    pattern = pattern.lower().rstrip(".")
    domain = domain.lower().rstrip(".")
    if not domain:
        return False

    if pattern.startswith("*.") and domain == pattern[2:]:
        return True
    return wildcard_match(pattern, domain)


def match_command(pattern: str, command: str) -> bool:
    """Check if a whole command string matches a command pattern."""
    return wildcard_match(pattern, command)


_MATCHERS = {
    PatternKind.PATH: match_path,
    PatternKind.DOMAIN: match_domain,
    PatternKind.COMMAND: match_command,
}


def matches(kind: PatternKind, pattern: str, value: str) -> bool:
    """Dispatch to the matcher for ``kind``."""
    return _MATCHERS[kind](pattern, value)


def first_match(kind: PatternKind, patterns: list[str], value: str) -> str | None:
    """Return the first pattern in declaration order that matches, if any."""
    for pattern in patterns:
        if matches(kind, pattern, value):
            return pattern
    return None


# =============================================================================
# Validation
# =============================================================================


def validate_pattern(kind: PatternKind, pattern: str) -> str:
    """
    Check pattern syntax.

    Args:
        kind: Which resource the pattern applies to
        pattern: The pattern text

    Returns:
        The pattern, unchanged

    Raises:
        PatternError: If the pattern is malformed
    """

    def fail(problem: str) -> PatternError:
        return PatternError(pattern=pattern, kind=kind.value, problem=problem)

    if not isinstance(pattern, str) or not pattern.strip():
        raise fail("pattern cannot be empty")
    if "\x00" in pattern:
        raise fail("pattern contains a NUL byte")

    if kind is PatternKind.PATH:
        for segment in split_segments(pattern):
            if "**" in segment and segment != "**":
                raise fail("'**' must be a whole path segment")
            if segment == "..":
                raise fail("'..' segments are not allowed; spell the path out")
    elif kind is PatternKind.DOMAIN:
        if "/" in pattern or ":" in pattern:
            raise fail("domain patterns cannot contain '/' or ':'")
        if any(label == "" for label in pattern.rstrip(".").split(".")):
            raise fail("domain pattern has an empty label")

    return pattern
