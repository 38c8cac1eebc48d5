"""
Glob matching for cache invalidation patterns.

Only ``*`` is special: it matches any run of characters, including none.
Every other character, regex metacharacters included, matches itself.
"""

import re
from typing import Callable


WILDCARD = "*"


def has_wildcard(pattern: str) -> bool:
    """Return True when the pattern contains at least one ``*``."""
    return WILDCARD in pattern


def wildcard_to_regex(pattern: str) -> str:
    """Translate a glob into an anchored regular expression source."""
    escaped = ".*".join(re.escape(part) for part in pattern.split(WILDCARD))
    return rf"\A{escaped}\Z"


def compile_wildcard(pattern: str) -> Callable[[str], bool]:
    """Compile a glob into a full-string matcher."""
    regex = re.compile(wildcard_to_regex(pattern), re.DOTALL)

    def matcher(candidate: str) -> bool:
        return regex.match(candidate) is not None

    return matcher
