"""Test vs. production classification for credential definitions and assets.

A credential definition id (or the ledger/schema identity that carries it) is
classified by an ordered pattern table: the first matching pattern wins and
anything unmatched is production. Asset and bundle paths are classified by a
``test``/``prod`` path segment.
"""

import re
from typing import Callable, Iterable, List, Optional, Sequence, Tuple, TypeVar

TEST = "test"
PROD = "prod"

# Ordered: ledger-qualified markers before bare words so "CANDY_PROD" is not
# misread by a later generic rule.
ENVIRONMENT_PATTERNS: Tuple[Tuple[re.Pattern, str], ...] = (
    (re.compile(r"candy[_:-]?test", re.IGNORECASE), TEST),
    (re.compile(r"candy[_:-]?dev", re.IGNORECASE), TEST),
    (re.compile(r"candy[_:-]?prod", re.IGNORECASE), PROD),
    (re.compile(r"bcovrin[_:-]?test", re.IGNORECASE), TEST),
    (re.compile(r"sovrin[_:-]?(?:staging|builder)", re.IGNORECASE), TEST),
    (re.compile(r"(?:^|[^a-z])(?:test|dev|staging)(?:[^a-z]|$)", re.IGNORECASE), TEST),
    (re.compile(r"(?:^|[^a-z])(?:prod|production)(?:[^a-z]|$)", re.IGNORECASE), PROD),
)

_SEGMENT_ENVIRONMENTS = {"test": TEST, "prod": PROD}

T = TypeVar("T")


def classify_environment(
    identity: Optional[str],
    patterns: Sequence[Tuple[re.Pattern, str]] = ENVIRONMENT_PATTERNS,
) -> str:
    """Classify a credential identity as "test" or "prod" (the default)."""
    if not identity:
        return PROD
    for pattern, environment in patterns:
        if pattern.search(identity):
            return environment
    return PROD


def path_environment(path: Optional[str]) -> Optional[str]:
    """Environment named by a /test or /prod path segment, if any."""
    if not path:
        return None
    path = path.split("?", 1)[0]
    for segment in path.split("/"):
        environment = _SEGMENT_ENVIRONMENTS.get(segment.lower())
        if environment:
            return environment
    return None


def prefer_environment(
    candidates: Iterable[T],
    environment: str,
    paths_of: Callable[[T], Iterable[Optional[str]]],
) -> List[T]:
    """Candidates whose paths name environment, or all of them if none do."""
    candidates = list(candidates)
    matching = [
        c for c in candidates
        if any(path_environment(p) == environment for p in paths_of(c))
    ]
    return matching or candidates
