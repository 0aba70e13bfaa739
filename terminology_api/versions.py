"""
Version comparison helpers for canonical resources.

Versions are compared segment by segment ("1.10.0" > "1.9.3"). Each segment
is read by its leading digits only, so "2rc1" counts as 2 and "beta" as 0.
A pattern segment of "x" or "X" matches any segment.
"""
import re
from typing import List, Optional, Sequence, Tuple

_LEADING_DIGITS = re.compile(r"^(\d+)")
WILDCARD_SEGMENTS = {"x", "X"}


def _segments(version: str) -> List[str]:
    return version.split(".")


def _segment_number(segment: str) -> int:
    match = _LEADING_DIGITS.match(segment)
    return int(match.group(1)) if match else 0


def version_key(version: Optional[str]) -> Tuple[int, ...]:
    if not version:
        return ()
    return tuple(_segment_number(segment) for segment in _segments(version))


def is_wildcard(version: Optional[str]) -> bool:
    return bool(version) and any(segment in WILDCARD_SEGMENTS for segment in _segments(version))


def matches_pattern(pattern: str, version: Optional[str]) -> bool:
    """True if the version matches a pattern such as '1.x' or '2.0.X'."""
    if not version:
        return False
    pattern_segments = _segments(pattern)
    version_segments = _segments(version)

    if len(version_segments) < len(pattern_segments):
        return False
    if len(version_segments) > len(pattern_segments) and pattern_segments[-1] not in WILDCARD_SEGMENTS:
        return False

    for expected, actual in zip(pattern_segments, version_segments):
        if expected in WILDCARD_SEGMENTS:
            continue
        if expected != actual:
            return False
    return True


def versions_match(requested: Optional[str], actual: Optional[str]) -> bool:
    if requested is None:
        return True
    if is_wildcard(requested):
        return matches_pattern(requested, actual)
    return requested == actual


def select_version(resources: Sequence, version: Optional[str] = None):
    """
    Pick one resource among several versions of the same canonical url.

    Args:
        resources: Candidates, each with a `version` attribute
        version: Exact version, wildcard pattern, or None for the latest

    Returns:
        The matching resource, or None when nothing matches
    """
    if not resources:
        return None

    if version and not is_wildcard(version):
        for resource in resources:
            if resource.version == version:
                return resource
        return None

    if version:
        candidates = [r for r in resources if matches_pattern(version, r.version)]
    else:
        candidates = [r for r in resources if r.version]

    if not candidates:
        if version:
            return None
        # Only unversioned instances exist
        return resources[0]

    best = candidates[0]
    for resource in candidates[1:]:
        if version_key(resource.version) > version_key(best.version):
            best = resource
    return best
