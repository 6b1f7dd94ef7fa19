"""Docket version comparator: numeric dotted-triple ordering.

Versions compare component-wise as integers (major, minor, patch), so
"1.10.0" is newer than "1.9.0". Missing or non-numeric components count
as 0. Equal triples are "not newer" in either direction.
"""

from __future__ import annotations

from typing import Any, Tuple


def parse_version(value: Any) -> Tuple[int, int, int]:
    """Parse a dotted version string into a (major, minor, patch) triple."""
    if value is None:
        return (0, 0, 0)
    parts = str(value).strip().split(".")
    nums = []
    for part in parts[:3]:
        try:
            nums.append(int(part.strip()))
        except ValueError:
            nums.append(0)
    while len(nums) < 3:
        nums.append(0)
    return (nums[0], nums[1], nums[2])


def compare_versions(a: Any, b: Any) -> int:
    """Return 1 if a > b, -1 if a < b, 0 if equal."""
    left = parse_version(a)
    right = parse_version(b)
    for x, y in zip(left, right):
        if x > y:
            return 1
        if x < y:
            return -1
    return 0


def is_newer(candidate: Any, incumbent: Any) -> bool:
    """True only when candidate is strictly newer than incumbent."""
    return compare_versions(candidate, incumbent) > 0


def is_compatible(app_version: Any, min_app_version: Any) -> bool:
    """True when the running app satisfies a document's minAppVersion."""
    return compare_versions(app_version, min_app_version) >= 0
