"""Semantic version parsing and comparison for matrix constraints."""


def parse_version(value: str) -> tuple[int, ...] | None:
    """Parse a dotted numeric version like '5.2.5' into a tuple of ints.

    Returns None if any component is not a plain non-negative integer.
    """
    if not isinstance(value, str) or not value.strip():
        return None

    parts = value.strip().split(".")
    result = []
    for part in parts:
        if not (part.isascii() and part.isdigit()):
            return None
        result.append(int(part))
    return tuple(result)


def _pad(parts: tuple[int, ...], length: int) -> tuple[int, ...]:
    return parts + (0,) * (length - len(parts))


def compare_versions(left: str, right: str) -> int:
    """Compare two versions component by component.

    Missing trailing components count as zero, so '5.2' == '5.2.0'.

    Returns:
        -1, 0 or 1

    Raises:
        ValueError: if either version cannot be parsed
    """
    left_parts = parse_version(left)
    right_parts = parse_version(right)
    if left_parts is None:
        raise ValueError(f"Invalid version '{left}'")
    if right_parts is None:
        raise ValueError(f"Invalid version '{right}'")

    length = max(len(left_parts), len(right_parts))
    left_parts = _pad(left_parts, length)
    right_parts = _pad(right_parts, length)

    if left_parts < right_parts:
        return -1
    if left_parts > right_parts:
        return 1
    return 0


def version_at_least(version: str, minimum: str | None) -> bool:
    """Check version >= minimum.

    No minimum always passes. An unparseable version or minimum never passes,
    so a bad value excludes a combination instead of aborting the expansion.
    """
    if minimum is None:
        return True
    try:
        return compare_versions(version, minimum) >= 0
    except ValueError:
        return False
