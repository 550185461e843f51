"""ULID generation for primary keys."""

from ulid import ULID


def generate_ulid() -> str:
    """Generate a new ULID string (26 characters, lexicographically time-ordered)."""
    return str(ULID())
