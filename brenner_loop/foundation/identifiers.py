"""ID generation and parsing for domain objects.

Stable formats (must round-trip bit-exact through storage):

    HC-{sessionId}-{seq:3}-v{version}   hypothesis card
    EV-{sessionId}-{seq:3}              evidence entry
    GY-{sessionId}-{seq:3}              graveyard entry
    ARENA-{uuid} / AT-{uuid} / TR-{uuid}  arena, arena test, test result
"""

from __future__ import annotations

import re
from uuid import UUID, uuid4

SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9-]*$")

MAX_SEQUENCE = 999


def new_id() -> UUID:
    """Generate a new random UUID v4 for domain objects."""
    return uuid4()


def prefixed_uuid(prefix: str) -> str:
    """Return ``{prefix}-{uuid4}``."""
    return f"{prefix}-{new_id()}"


def validate_session_id(session_id: str) -> str:
    """Return *session_id* unchanged or raise ``ValueError``."""
    if not isinstance(session_id, str) or not SESSION_ID_PATTERN.match(session_id):
        raise ValueError(
            f'Invalid sessionId: must be alphanumeric with optional hyphens (got "{session_id}")'
        )
    return session_id


def validate_sequence(sequence: int) -> int:
    """Return *sequence* unchanged or raise ``ValueError``."""
    # bool is an int subclass; True must not sneak through as sequence 1
    if isinstance(sequence, bool) or not isinstance(sequence, int) or not 0 <= sequence <= MAX_SEQUENCE:
        raise ValueError(f"Invalid sequence: must be an integer from 0-{MAX_SEQUENCE} (got {sequence!r})")
    return sequence


def format_sequence(sequence: int) -> str:
    return f"{sequence:03d}"


def session_scoped_id(prefix: str, session_id: str, sequence: int) -> str:
    """Build ``{prefix}-{sessionId}-{seq:3}`` after validating both parts."""
    validate_session_id(session_id)
    validate_sequence(sequence)
    return f"{prefix}-{session_id}-{format_sequence(sequence)}"
