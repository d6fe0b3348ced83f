"""Identifier generation."""

import uuid

import uuid_utils as uuid7_lib


def new_id() -> uuid.UUID:
    """Generate a UUIDv7 (time-ordered) for use as primary key value."""
    return uuid.UUID(bytes=uuid7_lib.uuid7().bytes)
