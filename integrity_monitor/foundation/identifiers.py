"""Identifier generation for sessions and signals."""

from __future__ import annotations

from uuid import uuid4


def new_session_id() -> str:
    """Opaque session identifier (hex UUID v4, 32 chars)."""
    return uuid4().hex


def new_signal_id() -> str:
    return uuid4().hex
