"""Centralised in-memory runtime state.

The switchboard (and the room manager it owns) is a process-wide
singleton; routers reach it through :func:`get_switchboard` so tests can
swap it with ``app.dependency_overrides``.
"""
from __future__ import annotations

from .hub import Switchboard

switchboard = Switchboard()


def get_switchboard() -> Switchboard:
    return switchboard


__all__ = ["switchboard", "get_switchboard"]
