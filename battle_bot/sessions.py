"""Context-keyed session storage for lobbies, tournaments and setup wizards."""

from __future__ import annotations

from collections.abc import Iterator
from typing import Generic, TypeVar

T = TypeVar("T")


class SessionStore(Generic[T]):
    """In-memory map whose entries live exactly as long as their session."""

    def __init__(self) -> None:
        self._sessions: dict[int, T] = {}

    def get(self, key: int) -> T | None:
        return self._sessions.get(key)

    def put(self, key: int, session: T) -> None:
        self._sessions[key] = session

    def remove(self, key: int, expected: T | None = None) -> T | None:
        """Drop ``key``; with ``expected``, only while it still maps to that object."""
        if expected is not None and self._sessions.get(key) is not expected:
            return None
        return self._sessions.pop(key, None)

    def __contains__(self, key: object) -> bool:
        return key in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self) -> Iterator[int]:
        return iter(list(self._sessions))


__all__ = ["SessionStore"]
