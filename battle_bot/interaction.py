"""UI-facing primitives the core calls back into."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Sequence
from dataclasses import dataclass
from typing import Final, Protocol, TypeVar

log: Final = logging.getLogger("battle-bot")

T = TypeVar("T")


@dataclass(slots=True, frozen=True)
class Artifact:
    filename: str
    data: bytes


class Reporter(Protocol):
    async def post_update(
        self, message: str, artifacts: Sequence[Artifact] = ()
    ) -> None: ...


class ChoicePrompt(Protocol):
    async def present_choice(
        self, options: Sequence[str], timeout: float, default: str | None = None
    ) -> str: ...


class NullReporter:
    async def post_update(
        self, message: str, artifacts: Sequence[Artifact] = ()
    ) -> None:
        log.info("%s (%d artifacts)", message, len(artifacts))


async def await_choice(
    pending: Awaitable[T], timeout: float, default: T
) -> T:
    """Wait for a user's response, falling back to ``default`` on expiry."""
    try:
        return await asyncio.wait_for(pending, timeout=timeout)
    except TimeoutError:
        log.info("Choice timed out after %ss; using default %r", timeout, default)
        return default


async def safe_post(
    reporter: Reporter, message: str, artifacts: Sequence[Artifact] = ()
) -> None:
    """Post an update without letting transport failures escape."""
    try:
        await reporter.post_update(message, artifacts)
    except Exception as exc:  # pylint: disable=broad-except
        log.warning("Failed to post update: %s", exc)


__all__ = [
    "Artifact",
    "ChoicePrompt",
    "NullReporter",
    "Reporter",
    "await_choice",
    "safe_post",
]
