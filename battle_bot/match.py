from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Final, Literal, TypeVar

from .content import ContentProvider
from .interaction import Artifact, NullReporter, Reporter, safe_post
from .models import Contestant, MatchRecord, Pairing, Tournament
from .prompts import (
    PLACEHOLDER_NARRATIVE,
    action_prompt,
    narrative_context,
    narrative_prompt,
    pre_fight_prompt,
)
from .validation import FatalMatchError

log: Final = logging.getLogger("battle-bot")

DEFAULT_GENERATION_TIMEOUT_SECONDS: Final[float] = 120.0

MatchStep = Literal["PRE_FIGHT_ART", "NARRATIVE_AND_ART", "RESOLUTION", "RECORDED"]
Decider = Callable[[Contestant, Contestant, random.Random], Contestant]

T = TypeVar("T")


def coin_flip(first: Contestant, second: Contestant, rng: random.Random) -> Contestant:
    return first if rng.random() < 0.5 else second


@dataclass(slots=True)
class MatchResult:
    record: MatchRecord
    step: MatchStep
    errors: list[str] = field(default_factory=list)

    @property
    def forfeit(self) -> bool:
        return self.record.forfeit


class MatchExecutor:
    """Runs one pairing from face-off art to a recorded result."""

    def __init__(
        self,
        provider: ContentProvider,
        reporter: Reporter | None = None,
        *,
        rng: random.Random | None = None,
        decider: Decider = coin_flip,
        timeout: float = DEFAULT_GENERATION_TIMEOUT_SECONDS,
    ) -> None:
        self.provider = provider
        self.reporter = reporter or NullReporter()
        self.rng = rng or random.Random()
        self.decider = decider
        self.timeout = timeout

    async def run_match(self, tournament: Tournament, pairing: Pairing) -> MatchResult:
        first, second = pairing.first, pairing.second
        settings = tournament.settings
        references = [first.image_url, second.image_url]
        sequence = len(tournament.history) + 1
        errors: list[str] = []
        step: MatchStep = "PRE_FIGHT_ART"
        narrative: str | None = None
        action_image: bytes | None = None
        pre_fight: bytes | None = None
        decided: tuple[Contestant, Contestant] | None = None

        try:
            await safe_post(
                self.reporter,
                f"⚔️ **Match {sequence}**: {pairing.names()} in {settings.arena}",
            )
            pre_fight = await self._best_effort(
                self.provider.generate_image(
                    pre_fight_prompt(first, second, settings), references
                ),
                "pre-fight art",
                errors,
            )
            if pre_fight is not None:
                await safe_post(
                    self.reporter,
                    f"👀 {pairing.names()}: the stare-down",
                    [Artifact(f"prefight-{sequence}.png", pre_fight)],
                )

            step = "NARRATIVE_AND_ART"
            narrative = await self._best_effort(
                self.provider.generate_text(
                    narrative_prompt(first, second, settings),
                    narrative_context(tournament.recent_narratives()),
                ),
                "narrative",
                errors,
            )
            narrative = narrative or PLACEHOLDER_NARRATIVE
            action_image = await self._best_effort(
                self.provider.generate_image(action_prompt(narrative, settings), references),
                "action art",
                errors,
            )

            step = "RESOLUTION"
            winner = self.decider(first, second, self.rng)
            if winner.user_id == first.user_id:
                loser = second
            elif winner.user_id == second.user_id:
                loser = first
            else:
                raise FatalMatchError(f"Decider picked {winner.display_name}, not a participant")
            decided = (winner, loser)
            loser.status = "ELIMINATED"
            winner.round_wins += 1

            record = MatchRecord(
                round_number=tournament.round_number,
                sequence=sequence,
                first_id=first.user_id,
                second_id=second.user_id,
                winner_id=winner.user_id,
                loser_id=loser.user_id,
                narrative=narrative,
                pre_fight_image=pre_fight,
                action_image=action_image,
            )
            tournament.record(record)
            step = "RECORDED"
        except Exception as exc:  # pylint: disable=broad-except
            failure = FatalMatchError(f"{step}: {exc}")
            log.exception("Match %s failed: %s", pairing.names(), failure)
            errors.append(str(failure))
            record = self._forfeit(
                tournament, pairing, sequence, decided, narrative, pre_fight, action_image
            )
            await self._announce(record, pairing, forfeit_reason=step)
            return MatchResult(record=record, step=step, errors=errors)

        await self._announce(record, pairing)
        return MatchResult(record=record, step=step, errors=errors)

    async def _best_effort(
        self, call: Awaitable[T], what: str, errors: list[str]
    ) -> T | None:
        try:
            return await asyncio.wait_for(call, timeout=self.timeout)
        except TimeoutError:
            log.warning("Generating %s timed out after %ss", what, self.timeout)
            errors.append(f"{what}: timed out")
        except Exception as exc:  # pylint: disable=broad-except
            log.warning("Generating %s failed: %s", what, exc)
            errors.append(f"{what}: {exc}")
        return None

    @staticmethod
    def _forfeit(
        tournament: Tournament,
        pairing: Pairing,
        sequence: int,
        decided: tuple[Contestant, Contestant] | None,
        narrative: str | None,
        pre_fight: bytes | None,
        action_image: bytes | None,
    ) -> MatchRecord:
        if decided is None:
            winner, loser = pairing.first, pairing.second
            loser.status = "ELIMINATED"
            winner.round_wins += 1
        else:
            winner, loser = decided
        record = MatchRecord(
            round_number=tournament.round_number,
            sequence=sequence,
            first_id=pairing.first.user_id,
            second_id=pairing.second.user_id,
            winner_id=winner.user_id,
            loser_id=loser.user_id,
            narrative=narrative or f"{loser.display_name} could not continue the fight.",
            pre_fight_image=pre_fight,
            action_image=action_image,
            forfeit=True,
        )
        tournament.record(record)
        return record

    async def _announce(
        self,
        record: MatchRecord,
        pairing: Pairing,
        *,
        forfeit_reason: str | None = None,
    ) -> None:
        fighters = {fighter.user_id: fighter for fighter in (pairing.first, pairing.second)}
        winner = fighters[record.winner_id]
        loser = fighters[record.loser_id]
        if forfeit_reason is None:
            message = (
                f"📖 {record.narrative}\n\n"
                f"🏆 **{winner.display_name}** defeats {loser.display_name}!"
            )
        else:
            message = (
                f"⚠️ The match broke down during {forfeit_reason}. "
                f"**{winner.display_name}** advances; {loser.display_name} is eliminated."
            )
        artifacts = []
        if record.action_image is not None:
            artifacts.append(Artifact(f"battle-{record.sequence}.png", record.action_image))
        await safe_post(self.reporter, message, artifacts)


__all__ = [
    "DEFAULT_GENERATION_TIMEOUT_SECONDS",
    "Decider",
    "MatchExecutor",
    "MatchResult",
    "MatchStep",
    "coin_flip",
]
