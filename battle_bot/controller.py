from __future__ import annotations

import asyncio
import logging
import random
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Final

from .bracket import BracketScheduler, render_round
from .content import ContentProvider
from .document import ComicDocument
from .interaction import Artifact, NullReporter, Reporter, safe_post
from .match import DEFAULT_GENERATION_TIMEOUT_SECONDS, MatchExecutor
from .models import Contestant, Lobby, MatchRecord, Tournament, TournamentStatus
from .prompts import cover_prompt, montage_prompt, victory_video_prompt
from .storage import BattleStorage
from .validation import FatalMatchError, InvalidValueError

log: Final = logging.getLogger("battle-bot")

DEFAULT_MATCH_INTERVAL_SECONDS: Final[float] = 8.0
DOCUMENT_FILENAME: Final[str] = "Battle-Royale-Tournament.pdf"


@dataclass(slots=True)
class TournamentOutcome:
    winner: Contestant | None
    history: list[MatchRecord] = field(default_factory=list)
    document: bytes | None = None
    video_prompt: str | None = None


class TournamentController:
    def __init__(
        self,
        tournament: Tournament,
        host_id: int,
        executor: MatchExecutor,
        *,
        provider: ContentProvider,
        reporter: Reporter | None = None,
        scheduler: BracketScheduler | None = None,
        storage: BattleStorage | None = None,
        match_interval: float = DEFAULT_MATCH_INTERVAL_SECONDS,
        timeout: float = DEFAULT_GENERATION_TIMEOUT_SECONDS,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self.tournament = tournament
        self.host_id = host_id
        self.executor = executor
        self.provider = provider
        self.reporter = reporter or NullReporter()
        self.scheduler = scheduler or BracketScheduler()
        self.storage = storage
        self.match_interval = match_interval
        self.timeout = timeout
        self.cancelled = False
        self._sleep = sleep

    @classmethod
    def from_lobby(
        cls,
        lobby: Lobby,
        provider: ContentProvider,
        *,
        reporter: Reporter | None = None,
        rng: random.Random | None = None,
        storage: BattleStorage | None = None,
        match_interval: float = DEFAULT_MATCH_INTERVAL_SECONDS,
        timeout: float = DEFAULT_GENERATION_TIMEOUT_SECONDS,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> TournamentController:
        """Build a waiting tournament from ``lobby``; illegal sizes raise."""
        BracketScheduler.validate_start(len(lobby.contestants), team_mode=lobby.team_mode)
        rng = rng or random.Random()
        tournament = Tournament(
            tournament_id=uuid.uuid4().hex,
            channel_id=lobby.channel_id,
            settings=lobby.settings,
            contestants={c.user_id: c for c in lobby.contestants},
            team_mode=lobby.team_mode,
        )
        reporter = reporter or NullReporter()
        executor = MatchExecutor(provider, reporter, rng=rng, timeout=timeout)
        return cls(
            tournament,
            lobby.host_id,
            executor,
            provider=provider,
            reporter=reporter,
            scheduler=BracketScheduler(rng=rng),
            storage=storage,
            match_interval=match_interval,
            timeout=timeout,
            sleep=sleep,
        )

    @property
    def status(self) -> TournamentStatus:
        return self.tournament.status

    def close(self) -> None:
        """Mark a reset tournament so it never starts."""
        if self.tournament.status == "WAITING":
            self.cancelled = True

    async def start(self) -> TournamentOutcome:
        if self.cancelled:
            raise InvalidValueError("This tournament was reset.")
        if self.tournament.status != "WAITING":
            raise InvalidValueError("This tournament has already started.")
        self.tournament.status = "IN_PROGRESS"
        count = len(self.tournament.contestants)
        log.info("Tournament %s started with %d contestants", self.tournament.tournament_id, count)
        await safe_post(
            self.reporter,
            f"🔥 **The battle begins!** {count} fighters enter {self.tournament.settings.arena}.",
        )
        try:
            winner = await self._run_rounds()
        except Exception:  # pylint: disable=broad-except
            log.exception("Tournament %s aborted", self.tournament.tournament_id)
            await safe_post(self.reporter, "❌ The tournament hit an internal error.")
            winner = None
        return await self.finish(winner)

    async def _run_rounds(self) -> Contestant | None:
        tournament = self.tournament
        while True:
            completion = self.scheduler.is_complete(tournament.alive())
            if completion is not None:
                return completion.winner
            tournament.round_number += 1
            round_ = self.scheduler.build_round(tournament.alive(), number=tournament.round_number)
            if not round_.pairings:
                raise FatalMatchError(f"Round {round_.number} produced no pairings")
            tournament.pending = list(round_.pairings)
            await safe_post(self.reporter, render_round(round_))
            for pairing in round_.pairings:
                if tournament.history and self.match_interval > 0:
                    await self._sleep(self.match_interval)
                result = await self.executor.run_match(tournament, pairing)
                tournament.pending.remove(pairing)
                if result.errors:
                    log.info(
                        "Match %d finished with errors: %s",
                        result.record.sequence,
                        result.errors,
                    )

    async def finish(self, winner: Contestant | None) -> TournamentOutcome:
        tournament = self.tournament
        if tournament.status == "COMPLETED":
            raise InvalidValueError("This tournament is already finished.")
        tournament.status = "COMPLETED"
        tournament.pending = []
        outcome = TournamentOutcome(winner=winner, history=list(tournament.history))

        if winner is None:
            await safe_post(self.reporter, "The battle ended with no winner.")
        else:
            winner.status = "WINNER"
            team = f" for **{winner.team}**" if tournament.team_mode and winner.team else ""
            await safe_post(
                self.reporter,
                f"👑 **{winner.display_name}** is the last one standing{team}!",
            )
            outcome.video_prompt = victory_video_prompt(winner, tournament.settings)
            await safe_post(self.reporter, f"🎬 **Victory video prompt**\n{outcome.video_prompt}")
            outcome.document = await self._finale(winner)

        if self.storage is not None:
            try:
                self.storage.record_tournament(tournament)
            except Exception as exc:  # pylint: disable=broad-except
                log.warning("Failed to record tournament stats: %s", exc)
        log.info(
            "Tournament %s completed; winner=%s",
            tournament.tournament_id,
            winner.user_id if winner else None,
        )
        return outcome

    async def _finale(self, winner: Contestant) -> bytes | None:
        settings = self.tournament.settings
        celebration: list[bytes] = []
        for prompt, filename, caption in (
            (montage_prompt(winner, settings), "montage.png", "**Victory Highlights**"),
            (
                cover_prompt(winner, settings),
                "cover.png",
                f"**The Champion: {winner.display_name}**!",
            ),
        ):
            image = await self._generate(prompt, [winner.image_url], filename)
            if image is None:
                continue
            celebration.append(image)
            await safe_post(self.reporter, caption, [Artifact(filename, image)])

        document = ComicDocument(title=f"{settings.arena} Battle Royale")
        for match in self.tournament.history:
            for image in match.images():
                document.append_page(image)
        for image in celebration:
            document.append_page(image)
        if not len(document):
            await safe_post(self.reporter, "⚠️ No images to compile for the comic.")
            return None
        try:
            data = await asyncio.to_thread(document.finalize)
        except Exception as exc:  # pylint: disable=broad-except
            log.warning("Failed to compile comic: %s", exc)
            await safe_post(self.reporter, "⚠️ Failed to compile the comic.")
            return None
        await safe_post(
            self.reporter,
            "📚 **The full tournament comic!**",
            [Artifact(DOCUMENT_FILENAME, data)],
        )
        return data

    async def _generate(
        self, prompt: str, references: list[str], what: str
    ) -> bytes | None:
        try:
            return await asyncio.wait_for(
                self.provider.generate_image(prompt, references), timeout=self.timeout
            )
        except TimeoutError:
            log.warning("Generating %s timed out", what)
        except Exception as exc:  # pylint: disable=broad-except
            log.warning("Generating %s failed: %s", what, exc)
        return None


__all__ = [
    "DEFAULT_MATCH_INTERVAL_SECONDS",
    "DOCUMENT_FILENAME",
    "TournamentController",
    "TournamentOutcome",
]
