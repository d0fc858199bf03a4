from __future__ import annotations

import random
from collections.abc import Sequence
from dataclasses import dataclass, field

from .models import Contestant, Pairing
from .validation import validate_bracket_size


@dataclass(slots=True)
class BracketRound:
    number: int
    pairings: list[Pairing]
    bye: Contestant | None = None


@dataclass(slots=True, frozen=True)
class Completion:
    """Terminal bracket state. ``winner`` is ``None`` for a draw."""

    winner: Contestant | None

    @property
    def is_draw(self) -> bool:
        return self.winner is None


@dataclass(slots=True)
class BracketScheduler:
    rng: random.Random = field(default_factory=random.Random)

    def build_round(
        self, alive: Sequence[Contestant], *, number: int = 1
    ) -> BracketRound:
        pool = [contestant for contestant in alive if contestant.is_alive]
        self.rng.shuffle(pool)
        pairings = [
            Pairing(first=pool[index], second=pool[index + 1])
            for index in range(0, len(pool) - 1, 2)
        ]
        bye = pool[-1] if len(pool) % 2 == 1 else None
        return BracketRound(number=number, pairings=pairings, bye=bye)

    @staticmethod
    def is_complete(alive: Sequence[Contestant]) -> Completion | None:
        survivors = [contestant for contestant in alive if contestant.is_alive]
        if len(survivors) == 1:
            return Completion(winner=survivors[0])
        if not survivors:
            return Completion(winner=None)
        return None

    @staticmethod
    def validate_start(count: int, *, team_mode: bool) -> int:
        return validate_bracket_size(count, team_mode=team_mode)


def round_name(alive_count: int) -> str:
    if alive_count == 2:
        return "Final"
    if alive_count in (3, 4):
        return "Semifinals"
    if alive_count in (5, 6, 7, 8):
        return "Quarterfinals"
    return f"Round of {alive_count}"


def render_round(round_: BracketRound) -> str:
    fighters = 2 * len(round_.pairings) + (1 if round_.bye else 0)
    lines = [f"Round {round_.number} ({round_name(fighters)})"]
    for index, pairing in enumerate(round_.pairings, start=1):
        lines.append(f"  [M{index}] {pairing.names()}")
    if round_.bye is not None:
        lines.append(f"  Bye: {round_.bye.display_name} advances")
    return "\n".join(lines)


__all__ = [
    "BracketRound",
    "BracketScheduler",
    "Completion",
    "render_round",
    "round_name",
]
