"""Multi-step ``/battle create`` setup as an explicit state machine.

The Discord layer only translates component callbacks into events; every
transition happens in :func:`advance`, which never touches I/O.
"""

from __future__ import annotations

from dataclasses import dataclass

from .models import (
    REGISTRATION_MODES,
    BattleSettings,
    RegistrationMode,
    TeamConfig,
    TeamSpec,
)
from .validation import (
    InvalidValueError,
    parse_capacity,
    validate_arena_name,
)


@dataclass(slots=True, frozen=True)
class LobbySetup:
    mode: RegistrationMode
    capacity: int
    settings: BattleSettings
    team_config: TeamConfig | None = None
    host_wallet: str | None = None


@dataclass(slots=True, frozen=True)
class ChooseMode:
    pass


@dataclass(slots=True, frozen=True)
class ChooseTeamA:
    mode: RegistrationMode


@dataclass(slots=True, frozen=True)
class ChooseTeamB:
    mode: RegistrationMode
    team_a: TeamSpec


@dataclass(slots=True, frozen=True)
class ChooseVenue:
    mode: RegistrationMode
    team_a: TeamSpec | None = None
    team_b: TeamSpec | None = None


@dataclass(slots=True, frozen=True)
class WizardComplete:
    setup: LobbySetup


WizardState = ChooseMode | ChooseTeamA | ChooseTeamB | ChooseVenue | WizardComplete


@dataclass(slots=True, frozen=True)
class ModeChosen:
    mode: RegistrationMode
    teams: bool = False


@dataclass(slots=True, frozen=True)
class TeamChosen:
    alias: str
    name: str | None = None


@dataclass(slots=True, frozen=True)
class VenueSubmitted:
    arena: str
    capacity: str
    genre: str = ""
    style: str = ""
    host_wallet: str | None = None


WizardEvent = ModeChosen | TeamChosen | VenueSubmitted


def _team(event: TeamChosen) -> TeamSpec:
    alias = event.alias.strip()
    if not alias:
        raise InvalidValueError("Pick a collection for the team")
    name = (event.name or "").strip() or alias
    return TeamSpec(name=name, alias=alias)


def _complete(state: ChooseVenue, event: VenueSubmitted) -> WizardComplete:
    arena = validate_arena_name(event.arena)
    capacity = parse_capacity(event.capacity)
    team_config = None
    if state.team_a is not None and state.team_b is not None:
        team_config = TeamConfig(team_a=state.team_a, team_b=state.team_b)
    settings = BattleSettings(
        arena=arena,
        genre=event.genre.strip() or "Action",
        style=event.style.strip() or "Comic Book",
    )
    wallet = (event.host_wallet or "").strip() or None
    return WizardComplete(
        LobbySetup(
            mode=state.mode,
            capacity=capacity,
            settings=settings,
            team_config=team_config,
            host_wallet=wallet,
        )
    )


def advance(state: WizardState, event: WizardEvent) -> WizardState:
    """Return the state after ``event``; invalid input raises ``InvalidValueError``."""
    match state, event:
        case ChooseMode(), ModeChosen(mode=mode, teams=teams):
            if mode not in REGISTRATION_MODES:
                raise InvalidValueError(f"Unknown registration mode: {mode}")
            if teams:
                if mode != "WALLET":
                    raise InvalidValueError("Team battles require wallet registration")
                return ChooseTeamA(mode=mode)
            return ChooseVenue(mode=mode)
        case ChooseTeamA(mode=mode), TeamChosen():
            return ChooseTeamB(mode=mode, team_a=_team(event))
        case ChooseTeamB(mode=mode, team_a=team_a), TeamChosen():
            team_b = _team(event)
            if team_b.alias == team_a.alias:
                raise InvalidValueError("Team B must use a different collection")
            if team_b.name == team_a.name:
                team_b = TeamSpec(name=f"{team_b.name} (B)", alias=team_b.alias)
            return ChooseVenue(mode=mode, team_a=team_a, team_b=team_b)
        case ChooseVenue(), VenueSubmitted():
            return _complete(state, event)
    raise InvalidValueError(
        f"Unexpected {type(event).__name__} while in {type(state).__name__}"
    )


__all__ = [
    "ChooseMode",
    "ChooseTeamA",
    "ChooseTeamB",
    "ChooseVenue",
    "LobbySetup",
    "ModeChosen",
    "TeamChosen",
    "VenueSubmitted",
    "WizardComplete",
    "WizardEvent",
    "WizardState",
    "advance",
]
