"""Battle royale bot helpers."""

from .bracket import BracketRound, BracketScheduler, Completion, render_round
from .controller import TournamentController, TournamentOutcome
from .lobby import LobbyRegistry, RegistrationEntry
from .match import MatchExecutor, MatchResult, coin_flip
from .models import (
    BattleSettings,
    BotConfig,
    Contestant,
    Lobby,
    MatchRecord,
    Pairing,
    TeamConfig,
    TeamSpec,
    Tournament,
    UserRecord,
    utc_now_iso,
)
from .sessions import SessionStore
from .storage import BattleStorage
from .validation import (
    AmbiguousConstraintError,
    CapacityExceededError,
    DuplicateRegistrationError,
    InvalidAssetError,
    InvalidValueError,
    LobbyExistsError,
    validate_bracket_size,
    validate_capacity,
    validate_wallet_address,
)

__all__ = [
    "BracketRound",
    "BracketScheduler",
    "Completion",
    "render_round",
    "TournamentController",
    "TournamentOutcome",
    "LobbyRegistry",
    "RegistrationEntry",
    "MatchExecutor",
    "MatchResult",
    "coin_flip",
    "BattleSettings",
    "BotConfig",
    "Contestant",
    "Lobby",
    "MatchRecord",
    "Pairing",
    "TeamConfig",
    "TeamSpec",
    "Tournament",
    "UserRecord",
    "utc_now_iso",
    "SessionStore",
    "BattleStorage",
    "AmbiguousConstraintError",
    "CapacityExceededError",
    "DuplicateRegistrationError",
    "InvalidAssetError",
    "InvalidValueError",
    "LobbyExistsError",
    "validate_bracket_size",
    "validate_capacity",
    "validate_wallet_address",
]
