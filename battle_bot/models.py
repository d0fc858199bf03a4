from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import ClassVar, Literal

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

ContestantStatus = Literal["ALIVE", "ELIMINATED", "WINNER"]
LobbyStatus = Literal["OPEN", "IN_PROGRESS", "COMPLETED"]
TournamentStatus = Literal["WAITING", "IN_PROGRESS", "COMPLETED"]
RegistrationMode = Literal["UPLOAD", "PROFILE_IMAGE", "WALLET"]

REGISTRATION_MODES: tuple[RegistrationMode, ...] = ("WALLET", "PROFILE_IMAGE", "UPLOAD")
DEFAULT_TOKENS = 3
DEFAULT_COOLDOWN_MS = 24 * 60 * 60 * 1000


def utc_now_iso() -> str:
    """Return current UTC timestamp in ISO-8601 format (ms precision)."""
    return datetime.now(UTC).strftime(ISO_FORMAT)


@dataclass(slots=True)
class Contestant:
    user_id: int
    display_name: str
    image_url: str
    wallet_address: str | None = None
    attributes: list[dict[str, object]] = field(default_factory=list)
    team: str | None = None
    status: ContestantStatus = "ALIVE"
    round_wins: int = 0

    @property
    def is_alive(self) -> bool:
        return self.status == "ALIVE"


@dataclass(slots=True, frozen=True)
class TeamSpec:
    name: str
    alias: str


@dataclass(slots=True, frozen=True)
class TeamConfig:
    team_a: TeamSpec
    team_b: TeamSpec

    def teams(self) -> tuple[TeamSpec, TeamSpec]:
        return (self.team_a, self.team_b)

    def find(self, name: str | None) -> TeamSpec | None:
        for team in self.teams():
            if team.name == name:
                return team
        return None

    def other(self, name: str) -> TeamSpec:
        return self.team_b if name == self.team_a.name else self.team_a


@dataclass(slots=True)
class BattleSettings:
    arena: str
    genre: str = "Action"
    style: str = "Comic Book"
    team_names: tuple[str, str] | None = None


@dataclass(slots=True)
class Lobby:
    host_id: int
    channel_id: int
    capacity: int
    mode: RegistrationMode
    settings: BattleSettings
    team_config: TeamConfig | None = None
    contestants: list[Contestant] = field(default_factory=list)
    status: LobbyStatus = "OPEN"
    created_at: str = field(default_factory=utc_now_iso)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    @property
    def team_mode(self) -> bool:
        return self.team_config is not None

    @property
    def is_full(self) -> bool:
        return len(self.contestants) >= self.capacity

    def find(self, user_id: int) -> Contestant | None:
        for contestant in self.contestants:
            if contestant.user_id == user_id:
                return contestant
        return None

    def close(self) -> None:
        self.status = "COMPLETED"


@dataclass(slots=True, frozen=True)
class Pairing:
    first: Contestant
    second: Contestant

    def names(self) -> str:
        return f"{self.first.display_name} vs {self.second.display_name}"


@dataclass(slots=True, frozen=True)
class MatchRecord:
    round_number: int
    sequence: int
    first_id: int
    second_id: int
    winner_id: int
    loser_id: int
    narrative: str
    pre_fight_image: bytes | None = None
    action_image: bytes | None = None
    forfeit: bool = False

    def images(self) -> list[bytes]:
        return [
            image
            for image in (self.pre_fight_image, self.action_image)
            if image is not None
        ]


@dataclass(slots=True)
class Tournament:
    tournament_id: str
    channel_id: int
    settings: BattleSettings
    contestants: dict[int, Contestant]
    team_mode: bool = False
    round_number: int = 0
    history: list[MatchRecord] = field(default_factory=list)
    pending: list[Pairing] = field(default_factory=list)
    status: TournamentStatus = "WAITING"

    def alive(self) -> list[Contestant]:
        return [c for c in self.contestants.values() if c.status == "ALIVE"]

    def contestant(self, user_id: int) -> Contestant:
        return self.contestants[user_id]

    def record(self, match: MatchRecord) -> None:
        self.history.append(match)

    def winner(self) -> Contestant | None:
        for contestant in self.contestants.values():
            if contestant.status == "WINNER":
                return contestant
        return None

    def recent_narratives(self, limit: int = 3) -> list[str]:
        return [match.narrative for match in self.history[-limit:]]


@dataclass(slots=True)
class UserRecord:
    user_id: int
    tokens: int = DEFAULT_TOKENS
    last_generation: int = 0
    wallet_address: str | None = None
    is_banned: bool = False
    wins: int = 0
    losses: int = 0
    matches_played: int = 0

    PK_TEMPLATE: ClassVar[str] = "USER#%s"
    SK_VALUE: ClassVar[str] = "PROFILE"

    @classmethod
    def key(cls, user_id: int) -> dict[str, str]:
        return {"pk": cls.PK_TEMPLATE % user_id, "sk": cls.SK_VALUE}

    def to_item(self) -> dict[str, object]:
        item = self.key(self.user_id)
        item.update(
            {
                "tokens": self.tokens,
                "last_generation": self.last_generation,
                "is_banned": self.is_banned,
                "wins": self.wins,
                "losses": self.losses,
                "matches_played": self.matches_played,
            }
        )
        if self.wallet_address is not None:
            item["wallet_address"] = self.wallet_address
        return item

    @classmethod
    def from_item(cls, item: dict[str, object]) -> UserRecord:
        user_id = int(str(item["pk"]).split("#", 1)[1])
        wallet = item.get("wallet_address")
        return cls(
            user_id=user_id,
            tokens=int(item.get("tokens", DEFAULT_TOKENS)),
            last_generation=int(item.get("last_generation", 0)),
            wallet_address=str(wallet) if wallet else None,
            is_banned=bool(item.get("is_banned", False)),
            wins=int(item.get("wins", 0)),
            losses=int(item.get("losses", 0)),
            matches_played=int(item.get("matches_played", 0)),
        )


@dataclass(slots=True)
class BotConfig:
    guild_id: int
    cooldown_ms: int = DEFAULT_COOLDOWN_MS
    server_collection: str | None = None
    partner_collections: list[str] = field(default_factory=list)
    enable_partners: bool = False
    collection_map: dict[str, list[str]] = field(default_factory=dict)
    updated_by: int = 0
    updated_at: str = ""

    PK_TEMPLATE: ClassVar[str] = "GUILD#%s"
    SK_VALUE: ClassVar[str] = "CONFIG"

    @classmethod
    def key(cls, guild_id: int) -> dict[str, str]:
        return {"pk": cls.PK_TEMPLATE % guild_id, "sk": cls.SK_VALUE}

    def configured_aliases(self) -> list[str]:
        aliases: list[str] = []
        if self.server_collection:
            aliases.append(self.server_collection)
        if self.enable_partners:
            for alias in self.partner_collections:
                if alias not in aliases:
                    aliases.append(alias)
        return aliases

    def to_item(self) -> dict[str, object]:
        item = self.key(self.guild_id)
        item.update(
            {
                "cooldown_ms": self.cooldown_ms,
                "partner_collections": list(self.partner_collections),
                "enable_partners": self.enable_partners,
                "collection_map": {
                    alias: list(ids) for alias, ids in self.collection_map.items()
                },
                "updated_by": str(self.updated_by),
                "updated_at": self.updated_at,
            }
        )
        if self.server_collection:
            item["server_collection"] = self.server_collection
        return item

    @classmethod
    def from_item(cls, item: dict[str, object]) -> BotConfig:
        guild_id = int(str(item["pk"]).split("#", 1)[1])
        raw_map = item.get("collection_map") or {}
        collection_map = {
            str(alias): [str(value) for value in ids]  # type: ignore[union-attr]
            for alias, ids in raw_map.items()  # type: ignore[union-attr]
        }
        server_collection = item.get("server_collection")
        try:
            updated_by = int(item.get("updated_by", 0))
        except (TypeError, ValueError):  # pragma: no cover - defensive
            updated_by = 0
        return cls(
            guild_id=guild_id,
            cooldown_ms=int(item.get("cooldown_ms", DEFAULT_COOLDOWN_MS)),
            server_collection=str(server_collection) if server_collection else None,
            partner_collections=[
                str(alias) for alias in item.get("partner_collections", [])  # type: ignore[union-attr]
            ],
            enable_partners=bool(item.get("enable_partners", False)),
            collection_map=collection_map,
            updated_by=updated_by,
            updated_at=str(item.get("updated_at", "")),
        )


__all__ = [
    "BattleSettings",
    "BotConfig",
    "Contestant",
    "ContestantStatus",
    "DEFAULT_COOLDOWN_MS",
    "DEFAULT_TOKENS",
    "ISO_FORMAT",
    "Lobby",
    "LobbyStatus",
    "MatchRecord",
    "Pairing",
    "REGISTRATION_MODES",
    "RegistrationMode",
    "TeamConfig",
    "TeamSpec",
    "Tournament",
    "TournamentStatus",
    "UserRecord",
    "utc_now_iso",
]
