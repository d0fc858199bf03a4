from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Final, Protocol

from .interaction import ChoicePrompt
from .models import (
    REGISTRATION_MODES,
    BattleSettings,
    Contestant,
    Lobby,
    RegistrationMode,
    TeamConfig,
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
    TransientProviderError,
    validate_capacity,
    validate_wallet_address,
)

if TYPE_CHECKING:
    from verifier_bot.eligibility import EligibilityVerifier, EligibleAsset

log: Final = logging.getLogger("battle-bot")

DEFAULT_VERIFY_TIMEOUT_SECONDS: Final[float] = 60.0
DEFAULT_CHOICE_TIMEOUT_SECONDS: Final[float] = 60.0


class Session(Protocol):
    host_id: int

    @property
    def status(self) -> str: ...

    def close(self) -> None: ...


@dataclass(slots=True, frozen=True)
class RegistrationEntry:
    """What a user submits when joining a lobby."""

    user_id: int
    display_name: str
    avatar_url: str
    upload_url: str | None = None
    wallet_address: str | None = None
    collection_alias: str | None = None
    team: str | None = None


class LobbyRegistry:
    def __init__(
        self,
        sessions: SessionStore[Session],
        *,
        verifier: EligibilityVerifier | None = None,
        users: BattleStorage | None = None,
        rng: random.Random | None = None,
        verify_timeout: float = DEFAULT_VERIFY_TIMEOUT_SECONDS,
    ) -> None:
        self.sessions = sessions
        self.verifier = verifier
        self.users = users
        self.rng = rng or random.Random()
        self.verify_timeout = verify_timeout

    def create(
        self,
        channel_id: int,
        host_id: int,
        capacity: int,
        mode: RegistrationMode,
        settings: BattleSettings,
        team_config: TeamConfig | None = None,
    ) -> Lobby:
        if channel_id in self.sessions:
            raise LobbyExistsError("A lobby is already active in this channel!")
        if mode not in REGISTRATION_MODES:
            raise InvalidValueError(f"Unknown registration mode: {mode}")
        validate_capacity(capacity)
        if team_config is not None:
            if mode != "WALLET":
                raise InvalidValueError("Team battles require wallet registration")
            if team_config.team_a.name == team_config.team_b.name:
                raise InvalidValueError("Teams need different names")
            if team_config.team_a.alias == team_config.team_b.alias:
                raise InvalidValueError("Teams need different collections")
            settings = replace(
                settings, team_names=(team_config.team_a.name, team_config.team_b.name)
            )
        lobby = Lobby(
            host_id=host_id,
            channel_id=channel_id,
            capacity=capacity,
            mode=mode,
            settings=settings,
            team_config=team_config,
        )
        self.sessions.put(channel_id, lobby)
        log.info(
            "Lobby created in channel %s by %s (mode=%s, capacity=%d)",
            channel_id,
            host_id,
            mode,
            capacity,
        )
        return lobby

    def open_lobby(self, channel_id: int) -> Lobby:
        session = self.sessions.get(channel_id)
        if not isinstance(session, Lobby) or session.status != "OPEN":
            raise InvalidValueError("No open lobby in this channel.")
        return session

    async def register(self, lobby: Lobby, entry: RegistrationEntry) -> Contestant:
        self._check_admission(lobby, entry.user_id)
        contestant = await self._build_contestant(lobby, entry)
        async with lobby.lock:
            self._check_admission(lobby, entry.user_id)
            lobby.contestants.append(contestant)
        log.info(
            "%s joined lobby in channel %s (%d/%d)",
            contestant.display_name,
            lobby.channel_id,
            len(lobby.contestants),
            lobby.capacity,
        )
        return contestant

    async def register_for_team(
        self, lobby: Lobby, entry: RegistrationEntry
    ) -> Contestant:
        """Register on the requested team, trying the other team on mismatch."""
        if lobby.team_config is None:
            return await self.register(lobby, entry)
        first = lobby.team_config.find(entry.team) or lobby.team_config.team_a
        try:
            return await self.register(lobby, replace(entry, team=first.name))
        except InvalidAssetError as first_error:
            other = lobby.team_config.other(first.name)
            log.info("%s not eligible for %s, trying %s", entry.user_id, first.name, other.name)
            try:
                return await self.register(lobby, replace(entry, team=other.name))
            except InvalidAssetError:
                raise first_error from None

    async def register_with_prompt(
        self,
        lobby: Lobby,
        entry: RegistrationEntry,
        prompt: ChoicePrompt,
        *,
        timeout: float = DEFAULT_CHOICE_TIMEOUT_SECONDS,
    ) -> Contestant:
        """Register, asking the user to pick a collection when several qualify.

        An unanswered prompt falls back to the first offered collection.
        """
        if lobby.team_config is not None:
            return await self.register_for_team(lobby, entry)
        try:
            return await self.register(lobby, entry)
        except AmbiguousConstraintError as exc:
            choice = await prompt.present_choice(exc.aliases, timeout, default=exc.aliases[0])
            log.info("%s picked collection %s", entry.user_id, choice)
            return await self.register(
                lobby,
                replace(entry, wallet_address=exc.wallet_address, collection_alias=choice),
            )

    async def hand_off(self, lobby: Lobby, session: Session) -> None:
        """Close registration and replace the lobby with its tournament."""
        async with lobby.lock:
            if lobby.status != "OPEN":
                raise InvalidValueError("This lobby has already started.")
            lobby.status = "IN_PROGRESS"
            self.sessions.put(lobby.channel_id, session)

    def discard(self, channel_id: int, requester_id: int) -> Session:
        session = self.sessions.get(channel_id)
        if session is None:
            raise InvalidValueError("No active lobby to reset.")
        if session.host_id != requester_id:
            raise InvalidValueError("Only the Host can reset the lobby.")
        if session.status not in ("OPEN", "WAITING", "COMPLETED"):
            raise InvalidValueError("The battle is already in progress and cannot be reset.")
        self.sessions.remove(channel_id, session)
        session.close()
        log.info("Lobby in channel %s reset by %s", channel_id, requester_id)
        return session

    def release(self, session: Lobby) -> None:
        """Drop ``session`` if it still owns its channel."""
        self.sessions.remove(session.channel_id, session)
        session.close()

    @staticmethod
    def _check_admission(lobby: Lobby, user_id: int) -> None:
        if lobby.status != "OPEN":
            raise InvalidValueError("No open lobby in this channel.")
        if lobby.find(user_id) is not None:
            raise DuplicateRegistrationError("You are already registered!")
        if lobby.is_full:
            raise CapacityExceededError("Lobby is full!")

    async def _build_contestant(
        self, lobby: Lobby, entry: RegistrationEntry
    ) -> Contestant:
        if lobby.mode == "UPLOAD":
            if not entry.upload_url:
                raise InvalidAssetError("You must upload an image!")
            return Contestant(
                user_id=entry.user_id,
                display_name=entry.display_name,
                image_url=entry.upload_url,
            )
        if lobby.mode == "PROFILE_IMAGE":
            return Contestant(
                user_id=entry.user_id,
                display_name=entry.display_name,
                image_url=entry.avatar_url,
            )
        return await self._build_wallet_contestant(lobby, entry)

    async def _build_wallet_contestant(
        self, lobby: Lobby, entry: RegistrationEntry
    ) -> Contestant:
        if self.verifier is None:
            raise RuntimeError("Wallet verification is not configured")
        wallet = entry.wallet_address
        if not wallet and self.users is not None:
            wallet = self.users.get_user(entry.user_id).wallet_address
        if not wallet:
            raise InvalidAssetError(
                "You must provide a Solana wallet address (or set it via /wallet set)!"
            )
        try:
            wallet = validate_wallet_address(wallet)
        except InvalidValueError as exc:
            raise InvalidAssetError(str(exc)) from exc

        team: str | None = None
        if lobby.team_config is not None:
            spec = lobby.team_config.find(entry.team)
            if spec is None:
                names = " or ".join(team.name for team in lobby.team_config.teams())
                raise InvalidAssetError(f"Choose a team: {names}")
            team = spec.name
            assets = await self._eligible(wallet, spec.alias)
            if not assets:
                raise InvalidAssetError(f"No NFT from {spec.name}'s collection in this wallet.")
        else:
            alias = entry.collection_alias
            assets = await self._eligible(wallet, alias)
            if not assets:
                if alias:
                    raise InvalidAssetError("No NFTs found in the selected collection.")
                raise InvalidAssetError(
                    "No valid NFT found in this wallet! (Must be a single NFT, not a token)"
                )
            if alias is None:
                groups = [
                    name
                    for name in self.verifier.configured_aliases
                    if any(name in asset.aliases for asset in assets)
                ]
                if len(groups) > 1:
                    raise AmbiguousConstraintError(groups, wallet)

        chosen = self.rng.choice(assets)
        profile = await self.verifier.describe_asset(chosen)
        if not profile.image:
            raise InvalidAssetError("The selected NFT has no image to fight with.")
        return Contestant(
            user_id=entry.user_id,
            display_name=entry.display_name,
            image_url=profile.image,
            wallet_address=wallet,
            attributes=profile.attributes,
            team=team,
        )

    async def _eligible(self, wallet: str, alias: str | None) -> list[EligibleAsset]:
        if self.verifier is None:
            raise RuntimeError("Wallet verification is not configured")
        try:
            return await asyncio.wait_for(
                self.verifier.list_eligible_assets(wallet, alias),
                timeout=self.verify_timeout,
            )
        except (TransientProviderError, TimeoutError) as exc:
            log.warning("Wallet verification failed for %s: %s", wallet, exc)
            raise InvalidAssetError(
                "Could not verify this wallet right now. Please try again shortly."
            ) from exc


__all__ = [
    "DEFAULT_CHOICE_TIMEOUT_SECONDS",
    "DEFAULT_VERIFY_TIMEOUT_SECONDS",
    "LobbyRegistry",
    "RegistrationEntry",
    "Session",
]
