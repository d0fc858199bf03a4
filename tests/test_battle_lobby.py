import asyncio
from unittest.mock import MagicMock

import pytest
import requests

from battle_bot import BattleStorage
from battle_bot.lobby import LobbyRegistry, RegistrationEntry
from battle_bot.models import BattleSettings, TeamConfig, TeamSpec
from battle_bot.sessions import SessionStore
from battle_bot.validation import (
    AmbiguousConstraintError,
    CapacityExceededError,
    DuplicateRegistrationError,
    InvalidAssetError,
    InvalidValueError,
    LobbyExistsError,
)
from conftest import (
    COLLECTION_A,
    COLLECTION_B,
    WALLET,
    FakeAliasIndex,
    FakeAssetIndex,
    FakeTable,
    make_metadata,
    no_sleep,
)
from verifier_bot.eligibility import EligibilityVerifier
from verifier_bot.solana_api import AssetIndexError, AssetMetadata, Holding, SolanaAssetIndex

SETTINGS = BattleSettings(arena="Colosseum")


def entry(user_id: int, **kwargs) -> RegistrationEntry:
    kwargs.setdefault("avatar_url", f"https://cdn.example/avatar{user_id}.png")
    return RegistrationEntry(user_id=user_id, display_name=f"Player{user_id}", **kwargs)


def wallet_parts() -> tuple[list[Holding], dict[str, AssetMetadata]]:
    """A wallet holding one asset from each of the two collections."""
    holdings = [
        Holding(asset_id="a1", amount=1, decimals=0),
        Holding(asset_id="b1", amount=1, decimals=0),
    ]
    metadata = {
        "a1": make_metadata("a1", collection=COLLECTION_A),
        "b1": make_metadata("b1", collection=COLLECTION_B),
    }
    return holdings, metadata


def wallet_index() -> FakeAssetIndex:
    return FakeAssetIndex(*wallet_parts())


def wallet_registry(index=None, *, aliases=("degods", "y00ts"), users=None) -> LobbyRegistry:
    verifier = EligibilityVerifier(
        index or wallet_index(),
        FakeAliasIndex(),
        aliases=list(aliases),
        known={"degods": [COLLECTION_A], "y00ts": [COLLECTION_B]},
        sleep=no_sleep,
    )
    return LobbyRegistry(SessionStore(), verifier=verifier, users=users, rng=None)


class YieldingAssetIndex(FakeAssetIndex):
    """Suspends inside the holdings lookup so concurrent joins interleave."""

    async def list_holdings(self, owner):
        await asyncio.sleep(0)
        return await super().list_holdings(owner)


class RecordingPrompt:
    def __init__(self, answer: str | None = None) -> None:
        self.answer = answer
        self.offered: list[list[str]] = []

    async def present_choice(self, options, timeout, *, default):
        self.offered.append(list(options))
        return self.answer or default


class TestCreate:
    def test_create_stores_open_lobby(self):
        registry = LobbyRegistry(SessionStore())

        lobby = registry.create(10, host_id=1, capacity=4, mode="UPLOAD", settings=SETTINGS)

        assert lobby.status == "OPEN"
        assert registry.open_lobby(10) is lobby

    def test_second_lobby_in_channel_is_rejected(self):
        registry = LobbyRegistry(SessionStore())
        registry.create(10, host_id=1, capacity=4, mode="UPLOAD", settings=SETTINGS)

        with pytest.raises(LobbyExistsError):
            registry.create(10, host_id=2, capacity=4, mode="UPLOAD", settings=SETTINGS)

    @pytest.mark.parametrize("capacity", [1, 25])
    def test_capacity_out_of_range(self, capacity):
        registry = LobbyRegistry(SessionStore())
        with pytest.raises(InvalidValueError):
            registry.create(10, 1, capacity, "UPLOAD", SETTINGS)
        assert 10 not in registry.sessions

    def test_team_mode_requires_wallet_and_distinct_teams(self):
        registry = LobbyRegistry(SessionStore())
        teams = TeamConfig(TeamSpec("Gods", "degods"), TeamSpec("Yoots", "y00ts"))

        with pytest.raises(InvalidValueError, match="wallet"):
            registry.create(10, 1, 8, "PROFILE_IMAGE", SETTINGS, teams)

        same = TeamConfig(TeamSpec("Gods", "degods"), TeamSpec("Others", "degods"))
        with pytest.raises(InvalidValueError, match="collections"):
            registry.create(10, 1, 8, "WALLET", SETTINGS, same)

        lobby = registry.create(10, 1, 8, "WALLET", SETTINGS, teams)
        assert lobby.team_mode
        assert lobby.settings.team_names == ("Gods", "Yoots")

    def test_open_lobby_requires_open_status(self):
        registry = LobbyRegistry(SessionStore())
        with pytest.raises(InvalidValueError):
            registry.open_lobby(10)

        lobby = registry.create(10, 1, 4, "UPLOAD", SETTINGS)
        lobby.status = "IN_PROGRESS"
        with pytest.raises(InvalidValueError):
            registry.open_lobby(10)


class TestImageRegistration:
    @pytest.mark.asyncio
    async def test_upload_mode_requires_attachment(self):
        registry = LobbyRegistry(SessionStore())
        lobby = registry.create(10, 1, 4, "UPLOAD", SETTINGS)

        with pytest.raises(InvalidAssetError, match="upload"):
            await registry.register(lobby, entry(2))

        contestant = await registry.register(
            lobby, entry(2, upload_url="https://cdn.example/upload.png")
        )
        assert contestant.image_url == "https://cdn.example/upload.png"
        assert lobby.contestants == [contestant]

    @pytest.mark.asyncio
    async def test_profile_mode_uses_avatar(self):
        registry = LobbyRegistry(SessionStore())
        lobby = registry.create(10, 1, 4, "PROFILE_IMAGE", SETTINGS)

        contestant = await registry.register(lobby, entry(2))

        assert contestant.image_url == "https://cdn.example/avatar2.png"
        assert contestant.status == "ALIVE"

    @pytest.mark.asyncio
    async def test_duplicate_and_full_lobby_are_rejected(self):
        registry = LobbyRegistry(SessionStore())
        lobby = registry.create(10, 1, 2, "PROFILE_IMAGE", SETTINGS)
        await registry.register(lobby, entry(1))

        with pytest.raises(DuplicateRegistrationError):
            await registry.register(lobby, entry(1))

        await registry.register(lobby, entry(2))
        with pytest.raises(CapacityExceededError):
            await registry.register(lobby, entry(3))
        assert [c.user_id for c in lobby.contestants] == [1, 2]


class TestWalletRegistration:
    @pytest.mark.asyncio
    async def test_single_collection_match_registers(self):
        registry = wallet_registry(aliases=["degods"])
        lobby = registry.create(10, 1, 4, "WALLET", SETTINGS)

        contestant = await registry.register(lobby, entry(2, wallet_address=WALLET))

        assert contestant.wallet_address == WALLET
        assert contestant.image_url == "https://img.example/a1.png"
        assert contestant.attributes == [{"trait_type": "Power", "value": "9000"}]

    @pytest.mark.asyncio
    async def test_stored_wallet_is_used_when_none_given(self):
        storage = BattleStorage(FakeTable())
        storage.update_user(2, wallet_address=WALLET)
        registry = wallet_registry(aliases=["degods"], users=storage)
        lobby = registry.create(10, 1, 4, "WALLET", SETTINGS)

        contestant = await registry.register(lobby, entry(2))

        assert contestant.wallet_address == WALLET

    @pytest.mark.asyncio
    async def test_wallet_lobby_without_verifier_fails_loudly(self):
        registry = LobbyRegistry(SessionStore())
        lobby = registry.create(10, 1, 4, "WALLET", SETTINGS)

        with pytest.raises(RuntimeError, match="not configured"):
            await registry.register(lobby, entry(2, wallet_address=WALLET))
        assert lobby.contestants == []

    @pytest.mark.asyncio
    async def test_missing_or_malformed_wallet(self):
        registry = wallet_registry()
        lobby = registry.create(10, 1, 4, "WALLET", SETTINGS)

        with pytest.raises(InvalidAssetError, match="wallet"):
            await registry.register(lobby, entry(2))
        with pytest.raises(InvalidAssetError):
            await registry.register(lobby, entry(2, wallet_address="not-a-wallet"))
        assert lobby.contestants == []

    @pytest.mark.asyncio
    async def test_wallet_without_eligible_assets(self):
        index = FakeAssetIndex(holdings=[Holding(asset_id="t", amount=10, decimals=6)])
        registry = wallet_registry(index)
        lobby = registry.create(10, 1, 4, "WALLET", SETTINGS)

        with pytest.raises(InvalidAssetError, match="No valid NFT"):
            await registry.register(lobby, entry(2, wallet_address=WALLET))

    @pytest.mark.asyncio
    async def test_provider_failure_becomes_asset_error(self):
        index = wallet_index()
        index.failures["holdings"] = [AssetIndexError("rpc down", 503)]
        registry = wallet_registry(index)
        lobby = registry.create(10, 1, 4, "WALLET", SETTINGS)

        with pytest.raises(InvalidAssetError, match="try again"):
            await registry.register(lobby, entry(2, wallet_address=WALLET))

    @pytest.mark.asyncio
    async def test_non_json_rpc_reply_becomes_asset_error(self):
        session = MagicMock(spec=requests.Session)
        html = MagicMock(status_code=200)
        html.json.side_effect = requests.JSONDecodeError("Expecting value", "<html>", 0)
        session.post.return_value = html
        registry = wallet_registry(SolanaAssetIndex(session=session))
        lobby = registry.create(10, 1, 4, "WALLET", SETTINGS)

        with pytest.raises(InvalidAssetError, match="try again"):
            await registry.register(lobby, entry(2, wallet_address=WALLET))
        assert lobby.contestants == []

    @pytest.mark.asyncio
    async def test_multiple_collections_are_ambiguous(self):
        registry = wallet_registry()
        lobby = registry.create(10, 1, 4, "WALLET", SETTINGS)

        with pytest.raises(AmbiguousConstraintError) as info:
            await registry.register(lobby, entry(2, wallet_address=WALLET))

        assert info.value.aliases == ["degods", "y00ts"]
        assert info.value.wallet_address == WALLET
        assert lobby.contestants == []

    @pytest.mark.asyncio
    async def test_prompt_choice_resolves_ambiguity(self):
        registry = wallet_registry()
        lobby = registry.create(10, 1, 4, "WALLET", SETTINGS)
        prompt = RecordingPrompt(answer="y00ts")

        contestant = await registry.register_with_prompt(
            lobby, entry(2, wallet_address=WALLET), prompt, timeout=1
        )

        assert prompt.offered == [["degods", "y00ts"]]
        assert contestant.image_url == "https://img.example/b1.png"

    @pytest.mark.asyncio
    async def test_unanswered_prompt_takes_first_collection(self):
        registry = wallet_registry()
        lobby = registry.create(10, 1, 4, "WALLET", SETTINGS)

        contestant = await registry.register_with_prompt(
            lobby, entry(2, wallet_address=WALLET), RecordingPrompt(), timeout=1
        )

        assert contestant.image_url == "https://img.example/a1.png"


    @pytest.mark.asyncio
    async def test_concurrent_joins_never_exceed_capacity(self):
        registry = wallet_registry(YieldingAssetIndex(*wallet_parts()), aliases=["degods"])
        lobby = registry.create(10, 1, 4, "WALLET", SETTINGS)

        results = await asyncio.gather(
            *(
                registry.register(lobby, entry(user_id, wallet_address=WALLET))
                for user_id in range(1, 11)
            ),
            return_exceptions=True,
        )

        joined = [result for result in results if not isinstance(result, Exception)]
        rejected = [result for result in results if isinstance(result, Exception)]
        assert len(joined) == 4
        assert len(lobby.contestants) == 4
        assert len(rejected) == 6
        assert all(isinstance(error, CapacityExceededError) for error in rejected)

    @pytest.mark.asyncio
    async def test_concurrent_duplicate_joins_register_once(self):
        registry = wallet_registry(YieldingAssetIndex(*wallet_parts()), aliases=["degods"])
        lobby = registry.create(10, 1, 4, "WALLET", SETTINGS)

        results = await asyncio.gather(
            registry.register(lobby, entry(5, wallet_address=WALLET)),
            registry.register(lobby, entry(5, wallet_address=WALLET)),
            return_exceptions=True,
        )

        assert sum(isinstance(result, DuplicateRegistrationError) for result in results) == 1
        assert len(lobby.contestants) == 1


class TestTeamRegistration:
    def _team_lobby(self, index):
        registry = wallet_registry(index)
        teams = TeamConfig(TeamSpec("Gods", "degods"), TeamSpec("Yoots", "y00ts"))
        return registry, registry.create(10, 1, 4, "WALLET", SETTINGS, teams)

    @pytest.mark.asyncio
    async def test_requested_team_is_used(self):
        registry, lobby = self._team_lobby(wallet_index())

        contestant = await registry.register_for_team(
            lobby, entry(2, wallet_address=WALLET, team="Yoots")
        )

        assert contestant.team == "Yoots"
        assert contestant.image_url == "https://img.example/b1.png"

    @pytest.mark.asyncio
    async def test_falls_back_to_other_team(self):
        index = FakeAssetIndex(
            holdings=[Holding(asset_id="b1", amount=1, decimals=0)],
            metadata={"b1": make_metadata("b1", collection=COLLECTION_B)},
        )
        registry, lobby = self._team_lobby(index)

        contestant = await registry.register_with_prompt(
            lobby, entry(2, wallet_address=WALLET, team="Gods"), RecordingPrompt()
        )

        assert contestant.team == "Yoots"

    @pytest.mark.asyncio
    async def test_no_team_match_reports_requested_team(self):
        index = FakeAssetIndex(holdings=[Holding(asset_id="x", amount=1, decimals=0)])
        registry, lobby = self._team_lobby(index)

        with pytest.raises(InvalidAssetError, match="Gods"):
            await registry.register_for_team(lobby, entry(2, wallet_address=WALLET))
        assert lobby.contestants == []


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_hand_off_replaces_lobby_once(self):
        registry = LobbyRegistry(SessionStore())
        lobby = registry.create(10, 1, 4, "PROFILE_IMAGE", SETTINGS)
        marker = object()

        await registry.hand_off(lobby, marker)

        assert lobby.status == "IN_PROGRESS"
        assert registry.sessions.get(10) is marker
        with pytest.raises(InvalidValueError):
            await registry.hand_off(lobby, marker)

    @pytest.mark.asyncio
    async def test_registration_closed_after_hand_off(self):
        registry = LobbyRegistry(SessionStore())
        lobby = registry.create(10, 1, 4, "PROFILE_IMAGE", SETTINGS)
        await registry.hand_off(lobby, lobby)

        with pytest.raises(InvalidValueError, match="No open lobby"):
            await registry.register(lobby, entry(3))

    def test_discard_is_host_only(self):
        registry = LobbyRegistry(SessionStore())
        registry.create(10, 1, 4, "PROFILE_IMAGE", SETTINGS)

        with pytest.raises(InvalidValueError, match="Host"):
            registry.discard(10, requester_id=2)
        registry.discard(10, requester_id=1)

        assert 10 not in registry.sessions
        with pytest.raises(InvalidValueError, match="No active lobby"):
            registry.discard(10, requester_id=1)

    def test_discard_refuses_running_battle(self):
        registry = LobbyRegistry(SessionStore())
        lobby = registry.create(10, 1, 4, "PROFILE_IMAGE", SETTINGS)
        lobby.status = "IN_PROGRESS"

        with pytest.raises(InvalidValueError, match="in progress"):
            registry.discard(10, requester_id=1)
        assert 10 in registry.sessions

    def test_release_frees_the_channel(self):
        registry = LobbyRegistry(SessionStore())
        lobby = registry.create(10, 1, 4, "PROFILE_IMAGE", SETTINGS)

        registry.release(lobby)

        assert lobby.status == "COMPLETED"
        registry.create(10, 2, 4, "PROFILE_IMAGE", SETTINGS)

    def test_release_leaves_newer_lobby_alone(self):
        registry = LobbyRegistry(SessionStore())
        stale = registry.create(10, 1, 4, "PROFILE_IMAGE", SETTINGS)
        registry.discard(10, requester_id=1)
        fresh = registry.create(10, 2, 4, "PROFILE_IMAGE", SETTINGS)

        registry.release(stale)

        assert registry.sessions.get(10) is fresh
        assert fresh.status == "OPEN"

    @pytest.mark.asyncio
    async def test_reset_lobby_rejects_registration_in_flight(self):
        registry = wallet_registry(YieldingAssetIndex(*wallet_parts()), aliases=["degods"])
        lobby = registry.create(10, 1, 4, "WALLET", SETTINGS)

        pending = asyncio.ensure_future(
            registry.register(lobby, entry(2, wallet_address=WALLET))
        )
        await asyncio.sleep(0)
        registry.discard(10, requester_id=1)

        with pytest.raises(InvalidValueError, match="No open lobby"):
            await pending
        assert lobby.contestants == []
