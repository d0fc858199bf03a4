import pytest

from battle_bot import BattleStorage, BotConfig, MatchRecord, UserRecord
from conftest import FakeTable, make_tournament


def build_storage() -> tuple[BattleStorage, FakeTable]:
    table = FakeTable()
    return BattleStorage(table), table


def test_get_user_creates_default_record():
    storage, table = build_storage()

    user = storage.get_user(42)

    assert user == UserRecord(user_id=42)
    assert table.items[("USER#42", "PROFILE")]["tokens"] == 3


def test_update_user_persists_wallet_and_rejects_unknown_fields():
    storage, _table = build_storage()

    storage.update_user(7, wallet_address="abc")
    assert storage.get_user(7).wallet_address == "abc"

    with pytest.raises(ValueError, match="Unknown user fields"):
        storage.update_user(7, nickname="x")


def test_grant_tokens_and_reset_cooldown():
    storage, _table = build_storage()
    storage.update_user(1, last_generation=1000)

    assert storage.grant_tokens(1, 5).tokens == 8
    assert storage.reset_cooldown(1).last_generation == 0


def test_claim_generation_uses_cooldown_then_tokens():
    storage, _table = build_storage()
    cooldown = 60_000

    allowed, user = storage.claim_generation(1, cooldown_ms=cooldown, now_ms=100_000)
    assert allowed and user.last_generation == 100_000 and user.tokens == 3

    allowed, user = storage.claim_generation(1, cooldown_ms=cooldown, now_ms=110_000)
    assert allowed and user.tokens == 2

    storage.update_user(1, tokens=0)
    allowed, user = storage.claim_generation(1, cooldown_ms=cooldown, now_ms=120_000)
    assert not allowed

    allowed, _user = storage.claim_generation(1, cooldown_ms=cooldown, now_ms=200_000)
    assert allowed


def test_claim_generation_refuses_banned_users():
    storage, _table = build_storage()
    storage.update_user(3, is_banned=True)

    allowed, _user = storage.claim_generation(3, cooldown_ms=0, now_ms=10)

    assert not allowed


def test_record_tournament_tallies_wins_and_losses():
    storage, _table = build_storage()
    tournament = make_tournament(4)
    tournament.history = [
        MatchRecord(1, 1, 1, 2, winner_id=1, loser_id=2, narrative="a"),
        MatchRecord(1, 2, 3, 4, winner_id=3, loser_id=4, narrative="b"),
        MatchRecord(2, 3, 1, 3, winner_id=1, loser_id=3, narrative="c"),
    ]

    storage.record_tournament(tournament)

    champion = storage.get_user(1)
    assert (champion.wins, champion.losses, champion.matches_played) == (2, 0, 2)
    runner_up = storage.get_user(3)
    assert (runner_up.wins, runner_up.losses, runner_up.matches_played) == (1, 1, 2)
    assert storage.get_user(4).losses == 1


def test_config_round_trip_and_default():
    storage, _table = build_storage()
    assert storage.get_config(9) == BotConfig(guild_id=9)

    config = BotConfig(
        guild_id=9,
        cooldown_ms=3_600_000,
        server_collection="degods",
        partner_collections=["okay_bears"],
        enable_partners=True,
        collection_map={"degods": ["COL1"]},
        updated_by=5,
        updated_at="2024-01-01T00:00:00.000Z",
    )
    storage.save_config(config)

    assert storage.get_config(9) == config
    assert config.configured_aliases() == ["degods", "okay_bears"]


def test_configured_aliases_ignore_partners_when_disabled():
    config = BotConfig(guild_id=1, server_collection="degods", partner_collections=["y00ts"])
    assert config.configured_aliases() == ["degods"]


def test_storage_requires_table():
    storage = BattleStorage(None)
    with pytest.raises(RuntimeError):
        storage.get_user(1)
