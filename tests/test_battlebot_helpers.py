from datetime import UTC, datetime

import pytest

import battlebot
from battle_bot import BattleStorage, BotConfig, Lobby, TeamConfig, TeamSpec
from battle_bot.models import BattleSettings
from battle_bot.sessions import SessionStore
from conftest import COLLECTION_A, FakeAliasIndex, FakeAssetIndex, FakeTable, make_contestant
from verifier_bot.eligibility import EligibilityVerifier

TEAMS = TeamConfig(TeamSpec("Gods", "degods"), TeamSpec("Yoots", "y00ts"))
HOUR_MS = 60 * 60 * 1000


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("a", "Gods"),
        ("Team B", "Yoots"),
        (" gods ", "Gods"),
        ("y00ts", "Yoots"),
        ("", None),
        (None, None),
        ("pirates", None),
    ],
)
def test_resolve_team_name(raw, expected):
    assert battlebot.resolve_team_name(TEAMS, raw) == expected


def test_parse_mode_option_maps_team_battles_to_wallet():
    assert battlebot.parse_mode_option("WALLET_TEAMS") == battlebot.ModeChosen("WALLET", teams=True)
    assert battlebot.parse_mode_option("UPLOAD") == battlebot.ModeChosen("UPLOAD")


def test_mode_label():
    assert battlebot.mode_label("WALLET", team_mode=True).startswith("⚔️ Team Battle")
    assert battlebot.mode_label("PROFILE_IMAGE") == "👤 Profile Picture"


def test_truncate_message_respects_limit():
    assert battlebot.truncate_message("short") == "short"
    long = "x" * 2500
    truncated = battlebot.truncate_message(long)
    assert len(truncated) == 2000
    assert truncated.endswith("…")


def test_select_options_caps_count_and_length():
    options = battlebot.select_options([f"alias{i}" for i in range(30)] + ["y" * 150])
    assert len(options) == 25
    assert options[0].value == "alias0"


def test_team_alias_options_include_partners_even_when_disabled():
    config = BotConfig(
        guild_id=1, server_collection="degods", partner_collections=["y00ts", "degods"]
    )
    assert battlebot.team_alias_options(config) == ["degods", "y00ts"]


def test_format_credits_ready_and_waiting():
    now = 100 * HOUR_MS
    ready = battlebot.format_credits(3, 0, 24 * HOUR_MS, now)
    assert "**Tokens:** 3" in ready
    assert "Ready to host" in ready

    waiting = battlebot.format_credits(0, now - 2 * HOUR_MS - 1, 24 * HOUR_MS, now)
    assert "Wait 22 more hours" in waiting


def test_summarize_resolution():
    summary = battlebot.summarize_resolution({"degods": ["COL"]}, ["degods", "ghosts"])
    assert summary.splitlines() == ["✅ degods → COL", "⚠️ ghosts could not be resolved"]
    assert "any NFT" in battlebot.summarize_resolution({}, [])


def test_format_contestants_and_lobby_embed():
    lobby = Lobby(
        host_id=7,
        channel_id=1,
        capacity=4,
        mode="WALLET",
        settings=BattleSettings(arena="Dojo", genre="Noir", style="Manga"),
        team_config=TEAMS,
    )
    lobby.contestants.append(make_contestant(1, team="Gods"))

    embed = battlebot.build_lobby_embed(lobby)

    fields = {field.name: field.value for field in embed.fields}
    assert fields["Host"] == "<@7>"
    assert fields["Players"] == "1/4"
    assert fields["Style"] == "Noir · Manga"
    assert "**Gods** (degods)" in fields["Teams"]
    assert fields["Fighters"] == "1. Fighter1 [Gods]"
    assert battlebot.format_contestants([]) == "No fighters yet."


def test_help_text_lists_every_command():
    text = battlebot.build_help_text()
    for command in (
        "/battle create",
        "/battle join",
        "/battle start",
        "/battle reset",
        "/battle credits",
        "/wallet check",
        "/wallet set",
        "/admin setup",
        "/admin user reset",
        "/admin user grant",
        "/comic create",
        "/comic status",
    ):
        assert command in text


def test_now_ms_tracks_utc_clock():
    before = int(datetime.now(UTC).timestamp() * 1000)
    assert battlebot.now_ms() >= before


@pytest.mark.asyncio
async def test_apply_admin_config_resolves_saves_and_drops_cached_verifier(monkeypatch):
    storage = BattleStorage(FakeTable())
    verifiers = SessionStore()
    verifiers.put(9, object())
    built: list[BotConfig] = []

    def fake_build(config):
        built.append(config)
        return EligibilityVerifier(
            FakeAssetIndex(),
            FakeAliasIndex(),
            aliases=config.configured_aliases(),
            known={"degods": [COLLECTION_A]},
        )

    monkeypatch.setattr(battlebot, "storage", storage)
    monkeypatch.setattr(battlebot, "verifiers", verifiers)
    monkeypatch.setattr(battlebot, "build_verifier", fake_build)

    config = await battlebot.apply_admin_config(
        BotConfig(guild_id=9),
        cooldown_hours=12,
        server_raw="/DeGods",
        partners_raw="ghosts, y00ts",
        enable_raw="false",
        updated_by=3,
    )

    assert config.cooldown_ms == 12 * HOUR_MS
    assert config.server_collection == "degods"
    assert config.partner_collections == ["ghosts", "y00ts"]
    assert config.enable_partners is False
    assert config.collection_map == {"degods": [COLLECTION_A]}
    assert storage.get_config(9) == config
    assert 9 not in verifiers
    assert len(built) == 1


def test_verifier_for_guild_is_cached(monkeypatch):
    storage = BattleStorage(FakeTable())
    storage.save_config(BotConfig(guild_id=5, server_collection=COLLECTION_A))
    monkeypatch.setattr(battlebot, "storage", storage)
    monkeypatch.setattr(battlebot, "verifiers", SessionStore())

    first = battlebot.verifier_for_guild(5)

    assert first is battlebot.verifier_for_guild(5)
    assert first.configured_aliases == [COLLECTION_A]
