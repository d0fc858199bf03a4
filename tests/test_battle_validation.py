import pytest

from battle_bot.validation import (
    InvalidValueError,
    is_canonical_address,
    parse_bool_flag,
    parse_capacity,
    parse_collection_aliases,
    parse_cooldown_hours,
    validate_arena_name,
    validate_bracket_size,
    validate_capacity,
    validate_wallet_address,
)
from conftest import WALLET


def test_validate_wallet_address_accepts_base58():
    assert validate_wallet_address(f"  {WALLET} ") == WALLET


@pytest.mark.parametrize(
    "raw",
    ["", "short", "0" * 40, "O" * 40, "x" * 45],
)
def test_validate_wallet_address_rejects_invalid(raw):
    with pytest.raises(InvalidValueError):
        validate_wallet_address(raw)


def test_is_canonical_address_distinguishes_slugs():
    assert is_canonical_address(WALLET)
    assert not is_canonical_address("degods")


@pytest.mark.parametrize("value", [2, 8, 24])
def test_validate_capacity_accepts_bounds(value):
    assert validate_capacity(value) == value


@pytest.mark.parametrize("value", [1, 25, 0])
def test_validate_capacity_rejects_out_of_range(value):
    with pytest.raises(InvalidValueError):
        validate_capacity(value)


def test_parse_capacity_rejects_non_numbers():
    with pytest.raises(InvalidValueError, match="number"):
        parse_capacity("eight")
    assert parse_capacity(" 16 ") == 16


def test_bracket_size_team_mode_requires_power_of_two():
    assert validate_bracket_size(8, team_mode=True) == 8
    with pytest.raises(InvalidValueError, match="Team battles"):
        validate_bracket_size(6, team_mode=True)


def test_bracket_size_non_team_requires_even_count():
    assert validate_bracket_size(6, team_mode=False) == 6
    with pytest.raises(InvalidValueError, match="even"):
        validate_bracket_size(5, team_mode=False)
    with pytest.raises(InvalidValueError, match="at least 2"):
        validate_bracket_size(1, team_mode=False)
    with pytest.raises(InvalidValueError):
        validate_bracket_size(26, team_mode=False)


def test_validate_arena_name_trims_and_limits():
    assert validate_arena_name("  Moon Base ") == "Moon Base"
    with pytest.raises(InvalidValueError):
        validate_arena_name("   ")
    with pytest.raises(InvalidValueError):
        validate_arena_name("x" * 101)


def test_parse_collection_aliases_dedupes_and_normalizes():
    raw = f"DeGods, /okay_bears degods\n{WALLET}"
    assert parse_collection_aliases(raw) == ["degods", "okay_bears", WALLET]


def test_parse_cooldown_hours():
    assert parse_cooldown_hours("24") == 24
    with pytest.raises(InvalidValueError):
        parse_cooldown_hours("-1")
    with pytest.raises(InvalidValueError):
        parse_cooldown_hours("soon")


def test_parse_bool_flag():
    assert parse_bool_flag(" TRUE ") is True
    assert parse_bool_flag("yes") is False
