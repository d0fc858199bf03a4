from __future__ import annotations

import re
from collections.abc import Sequence

MIN_CAPACITY = 2
MAX_CAPACITY = 24
TEAM_BRACKET_SIZES: tuple[int, ...] = (4, 8, 16)


class InvalidValueError(ValueError):
    """Base exception for validation failures."""


class LobbyExistsError(InvalidValueError):
    """Raised when a channel already hosts a lobby or a running tournament."""


class DuplicateRegistrationError(InvalidValueError):
    """Raised when a user registers twice for the same lobby."""


class CapacityExceededError(InvalidValueError):
    """Raised when a lobby is already full."""


class InvalidAssetError(InvalidValueError):
    """Raised when the registration asset (image, wallet, NFT) is unusable."""


class AmbiguousConstraintError(Exception):
    """The holder qualifies under several collections and must pick one."""

    def __init__(self, aliases: Sequence[str], wallet_address: str) -> None:
        super().__init__("Multiple collections found")
        self.aliases = list(aliases)
        self.wallet_address = wallet_address


class TransientProviderError(RuntimeError):
    """Rate limit or network failure from an external service."""


class FatalMatchError(RuntimeError):
    """A match step failed beyond recovery; the bracket falls back."""


_WALLET_PATTERN = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")
_SPLIT_PATTERN = re.compile(r"[\s,]+")


def is_canonical_address(value: str) -> bool:
    return bool(_WALLET_PATTERN.match(value.strip()))


def validate_wallet_address(raw: str) -> str:
    address = raw.strip()
    if not address:
        raise InvalidValueError("A wallet address is required")
    if len(address) < 32 or len(address) > 44:
        raise InvalidValueError("Invalid Solana address format")
    if not _WALLET_PATTERN.match(address):
        raise InvalidValueError(f"Invalid Solana address: {address}")
    return address


def validate_capacity(capacity: int) -> int:
    if capacity < MIN_CAPACITY or capacity > MAX_CAPACITY:
        raise InvalidValueError(
            f"Players must be between {MIN_CAPACITY} and {MAX_CAPACITY}"
        )
    return capacity


def parse_capacity(raw: str) -> int:
    value = raw.strip()
    try:
        capacity = int(value)
    except ValueError as exc:
        raise InvalidValueError(f"Max players must be a number: {value}") from exc
    return validate_capacity(capacity)


def validate_bracket_size(count: int, *, team_mode: bool) -> int:
    """Check that ``count`` contestants can start a bracket."""
    if count < 2:
        raise InvalidValueError("Need at least 2 players to start")
    if team_mode:
        if count not in TEAM_BRACKET_SIZES:
            sizes = ", ".join(str(size) for size in TEAM_BRACKET_SIZES)
            raise InvalidValueError(
                f"Team battles need exactly {sizes} players (currently {count})"
            )
        return count
    if count % 2 != 0:
        raise InvalidValueError(f"Player count must be even (currently {count})")
    if count > MAX_CAPACITY:
        raise InvalidValueError(
            f"Battles above {MAX_CAPACITY} players are not supported"
        )
    return count


def validate_arena_name(raw: str) -> str:
    name = raw.strip()
    if not name:
        raise InvalidValueError("Arena name cannot be empty")
    if len(name) > 100:
        raise InvalidValueError("Arena name must be 100 characters or fewer")
    return name


def parse_collection_aliases(raw: str) -> list[str]:
    """Split a comma/space separated alias list, keeping first occurrences."""
    aliases: list[str] = []
    seen: set[str] = set()
    for part in _SPLIT_PATTERN.split(raw.strip()):
        alias = part.strip().lstrip("/")
        if not alias:
            continue
        key = alias.lower() if not is_canonical_address(alias) else alias
        if key in seen:
            continue
        seen.add(key)
        aliases.append(key)
    return aliases


def parse_cooldown_hours(raw: str) -> int:
    value = raw.strip()
    try:
        hours = int(value)
    except ValueError as exc:
        raise InvalidValueError("Cooldown must be a number") from exc
    if hours < 0:
        raise InvalidValueError("Cooldown cannot be negative")
    return hours


def parse_bool_flag(raw: str) -> bool:
    return raw.strip().lower() == "true"


__all__ = [
    "AmbiguousConstraintError",
    "CapacityExceededError",
    "DuplicateRegistrationError",
    "FatalMatchError",
    "InvalidAssetError",
    "InvalidValueError",
    "LobbyExistsError",
    "MAX_CAPACITY",
    "MIN_CAPACITY",
    "TEAM_BRACKET_SIZES",
    "TransientProviderError",
    "is_canonical_address",
    "parse_bool_flag",
    "parse_capacity",
    "parse_collection_aliases",
    "parse_cooldown_hours",
    "validate_arena_name",
    "validate_bracket_size",
    "validate_capacity",
    "validate_wallet_address",
]
