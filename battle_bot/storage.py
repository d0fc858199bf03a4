from __future__ import annotations

from dataclasses import replace

from .models import BotConfig, Tournament, UserRecord

_USER_FIELDS = frozenset(
    {
        "tokens",
        "last_generation",
        "wallet_address",
        "is_banned",
        "wins",
        "losses",
        "matches_played",
    }
)


class BattleStorage:
    def __init__(self, table) -> None:
        self._table = table

    def ensure_table(self) -> None:
        if self._table is None:
            raise RuntimeError("Battle table is not configured")

    # ----- Users -----
    def get_user(self, user_id: int) -> UserRecord:
        """Return the user record, creating a default one on first access."""
        self.ensure_table()
        resp = self._table.get_item(Key=UserRecord.key(user_id))
        item = resp.get("Item")
        if not item:
            user = UserRecord(user_id=user_id)
            self._table.put_item(Item=user.to_item())
            return user
        return UserRecord.from_item(item)

    def update_user(self, user_id: int, **patch: object) -> UserRecord:
        unknown = set(patch) - _USER_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {', '.join(sorted(unknown))}")
        user = replace(self.get_user(user_id), **patch)
        self._table.put_item(Item=user.to_item())
        return user

    def grant_tokens(self, user_id: int, amount: int) -> UserRecord:
        user = self.get_user(user_id)
        return self.update_user(user_id, tokens=user.tokens + amount)

    def reset_cooldown(self, user_id: int) -> UserRecord:
        return self.update_user(user_id, last_generation=0)

    def can_claim_generation(self, user_id: int, *, cooldown_ms: int, now_ms: int) -> bool:
        """Whether ``claim_generation`` would succeed, without spending anything."""
        user = self.get_user(user_id)
        if user.is_banned:
            return False
        return now_ms - user.last_generation >= cooldown_ms or user.tokens > 0

    def claim_generation(
        self, user_id: int, *, cooldown_ms: int, now_ms: int
    ) -> tuple[bool, UserRecord]:
        """Spend the free cooldown slot, or a token while on cooldown."""
        user = self.get_user(user_id)
        if user.is_banned:
            return False, user
        if now_ms - user.last_generation >= cooldown_ms:
            return True, self.update_user(user_id, last_generation=now_ms)
        if user.tokens > 0:
            return True, self.update_user(user_id, tokens=user.tokens - 1)
        return False, user

    def record_tournament(self, tournament: Tournament) -> None:
        """Fold the tournament history into per-user win/loss counters."""
        self.ensure_table()
        tallies: dict[int, tuple[int, int]] = {}
        for match in tournament.history:
            wins, losses = tallies.get(match.winner_id, (0, 0))
            tallies[match.winner_id] = (wins + 1, losses)
            wins, losses = tallies.get(match.loser_id, (0, 0))
            tallies[match.loser_id] = (wins, losses + 1)
        for user_id, (wins, losses) in tallies.items():
            user = self.get_user(user_id)
            self.update_user(
                user_id,
                wins=user.wins + wins,
                losses=user.losses + losses,
                matches_played=user.matches_played + wins + losses,
            )

    # ----- Guild configuration -----
    def get_config(self, guild_id: int) -> BotConfig:
        self.ensure_table()
        resp = self._table.get_item(Key=BotConfig.key(guild_id))
        item = resp.get("Item")
        if not item:
            return BotConfig(guild_id=guild_id)
        return BotConfig.from_item(item)

    def save_config(self, config: BotConfig) -> None:
        self.ensure_table()
        self._table.put_item(Item=config.to_item())


__all__ = ["BattleStorage"]
