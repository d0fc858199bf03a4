"""Asset-ownership eligibility checks for wallet registration.

Holdings are matched against the configured collection aliases. Each alias
resolves to one or more canonical on-chain identifiers (verified collection
and/or first verified creator); resolutions are cached per alias.

Per-asset metadata lookups go through the bulk endpoint when the index has
one (chunked to ``MAX_BULK_BATCH``) and otherwise run in small batches with
a fixed pause between them. Rate-limited lookups are retried with
exponential backoff; an asset whose metadata still cannot be loaded is left
out of the result instead of failing the whole check.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Final, TypeVar

from battle_bot.validation import is_canonical_address

from .solana_api import (
    MAX_BULK_BATCH,
    AliasIndex,
    AssetIndex,
    AssetIndexError,
    AssetMetadata,
    RateLimitedError,
)

log: Final = logging.getLogger("battle-verifier")

DEFAULT_BATCH_SIZE: Final[int] = 3
DEFAULT_BATCH_DELAY_SECONDS: Final[float] = 1.0
DEFAULT_MAX_RETRIES: Final[int] = 2
DEFAULT_BACKOFF_SECONDS: Final[float] = 0.5

T = TypeVar("T")


@dataclass(slots=True, frozen=True)
class EligibleAsset:
    asset_id: str
    metadata: AssetMetadata | None = None
    aliases: frozenset[str] = frozenset()


@dataclass(slots=True, frozen=True)
class AssetProfile:
    asset_id: str
    name: str
    image: str | None
    attributes: list[dict[str, object]] = field(default_factory=list)


def _alias_key(alias: str) -> str:
    value = alias.strip().lstrip("/")
    return value if is_canonical_address(value) else value.lower()


class EligibilityVerifier:
    def __init__(
        self,
        index: AssetIndex,
        alias_index: AliasIndex,
        *,
        aliases: Iterable[str] = (),
        known: Mapping[str, Iterable[str]] | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        batch_delay: float = DEFAULT_BATCH_DELAY_SECONDS,
        bulk_size: int = MAX_BULK_BATCH,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff: float = DEFAULT_BACKOFF_SECONDS,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self.index = index
        self.alias_index = alias_index
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self.bulk_size = min(bulk_size, MAX_BULK_BATCH)
        self.max_retries = max_retries
        self.backoff = backoff
        self._sleep = sleep
        self._aliases: list[str] = []
        self._cache: dict[str, frozenset[str]] = {}
        self.configure(aliases, known)

    @property
    def configured_aliases(self) -> list[str]:
        return list(self._aliases)

    def configure(
        self,
        aliases: Iterable[str],
        known: Mapping[str, Iterable[str]] | None = None,
    ) -> None:
        """Replace the configured aliases; ``known`` redefines cached ids."""
        self._aliases = []
        for alias in aliases:
            key = _alias_key(alias)
            if key and key not in self._aliases:
                self._aliases.append(key)
        for alias, ids in (known or {}).items():
            values = frozenset(str(value) for value in ids if value)
            if values:
                self._cache[_alias_key(alias)] = values

    def resolved_map(self) -> dict[str, list[str]]:
        return {alias: sorted(ids) for alias, ids in self._cache.items()}

    async def resolve_alias(self, alias: str) -> set[str]:
        key = _alias_key(alias)
        if not key:
            return set()
        if is_canonical_address(key):
            return {key}
        cached = self._cache.get(key)
        if cached is not None:
            return set(cached)
        try:
            asset_id = await self.alias_index.lookup_first_asset_for_alias(key)
            if not asset_id:
                log.warning("Alias %s has no listed assets", key)
                return set()
            metadata = await self.index.fetch_asset_metadata(asset_id)
        except Exception as exc:  # pylint: disable=broad-except
            log.warning("Failed to resolve alias %s: %s", key, exc)
            return set()
        ids: set[str] = set()
        if metadata.verified_collection:
            ids.add(metadata.verified_collection)
        if metadata.primary_verified_creator:
            ids.add(metadata.primary_verified_creator)
        if ids:
            self._cache[key] = frozenset(ids)
            log.info("Resolved alias %s to %s", key, ", ".join(sorted(ids)))
        else:
            log.warning("Alias %s resolved to no verified identifiers", key)
        return ids

    async def list_eligible_assets(
        self, holder: str, alias: str | None = None
    ) -> list[EligibleAsset]:
        holdings = await self._with_retries(
            lambda: self.index.list_holdings(holder), f"holdings of {holder}"
        )
        single_units: list[str] = []
        for holding in holdings:
            if holding.is_single_unit and holding.asset_id not in single_units:
                single_units.append(holding.asset_id)
        log.info("Holder %s has %d single-unit assets", holder, len(single_units))
        if not single_units:
            return []

        aliases = [_alias_key(alias)] if alias else self.configured_aliases
        if not aliases:
            return [EligibleAsset(asset_id=asset_id) for asset_id in single_units]

        owners: dict[str, set[str]] = {}
        for name in aliases:
            for canonical in await self.resolve_alias(name):
                owners.setdefault(canonical, set()).add(name)
        if not owners:
            log.warning("No constraint resolvable for aliases %s", ", ".join(aliases))
            return []

        metadata = await self._fetch_metadata(single_units)
        eligible: list[EligibleAsset] = []
        for asset_id in single_units:
            meta = metadata.get(asset_id)
            if meta is None:
                continue
            matched: set[str] = set()
            collection = meta.verified_collection
            if collection is not None:
                matched |= owners.get(collection, set())
            for creator in meta.verified_creators:
                matched |= owners.get(creator, set())
            if matched:
                eligible.append(
                    EligibleAsset(
                        asset_id=asset_id, metadata=meta, aliases=frozenset(matched)
                    )
                )
        log.info("Holder %s has %d eligible assets", holder, len(eligible))
        return eligible

    async def describe_asset(self, asset: EligibleAsset) -> AssetProfile:
        metadata = asset.metadata or await self._fetch_one(asset.asset_id)
        if metadata is None:
            return AssetProfile(asset_id=asset.asset_id, name="", image=None)
        image = None
        attributes = [dict(item) for item in metadata.attributes]
        if metadata.uri:
            try:
                document = await self._with_retries(
                    lambda: self.index.fetch_json(metadata.uri),  # type: ignore[arg-type]
                    f"metadata document of {asset.asset_id}",
                )
            except AssetIndexError as exc:
                log.warning("Metadata document unavailable for %s: %s", asset.asset_id, exc)
            else:
                image = document.get("image") or None
                extra = document.get("attributes")
                if isinstance(extra, list) and extra:
                    attributes = [dict(item) for item in extra if isinstance(item, dict)]
        return AssetProfile(
            asset_id=asset.asset_id,
            name=metadata.name,
            image=str(image) if image else metadata.image,
            attributes=attributes,
        )

    async def _fetch_metadata(self, asset_ids: Sequence[str]) -> dict[str, AssetMetadata]:
        if getattr(self.index, "supports_bulk", False):
            return await self._fetch_bulk(asset_ids)
        return await self._fetch_batched(asset_ids)

    async def _fetch_bulk(self, asset_ids: Sequence[str]) -> dict[str, AssetMetadata]:
        found: dict[str, AssetMetadata] = {}
        for start in range(0, len(asset_ids), self.bulk_size):
            chunk = list(asset_ids[start : start + self.bulk_size])
            try:
                results = await self._with_retries(
                    lambda: self.index.fetch_asset_metadata_batch(chunk),
                    f"bulk metadata chunk at {start}",
                )
            except AssetIndexError as exc:
                log.warning(
                    "Bulk lookup failed for %d assets, falling back to batches: %s",
                    len(chunk),
                    exc,
                )
                found.update(await self._fetch_batched(chunk))
                continue
            for meta in results:
                found[meta.asset_id] = meta
        return found

    async def _fetch_batched(self, asset_ids: Sequence[str]) -> dict[str, AssetMetadata]:
        found: dict[str, AssetMetadata] = {}
        for start in range(0, len(asset_ids), self.batch_size):
            if start:
                await self._sleep(self.batch_delay)
            batch = asset_ids[start : start + self.batch_size]
            results = await asyncio.gather(*(self._fetch_one(item) for item in batch))
            for asset_id, meta in zip(batch, results, strict=True):
                if meta is not None:
                    found[asset_id] = meta
        return found

    async def _fetch_one(self, asset_id: str) -> AssetMetadata | None:
        try:
            return await self._with_retries(
                lambda: self.index.fetch_asset_metadata(asset_id),
                f"metadata of {asset_id}",
            )
        except Exception as exc:  # pylint: disable=broad-except
            log.warning("Failed to fetch metadata for %s: %s", asset_id, exc)
            return None

    async def _with_retries(self, call: Callable[[], Awaitable[T]], what: str) -> T:
        for attempt in range(self.max_retries + 1):
            try:
                return await call()
            except RateLimitedError:
                if attempt >= self.max_retries:
                    raise
                delay = self.backoff * (2**attempt)
                log.debug("Rate limited on %s, retrying in %.2fs", what, delay)
                await self._sleep(delay)
        raise AssetIndexError(f"Retries exhausted for {what}")  # pragma: no cover


__all__ = [
    "AssetProfile",
    "DEFAULT_BATCH_DELAY_SECONDS",
    "DEFAULT_BATCH_SIZE",
    "EligibilityVerifier",
    "EligibleAsset",
]
