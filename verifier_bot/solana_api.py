from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Final, Protocol

import requests

from battle_bot.validation import TransientProviderError

log: Final = logging.getLogger("battle-verifier")

TOKEN_PROGRAM_ID: Final[str] = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
DEFAULT_RPC_URL: Final[str] = "https://api.mainnet-beta.solana.com"
DEFAULT_HOWRARE_URL: Final[str] = "https://api.howrare.is/v0.1"
MAX_BULK_BATCH: Final[int] = 100
REQUEST_TIMEOUT_SECONDS: Final[int] = 15


class AssetIndexError(TransientProviderError):
    """Network, HTTP or JSON-RPC failure from an asset index."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class RateLimitedError(AssetIndexError):
    """The index answered HTTP 429."""


@dataclass(slots=True, frozen=True)
class Holding:
    asset_id: str
    amount: float
    decimals: int

    @property
    def is_single_unit(self) -> bool:
        return self.amount == 1 and self.decimals == 0


@dataclass(slots=True, frozen=True)
class Creator:
    address: str
    verified: bool


@dataclass(slots=True, frozen=True)
class AssetMetadata:
    """Subset of an asset's on-chain metadata used for eligibility checks."""

    asset_id: str
    name: str = ""
    uri: str | None = None
    image: str | None = None
    collection: str | None = None
    collection_verified: bool = False
    creators: tuple[Creator, ...] = ()
    attributes: tuple[dict[str, object], ...] = ()

    @property
    def verified_collection(self) -> str | None:
        return self.collection if self.collection_verified else None

    @property
    def verified_creators(self) -> list[str]:
        return [creator.address for creator in self.creators if creator.verified]

    @property
    def primary_verified_creator(self) -> str | None:
        if self.creators and self.creators[0].verified:
            return self.creators[0].address
        return None

    @classmethod
    def from_das(cls, data: dict[str, object]) -> AssetMetadata:
        content = data.get("content") or {}
        metadata = content.get("metadata") or {}  # type: ignore[union-attr]
        links = content.get("links") or {}  # type: ignore[union-attr]
        collection: str | None = None
        collection_verified = False
        for group in data.get("grouping") or []:  # type: ignore[union-attr]
            if group.get("group_key") != "collection":
                continue
            collection = str(group.get("group_value") or "") or None
            # DAS omits unverified collections unless explicitly requested
            collection_verified = bool(group.get("verified", True))
            break
        creators = tuple(
            Creator(
                address=str(item.get("address", "")),
                verified=bool(item.get("verified")),
            )
            for item in data.get("creators") or []  # type: ignore[union-attr]
        )
        return cls(
            asset_id=str(data.get("id", "")),
            name=str(metadata.get("name", "")),  # type: ignore[union-attr]
            uri=content.get("json_uri") or None,  # type: ignore[union-attr]
            image=links.get("image") or None,  # type: ignore[union-attr]
            collection=collection,
            collection_verified=collection_verified,
            creators=creators,
            attributes=tuple(metadata.get("attributes") or ()),  # type: ignore[union-attr]
        )


class AssetIndex(Protocol):
    supports_bulk: bool

    async def list_holdings(self, owner: str) -> list[Holding]: ...

    async def fetch_asset_metadata(self, asset_id: str) -> AssetMetadata: ...

    async def fetch_asset_metadata_batch(
        self, asset_ids: Sequence[str]
    ) -> list[AssetMetadata]: ...

    async def fetch_json(self, uri: str) -> dict[str, object]: ...


class AliasIndex(Protocol):
    async def lookup_first_asset_for_alias(self, alias: str) -> str | None: ...


def _raise_for_status(response: requests.Response, what: str) -> None:
    if response.status_code == 429:
        raise RateLimitedError(f"{what} rate limited", status=429)
    if response.status_code >= 400:
        raise AssetIndexError(
            f"{what} failed with HTTP {response.status_code}",
            status=response.status_code,
        )


def _decode_json(response: requests.Response, what: str) -> dict[str, object]:
    try:
        body = response.json()
    except ValueError as exc:
        raise AssetIndexError(f"{what} returned a non-JSON body: {exc}") from exc
    if not isinstance(body, dict):
        raise AssetIndexError(f"{what} returned {type(body).__name__}, expected an object")
    return body


class SolanaAssetIndex:
    """Solana JSON-RPC plus the Digital Asset Standard (DAS) read API."""

    def __init__(
        self,
        rpc_url: str = DEFAULT_RPC_URL,
        *,
        session: requests.Session | None = None,
        timeout: int = REQUEST_TIMEOUT_SECONDS,
        supports_bulk: bool = True,
    ) -> None:
        self.rpc_url = rpc_url
        self.supports_bulk = supports_bulk
        self._session = session or requests.Session()
        self._timeout = timeout
        self._ids = itertools.count(1)

    def _rpc(self, method: str, params: object) -> object:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }
        try:
            response = self._session.post(
                self.rpc_url, json=payload, timeout=self._timeout
            )
        except requests.RequestException as exc:
            raise AssetIndexError(f"{method} request failed: {exc}") from exc
        _raise_for_status(response, method)
        body = _decode_json(response, method)
        error = body.get("error")
        if error:
            code = error.get("code") if isinstance(error, dict) else None
            if code == 429:
                raise RateLimitedError(f"{method} rate limited", status=429)
            raise AssetIndexError(f"{method} returned error: {error}")
        return body.get("result")

    async def list_holdings(self, owner: str) -> list[Holding]:
        result = await asyncio.to_thread(
            self._rpc,
            "getTokenAccountsByOwner",
            [owner, {"programId": TOKEN_PROGRAM_ID}, {"encoding": "jsonParsed"}],
        )
        holdings: list[Holding] = []
        for account in (result or {}).get("value", []):  # type: ignore[union-attr]
            try:
                info = account["account"]["data"]["parsed"]["info"]
            except (KeyError, TypeError) as exc:
                raise AssetIndexError(f"Malformed token account for {owner}: {exc}") from exc
            amount = info.get("tokenAmount", {})
            holdings.append(
                Holding(
                    asset_id=str(info.get("mint", "")),
                    amount=float(amount.get("uiAmount") or 0),
                    decimals=int(amount.get("decimals") or 0),
                )
            )
        log.debug("Owner %s holds %d token accounts", owner, len(holdings))
        return holdings

    async def fetch_asset_metadata(self, asset_id: str) -> AssetMetadata:
        result = await asyncio.to_thread(self._rpc, "getAsset", {"id": asset_id})
        if not result:
            raise AssetIndexError(f"Asset {asset_id} not found", status=404)
        return AssetMetadata.from_das(result)  # type: ignore[arg-type]

    async def fetch_asset_metadata_batch(
        self, asset_ids: Sequence[str]
    ) -> list[AssetMetadata]:
        if len(asset_ids) > MAX_BULK_BATCH:
            raise ValueError(f"At most {MAX_BULK_BATCH} assets per batch")
        result = await asyncio.to_thread(
            self._rpc, "getAssetBatch", {"ids": list(asset_ids)}
        )
        return [
            AssetMetadata.from_das(item)
            for item in result or []  # type: ignore[union-attr]
            if item
        ]

    async def fetch_json(self, uri: str) -> dict[str, object]:
        def _get() -> dict[str, object]:
            try:
                response = self._session.get(uri, timeout=self._timeout)
            except requests.RequestException as exc:
                raise AssetIndexError(f"Metadata fetch failed: {exc}") from exc
            _raise_for_status(response, "Metadata fetch")
            return _decode_json(response, "Metadata fetch")

        return await asyncio.to_thread(_get)


class HowRareAliasIndex:
    """Resolve HowRare collection slugs to the first listed mint."""

    def __init__(
        self,
        base_url: str = DEFAULT_HOWRARE_URL,
        *,
        session: requests.Session | None = None,
        timeout: int = REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._session = session or requests.Session()
        self._timeout = timeout

    def _lookup(self, slug: str) -> str | None:
        url = f"{self.base_url}/collections/{slug}"
        try:
            response = self._session.get(url, timeout=self._timeout)
        except requests.RequestException as exc:
            raise AssetIndexError(f"HowRare request failed: {exc}") from exc
        _raise_for_status(response, "HowRare lookup")
        body = _decode_json(response, "HowRare lookup")
        data = body.get("result", {}).get("data", {})  # type: ignore[union-attr]
        items = data.get("items") or []
        if not items:
            return None
        mint = items[0].get("mint")
        return str(mint) if mint else None

    async def lookup_first_asset_for_alias(self, alias: str) -> str | None:
        slug = alias.strip().lstrip("/")
        if not slug:
            return None
        return await asyncio.to_thread(self._lookup, slug)


__all__ = [
    "AliasIndex",
    "AssetIndex",
    "AssetIndexError",
    "AssetMetadata",
    "Creator",
    "DEFAULT_HOWRARE_URL",
    "DEFAULT_RPC_URL",
    "HowRareAliasIndex",
    "Holding",
    "MAX_BULK_BATCH",
    "RateLimitedError",
    "SolanaAssetIndex",
]
