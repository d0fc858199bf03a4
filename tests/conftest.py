from __future__ import annotations

import random
from collections.abc import Sequence

import pytest

from battle_bot.content import ContentGenerationError
from battle_bot.interaction import Artifact
from battle_bot.models import BattleSettings, Contestant, Tournament
from verifier_bot.solana_api import AssetMetadata, Creator, Holding

COLLECTION_A = "CoLAaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa1"
COLLECTION_B = "CoLBbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbb2"
CREATOR_A = "CreAaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa3"
WALLET = "WaLLetwwwwwwwwwwwwwwwwwwwwwwwwwwwwwwwwwwww4"


class FakeTable:
    def __init__(self) -> None:
        self.items: dict[tuple[str, str], dict[str, object]] = {}

    def get_item(self, *, Key):
        return {"Item": self.items.get((Key["pk"], Key["sk"]))}

    def put_item(self, *, Item):
        self.items[(Item["pk"], Item["sk"])] = Item


class FakeReporter:
    def __init__(self) -> None:
        self.updates: list[tuple[str, list[Artifact]]] = []

    async def post_update(self, message: str, artifacts: Sequence[Artifact] = ()) -> None:
        self.updates.append((message, list(artifacts)))

    def messages(self) -> list[str]:
        return [message for message, _ in self.updates]

    def filenames(self) -> list[str]:
        return [artifact.filename for _, artifacts in self.updates for artifact in artifacts]


class FakeProvider:
    """Deterministic content provider; flags switch individual capabilities off."""

    def __init__(self, *, text_fails: bool = False, image_fails: bool = False) -> None:
        self.text_fails = text_fails
        self.image_fails = image_fails
        self.text_calls: list[tuple[str, str]] = []
        self.image_calls: list[tuple[str, list[str]]] = []

    async def generate_text(self, prompt: str, context: str = "") -> str:
        self.text_calls.append((prompt, context))
        if self.text_fails:
            raise ContentGenerationError("text provider down")
        return f"Narrative #{len(self.text_calls)}"

    async def generate_image(self, prompt: str, reference_images: Sequence[str] = ()) -> bytes:
        self.image_calls.append((prompt, list(reference_images)))
        if self.image_fails:
            raise ContentGenerationError("image provider down")
        return f"image-{len(self.image_calls)}".encode()


def make_metadata(
    asset_id: str,
    *,
    collection: str | None = None,
    collection_verified: bool = True,
    creators: Sequence[tuple[str, bool]] = (),
    uri: str | None = None,
    image: str | None = None,
) -> AssetMetadata:
    return AssetMetadata(
        asset_id=asset_id,
        name=f"Asset {asset_id}",
        uri=uri,
        image=image or f"https://img.example/{asset_id}.png",
        collection=collection,
        collection_verified=collection_verified,
        creators=tuple(Creator(address=addr, verified=ok) for addr, ok in creators),
        attributes=({"trait_type": "Power", "value": "9000"},),
    )


class FakeAssetIndex:
    def __init__(
        self,
        holdings: Sequence[Holding] = (),
        metadata: dict[str, AssetMetadata] | None = None,
        *,
        supports_bulk: bool = False,
    ) -> None:
        self.holdings = list(holdings)
        self.metadata = dict(metadata or {})
        self.supports_bulk = supports_bulk
        self.documents: dict[str, dict[str, object]] = {}
        self.single_calls: list[str] = []
        self.batch_calls: list[list[str]] = []
        self.failures: dict[str, list[Exception]] = {}

    def _maybe_fail(self, key: str) -> None:
        pending = self.failures.get(key)
        if pending:
            raise pending.pop(0)

    async def list_holdings(self, owner: str) -> list[Holding]:
        self._maybe_fail("holdings")
        return list(self.holdings)

    async def fetch_asset_metadata(self, asset_id: str) -> AssetMetadata:
        self.single_calls.append(asset_id)
        self._maybe_fail(asset_id)
        if asset_id not in self.metadata:
            raise KeyError(asset_id)
        return self.metadata[asset_id]

    async def fetch_asset_metadata_batch(self, asset_ids: Sequence[str]) -> list[AssetMetadata]:
        self.batch_calls.append(list(asset_ids))
        self._maybe_fail("batch")
        return [self.metadata[item] for item in asset_ids if item in self.metadata]

    async def fetch_json(self, uri: str) -> dict[str, object]:
        self._maybe_fail(uri)
        return self.documents.get(uri, {})


class FakeAliasIndex:
    def __init__(self, mapping: dict[str, str | None] | None = None) -> None:
        self.mapping = dict(mapping or {})
        self.calls: list[str] = []
        self.fail = False

    async def lookup_first_asset_for_alias(self, alias: str) -> str | None:
        self.calls.append(alias)
        if self.fail:
            raise RuntimeError("alias index unavailable")
        return self.mapping.get(alias)


def make_contestant(user_id: int, *, team: str | None = None) -> Contestant:
    return Contestant(
        user_id=user_id,
        display_name=f"Fighter{user_id}",
        image_url=f"https://img.example/fighter{user_id}.png",
        team=team,
    )


def make_tournament(count: int, *, team_mode: bool = False) -> Tournament:
    contestants = {index: make_contestant(index) for index in range(1, count + 1)}
    return Tournament(
        tournament_id="t-1",
        channel_id=555,
        settings=BattleSettings(arena="Colosseum"),
        contestants=contestants,
        team_mode=team_mode,
    )


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def reporter() -> FakeReporter:
    return FakeReporter()


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


async def no_sleep(_delay: float) -> None:
    return None
