# ruff: noqa: S101
from __future__ import annotations

import httpx
import pytest
from sqlalchemy import event
from sqlalchemy.engine import Connection
from sqlalchemy.exc import IntegrityError, OperationalError

from skinvault import catalog_skins
from skinvault.catalog_client import CatalogClient
from skinvault.errors import EmptyResultError, TransportError
from skinvault.skin_import import import_catalog, upsert_skins


async def _no_sleep(_delay: float) -> None:
    return None


def _catalog_transport(*, tiers_status: int = 200) -> httpx.MockTransport:
    weapons = [
        {
            "uuid": "w-vandal",
            "displayName": "Vandal",
            "skins": [
                {"uuid": "s-std", "displayName": "Standard Vandal", "chromas": []},
                {
                    "uuid": "s-prime",
                    "displayName": "Prime Vandal",
                    "chromas": [{"uuid": "c", "displayName": "Prime Vandal", "fullRender": "https://img/prime.png"}],
                    "contentTierUuid": "t-ultra",
                },
                {
                    "uuid": "s-ion",
                    "displayName": "Ion Vandal",
                    "displayIcon": "https://img/ion.png",
                    "chromas": [],
                    "contentTierUuid": "t-unknown",
                },
            ],
        },
        {
            "uuid": "w-ghost",
            "displayName": "Ghost",
            "skins": [
                {"uuid": "g-std", "displayName": "Ghost", "chromas": []},
                {"uuid": "g-sakura", "displayName": "Sakura Ghost", "displayIcon": "https://img/sakura.png"},
            ],
        },
    ]
    tiers = [{"uuid": "t-ultra", "displayName": "Ultra Edition", "rank": 4}]

    def _handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v1/weapons":
            return httpx.Response(200, json={"status": 200, "data": weapons})
        if request.url.path == "/v1/contenttiers":
            return httpx.Response(tiers_status, json={"status": 200, "data": tiers})
        return httpx.Response(404)

    return httpx.MockTransport(_handler)


def _client(transport: httpx.MockTransport) -> CatalogClient:
    return CatalogClient(base_url="https://catalog.test", transport=transport, sleep=_no_sleep, retry_base_delay=0)


@pytest.mark.asyncio
async def test_sixty_new_skins_insert_in_two_chunks(
    conn: Connection, make_skin, monkeypatch: pytest.MonkeyPatch
) -> None:
    insert_sizes: list[int] = []
    real_insert = catalog_skins.insert_many

    def _spy(connection, rows):
        insert_sizes.append(len(rows))
        return real_insert(connection, rows)

    monkeypatch.setattr(catalog_skins, "insert_many", _spy)
    skins = [make_skin("Vandal", i) for i in range(60)]

    result = await upsert_skins(conn, skins, pause_seconds=0)

    assert insert_sizes == [50, 10]
    assert (result.created, result.updated, result.failed, result.total) == (60, 0, 0, 60)
    assert catalog_skins.count(conn) == 60


@pytest.mark.asyncio
async def test_reimport_updates_in_place(conn: Connection, make_skin) -> None:
    original = [make_skin("Vandal", i) for i in range(3)]
    await upsert_skins(conn, original, pause_seconds=0)

    changed = dict(original[1], rarity="Epic", collection="Prime")
    result = await upsert_skins(conn, [changed, make_skin("Vandal", 3)], pause_seconds=0)

    assert (result.created, result.updated, result.failed) == (1, 1, 0)
    stored = catalog_skins.find_by_keys(conn, [("w-vandal", "s-vandal-1")])[("w-vandal", "s-vandal-1")]
    assert stored["rarity"] == "Epic"
    assert stored["collection"] == "Prime"
    assert catalog_skins.count(conn) == 4


@pytest.mark.asyncio
async def test_duplicate_keys_keep_last_values(conn: Connection, make_skin) -> None:
    first = make_skin("Ghost", 1)
    last = dict(first, name="Ghost Renamed", rarity="Rare")

    result = await upsert_skins(conn, [first, make_skin("Ghost", 2), last], pause_seconds=0)

    assert result.created + result.updated + result.failed == result.total == 3
    assert catalog_skins.count(conn) == 2
    stored = catalog_skins.find_by_keys(conn, [("w-ghost", "s-ghost-1")])[("w-ghost", "s-ghost-1")]
    assert stored["name"] == "Ghost Renamed"
    assert stored["rarity"] == "Rare"


@pytest.mark.asyncio
async def test_failed_chunk_does_not_block_later_chunks(
    conn: Connection, make_skin, monkeypatch: pytest.MonkeyPatch
) -> None:
    calls = 0
    real_insert = catalog_skins.insert_many

    def _flaky(connection, rows):
        nonlocal calls
        calls += 1
        if calls == 1:
            raise OperationalError("INSERT INTO skins", {}, Exception("payload too large"))
        return real_insert(connection, rows)

    monkeypatch.setattr(catalog_skins, "insert_many", _flaky)
    skins = [make_skin("Phantom", i) for i in range(70)]

    result = await upsert_skins(conn, skins, pause_seconds=0)

    assert (result.created, result.failed) == (20, 50)
    assert len(result.errors) == 50
    assert "Phantom Skin 0" in result.errors[0]
    assert catalog_skins.count(conn) == 20


@pytest.mark.asyncio
async def test_failed_update_is_counted_per_item(
    conn: Connection, make_skin, monkeypatch: pytest.MonkeyPatch
) -> None:
    skins = [make_skin("Odin", i) for i in range(3)]
    await upsert_skins(conn, skins, pause_seconds=0)
    real_update = catalog_skins.update_by_key

    def _picky(connection, row):
        if row["name"] == "Odin Skin 1":
            raise IntegrityError("UPDATE skins", {}, Exception("constraint"))
        return real_update(connection, row)

    monkeypatch.setattr(catalog_skins, "update_by_key", _picky)
    result = await upsert_skins(conn, skins, pause_seconds=0)

    assert (result.created, result.updated, result.failed) == (0, 2, 1)
    assert len(result.errors) == 1
    assert "Odin Skin 1" in result.errors[0]


@pytest.mark.asyncio
async def test_lookup_queries_are_chunked(conn: Connection, make_skin) -> None:
    lookups: list[str] = []

    def _record(_conn, _cursor, statement, _params, _context, _executemany):
        if statement.lstrip().upper().startswith("SELECT") and "skin_external_id IN" in statement:
            lookups.append(statement)

    event.listen(conn.engine, "before_cursor_execute", _record)
    try:
        await upsert_skins(conn, [make_skin("Judge", i) for i in range(45)], pause_seconds=0)
    finally:
        event.remove(conn.engine, "before_cursor_execute", _record)

    assert len(lookups) == 3


@pytest.mark.asyncio
async def test_courtesy_pause_every_fifty_updates(conn: Connection, make_skin) -> None:
    skins = [make_skin("Spectre", i) for i in range(120)]
    await upsert_skins(conn, skins, pause_seconds=0)
    pauses: list[float] = []

    async def _sleep(delay: float) -> None:
        pauses.append(delay)

    result = await upsert_skins(conn, skins, sleep=_sleep)

    assert result.updated == 120
    assert pauses == [0.2, 0.2]


@pytest.mark.asyncio
async def test_import_catalog_end_to_end(conn: Connection) -> None:
    result = await import_catalog(conn, _client(_catalog_transport()), pause_seconds=0)

    assert result.as_dict() == {"created": 3, "updated": 0, "failed": 0, "total": 3, "errors": []}
    by_name = {row["name"]: row for row in catalog_skins.list_skins(conn)}
    assert set(by_name) == {"Prime Vandal", "Ion Vandal", "Sakura Ghost"}
    assert by_name["Prime Vandal"]["rarity"] == "Ultra"
    assert by_name["Prime Vandal"]["image_url"] == "https://img/prime.png"
    assert by_name["Ion Vandal"]["rarity"] == "Common"
    assert by_name["Ion Vandal"]["collection"] == "Ion"

    again = await import_catalog(conn, _client(_catalog_transport()), pause_seconds=0)
    assert (again.created, again.updated) == (0, 3)
    assert catalog_skins.count(conn) == 3


@pytest.mark.asyncio
async def test_import_catalog_falls_back_when_tiers_fail(conn: Connection) -> None:
    result = await import_catalog(conn, _client(_catalog_transport(tiers_status=500)), pause_seconds=0)
    assert result.created == 3
    assert {row["rarity"] for row in catalog_skins.list_skins(conn)} == {"Common"}


@pytest.mark.asyncio
async def test_import_catalog_weapon_filter(conn: Connection) -> None:
    result = await import_catalog(
        conn, _client(_catalog_transport()), weapon_filter="ghost", pause_seconds=0
    )
    assert result.created == 1
    assert catalog_skins.get_facets(conn)["weapons"] == ["Ghost"]

    with pytest.raises(EmptyResultError):
        await import_catalog(conn, _client(_catalog_transport()), weapon_filter="bulldog")


@pytest.mark.asyncio
async def test_import_catalog_propagates_fetch_failure(conn: Connection) -> None:
    transport = httpx.MockTransport(lambda _request: httpx.Response(502))
    with pytest.raises(TransportError):
        await import_catalog(conn, _client(transport))
    assert catalog_skins.count(conn) == 0
