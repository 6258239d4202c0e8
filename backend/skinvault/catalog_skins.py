from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from typing import TypedDict

from sqlalchemy import func, insert, select, update
from sqlalchemy.engine import Connection

from .db_schema import skins

NaturalKey = tuple[str, str]

LOOKUP_CHUNK_SIZE = 20
MUTABLE_FIELDS = ("weapon", "name", "image_url", "rarity", "collection")


class SkinRow(TypedDict):
    weapon: str
    name: str
    image_url: str
    rarity: str
    collection: str
    weapon_external_id: str
    skin_external_id: str


class StoredSkin(SkinRow):
    id: int


def natural_key(row: SkinRow) -> NaturalKey:
    return (row["weapon_external_id"], row["skin_external_id"])


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _stored(row) -> StoredSkin:
    return StoredSkin(
        id=row["id"],
        weapon=row["weapon"],
        name=row["name"],
        image_url=row["image_url"],
        rarity=row["rarity"],
        collection=row["collection"],
        weapon_external_id=row["weapon_external_id"],
        skin_external_id=row["skin_external_id"],
    )


def chunked(items: Sequence, size: int) -> Iterable[Sequence]:
    if size < 1:
        raise ValueError(f"chunk size must be >= 1, got {size}")
    for start in range(0, len(items), size):
        yield items[start:start + size]


def find_by_keys(
    conn: Connection,
    keys: Iterable[NaturalKey],
    chunk_size: int = LOOKUP_CHUNK_SIZE,
) -> dict[NaturalKey, StoredSkin]:
    """Resolve natural keys to stored rows, querying at most chunk_size ids at a time."""
    wanted = set(keys)
    if not wanted:
        return {}
    skin_ids = sorted({skin_id for _weapon_id, skin_id in wanted})
    found: dict[NaturalKey, StoredSkin] = {}
    for chunk in chunked(skin_ids, chunk_size):
        stmt = select(skins).where(skins.c.skin_external_id.in_(list(chunk)))
        for row in conn.execute(stmt).mappings():
            key = (row["weapon_external_id"], row["skin_external_id"])
            if key in wanted:
                found[key] = _stored(row)
    return found


def insert_many(conn: Connection, rows: Sequence[SkinRow]) -> int:
    """Insert rows with one multi-row statement; all or nothing."""
    if not rows:
        return 0
    ts = _now()
    values = [{**row, "created_at": ts, "updated_at": ts} for row in rows]
    result = conn.execute(insert(skins).values(values))
    return result.rowcount


def update_by_key(conn: Connection, row: SkinRow) -> int:
    weapon_id, skin_id = natural_key(row)
    stmt = (
        update(skins)
        .where(skins.c.weapon_external_id == weapon_id)
        .where(skins.c.skin_external_id == skin_id)
        .values(**{field: row[field] for field in MUTABLE_FIELDS}, updated_at=_now())
    )
    return conn.execute(stmt).rowcount


def get_by_ids(conn: Connection, ids: Iterable[int]) -> dict[int, StoredSkin]:
    id_set = list(set(ids))
    if not id_set:
        return {}
    mapping: dict[int, StoredSkin] = {}
    for chunk in chunked(id_set, LOOKUP_CHUNK_SIZE):
        stmt = select(skins).where(skins.c.id.in_(list(chunk)))
        for row in conn.execute(stmt).mappings():
            mapping[row["id"]] = _stored(row)
    return mapping


def list_skins(
    conn: Connection,
    *,
    weapon: str | None = None,
    rarity: str | None = None,
    collection: str | None = None,
    exclude_collection: str | None = None,
) -> list[StoredSkin]:
    stmt = select(skins)
    if weapon is not None:
        stmt = stmt.where(skins.c.weapon == weapon)
    if rarity is not None:
        stmt = stmt.where(skins.c.rarity == rarity)
    if collection is not None:
        stmt = stmt.where(skins.c.collection == collection)
    if exclude_collection is not None:
        stmt = stmt.where(skins.c.collection != exclude_collection)
    stmt = stmt.order_by(skins.c.weapon, skins.c.name)
    return [_stored(row) for row in conn.execute(stmt).mappings()]


def get_facets(conn: Connection) -> dict[str, list[str]]:
    """Distinct weapons, rarities and collections, sorted, for library filters."""
    facets: dict[str, list[str]] = {}
    for label, column in (
        ("weapons", skins.c.weapon),
        ("rarities", skins.c.rarity),
        ("collections", skins.c.collection),
    ):
        stmt = select(column).distinct().order_by(column)
        facets[label] = list(conn.execute(stmt).scalars())
    return facets


def count(conn: Connection) -> int:
    return conn.execute(select(func.count()).select_from(skins)).scalar_one()
