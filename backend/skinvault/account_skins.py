from collections.abc import Sequence
from datetime import datetime, timezone
from typing import TypedDict

from sqlalchemy import delete, insert, select
from sqlalchemy.engine import Connection

from .catalog_skins import NaturalKey
from .db_schema import account_skins, skins


class LinkRow(TypedDict):
    product_id: str
    skin_id: int


class AccountSkin(TypedDict):
    id: int
    product_id: str
    skin_id: int
    weapon: str
    name: str
    image_url: str
    rarity: str
    collection: str


def get_linked_skin_ids(conn: Connection, product_id: str) -> set[int]:
    stmt = select(account_skins.c.skin_id).where(account_skins.c.product_id == product_id)
    return set(conn.execute(stmt).scalars())


def get_linked_keys(conn: Connection, product_id: str) -> set[NaturalKey]:
    stmt = (
        select(skins.c.weapon_external_id, skins.c.skin_external_id)
        .join(account_skins, account_skins.c.skin_id == skins.c.id)
        .where(account_skins.c.product_id == product_id)
    )
    return {(row[0], row[1]) for row in conn.execute(stmt)}


def insert_links(conn: Connection, rows: Sequence[LinkRow]) -> int:
    """Insert the whole batch as one statement."""
    if not rows:
        return 0
    ts = datetime.now(timezone.utc).isoformat()
    values = [{**row, "created_at": ts} for row in rows]
    return conn.execute(insert(account_skins).values(values)).rowcount


def list_for_product(conn: Connection, product_id: str) -> list[AccountSkin]:
    stmt = (
        select(
            account_skins.c.id,
            account_skins.c.product_id,
            account_skins.c.skin_id,
            skins.c.weapon,
            skins.c.name,
            skins.c.image_url,
            skins.c.rarity,
            skins.c.collection,
        )
        .join(skins, account_skins.c.skin_id == skins.c.id)
        .where(account_skins.c.product_id == product_id)
        .order_by(skins.c.weapon, skins.c.name)
    )
    return [AccountSkin(**row) for row in conn.execute(stmt).mappings()]


def delete_link(conn: Connection, link_id: int) -> int:
    stmt = delete(account_skins).where(account_skins.c.id == link_id)
    return conn.execute(stmt).rowcount
