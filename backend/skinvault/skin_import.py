import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Sequence

from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from . import db
from . import catalog_skins as catalog_skins_mgr
from .catalog_client import CatalogClient, ContentTier
from .catalog_skins import NaturalKey, SkinRow, chunked, natural_key
from .classifier import classify, filter_weapons
from .errors import CatalogError, EmptyResultError

logger = logging.getLogger(__name__)

INSERT_CHUNK_SIZE = 50
LOOKUP_CHUNK_SIZE = 20
PAUSE_EVERY = 50
PAUSE_SECONDS = 0.2


@dataclass
class ImportResult:
    created: int = 0
    updated: int = 0
    failed: int = 0
    total: int = 0
    errors: list[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "created": self.created,
            "updated": self.updated,
            "failed": self.failed,
            "total": self.total,
            "errors": list(self.errors),
        }


def _collapse_duplicates(skins: Sequence[SkinRow]) -> tuple[dict[NaturalKey, SkinRow], int]:
    """Last occurrence of each natural key wins; returns (rows, superseded count)."""
    latest: dict[NaturalKey, SkinRow] = {}
    for skin in skins:
        key = natural_key(skin)
        # re-insert so the surviving row keeps the position of its last occurrence
        latest.pop(key, None)
        latest[key] = skin
    return latest, len(skins) - len(latest)


async def upsert_skins(
    conn: Connection,
    skins: Sequence[SkinRow],
    *,
    insert_chunk_size: int = INSERT_CHUNK_SIZE,
    lookup_chunk_size: int = LOOKUP_CHUNK_SIZE,
    pause_every: int = PAUSE_EVERY,
    pause_seconds: float = PAUSE_SECONDS,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> ImportResult:
    """
    Create or update skins by natural key (weapon_external_id, skin_external_id).

    Existing rows are updated one at a time; new rows are inserted in chunks
    of insert_chunk_size. Every write runs in its own savepoint so a rejected
    item or chunk is tallied in `failed` and the rest carry on.
    """
    result = ImportResult(total=len(skins))
    if not skins:
        return result

    latest, superseded = _collapse_duplicates(skins)
    result.updated += superseded
    if superseded:
        logger.info(f"{superseded} duplicate skins in batch superseded by later entries")

    existing = catalog_skins_mgr.find_by_keys(conn, latest.keys(), chunk_size=lookup_chunk_size)
    to_update = [row for key, row in latest.items() if key in existing]
    to_insert = [row for key, row in latest.items() if key not in existing]
    logger.info(f"Upserting {len(latest)} skins: {len(to_insert)} new, {len(to_update)} existing")

    for i, skin in enumerate(to_update):
        if i > 0 and pause_every and i % pause_every == 0 and pause_seconds > 0:
            await sleep(pause_seconds)
        try:
            with conn.begin_nested():
                catalog_skins_mgr.update_by_key(conn, skin)
        except SQLAlchemyError as exc:
            result.failed += 1
            result.errors.append(f"Failed to update {skin['name']}: {exc}")
            logger.warning(f"Failed to update skin {skin['name']!r}: {exc}")
            continue
        result.updated += 1

    for chunk in chunked(to_insert, insert_chunk_size):
        try:
            with conn.begin_nested():
                catalog_skins_mgr.insert_many(conn, chunk)
        except SQLAlchemyError as exc:
            result.failed += len(chunk)
            for skin in chunk:
                result.errors.append(f"Failed to insert {skin['name']}: {exc}")
            logger.warning(f"Insert of {len(chunk)} skins failed: {exc}")
            continue
        result.created += len(chunk)

    logger.info(
        f"Upsert finished: {result.created} created, {result.updated} updated, "
        f"{result.failed} failed of {result.total}"
    )
    return result


async def load_tiers(client: CatalogClient) -> dict[str, ContentTier]:
    """Content tiers, or an empty map when they cannot be fetched (rarity then defaults)."""
    try:
        return await client.fetch_content_tiers()
    except CatalogError as exc:
        logger.warning(f"Content tiers unavailable, using default rarity: {exc}")
        return {}


async def fetch_classified(
    client: CatalogClient,
    *,
    weapon_filter: str | None = None,
) -> list[SkinRow]:
    weapons = await client.fetch_weapons()
    if weapon_filter:
        weapons = filter_weapons(weapons, weapon_filter)
        if not weapons:
            raise EmptyResultError(f"no weapon name contains {weapon_filter!r}")
        logger.info(f"Restricted import to {len(weapons)} weapons matching {weapon_filter!r}")
    tiers = await load_tiers(client)
    return classify(weapons, tiers)


async def import_catalog(
    conn: Connection,
    client: CatalogClient,
    *,
    weapon_filter: str | None = None,
    **upsert_options,
) -> ImportResult:
    """Fetch, classify and persist the skin catalog."""
    skins = await fetch_classified(client, weapon_filter=weapon_filter)
    return await upsert_skins(conn, skins, **upsert_options)


def upsert_options(settings) -> dict:
    cfg = settings.section("import")
    return {
        "insert_chunk_size": int(cfg["insert_chunk_size"]),
        "lookup_chunk_size": int(cfg["lookup_chunk_size"]),
        "pause_every": int(cfg["pause_every"]),
        "pause_seconds": float(cfg["pause_seconds"]),
    }


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Import the skin catalog into the store")
    parser.add_argument(
        "--config",
        type=str,
        default="config.toml",
        help="Path to TOML config file (default: config.toml)",
    )
    parser.add_argument(
        "--weapon",
        type=str,
        default=None,
        help="Only import weapons whose name contains this text (e.g. Vandal)",
    )
    return parser.parse_args(argv)


def cli(argv: list[str] | None = None) -> int:
    from . import config, log
    args = _parse_args(argv)
    SETTINGS = config.load_config(args.config)
    log.setup_logging(SETTINGS)
    dbase = db.open_database(SETTINGS)
    client = CatalogClient.from_settings(SETTINGS)

    try:
        with dbase.connect() as conn:
            result = asyncio.run(
                import_catalog(conn, client, weapon_filter=args.weapon, **upsert_options(SETTINGS))
            )
    except CatalogError as exc:
        logger.error(f"Import aborted: {exc}")
        return 1
    finally:
        dbase.dispose()

    for message in result.errors:
        logger.warning(message)
    logger.info(
        f"Import result: created={result.created} updated={result.updated} "
        f"failed={result.failed} total={result.total}"
    )
    return 0

if __name__ == "__main__":
    sys.exit(cli())
