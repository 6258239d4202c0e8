"""Link catalog skins to accounts (products) without duplicating existing links."""

import argparse
import asyncio
import logging
import random
import sys
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from . import db
from . import account_skins as account_skins_mgr
from . import catalog_skins as catalog_skins_mgr
from .account_skins import LinkRow
from .catalog_client import CatalogClient
from .catalog_skins import NaturalKey, SkinRow, StoredSkin, natural_key
from .classifier import rarity_to_tag_type
from .errors import CatalogError, EmptyResultError, PersistenceError
from .sampler import distribution_by_weapon, sample_balanced
from .skin_import import LOOKUP_CHUNK_SIZE, fetch_classified, upsert_options, upsert_skins

logger = logging.getLogger(__name__)

MIN_RANDOM_COUNT = 15
MAX_RANDOM_COUNT = 295


@dataclass
class AssignmentResult:
    linked: int = 0
    skipped: int = 0
    failed: int = 0
    distribution_by_weapon: dict[str, int] = field(default_factory=dict)

    def as_dict(self) -> dict:
        return {
            "linked": self.linked,
            "skipped": self.skipped,
            "failed": self.failed,
            "distribution_by_weapon": dict(self.distribution_by_weapon),
        }


def _insert_links(conn: Connection, product_id: str, stored: Sequence[StoredSkin]) -> AssignmentResult:
    result = AssignmentResult()
    if not stored:
        return result
    rows = [LinkRow(product_id=product_id, skin_id=skin["id"]) for skin in stored]
    try:
        with conn.begin_nested():
            account_skins_mgr.insert_links(conn, rows)
    except SQLAlchemyError as exc:
        raise PersistenceError(
            f"Linking {len(rows)} skins to product {product_id} failed: {exc}"
        ) from exc
    result.linked = len(rows)
    result.distribution_by_weapon = distribution_by_weapon(stored)
    return result


async def assign_skins(
    conn: Connection,
    product_id: str,
    candidates: Sequence[SkinRow],
    *,
    lookup_chunk_size: int = LOOKUP_CHUNK_SIZE,
    **import_options,
) -> AssignmentResult:
    """
    Link candidate skins to a product.

    Candidates already linked (or repeated within the list) are skipped.
    Candidates missing from the catalog get one upsert attempt; any still
    unresolved afterwards count as failed. All links go in with a single
    insert; if that insert is rejected a PersistenceError is raised.
    Running it again with the same candidates links nothing new.
    """
    linked_ids = account_skins_mgr.get_linked_skin_ids(conn, product_id)

    unique: dict[NaturalKey, SkinRow] = {}
    skipped = 0
    for candidate in candidates:
        key = natural_key(candidate)
        if key in unique:
            skipped += 1
            continue
        unique[key] = candidate

    resolved = catalog_skins_mgr.find_by_keys(conn, unique.keys(), chunk_size=lookup_chunk_size)
    missing = [row for key, row in unique.items() if key not in resolved]
    if missing:
        logger.info(f"{len(missing)} candidate skins not in catalog yet, upserting them first")
        await upsert_skins(conn, missing, lookup_chunk_size=lookup_chunk_size, **import_options)
        resolved.update(
            catalog_skins_mgr.find_by_keys(
                conn, [natural_key(row) for row in missing], chunk_size=lookup_chunk_size
            )
        )

    to_link: list[StoredSkin] = []
    failed = 0
    for key, candidate in unique.items():
        stored = resolved.get(key)
        if stored is None:
            failed += 1
            logger.warning(f"Skin {candidate['name']!r} could not be resolved in the catalog")
        elif stored["id"] in linked_ids:
            skipped += 1
        else:
            to_link.append(stored)

    result = _insert_links(conn, product_id, to_link)
    result.skipped = skipped
    result.failed = failed
    logger.info(
        f"Product {product_id}: {result.linked} linked, {result.skipped} skipped, "
        f"{result.failed} failed"
    )
    return result


async def implement_random(
    conn: Connection,
    client: CatalogClient,
    product_id: str,
    *,
    count: int | None = None,
    rng: random.Random | None = None,
    min_random: int = MIN_RANDOM_COUNT,
    max_random: int = MAX_RANDOM_COUNT,
    **import_options,
) -> AssignmentResult:
    """
    Fetch the live catalog and give the product a balanced random set of skins
    it does not own yet. Without an explicit count, picks one in
    [min_random, max_random].
    """
    rng = rng or random.Random()
    skins = await fetch_classified(client)
    owned = account_skins_mgr.get_linked_keys(conn, product_id)
    available = [skin for skin in skins if natural_key(skin) not in owned]
    already = len(skins) - len(available)
    if not available:
        logger.info(f"All {len(skins)} catalog skins are already on product {product_id}")
        return AssignmentResult(skipped=already)

    if count is None:
        count = rng.randint(min_random, max_random)
    target = min(count, len(available))
    selected = sample_balanced(available, target, rng=rng)
    logger.info(
        f"Selected {len(selected)} skins across {len(distribution_by_weapon(selected))} weapons "
        f"for product {product_id} ({len(available)} available)"
    )

    result = await assign_skins(conn, product_id, selected, **import_options)
    result.skipped += already
    return result


def implement_from_collection(
    conn: Connection,
    product_id: str,
    collection: str,
    *,
    extra_random: int = 0,
    rng: random.Random | None = None,
) -> AssignmentResult:
    """Link every catalog skin of a collection plus extra_random skins from elsewhere."""
    rng = rng or random.Random()
    collection_skins = catalog_skins_mgr.list_skins(conn, collection=collection)
    if not collection_skins:
        raise EmptyResultError(f"no catalog skins in collection {collection!r}")

    linked_ids = account_skins_mgr.get_linked_skin_ids(conn, product_id)
    available = [skin for skin in collection_skins if skin["id"] not in linked_ids]
    extras: list[StoredSkin] = []
    if extra_random > 0:
        others = [
            skin
            for skin in catalog_skins_mgr.list_skins(conn, exclude_collection=collection)
            if skin["id"] not in linked_ids
        ]
        extras = rng.sample(others, min(extra_random, len(others)))

    result = _insert_links(conn, product_id, available + extras)
    result.skipped = len(collection_skins) - len(available)
    logger.info(
        f"Product {product_id}: {len(available)} skins from {collection!r} "
        f"+ {len(extras)} random linked"
    )
    return result


def implement_from_library(
    conn: Connection,
    product_id: str,
    skin_ids: Iterable[int],
) -> AssignmentResult:
    """Link hand-picked catalog skins by id."""
    wanted = list(dict.fromkeys(skin_ids))
    found = catalog_skins_mgr.get_by_ids(conn, wanted)
    linked_ids = account_skins_mgr.get_linked_skin_ids(conn, product_id)

    to_link = [found[skin_id] for skin_id in wanted if skin_id in found and skin_id not in linked_ids]
    result = _insert_links(conn, product_id, to_link)
    result.failed = sum(1 for skin_id in wanted if skin_id not in found)
    result.skipped = sum(1 for skin_id in wanted if skin_id in found and skin_id in linked_ids)
    return result


def remove_link(conn: Connection, link_id: int) -> bool:
    removed = account_skins_mgr.delete_link(conn, link_id) > 0
    if not removed:
        logger.warning(f"No account skin link with id {link_id}")
    return removed


def _non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0, got {number}")
    return number


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Assign catalog skins to an account")
    parser.add_argument(
        "--config",
        type=str,
        default="config.toml",
        help="Path to TOML config file (default: config.toml)",
    )
    parser.add_argument("product_id", help="Account/product to modify")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--count", type=_non_negative_int, help="Balanced random skins from the live catalog")
    mode.add_argument("--collection", type=str, help="Every skin of this collection")
    mode.add_argument("--skins", type=int, nargs="+", metavar="SKIN_ID", help="Specific catalog skins")
    mode.add_argument("--remove", type=int, metavar="LINK_ID", help="Remove one linked skin")
    mode.add_argument("--list", action="store_true", help="List skins linked to the account")
    parser.add_argument("--extra", type=_non_negative_int, default=0, help="Random extras with --collection")
    parser.add_argument("--seed", type=int, default=None, help="Seed the random source")
    return parser.parse_args(argv)


def cli(argv: list[str] | None = None) -> int:
    from . import config, log
    args = _parse_args(argv)
    SETTINGS = config.load_config(args.config)
    log.setup_logging(SETTINGS)
    assign_cfg = SETTINGS.section("assign")
    rng = random.Random(args.seed)
    dbase = db.open_database(SETTINGS)

    try:
        with dbase.connect() as conn:
            if args.list:
                for row in account_skins_mgr.list_for_product(conn, args.product_id):
                    print(
                        f"{row['id']}\t{row['weapon']}\t{row['name']}\t{row['rarity']}\t"
                        f"{rarity_to_tag_type(row['rarity'])}\t{row['collection']}"
                    )
                return 0
            if args.remove is not None:
                return 0 if remove_link(conn, args.remove) else 1
            if args.collection:
                result = implement_from_collection(
                    conn, args.product_id, args.collection, extra_random=args.extra, rng=rng
                )
            elif args.skins:
                result = implement_from_library(conn, args.product_id, args.skins)
            else:
                client = CatalogClient.from_settings(SETTINGS)
                result = asyncio.run(
                    implement_random(
                        conn,
                        client,
                        args.product_id,
                        count=args.count,
                        rng=rng,
                        min_random=int(assign_cfg["min_random"]),
                        max_random=int(assign_cfg["max_random"]),
                        **upsert_options(SETTINGS),
                    )
                )
    except CatalogError as exc:
        logger.error(f"Assignment aborted: {exc}")
        return 1
    finally:
        dbase.dispose()

    logger.info(f"Assignment result: {result.as_dict()}")
    return 0

if __name__ == "__main__":
    sys.exit(cli())
