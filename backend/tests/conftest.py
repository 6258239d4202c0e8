from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path

import pytest
from sqlalchemy.engine import Connection

from skinvault.catalog_skins import SkinRow
from skinvault.db import Database


@pytest.fixture
def database(tmp_path: Path) -> Iterator[Database]:
    dbase = Database(str(tmp_path / "skins.db"))
    yield dbase
    dbase.dispose()


@pytest.fixture
def conn(database: Database) -> Iterator[Connection]:
    with database.connect() as connection:
        yield connection


def build_skin(
    weapon: str,
    index: int,
    *,
    rarity: str = "Common",
    collection: str = "Standard",
) -> SkinRow:
    slug = weapon.lower().replace(" ", "-")
    return SkinRow(
        weapon=weapon,
        name=f"{weapon} Skin {index}",
        image_url=f"https://media.example/{slug}/{index}.png",
        rarity=rarity,
        collection=collection,
        weapon_external_id=f"w-{slug}",
        skin_external_id=f"s-{slug}-{index}",
    )


@pytest.fixture
def make_skin():
    return build_skin


@pytest.fixture
def make_pool():
    def _make(sizes: dict[str, int]) -> list[SkinRow]:
        return [build_skin(weapon, i) for weapon, size in sizes.items() for i in range(size)]

    return _make


@pytest.fixture
def root_logger() -> Iterator[logging.Logger]:
    """Restore root logging after code that calls setup_logging."""
    root = logging.getLogger()
    saved_handlers = root.handlers[:]
    saved_level = root.level
    httpx_level = logging.getLogger("httpx").level
    yield root
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        if handler not in saved_handlers:
            handler.close()
    for handler in saved_handlers:
        root.addHandler(handler)
    root.setLevel(saved_level)
    logging.getLogger("httpx").setLevel(httpx_level)
