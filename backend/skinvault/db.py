import argparse
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Generator
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, Connection

import logging
from . import db_schema

logger = logging.getLogger(__name__)

class Database:
    def __init__(self, path: str):
        self.db_path = path
        if path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self.engine: Engine = create_engine(f"sqlite:///{self.db_path}", future=True)
        self._init_pragma()
        logger.info(f"Database engine created for {self.db_path}")
        db_schema.ensure_schema(self.engine)

    def _init_pragma(self) -> None:
        # pysqlite opens transactions lazily and breaks SAVEPOINT; take over
        # BEGIN ourselves so begin_nested() isolates per-item writes
        @event.listens_for(self.engine, "connect")
        def _on_connect(dbapi_conn, _record):
            dbapi_conn.isolation_level = None
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL;")
            cursor.execute("PRAGMA busy_timeout=5000;")
            cursor.execute("PRAGMA foreign_keys=ON;")
            cursor.close()

        @event.listens_for(self.engine, "begin")
        def _on_begin(conn):
            conn.exec_driver_sql("BEGIN")

    @contextmanager
    def connect(self) -> Generator[Connection, None, None]:
        with self.engine.begin() as conn:
            yield conn

    @contextmanager
    def connect_readonly(self) -> Generator[Connection, None, None]:
        with self.engine.connect() as conn:
            yield conn

    def ping(self) -> bool:
        with self.connect_readonly() as conn:
            return conn.execute(text("SELECT 1")).scalar_one() == 1

    def dispose(self) -> None:
        self.engine.dispose()


def open_database(settings) -> Database:
    database_cfg = settings.section("database")
    db_path = Path(database_cfg["path"]).expanduser()
    logger.info(f"Using database path: {db_path}")
    return Database(str(db_path))


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create the skin store schema and report its contents")
    parser.add_argument(
        "--config",
        type=str,
        default="config.toml",
        help="Path to TOML config file (default: config.toml)",
    )
    return parser.parse_args(argv)


def cli(argv: list[str] | None = None) -> int:
    from . import config, log
    from . import catalog_skins as catalog_skins_mgr
    args = _parse_args(argv)
    SETTINGS = config.load_config(args.config)
    log.setup_logging(SETTINGS)
    dbase = open_database(SETTINGS)
    try:
        if not dbase.ping():
            logger.error(f"Database at {dbase.db_path} did not answer")
            return 1
        with dbase.connect_readonly() as conn:
            version = conn.execute(text("SELECT sqlite_version()")).scalar_one()
            facets = catalog_skins_mgr.get_facets(conn)
            logger.info(
                f"SQLite {version}: {catalog_skins_mgr.count(conn)} skins, "
                f"{len(facets['weapons'])} weapons, {len(facets['collections'])} collections"
            )
    finally:
        dbase.dispose()
    return 0


if __name__ == "__main__":
    sys.exit(cli())
