from pathlib import Path
from typing import Any
import tomllib

DEFAULT_CONFIG_PATH = "config.toml"

# section -> key -> default, merged under whatever the TOML file provides
DEFAULTS: dict[str, dict[str, Any]] = {
    "logging": {
        "level": "INFO",
        "console": True,
        "file": None,
        "file_max_bytes": 10 * 1024 * 1024,
        "file_backup_count": 5,
        "loggers": {"httpx": "WARNING", "httpcore": "WARNING"},
    },
    "database": {
        "path": "data/skins.db",
    },
    "catalog": {
        "base_url": "https://valorant-api.com",
        "user_agent": "Traking.shop/1.0",
        "weapons_timeout": 45.0,
        "tiers_timeout": 30.0,
        "retry_attempts": 3,
        "retry_base_delay": 1.0,
        "tier_cache_ttl": None,
    },
    "import": {
        "insert_chunk_size": 50,
        "lookup_chunk_size": 20,
        "pause_every": 50,
        "pause_seconds": 0.2,
    },
    "assign": {
        "min_random": 15,
        "max_random": 295,
    },
}


class Settings(dict):
    __slots__ = ("_data",)

    def __init__(self, raw: dict):
        super().__init__(raw)
        self._data = raw

    def __getattr__(self, item):
        try:
            return self._data[item]
        except KeyError:
            raise AttributeError(item)

    def section(self, name: str) -> dict[str, Any]:
        """Return a config section with package defaults filled in for missing keys."""
        merged = dict(DEFAULTS.get(name, {}))
        merged.update(self._data.get(name) or {})
        return merged


def load_config(path: str | Path) -> Settings:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with path.open("rb") as f:
        raw = tomllib.load(f)

    return Settings(raw)

