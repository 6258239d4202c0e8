"""Client for the public game-data catalog (weapons, skins, content tiers)."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping

import httpx

from .config import Settings
from .errors import (
    EmptyResultError,
    InvalidResponseError,
    RequestTimeout,
    TransportError,
    ValidationError,
)
from .retry import retry_with_backoff

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://valorant-api.com"
DEFAULT_USER_AGENT = "Traking.shop/1.0"
WEAPONS_PATH = "/v1/weapons"
CONTENT_TIERS_PATH = "/v1/contenttiers"


@dataclass(frozen=True)
class ChromaVariant:
    id: str
    display_name: str
    full_render_url: str | None = None
    icon_url: str | None = None


@dataclass(frozen=True)
class CatalogSkinVariant:
    id: str
    display_name: str
    primary_image_url: str | None = None
    chromas: tuple[ChromaVariant, ...] = ()
    tier_id: str | None = None
    theme_id: str | None = None


@dataclass(frozen=True)
class CatalogWeapon:
    id: str
    display_name: str
    skins: tuple[CatalogSkinVariant, ...] = ()


@dataclass(frozen=True)
class ContentTier:
    id: str
    display_name: str
    rank: int | None = None


def _required_str(data: Mapping[str, Any], kind: str, *keys: str) -> str:
    for key in keys:
        value = data.get(key)
        if isinstance(value, str) and value:
            return value
    raise ValidationError(f"{kind} missing required string field {keys[0]!r}")


def _optional_str(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def _parse_chroma(data: Any) -> ChromaVariant | None:
    if not isinstance(data, Mapping):
        return None
    return ChromaVariant(
        id=_optional_str(data.get("uuid") or data.get("id")) or "",
        display_name=_optional_str(data.get("displayName")) or "",
        full_render_url=_optional_str(data.get("fullRender")),
        icon_url=_optional_str(data.get("displayIcon")),
    )


def parse_skin(data: Any) -> CatalogSkinVariant:
    if not isinstance(data, Mapping):
        raise ValidationError(f"skin entry is {type(data).__name__}, expected object")
    skin_id = _required_str(data, "skin", "uuid", "id")
    display_name = _required_str(data, "skin", "displayName")
    chromas_raw = data.get("chromas")
    if chromas_raw is None:
        chromas_raw = []
    if not isinstance(chromas_raw, list):
        raise ValidationError(f"skin {display_name!r}: chromas is not an array")
    if chromas_raw and not isinstance(chromas_raw[0], Mapping):
        # the image comes from the first chroma only; a later one must not stand in for it
        logger.debug(f"skin {display_name!r}: first chroma is not an object, ignoring chromas")
        chromas_raw = []
    chromas = tuple(c for c in (_parse_chroma(raw) for raw in chromas_raw) if c is not None)
    return CatalogSkinVariant(
        id=skin_id,
        display_name=display_name,
        primary_image_url=_optional_str(data.get("displayIcon")),
        chromas=chromas,
        tier_id=_optional_str(data.get("contentTierUuid")),
        theme_id=_optional_str(data.get("themeUuid")),
    )


def parse_weapon(data: Any) -> CatalogWeapon:
    """
    Required keys:
      - uuid (or id), displayName, skins (array)
    Skins that fail validation are dropped with a warning.
    """
    if not isinstance(data, Mapping):
        raise ValidationError(f"weapon entry is {type(data).__name__}, expected object")
    weapon_id = _required_str(data, "weapon", "uuid", "id")
    display_name = _required_str(data, "weapon", "displayName")
    skins_raw = data.get("skins")
    if not isinstance(skins_raw, list):
        raise ValidationError(f"weapon {display_name!r}: skins is not an array")

    skins: list[CatalogSkinVariant] = []
    for idx, raw in enumerate(skins_raw):
        try:
            skins.append(parse_skin(raw))
        except ValidationError as exc:
            logger.warning(f"Dropping skin[{idx}] of weapon {display_name!r}: {exc}")
    return CatalogWeapon(id=weapon_id, display_name=display_name, skins=tuple(skins))


def parse_content_tier(data: Any) -> ContentTier:
    if not isinstance(data, Mapping):
        raise ValidationError(f"content tier entry is {type(data).__name__}, expected object")
    rank = data.get("rank")
    # bool is an int subclass; a boolean rank is not a rank
    if isinstance(rank, bool) or not isinstance(rank, int):
        rank = None
    return ContentTier(
        id=_required_str(data, "content tier", "uuid", "id"),
        display_name=_required_str(data, "content tier", "displayName"),
        rank=rank,
    )


def validate_envelope(payload: Any, kind: str) -> list[Any]:
    """Check the {status, data} envelope and return the data array."""
    if not isinstance(payload, Mapping):
        raise InvalidResponseError(f"{kind}: response is not an object")
    if payload.get("status") != 200:
        raise InvalidResponseError(f"{kind}: unexpected status {payload.get('status')!r}")
    data = payload.get("data")
    if not isinstance(data, list):
        raise InvalidResponseError(f"{kind}: data is {type(data).__name__}, expected array")
    if not data:
        raise InvalidResponseError(f"{kind}: data array is empty")
    return data


class ContentTierCache:
    """Holds the content-tier map between fetches.

    Tiers are reference data; with ttl_seconds=None an entry lives until
    clear() or the owning client goes away.
    """

    def __init__(self, ttl_seconds: float | None = None, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._tiers: dict[str, ContentTier] | None = None
        self._stored_at = 0.0

    def get(self) -> dict[str, ContentTier] | None:
        if self._tiers is None:
            return None
        if self.ttl_seconds is not None and self._clock() - self._stored_at >= self.ttl_seconds:
            logger.debug("Content tier cache expired")
            self._tiers = None
            return None
        return self._tiers

    def set(self, tiers: dict[str, ContentTier]) -> None:
        self._tiers = dict(tiers)
        self._stored_at = self._clock()

    def clear(self) -> None:
        self._tiers = None


class CatalogClient:
    def __init__(
        self,
        *,
        base_url: str = DEFAULT_BASE_URL,
        user_agent: str = DEFAULT_USER_AGENT,
        weapons_timeout: float = 45.0,
        tiers_timeout: float = 30.0,
        retry_attempts: int = 3,
        retry_base_delay: float = 1.0,
        tier_cache: ContentTierCache | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.user_agent = user_agent
        self.weapons_timeout = float(weapons_timeout)
        self.tiers_timeout = float(tiers_timeout)
        self.retry_attempts = int(retry_attempts)
        self.retry_base_delay = float(retry_base_delay)
        self.tier_cache = tier_cache if tier_cache is not None else ContentTierCache()
        self.transport = transport
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: Any) -> "CatalogClient":
        cfg = settings.section("catalog")
        kwargs: dict[str, Any] = {
            "base_url": cfg["base_url"],
            "user_agent": cfg["user_agent"],
            "weapons_timeout": cfg["weapons_timeout"],
            "tiers_timeout": cfg["tiers_timeout"],
            "retry_attempts": cfg["retry_attempts"],
            "retry_base_delay": cfg["retry_base_delay"],
            "tier_cache": ContentTierCache(ttl_seconds=cfg["tier_cache_ttl"]),
        }
        kwargs.update(overrides)
        return cls(**kwargs)

    async def _get_json(self, path: str, timeout: float) -> Any:
        # httpx bounds each connect/read step; asyncio.timeout bounds the whole call
        try:
            async with asyncio.timeout(timeout):
                async with httpx.AsyncClient(
                    base_url=self.base_url,
                    timeout=timeout,
                    headers={
                        "Accept": "application/json",
                        "User-Agent": self.user_agent,
                    },
                    transport=self.transport,
                ) as client:
                    response = await client.get(path)
                    response.raise_for_status()
        except (httpx.TimeoutException, TimeoutError) as exc:
            raise RequestTimeout(f"GET {path} timed out after {timeout:g}s") from exc
        except httpx.HTTPStatusError as exc:
            raise TransportError(f"GET {path} returned HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"GET {path} failed: {exc}") from exc

        try:
            return response.json()
        except ValueError as exc:
            raise InvalidResponseError(f"GET {path} returned malformed JSON") from exc

    async def _retry(self, operation, label: str):
        return await retry_with_backoff(
            operation,
            attempts=self.retry_attempts,
            base_delay=self.retry_base_delay,
            sleep=self._sleep,
            label=label,
        )

    async def fetch_weapons(self) -> list[CatalogWeapon]:
        """Fetch every weapon with its skins. Never cached."""

        async def _attempt() -> list[CatalogWeapon]:
            payload = await self._get_json(WEAPONS_PATH, self.weapons_timeout)
            data = validate_envelope(payload, "weapons")
            weapons: list[CatalogWeapon] = []
            for idx, raw in enumerate(data):
                try:
                    weapons.append(parse_weapon(raw))
                except ValidationError as exc:
                    logger.warning(f"Dropping weapon[{idx}]: {exc}")
            if not weapons:
                raise EmptyResultError("no valid weapon in catalog response")
            logger.info(f"Fetched {len(weapons)} weapons ({len(data) - len(weapons)} dropped)")
            return weapons

        return await self._retry(_attempt, "fetch weapons")

    async def fetch_content_tiers(self) -> dict[str, ContentTier]:
        """Fetch content tiers keyed by id, served from the tier cache when warm."""
        cached = self.tier_cache.get()
        if cached is not None:
            logger.debug("Using cached content tiers")
            return cached

        async def _attempt() -> dict[str, ContentTier]:
            payload = await self._get_json(CONTENT_TIERS_PATH, self.tiers_timeout)
            data = validate_envelope(payload, "contenttiers")
            tiers: dict[str, ContentTier] = {}
            for idx, raw in enumerate(data):
                try:
                    tier = parse_content_tier(raw)
                except ValidationError as exc:
                    logger.warning(f"Dropping content tier[{idx}]: {exc}")
                    continue
                tiers[tier.id] = tier
            logger.info(f"Fetched {len(tiers)} content tiers")
            return tiers

        tiers = await self._retry(_attempt, "fetch content tiers")
        if tiers:
            self.tier_cache.set(tiers)
        else:
            logger.warning("No valid content tier in response, not caching")
        return tiers
