"""Turn raw catalog weapons into skin rows ready for the store."""

import logging
from collections import Counter
from collections.abc import Iterable, Mapping

from .catalog_client import CatalogSkinVariant, CatalogWeapon, ContentTier
from .catalog_skins import SkinRow
from .errors import EmptyResultError

logger = logging.getLogger(__name__)

DEFAULT_RARITY = "Common"
DEFAULT_COLLECTION = "Standard"

RARITY_BY_RANK = {
    0: "Common",
    1: "Rare",
    2: "Epic",
    3: "Legendary",
    4: "Ultra",
}

# (substring of the lower-cased skin name, collection); first hit wins, so
# order matters: "vandal prime" is Prime, not Vandal
COLLECTION_MARKERS: tuple[tuple[str, str], ...] = (
    ("prime", "Prime"),
    ("elderflame", "Elderflame"),
    ("reaver", "Reaver"),
    ("glitchpop", "Glitchpop"),
    ("ion", "Ion"),
    ("sovereign", "Sovereign"),
    ("dragon", "Dragon"),
    ("oni", "Oni"),
    ("singularity", "Singularity"),
    ("spectrum", "Spectrum"),
    ("rgx", "RGX 11z Pro"),
    ("champions", "Champions"),
    ("forsaken", "Forsaken"),
    ("phantom", "Phantom"),
    ("vandal", "Vandal"),
    ("operator", "Operator"),
    ("sheriff", "Sheriff"),
    ("orion", "Orion"),
    ("nebula", "Nebula"),
    ("avalanche", "Avalanche"),
    ("magepunk", "Magepunk"),
    ("wasteland", "Wasteland"),
    ("luxe", "Luxe"),
    ("sakura", "Sakura"),
    ("convex", "Convex"),
    ("artisan", "Artisan"),
    ("sentinels", "Sentinels of Light"),
    ("ruination", "Ruination"),
    ("protocol", "Protocol 781-A"),
    ("infantry", "Infantry"),
    ("tethered", "Tethered Realms"),
)

TAG_TYPE_BY_RARITY = {
    "legendary": "LIT",
    "ultra": "LIT",
    "epic": "Exc",
    "rare": "Pro",
}


def is_default_skin(weapon_name: str, skin_name: str) -> bool:
    """True for the un-skinned default appearance of a weapon."""
    skin_lower = skin_name.lower()
    weapon_lower = weapon_name.lower()
    if skin_lower == weapon_lower or "standard" in skin_lower:
        return True
    return "melee" in skin_lower and "melee" in weapon_lower


def resolve_image(variant: CatalogSkinVariant) -> str | None:
    if variant.chromas:
        first = variant.chromas[0]
        if first.full_render_url:
            return first.full_render_url
        if first.icon_url:
            return first.icon_url
    return variant.primary_image_url


def resolve_rarity(tier_id: str | None, tiers: Mapping[str, ContentTier]) -> str:
    if not tier_id or tier_id not in tiers:
        return DEFAULT_RARITY
    tier = tiers[tier_id]
    if tier.rank in RARITY_BY_RANK:
        return RARITY_BY_RANK[tier.rank]
    return tier.display_name or DEFAULT_RARITY


def resolve_collection(skin_name: str) -> str:
    lowered = skin_name.lower()
    for marker, collection in COLLECTION_MARKERS:
        if marker in lowered:
            return collection
    return DEFAULT_COLLECTION


def rarity_to_tag_type(rarity: str) -> str:
    """Map a rarity label to the listing tag type shown on product cards."""
    return TAG_TYPE_BY_RARITY.get(rarity.lower(), "Del")


def filter_weapons(weapons: Iterable[CatalogWeapon], name_fragment: str) -> list[CatalogWeapon]:
    fragment = name_fragment.lower()
    return [w for w in weapons if fragment in w.display_name.lower()]


def _classify_variant(
    weapon: CatalogWeapon,
    variant: CatalogSkinVariant,
    tiers: Mapping[str, ContentTier],
) -> SkinRow | None:
    if is_default_skin(weapon.display_name, variant.display_name):
        return None
    image_url = resolve_image(variant)
    if not image_url:
        return None
    return SkinRow(
        weapon=weapon.display_name,
        name=variant.display_name,
        image_url=image_url,
        rarity=resolve_rarity(variant.tier_id, tiers),
        collection=resolve_collection(variant.display_name),
        weapon_external_id=weapon.id,
        skin_external_id=variant.id,
    )


def classify(
    weapons: Iterable[CatalogWeapon],
    tiers: Mapping[str, ContentTier],
) -> list[SkinRow]:
    """
    Classify every skin variant of every weapon.

    Default appearances and variants without any image are skipped. A variant
    that blows up is counted and skipped without affecting its siblings.
    Raises EmptyResultError when nothing usable comes out.
    """
    rows: list[SkinRow] = []
    skipped = 0
    errors = 0
    for weapon in weapons:
        for variant in weapon.skins:
            try:
                row = _classify_variant(weapon, variant, tiers)
            except Exception as exc:
                errors += 1
                logger.warning(
                    f"Failed to classify skin {getattr(variant, 'display_name', '?')!r} "
                    f"of {weapon.display_name!r}: {exc}"
                )
                continue
            if row is None:
                skipped += 1
                continue
            rows.append(row)

    logger.info(f"Classified {len(rows)} skins ({skipped} skipped, {errors} errors)")
    if rows:
        logger.debug(f"Skins per weapon: {dict(Counter(r['weapon'] for r in rows))}")
    if not rows:
        raise EmptyResultError("no usable skin in catalog")
    return rows
