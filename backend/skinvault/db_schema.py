from sqlalchemy import (
    MetaData, Table, Column,
    Integer, String, Text,
    ForeignKey, UniqueConstraint, Index,
)

metadata = MetaData()

def ensure_schema(engine) -> None:
    metadata.create_all(engine)

skins = Table(
    "skins",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("weapon", String, nullable=False),
    Column("name", String, nullable=False),
    Column("image_url", Text, nullable=False),
    Column("rarity", String, nullable=False),
    Column("collection", String, nullable=False, default="Standard"),
    Column("weapon_external_id", String, nullable=False),
    Column("skin_external_id", String, nullable=False),
    Column("created_at", String, nullable=True),
    Column("updated_at", String, nullable=True),
    UniqueConstraint("weapon_external_id", "skin_external_id", name="uix_skin_natural_key"),
)

account_skins = Table(
    "account_skins",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("product_id", String, nullable=False),
    Column("skin_id", Integer, ForeignKey("skins.id", ondelete="CASCADE"), nullable=False),
    Column("created_at", String, nullable=True),
    UniqueConstraint("product_id", "skin_id", name="uix_product_skin"),
)

Index("idx_skins_skin_external_id", skins.c.skin_external_id)
Index("idx_skins_weapon", skins.c.weapon)
Index("idx_skins_collection", skins.c.collection)
Index("idx_account_skins_product", account_skins.c.product_id)
