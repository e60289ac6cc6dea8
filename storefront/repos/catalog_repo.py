# storefront/repos/catalog_repo.py
from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from storefront.data.models.product import ProductVariantModel

UNKNOWN_PRODUCT = "Unknown Product"
UNKNOWN_SKU = "Unknown SKU"


class CatalogRepo:
    """Read-only variant/product lookups used for pricing and snapshots."""

    def __init__(self, db: Session):
        self.db = db

    def get_variant(self, variant_id: int) -> ProductVariantModel | None:
        return self.db.execute(
            select(ProductVariantModel)
            .options(joinedload(ProductVariantModel.product))
            .where(ProductVariantModel.id == variant_id)
        ).scalar_one_or_none()

    def get_variants(self, variant_ids) -> dict[int, ProductVariantModel]:
        ids = set(variant_ids)
        if not ids:
            return {}
        variants = self.db.execute(
            select(ProductVariantModel)
            .options(joinedload(ProductVariantModel.product))
            .where(ProductVariantModel.id.in_(ids))
        ).scalars().all()
        return {v.id: v for v in variants}

    @staticmethod
    def snapshot(variant: ProductVariantModel | None) -> tuple[str, str]:
        """(product name, sku) with sentinels for a deleted variant."""
        if variant is None:
            return UNKNOWN_PRODUCT, UNKNOWN_SKU
        name = variant.product.name if variant.product is not None else UNKNOWN_PRODUCT
        return name, variant.sku or UNKNOWN_SKU
