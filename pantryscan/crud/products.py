"""Product lookup and creation for scanned barcodes."""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.barcodes import barcode_aliases, normalize_barcode
from ..core.errors import CatalogUnavailable, StorageFailure
from ..models.product import Product, ProductCategory
from ..services.catalog import CatalogClient, CatalogProduct

logger = logging.getLogger(__name__)

async def find_product(session: AsyncSession, owner_id: str, barcode: str) -> Product | None:
    """Return the owner's product for ``barcode`` or any equivalent alias."""

    aliases = barcode_aliases(barcode)
    if not aliases:
        return None
    stmt = (
        select(Product)
        .where(Product.owner_id == owner_id, Product.barcode.in_(aliases))
        .order_by(Product.created_at)
        .limit(1)
    )
    try:
        return (await session.execute(stmt)).scalars().first()
    except SQLAlchemyError as exc:
        logger.error("Error looking up product %s", barcode, exc_info=exc)
        raise StorageFailure() from exc


async def fetch_catalog_product(catalog: CatalogClient, barcode: str) -> Optional[CatalogProduct]:
    """Catalog lookup where an unavailable catalog reads as "not found"."""

    try:
        return await catalog.lookup(barcode)
    except CatalogUnavailable as exc:
        logger.warning("Catalog unavailable for %s, creating minimal product: %s", barcode, exc.message)
        return None


async def create_product(
    session: AsyncSession,
    *,
    owner_id: str,
    barcode: str,
    info: Optional[CatalogProduct] = None,
    fallback_name: str,
) -> tuple[Product, bool]:
    """Insert a product, enriched from ``info`` when the catalog knew it.

    If another scan created the same (owner, barcode) product in the meantime,
    the existing row is returned instead and the flag is ``False``.
    """

    fields = info.product_fields() if info else dict.fromkeys(Product.ENRICHMENT_FIELDS)
    product = Product(
        owner_id=owner_id,
        barcode=normalize_barcode(barcode) or barcode,
        name=(info.name if info else None) or fallback_name,
        **fields,
    )
    session.add(product)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        existing = await find_product(session, owner_id, barcode)
        if existing is None:
            raise StorageFailure("Failed to create product")
        logger.info("Product %s was created concurrently, reusing %s", barcode, existing.id)
        return existing, False
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.error("Error creating product %s", barcode, exc_info=exc)
        raise StorageFailure("Failed to create product") from exc

    logger.info(
        "product.created",
        extra={"extra_data": {"product_id": product.id, "barcode": product.barcode, "enriched": info is not None}},
    )
    return product, True


async def add_category_tags(
    session: AsyncSession,
    product_id: str,
    categories: list[str],
    limit: int = 10,
) -> int:
    """Best-effort category tagging; returns the number of tags written."""

    names = [name for name in categories if name][:limit]
    if not names:
        return 0
    session.add_all(ProductCategory(product_id=product_id, category_name=name) for name in names)
    try:
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.warning("Could not tag product %s with categories", product_id, exc_info=exc)
        return 0
    return len(names)


async def resolve_or_create_product(
    session: AsyncSession,
    catalog: CatalogClient,
    *,
    owner_id: str,
    barcode: str,
    fallback_name: str,
    max_category_tags: int = 10,
) -> tuple[Product, bool]:
    """Find the owner's product for ``barcode`` or create it.

    The catalog is consulted only when the product is new. Returns the product
    and whether it was created by this call.
    """

    existing = await find_product(session, owner_id, barcode)
    if existing is not None:
        return existing, False

    info = await fetch_catalog_product(catalog, barcode)
    product, created = await create_product(
        session,
        owner_id=owner_id,
        barcode=barcode,
        info=info,
        fallback_name=fallback_name,
    )
    if created and info and info.categories and max_category_tags:
        # Detach so a failed tagging rollback cannot expire the new product.
        session.expunge(product)
        await add_category_tags(session, product.id, info.categories, limit=max_category_tags)
    return product, created
