import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from . import models, schemas

logger = logging.getLogger(__name__)


def find_vendor(db: Session, name: str) -> Optional[models.Vendor]:
    # first() rather than scalar_one_or_none(): duplicate names can exist
    return db.execute(
        select(models.Vendor).where(models.Vendor.name == name).order_by(models.Vendor.id)
    ).scalars().first()


def create_vendor(db: Session, name: str) -> models.Vendor:
    vendor = models.Vendor(name=name)
    db.add(vendor)
    db.flush()
    return vendor


def get_or_create_vendor(db: Session, name: str) -> models.Vendor:
    vendor = find_vendor(db, name)
    if vendor:
        return vendor
    return create_vendor(db, name)


def find_product(
    db: Session, name: str, version: Optional[str], vendor: models.Vendor
) -> Optional[models.Product]:
    return db.execute(
        select(models.Product)
        .where(
            models.Product.name == name,
            models.Product.version == version,
            models.Product.vendor_id == vendor.id,
        )
        .order_by(models.Product.id)
    ).scalars().first()


def create_product(
    db: Session, name: str, version: Optional[str], vendor: models.Vendor
) -> models.Product:
    product = models.Product(name=name, version=version, vendor=vendor)
    db.add(product)
    db.flush()
    return product


def get_or_create_product(
    db: Session, name: str, version: Optional[str], vendor: models.Vendor
) -> models.Product:
    product = find_product(db, name, version, vendor)
    if product:
        return product
    return create_product(db, name, version, vendor)


def resolve_products(db: Session, cve: schemas.Cve) -> set[models.Product]:
    """Find or create every vendor/product/version the CVE lists as affected.

    Rows are flushed as soon as they are created so later lookups in the same
    session see them. Returns the distinct products.
    """
    products: set[models.Product] = set()
    if cve.affects is None or cve.affects.vendor is None:
        return products

    vendor_data = cve.affects.vendor.vendor_data or []
    logger.info("Vendor count: %d", len(vendor_data))

    for entry in vendor_data:
        vendor = get_or_create_vendor(db, entry.vendor_name)
        product_data = (entry.product.product_data if entry.product else None) or []
        logger.info("Product count %d", len(product_data))
        for product_entry in product_data:
            versions = (product_entry.version.version_data if product_entry.version else None) or []
            for version in versions:
                products.add(
                    get_or_create_product(db, product_entry.product_name, version.version_value, vendor)
                )
    return products


def save_advisory(db: Session, advisory: models.Advisory) -> models.Advisory:
    db.add(advisory)
    db.flush()
    return advisory


def create_config_node(
    db: Session,
    advisory: models.Advisory,
    operator: str,
    parent_id: Optional[int] = None,
) -> models.ConfigNode:
    node = models.ConfigNode(advisory=advisory, operator=operator, parent_id=parent_id)
    db.add(node)
    # the id is needed as parent_id for child nodes
    db.flush()
    return node


def create_config_node_cpe(
    db: Session, config_node: models.ConfigNode, node_cpe: schemas.NodeCpe
) -> models.ConfigNodeCpe:
    cpe = models.ConfigNodeCpe(
        config_node=config_node,
        cpe22_uri=node_cpe.cpe22_uri,
        cpe23_uri=node_cpe.cpe23_uri,
        vulnerable=node_cpe.vulnerable,
    )
    db.add(cpe)
    return cpe


def list_advisories(db: Session, *, limit: int = 50, offset: int = 0) -> list[models.Advisory]:
    stmt = select(models.Advisory).order_by(models.Advisory.id.desc()).limit(limit).offset(offset)
    return db.execute(stmt).scalars().all()


def get_latest_advisory(db: Session, cve_id: str) -> Optional[models.Advisory]:
    stmt = (
        select(models.Advisory)
        .where(models.Advisory.cve_id == cve_id)
        .options(
            selectinload(models.Advisory.products).selectinload(models.Product.vendor),
            selectinload(models.Advisory.config_nodes).selectinload(models.ConfigNode.cpes),
        )
        .order_by(models.Advisory.id.desc())
    )
    return db.execute(stmt).scalars().first()


def list_vendors(db: Session) -> list[models.Vendor]:
    stmt = select(models.Vendor).order_by(models.Vendor.name.asc(), models.Vendor.id.asc())
    return db.execute(stmt).scalars().all()


def list_vendor_products(db: Session, vendor_id: int) -> list[models.Product]:
    stmt = (
        select(models.Product)
        .where(models.Product.vendor_id == vendor_id)
        .options(selectinload(models.Product.vendor))
        .order_by(models.Product.name.asc(), models.Product.version.asc())
    )
    return db.execute(stmt).scalars().all()


def find_products(
    db: Session, *, name: Optional[str] = None, version: Optional[str] = None
) -> list[models.Product]:
    stmt = select(models.Product).options(selectinload(models.Product.vendor))
    if name is not None:
        stmt = stmt.where(models.Product.name == name)
    if version is not None:
        stmt = stmt.where(models.Product.version == version)
    stmt = stmt.order_by(models.Product.version.asc(), models.Product.id.asc())
    return db.execute(stmt).scalars().all()
