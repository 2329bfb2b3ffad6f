from sqlalchemy.orm import Session

from models.CatalogItem import CatalogItem
from services.errors import NotFoundError


def get_catalog_item(db: Session, catalog_item_id: int) -> CatalogItem:
    """Catalog lookup used when a material is attached to a site (and on explicit resync)."""
    item = db.query(CatalogItem).filter(
        CatalogItem.id == catalog_item_id,
        CatalogItem.is_deleted == False
    ).first()
    if not item:
        raise NotFoundError("Catalog item", catalog_item_id)
    return item
