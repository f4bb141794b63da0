from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.product import Product
from app.schemas.product import ProductCreate, ProductRef, ProductUpdate
from app.services.discount_engine.errors import DataAccessError


# --------------------------
# CREATE PRODUCT
# --------------------------
def create_product(db: Session, data: ProductCreate):
    product = Product(**data.model_dump())
    db.add(product)
    db.commit()
    db.refresh(product)
    return product

# --------------------------
# GET PRODUCT
# --------------------------
def get_product(db: Session, product_id: str):
    return db.query(Product).filter(Product.product_id == product_id).first()

# --------------------------
# UPDATE PRODUCT
# --------------------------
def update_product(db: Session, product_id: str, data: ProductUpdate, exclusions=None):
    product = get_product(db, product_id)
    if not product:
        return None

    for key, value in data.model_dump(exclude_unset=True).items():
        if hasattr(product, key):
            setattr(product, key, value)

    db.commit()
    db.refresh(product)

    if exclusions is not None:
        exclusions.invalidate_product(product_id)
    return product

# --------------------------
# GLOBAL DISCOUNT OPT-OUT
# --------------------------
def set_global_exclusion(db: Session, product_id: str, excluded: bool, exclusions=None):
    product = get_product(db, product_id)
    if not product:
        return None

    product.exclude_from_discounts = excluded
    db.commit()
    db.refresh(product)

    if exclusions is not None:
        exclusions.invalidate_product(product_id)
    return product


def to_product_ref(db: Session, product: Product) -> ProductRef:
    """
    Engine view of a product. Variations without their own categories or
    tags inherit the parent's.
    """
    category_ids = list(product.category_ids or [])
    tag_ids = list(product.tag_ids or [])

    if product.parent_id and (not category_ids or not tag_ids):
        parent = get_product(db, product.parent_id)
        if parent is not None:
            category_ids = category_ids or list(parent.category_ids or [])
            tag_ids = tag_ids or list(parent.tag_ids or [])

    return ProductRef(
        product_id=product.product_id,
        parent_id=product.parent_id,
        category_ids=category_ids,
        tag_ids=tag_ids,
        regular_price=product.regular_price,
        sale_price=product.sale_price,
        in_stock=bool(product.in_stock),
        exclude_from_discounts=bool(product.exclude_from_discounts),
    )


class ProductCatalog:
    """Product lookups for the gift resolver."""

    def __init__(self, db: Session):
        self.db = db

    def get_product_ref(self, product_id: str) -> Optional[ProductRef]:
        try:
            product = get_product(self.db, product_id)
            if product is None:
                return None
            return to_product_ref(self.db, product)
        except SQLAlchemyError as exc:
            raise DataAccessError(f"could not load product {product_id}") from exc
