"""Catalog store: stores, products and the stock counter.

``adjust_stock`` is the only code path allowed to move stock on behalf of a
sale or a restock. It is a single conditional UPDATE, so concurrent callers
can never drive a product below zero, and it never commits: the caller owns
the transaction.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable, List, Mapping, Optional

from sqlalchemy import Integer, cast, func
from sqlalchemy.exc import IntegrityError

from .errors import APIError, Conflict, InsufficientStock, NotFound, StockChanged
from .extensions import db
from .models import Product, Store, User

logger = logging.getLogger(__name__)

PRODUCT_FIELDS = ("name", "description", "price", "category", "sku", "image")
STORE_FIELDS = ("name", "description", "logo")
STORE_ID_ATTEMPTS = 3
FEATURED_LIMIT = 8


# -- products -----------------------------------------------------------------

def get_product(product_id: str) -> Optional[Product]:
    if not product_id:
        return None
    return db.session.get(Product, product_id)


def _expire_cached_stock(product_id: str) -> None:
    key = db.session.identity_key(Product, product_id)
    cached = db.session.identity_map.get(key)
    if cached is not None:
        db.session.expire(cached, ["stock"])


def adjust_stock(product_id: str, delta: int) -> None:
    table = Product.__table__
    result = db.session.execute(
        table.update()
        .where(table.c.id == product_id, table.c.stock + delta >= 0)
        .values(stock=table.c.stock + delta, updated_at=datetime.utcnow())
    )
    if result.rowcount == 1:
        _expire_cached_stock(product_id)
        return

    row = db.session.execute(
        db.select(Product.stock, Product.name).where(Product.id == product_id)
    ).first()
    if row is None:
        raise NotFound(f"Product {product_id} not found")
    logger.warning(
        "Stock rejected for product %s: available=%s requested=%s", product_id, row.stock, -delta
    )
    raise InsufficientStock(product_id, available=row.stock, requested=-delta, name=row.name)


def list_products(category: Optional[str] = None) -> List[Product]:
    query = db.select(Product).order_by(Product.created_at.desc(), Product.name.asc())
    if category:
        query = query.filter(func.lower(Product.category) == category.strip().lower())
    return list(db.session.scalars(query))


def featured_products(limit: int = FEATURED_LIMIT) -> List[Product]:
    return list(db.session.scalars(db.select(Product).order_by(func.random()).limit(limit)))


def list_products_by_store(store_id: str) -> List[Product]:
    return list(
        db.session.scalars(
            db.select(Product).filter_by(store_id=store_id).order_by(Product.created_at.desc(), Product.name.asc())
        )
    )


def product_count_by_store(store_id: str) -> int:
    return db.session.scalar(
        db.select(func.count(Product.id)).filter_by(store_id=store_id)
    ) or 0


def _new_product(store: Store, fields: Mapping[str, Any]) -> Product:
    return Product(
        store_id=store.id,
        name=fields["name"],
        description=fields.get("description") or "",
        price=fields["price"],
        category=fields.get("category") or "",
        sku=fields.get("sku") or "",
        stock=int(fields.get("stock") or 0),
        image=fields.get("image") or "",
    )


def create_product(store: Store, fields: Mapping[str, Any]) -> Product:
    product = _new_product(store, fields)
    db.session.add(product)
    db.session.commit()
    return product


def create_products_bulk(store: Store, rows: Iterable[Mapping[str, Any]]) -> List[Product]:
    products = [_new_product(store, row) for row in rows]
    db.session.add_all(products)
    db.session.commit()
    logger.info("Imported %s products into store %s", len(products), store.store_id)
    return products


def set_stock(product_id: str, expected: int, value: int) -> None:
    """Overwrite stock only while it still equals ``expected``; caller commits."""
    table = Product.__table__
    result = db.session.execute(
        table.update()
        .where(table.c.id == product_id, table.c.stock == expected)
        .values(stock=value, updated_at=datetime.utcnow())
    )
    if result.rowcount == 1:
        _expire_cached_stock(product_id)
        return
    current = db.session.scalar(db.select(Product.stock).where(Product.id == product_id))
    if current is None:
        raise NotFound(f"Product {product_id} not found")
    logger.info("Stock overwrite rejected for product %s: expected=%s actual=%s", product_id, expected, current)
    raise StockChanged(product_id, available=current, expected=expected)


def update_product(product: Product, fields: Mapping[str, Any]) -> Product:
    expected = fields.get("expected_stock")
    if expected is None:
        expected = product.stock
    try:
        for name in PRODUCT_FIELDS:
            if fields.get(name) is not None:
                setattr(product, name, fields[name])
        if fields.get("stock") is not None:
            set_stock(product.id, expected, int(fields["stock"]))
        db.session.commit()
    except APIError:
        db.session.rollback()
        raise
    db.session.refresh(product)
    return product


def delete_product(product: Product) -> None:
    db.session.delete(product)
    db.session.commit()


# -- stores -------------------------------------------------------------------

def get_store(identifier: str) -> Optional[Store]:
    if not identifier:
        return None
    store = db.session.get(Store, identifier)
    if store is None:
        store = db.session.scalar(db.select(Store).filter_by(store_id=identifier))
    return store


def get_store_by_owner(user_id: str) -> Optional[Store]:
    if not user_id:
        return None
    return db.session.scalar(db.select(Store).filter_by(user_id=user_id))


def list_stores() -> List[Store]:
    return list(db.session.scalars(db.select(Store).order_by(Store.created_at.asc())))


def _next_store_id(start: int) -> str:
    current = db.session.scalar(db.select(func.max(cast(Store.store_id, Integer))))
    return str(max(current or start, start) + 1)


def create_store(owner_id: str, fields: Mapping[str, Any], start: int = 1000) -> Store:
    for _ in range(STORE_ID_ATTEMPTS):
        if get_store_by_owner(owner_id):
            raise Conflict("User already has a store")
        store = Store(
            user_id=owner_id,
            store_id=_next_store_id(start),
            name=fields["name"],
            description=fields.get("description") or "",
            logo=fields.get("logo"),
        )
        db.session.add(store)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            continue
        logger.info("Created store %s for user %s", store.store_id, owner_id)
        return store
    raise Conflict("Could not allocate a store id, please retry")


def update_store(store: Store, fields: Mapping[str, Any]) -> Store:
    for name in STORE_FIELDS:
        if fields.get(name) is not None:
            setattr(store, name, fields[name])
    db.session.commit()
    return store


def delete_store(store: Store) -> int:
    public_id = store.store_id
    removed = len(store.products)
    db.session.delete(store)
    db.session.commit()
    logger.info("Deleted store %s and %s products", public_id, removed)
    return removed


# -- payloads -----------------------------------------------------------------

def product_payload(product: Product) -> dict:
    return {
        "id": product.id,
        "storeId": product.store_id,
        "name": product.name,
        "description": product.description,
        "price": str(product.price),
        "category": product.category,
        "sku": product.sku,
        "stock": int(product.stock or 0),
        "image": product.image,
        "createdAt": product.created_at.isoformat() if product.created_at else None,
    }


def store_payload(store: Store) -> dict:
    return {
        "id": store.id,
        "storeId": store.store_id,
        "userId": store.user_id,
        "name": store.name,
        "description": store.description,
        "logo": store.logo,
        "createdAt": store.created_at.isoformat() if store.created_at else None,
    }


def owner_payload(user: Optional[User]) -> Optional[dict]:
    if user is None:
        return None
    return {"id": user.id, "username": user.username, "email": user.email}
