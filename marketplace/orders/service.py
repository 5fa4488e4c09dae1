"""Order workflow.

Checkout runs in one database transaction: every line is decremented through
``catalog.adjust_stock`` and the order row is written only if all of them
succeed. Any failure rolls the whole transaction back, so a rejected order
leaves stock untouched and persists nothing.
"""
from __future__ import annotations

import logging
from collections import OrderedDict
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from sqlalchemy.exc import IntegrityError

from .. import catalog
from ..errors import APIError, InvalidTransition, NotFound, ValidationError
from ..extensions import db
from ..models import Order, OrderItem, OrderStatus, Product, Store, User, to_money
from ..schemas import MAX_QUANTITY

logger = logging.getLogger(__name__)

TRANSITIONS = {
    OrderStatus.pending: {OrderStatus.completed, OrderStatus.cancelled},
    OrderStatus.completed: set(),
    OrderStatus.cancelled: set(),
}


def _merge_lines(lines: Iterable[Mapping]) -> "OrderedDict[str, int]":
    merged: "OrderedDict[str, int]" = OrderedDict()
    for index, line in enumerate(lines):
        product_id = str(line.get("product_id") or "").strip()
        quantity = line.get("quantity")
        if not product_id:
            raise ValidationError(errors=[{"path": f"items.{index}.productId", "message": "Product id is required"}])
        if not isinstance(quantity, int) or quantity < 1:
            raise ValidationError(errors=[{"path": f"items.{index}.quantity", "message": "Quantity must be at least 1"}])
        merged[product_id] = merged.get(product_id, 0) + quantity
        if merged[product_id] > MAX_QUANTITY:
            raise ValidationError(errors=[{
                "path": f"items.{index}.quantity",
                "message": f"Quantity per product must not exceed {MAX_QUANTITY}",
            }])
    return merged


def find_by_idempotency_key(buyer_id: str, key: str) -> Optional[Order]:
    return db.session.scalar(
        db.select(Order).filter_by(user_id=buyer_id, idempotency_key=key)
    )


def place_order(buyer_id: str, lines: Iterable[Mapping],
                idempotency_key: Optional[str] = None) -> Tuple[Order, bool]:
    """Create a pending order; returns ``(order, created)``."""
    if idempotency_key:
        existing = find_by_idempotency_key(buyer_id, idempotency_key)
        if existing:
            return existing, False

    merged = _merge_lines(lines)
    if not merged:
        raise ValidationError("Order must contain items")

    try:
        products: Dict[str, Product] = {}
        for product_id in merged:
            product = catalog.get_product(product_id)
            if product is None:
                raise NotFound(f"Product {product_id} not found")
            products[product_id] = product

        # fixed lock order across concurrent checkouts
        for product_id in sorted(merged):
            catalog.adjust_stock(product_id, -merged[product_id])

        order = Order(user_id=buyer_id, status=OrderStatus.pending, idempotency_key=idempotency_key)
        total = Decimal("0")
        for position, (product_id, quantity) in enumerate(merged.items()):
            product = products[product_id]
            order.items.append(OrderItem(
                position=position,
                product_id=product_id,
                quantity=quantity,
                unit_price=product.price,
                name=product.name,
            ))
            total += product.price * quantity
        order.total = total
        db.session.add(order)
        db.session.commit()
    except APIError:
        db.session.rollback()
        raise
    except IntegrityError:
        db.session.rollback()
        if idempotency_key:
            existing = find_by_idempotency_key(buyer_id, idempotency_key)
            if existing:
                return existing, False
        raise

    logger.info("Order %s placed by %s: %s lines, total %s", order.id, buyer_id, len(order.items), order.total)
    return order, True


def _sources(target: OrderStatus) -> List[OrderStatus]:
    return [status for status, targets in TRANSITIONS.items() if target in targets]


def _transition(order: Order, target: OrderStatus) -> None:
    """Move ``order`` to ``target`` with one conditional UPDATE.

    Only the caller whose UPDATE matches the row wins; a concurrent loser
    sees zero rows and gets ``InvalidTransition`` before touching stock.
    """
    table = Order.__table__
    result = db.session.execute(
        table.update()
        .where(table.c.id == order.id, table.c.status.in_(_sources(target)))
        .values(status=target, updated_at=datetime.utcnow())
    )
    if result.rowcount != 1:
        current = db.session.scalar(db.select(Order.status).where(Order.id == order.id))
        label = current.value if current else "unknown"
        raise InvalidTransition(f"Cannot move order from {label} to {target.value}")
    db.session.expire(order, ["status", "updated_at"])


def cancel_order(order: Order) -> Order:
    """Cancel a pending order and put its quantities back on the shelf."""
    try:
        _transition(order, OrderStatus.cancelled)
        for item in order.items:
            if catalog.get_product(item.product_id) is None:
                logger.info("Skipping restock of deleted product %s", item.product_id)
                continue
            catalog.adjust_stock(item.product_id, item.quantity)
        db.session.commit()
    except APIError:
        db.session.rollback()
        raise
    logger.info("Order %s cancelled", order.id)
    return order


def complete_order(order: Order) -> Order:
    try:
        _transition(order, OrderStatus.completed)
        db.session.commit()
    except APIError:
        db.session.rollback()
        raise
    logger.info("Order %s completed", order.id)
    return order


def get_order(order_id: str) -> Optional[Order]:
    if not order_id:
        return None
    return db.session.get(Order, order_id)


def orders_for_buyer(user_id: str) -> List[Order]:
    return list(db.session.scalars(
        db.select(Order).filter_by(user_id=user_id).order_by(Order.created_at.desc())
    ))


def orders_for_products(product_ids: Iterable[str]) -> List[Order]:
    ids = list(product_ids)
    if not ids:
        return []
    matching = db.select(OrderItem.order_id).where(OrderItem.product_id.in_(ids))
    return list(db.session.scalars(
        db.select(Order).where(Order.id.in_(matching)).order_by(Order.created_at.desc())
    ))


def all_orders() -> List[Order]:
    return list(db.session.scalars(db.select(Order).order_by(Order.created_at.desc())))


# -- payloads -----------------------------------------------------------------

def item_payload(item: OrderItem) -> dict:
    return {
        "productId": item.product_id,
        "quantity": item.quantity,
        "unitPrice": str(item.unit_price),
        "name": item.name,
        "lineTotal": str(item.line_total),
    }


def order_payload(order: Order, product_ids: Optional[Iterable[str]] = None) -> dict:
    """Serialize ``order``; with ``product_ids`` only those lines and their subtotal are shown."""
    items = list(order.items)
    total = order.total
    if product_ids is not None:
        allowed = set(product_ids)
        items = [item for item in items if item.product_id in allowed]
        total = to_money(sum((item.line_total for item in items), Decimal("0")))
    return {
        "id": order.id,
        "userId": order.user_id,
        "status": order.status.value,
        "total": str(total),
        "createdAt": order.created_at.isoformat() if order.created_at else None,
        "items": [item_payload(item) for item in items],
    }


def _products_by_id(orders: List[Order]) -> Dict[str, Product]:
    ids = {item.product_id for order in orders for item in order.items}
    if not ids:
        return {}
    rows = db.session.scalars(db.select(Product).where(Product.id.in_(ids)))
    return {product.id: product for product in rows}


def _product_details(product: Optional[Product]) -> Optional[dict]:
    if product is None:
        return None
    return {
        "name": product.name,
        "description": product.description,
        "image": product.image,
        "category": product.category,
    }


def buyer_order_views(orders: List[Order]) -> List[dict]:
    products = _products_by_id(orders)
    store_ids = {product.store_id for product in products.values()}
    stores = {}
    if store_ids:
        stores = {s.id: s for s in db.session.scalars(db.select(Store).where(Store.id.in_(store_ids)))}

    views = []
    for order in orders:
        payload = order_payload(order)
        for entry, item in zip(payload["items"], order.items):
            product = products.get(item.product_id)
            store = stores.get(product.store_id) if product else None
            entry["productDetails"] = _product_details(product)
            entry["storeDetails"] = {"name": store.name, "logo": store.logo} if store else None
        views.append(payload)
    return views


def seller_order_views(orders: List[Order], product_ids: Iterable[str]) -> List[dict]:
    product_ids = set(product_ids)
    products = _products_by_id(orders)
    buyer_ids = {order.user_id for order in orders}
    buyers = {}
    if buyer_ids:
        buyers = {u.id: u for u in db.session.scalars(db.select(User).where(User.id.in_(buyer_ids)))}

    views = []
    for order in orders:
        payload = order_payload(order, product_ids)
        buyer = buyers.get(order.user_id)
        payload["userDetails"] = {
            "username": buyer.username,
            "email": buyer.email,
            "fullName": buyer.full_name,
            "address": buyer.address,
        } if buyer else None
        for entry in payload["items"]:
            entry["productDetails"] = _product_details(products.get(entry["productId"]))
        views.append(payload)
    return views
