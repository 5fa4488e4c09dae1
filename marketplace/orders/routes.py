from flask import Blueprint, current_app, g, jsonify, request

from .. import catalog
from ..errors import Forbidden, NotFound, ValidationError
from ..schemas import OrderRequest
from ..utils.decorators import admin_required, login_required, roles_required, seller_required
from . import service

orders_bp = Blueprint('orders', __name__, url_prefix='/api')

IDEMPOTENCY_HEADER = 'Idempotency-Key'


def _order_for_caller(order_id: str):
    order = service.get_order(order_id)
    if not order:
        raise NotFound('Order not found')
    if order.user_id != g.identity.id and g.identity.role != 'admin':
        raise Forbidden("You don't have permission to access this order")
    return order


@orders_bp.post('/orders')
@login_required
def place_order():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Expected JSON payload.')
    payload = OrderRequest.model_validate(data)

    key = (request.headers.get(IDEMPOTENCY_HEADER) or '').strip() or None
    if key and len(key) > 128:
        raise ValidationError(errors=[{"path": IDEMPOTENCY_HEADER, "message": "Key is too long"}])

    order, created = service.place_order(
        g.identity.id,
        [line.model_dump() for line in payload.items],
        idempotency_key=key,
    )
    if payload.total is not None and payload.total != order.total:
        current_app.logger.info('Order %s: client total %s replaced by %s', order.id, payload.total, order.total)
    return jsonify(service.order_payload(order)), 201 if created else 200


@orders_bp.get('/orders')
@login_required
def my_orders():
    return jsonify(service.buyer_order_views(service.orders_for_buyer(g.identity.id)))


@orders_bp.get('/orders/all')
@roles_required('seller', 'admin')
def all_orders():
    if g.identity.role == 'admin':
        return jsonify([service.order_payload(order) for order in service.all_orders()])

    store = catalog.get_store_by_owner(g.identity.id)
    if not store:
        raise NotFound('Store not found')
    product_ids = [p.id for p in catalog.list_products_by_store(store.id)]
    orders = service.orders_for_products(product_ids)
    return jsonify([service.order_payload(order, product_ids) for order in orders])


@orders_bp.get('/orders/<order_id>')
@login_required
def order_detail(order_id):
    return jsonify(service.buyer_order_views([_order_for_caller(order_id)])[0])


@orders_bp.post('/orders/<order_id>/cancel')
@login_required
def cancel_order(order_id):
    order = service.cancel_order(_order_for_caller(order_id))
    return jsonify(service.order_payload(order))


@orders_bp.post('/orders/<order_id>/complete')
@admin_required
def complete_order(order_id):
    order = service.get_order(order_id)
    if not order:
        raise NotFound('Order not found')
    return jsonify(service.order_payload(service.complete_order(order)))


@orders_bp.get('/seller/orders')
@seller_required
def seller_orders():
    store = catalog.get_store_by_owner(g.identity.id)
    if not store:
        raise NotFound('Store not found for this seller')
    product_ids = [p.id for p in catalog.list_products_by_store(store.id)]
    return jsonify(service.seller_order_views(service.orders_for_products(product_ids), product_ids))
