from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy import func

from .. import catalog
from ..errors import Forbidden, NotFound
from ..extensions import db
from ..models import OrderItem, Product, User
from ..schemas import StoreCreate, StoreUpdate
from ..utils.decorators import admin_required, roles_required, seller_required
from ..utils.uploads import remove_image, save_image

stores_bp = Blueprint('stores', __name__, url_prefix='/api')

PREVIEW_PRODUCTS = 4


def _form_or_json() -> dict:
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form.to_dict()


def _own_store():
    store = catalog.get_store_by_owner(g.identity.id)
    if not store:
        raise NotFound('Store not found', code='NO_STORE')
    return store


@stores_bp.post('/store/create')
@seller_required
def create_store():
    fields = StoreCreate.model_validate(_form_or_json()).model_dump()
    if catalog.get_store_by_owner(g.identity.id):
        return jsonify({"message": "User already has a store"}), 409

    fields['logo'] = save_image(request.files.get('logo'))
    try:
        store = catalog.create_store(
            g.identity.id, fields, start=current_app.config['STORE_ID_START'],
        )
    except Exception:
        remove_image(fields['logo'])
        raise
    return jsonify({"message": "Store created successfully", "store": catalog.store_payload(store)}), 201


@stores_bp.get('/store/seller')
@seller_required
def seller_store():
    return jsonify(catalog.store_payload(_own_store()))


@stores_bp.put('/store')
@seller_required
def update_store():
    store = _own_store()
    fields = StoreUpdate.model_validate(_form_or_json()).model_dump(exclude_unset=True)
    logo = save_image(request.files.get('logo'))
    if logo:
        remove_image(store.logo)
        fields['logo'] = logo
    store = catalog.update_store(store, fields)
    return jsonify(catalog.store_payload(store))


@stores_bp.get('/stores')
def list_stores():
    payload = []
    for store in catalog.list_stores():
        products = catalog.list_products_by_store(store.id)
        entry = catalog.store_payload(store)
        entry['productCount'] = len(products)
        entry['products'] = [catalog.product_payload(p) for p in products[:PREVIEW_PRODUCTS]]
        payload.append(entry)
    return jsonify(payload)


@stores_bp.get('/store/info')
def store_info():
    return jsonify({store.id: catalog.store_payload(store) for store in catalog.list_stores()})


@stores_bp.get('/stores/<identifier>')
def store_detail(identifier):
    store = catalog.get_store(identifier)
    if not store:
        raise NotFound('Store not found')
    entry = catalog.store_payload(store)
    entry['productCount'] = catalog.product_count_by_store(store.id)
    return jsonify(entry)


@stores_bp.delete('/stores/<identifier>')
@roles_required('seller', 'admin')
def delete_store(identifier):
    store = catalog.get_store(identifier)
    if not store:
        raise NotFound('Store not found')
    if g.identity.role != 'admin' and store.user_id != g.identity.id:
        raise Forbidden("You don't have permission to delete this store")

    logo = store.logo
    removed = catalog.delete_store(store)
    remove_image(logo)
    current_app.logger.info('Store %s deleted by %s', identifier, g.identity.id)
    return jsonify({"message": "Store deleted successfully", "productsRemoved": removed})


@stores_bp.get('/admin/stores')
@admin_required
def admin_stores():
    product_counts = dict(
        db.session.execute(
            db.select(Product.store_id, func.count(Product.id)).group_by(Product.store_id)
        ).all()
    )
    order_counts = dict(
        db.session.execute(
            db.select(Product.store_id, func.count(func.distinct(OrderItem.order_id)))
            .join(OrderItem, OrderItem.product_id == Product.id)
            .group_by(Product.store_id)
        ).all()
    )

    payload = []
    for store in catalog.list_stores():
        entry = catalog.store_payload(store)
        entry['owner'] = catalog.owner_payload(db.session.get(User, store.user_id))
        entry['productCount'] = int(product_counts.get(store.id, 0))
        entry['orderCount'] = int(order_counts.get(store.id, 0))
        payload.append(entry)
    return jsonify(payload)
