from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from .. import catalog
from ..errors import Forbidden, NotFound, ValidationError
from ..extensions import db
from ..models import Product, Store
from ..schemas import ProductFields, ProductUpdate, StockAdjustment
from ..utils.csv_import import read_rows, validate_rows
from ..utils.decorators import seller_required
from ..utils.uploads import remove_image

products_bp = Blueprint('products', __name__, url_prefix='/api')


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Expected JSON payload.')
    return data


def _seller_store() -> Store:
    store = catalog.get_store_by_owner(g.identity.id)
    if not store:
        raise NotFound('Store not found')
    return store


def _owned_product(product_id: str, action: str) -> Product:
    product = catalog.get_product(product_id)
    if not product:
        raise NotFound('Product not found')
    store = _seller_store()
    if product.store_id != store.id:
        raise Forbidden(f"You don't have permission to {action} this product")
    return product


def _import(store: Store, upload):
    rows = validate_rows(read_rows(upload))
    created = catalog.create_products_bulk(store, rows)
    current_app.logger.info('CSV import: %s products into store %s by %s',
                            len(created), store.store_id, g.identity.id)
    return jsonify({
        "success": True,
        "count": len(created),
        "message": f"Successfully uploaded {len(created)} products",
    }), 201


@products_bp.get('/products')
def list_products():
    products = catalog.list_products(category=request.args.get('category'))
    return jsonify([catalog.product_payload(p) for p in products])


@products_bp.get('/products/featured')
def featured_products():
    return jsonify([catalog.product_payload(p) for p in catalog.featured_products()])


@products_bp.get('/products/mine')
@seller_required
def my_products():
    store = _seller_store()
    return jsonify([catalog.product_payload(p) for p in catalog.list_products_by_store(store.id)])


@products_bp.get('/products/store/<identifier>')
def store_products(identifier):
    store = catalog.get_store(identifier)
    if not store:
        raise NotFound('Store not found')
    return jsonify([catalog.product_payload(p) for p in catalog.list_products_by_store(store.id)])


@products_bp.get('/products/<product_id>')
def product_detail(product_id):
    product = catalog.get_product(product_id)
    if not product:
        raise NotFound('Product not found')
    return jsonify(catalog.product_payload(product))


@products_bp.post('/products')
@seller_required
def create_product():
    store = _seller_store()
    fields = ProductFields.model_validate(_json_body()).model_dump()
    product = catalog.create_product(store, fields)
    return jsonify(catalog.product_payload(product)), 201


@products_bp.put('/products/<product_id>')
@seller_required
def update_product(product_id):
    product = _owned_product(product_id, 'update')
    fields = ProductUpdate.model_validate(_json_body()).model_dump(exclude_unset=True)
    product = catalog.update_product(product, fields)
    return jsonify(catalog.product_payload(product))


@products_bp.delete('/products/<product_id>')
@seller_required
def delete_product(product_id):
    product = _owned_product(product_id, 'delete')
    image = product.image
    catalog.delete_product(product)
    remove_image(image)
    return jsonify({"message": "Product deleted successfully"})


@products_bp.post('/products/<product_id>/stock')
@seller_required
def adjust_stock(product_id):
    product = _owned_product(product_id, 'update')
    payload = StockAdjustment.model_validate(_json_body())
    try:
        catalog.adjust_stock(product.id, payload.delta)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return jsonify(catalog.product_payload(catalog.get_product(product.id)))


@products_bp.post('/products/csv-upload/<identifier>')
@seller_required
def csv_upload(identifier):
    store = catalog.get_store(identifier)
    if not store:
        raise NotFound('Store not found')
    if store.user_id != g.identity.id:
        raise Forbidden('You do not have permission to upload products to this store')
    return _import(store, request.files.get('csvFile'))


@products_bp.post('/products/upload')
@seller_required
def upload_own():
    return _import(_seller_store(), request.files.get('file'))
