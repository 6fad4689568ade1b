"""Products blueprint - catalog lookups for the POS screen."""
from typing import Tuple

from flask import Blueprint, request, jsonify, Response

from pos.database import get_session
from pos.services import product_service, tax_service

products_bp = Blueprint('products', __name__, url_prefix='/products')


@products_bp.route('', methods=['GET'])
def list_products() -> Response:
    """Search active products by name, SKU or barcode (``?q=``)."""
    products = product_service.search_products(
        get_session(),
        request.args.get('q', '').strip(),
        limit=request.args.get('limit', 20, type=int)
    )
    return jsonify({'status': 'success', 'products': [p.to_dict() for p in products]})


@products_bp.route('', methods=['POST'])
def create_product() -> Tuple[Response, int]:
    product = product_service.create_product(get_session(), request.get_json(silent=True) or {})
    return jsonify({'status': 'success', 'product': product.to_dict()}), 201


@products_bp.route('/<int:product_id>', methods=['GET'])
def get_product(product_id: int) -> Response:
    product = product_service.get_product(get_session(), product_id)
    return jsonify({'status': 'success', 'product': product.to_dict()})


@products_bp.route('/barcode/<barcode>', methods=['GET'])
def get_by_barcode(barcode: str) -> Response:
    product = product_service.get_product_by_barcode(get_session(), barcode)
    return jsonify({'status': 'success', 'product': product.to_dict()})


@products_bp.route('/tax-rates', methods=['GET'])
def list_tax_rates() -> Response:
    rates = tax_service.list_tax_rates(get_session())
    return jsonify({'status': 'success', 'tax_rates': [r.to_dict() for r in rates]})


@products_bp.route('/tax-rates', methods=['POST'])
def create_tax_rate() -> Tuple[Response, int]:
    data = request.get_json(silent=True) or {}
    tax_rate = tax_service.create_tax_rate(
        get_session(),
        (data.get('name') or '').strip(),
        data.get('rate'),
        is_default=bool(data.get('is_default')),
        description=data.get('description')
    )
    return jsonify({'status': 'success', 'tax_rate': tax_rate.to_dict()}), 201
