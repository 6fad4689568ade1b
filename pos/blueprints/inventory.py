"""Inventory blueprint - manual stock adjustments and movement history."""
from flask import Blueprint, request, jsonify, Response

from pos.database import get_session
from pos.exceptions import BusinessLogicError
from pos.models import AdjustmentReason
from pos.services import inventory_service

inventory_bp = Blueprint('inventory', __name__, url_prefix='/inventory')


@inventory_bp.route('/adjust', methods=['POST'])
def adjust() -> Response:
    """
    Adjust one product's stock.

    Body: ``{"product_id", "adjustment_type": add|remove|set, "quantity", "reason", "notes"}``
    """
    data = request.get_json(silent=True) or {}
    if not data.get('product_id'):
        raise BusinessLogicError('Se requiere product_id')

    result = inventory_service.adjust_stock(
        get_session(),
        data['product_id'],
        data.get('adjustment_type'),
        data.get('quantity'),
        data.get('reason'),
        data.get('notes')
    )
    return jsonify({'status': 'success', **result})


@inventory_bp.route('/adjust/bulk', methods=['POST'])
def adjust_bulk() -> Response:
    data = request.get_json(silent=True) or {}
    adjustments = data.get('adjustments')
    if not isinstance(adjustments, list) or not adjustments:
        raise BusinessLogicError('Se requiere una lista de ajustes')

    results = inventory_service.bulk_adjust_stock(get_session(), adjustments)
    return jsonify({
        'status': 'success',
        'results': results,
        'succeeded': sum(1 for r in results if r['success']),
        'failed': sum(1 for r in results if not r['success']),
    })


@inventory_bp.route('/movements', methods=['GET'])
def movements() -> Response:
    moves = inventory_service.list_stock_moves(
        get_session(),
        product_id=request.args.get('product_id', type=int),
        limit=request.args.get('limit', 100, type=int)
    )
    return jsonify({'status': 'success', 'movements': [m.to_dict() for m in moves]})


@inventory_bp.route('/low-stock', methods=['GET'])
def low_stock() -> Response:
    products = inventory_service.get_low_stock_products(
        get_session(),
        threshold=request.args.get('threshold', type=int)
    )
    return jsonify({'status': 'success', 'products': [p.to_dict() for p in products]})


@inventory_bp.route('/reasons', methods=['GET'])
def reasons() -> Response:
    return jsonify({'status': 'success', 'reasons': [r.value for r in AdjustmentReason]})
