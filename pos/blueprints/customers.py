"""Customers blueprint."""
from typing import Tuple

from flask import Blueprint, request, jsonify, Response

from pos.database import get_session
from pos.services import customer_service

customers_bp = Blueprint('customers', __name__, url_prefix='/customers')


@customers_bp.route('', methods=['POST'])
def create_customer() -> Tuple[Response, int]:
    """Create a customer; returns the existing one when phone or card already match."""
    db_session = get_session()
    data = request.get_json(silent=True) or {}

    existing = customer_service.find_customer(db_session, phone=data.get('phone'), loyalty_card=data.get('loyalty_card'))
    if existing:
        return jsonify({'status': 'success', 'customer': existing.to_dict(), 'created': False}), 200

    customer = customer_service.create_customer(db_session, data)
    return jsonify({'status': 'success', 'customer': customer.to_dict(), 'created': True}), 201


@customers_bp.route('/<int:customer_id>', methods=['GET'])
def get_customer(customer_id: int) -> Response:
    customer = customer_service.get_customer(get_session(), customer_id)
    return jsonify({'status': 'success', 'customer': customer.to_dict()})


@customers_bp.route('/search', methods=['GET'])
def search_customers() -> Response:
    query = request.args.get('q', '').strip()
    customers = customer_service.search_customers(get_session(), query, limit=request.args.get('limit', 10, type=int))
    return jsonify({'status': 'success', 'customers': [c.to_dict() for c in customers]})


@customers_bp.route('/next-loyalty-card', methods=['GET'])
def next_loyalty_card() -> Response:
    return jsonify({'status': 'success', 'loyalty_card': customer_service.generate_next_loyalty_card(get_session())})
