"""Promo codes blueprint - registry CRUD and validation."""
from decimal import Decimal, InvalidOperation
from typing import Tuple

from flask import Blueprint, request, jsonify, Response

from pos.database import get_session
from pos.exceptions import BusinessLogicError, NotFoundError
from pos.models import PromoCode
from pos.services import promo_service

promocodes_bp = Blueprint('promocodes', __name__, url_prefix='/promocodes')


@promocodes_bp.route('', methods=['GET'])
def list_promo_codes() -> Response:
    include_expired = request.args.get('include_expired', '').lower() in ('1', 'true', 'yes')
    promos = promo_service.list_promo_codes(get_session(), include_expired=include_expired)
    return jsonify({'status': 'success', 'promo_codes': [p.to_dict() for p in promos]})


@promocodes_bp.route('', methods=['POST'])
def create_promo_code() -> Tuple[Response, int]:
    promo = promo_service.create_promo_code(get_session(), request.get_json(silent=True) or {})
    return jsonify({'status': 'success', 'promo_code': promo.to_dict()}), 201


@promocodes_bp.route('/<int:promo_id>', methods=['GET'])
def get_promo_code(promo_id: int) -> Response:
    promo = get_session().query(PromoCode).filter(PromoCode.id == promo_id).first()
    if not promo:
        raise NotFoundError('Código promocional no encontrado')
    return jsonify({'status': 'success', 'promo_code': promo.to_dict()})


@promocodes_bp.route('/<int:promo_id>', methods=['PUT', 'PATCH'])
def update_promo_code(promo_id: int) -> Response:
    promo = promo_service.update_promo_code(get_session(), promo_id, request.get_json(silent=True) or {})
    return jsonify({'status': 'success', 'promo_code': promo.to_dict()})


@promocodes_bp.route('/<int:promo_id>', methods=['DELETE'])
def delete_promo_code(promo_id: int) -> Response:
    promo_service.deactivate_promo_code(get_session(), promo_id)
    return jsonify({'status': 'success', 'message': 'Código promocional desactivado'})


@promocodes_bp.route('/validate', methods=['POST'])
def validate_promo_code() -> Response:
    """
    Check a code against an amount without touching the cart.

    Body: ``{"code": "WELCOME10", "amount": "100.00"}``
    """
    data = request.get_json(silent=True) or {}
    try:
        amount = Decimal(str(data.get('amount') or 0))
    except InvalidOperation:
        raise BusinessLogicError('Monto inválido')
    promo = promo_service.validate_promo_code(get_session(), data.get('code'), amount)
    return jsonify({
        'status': 'success',
        'valid': True,
        'promo_code': promo.to_dict(),
        'discount': promo_service.preview_discount(promo, amount),
    })
