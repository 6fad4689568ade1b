"""Sales blueprint - POS cart, checkout and sale management (JSON)."""
import copy
from datetime import datetime
from typing import Tuple

from flask import Blueprint, request, session, jsonify, current_app, Response

from pos.database import get_session
from pos.exceptions import BusinessLogicError
from pos.services import cart_service, sales_service
from pos.services.product_service import find_product, get_product

sales_bp = Blueprint('sales', __name__, url_prefix='/sales')


def get_cart() -> dict:
    """Get a working copy of the cart stored in the session."""
    return cart_service.normalize_cart(copy.deepcopy(session.get('cart')))


def save_cart(cart: dict) -> None:
    """Save cart to session."""
    session['cart'] = cart
    session.modified = True


def _payload() -> dict:
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form.to_dict()


def _int_field(value, field: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise BusinessLogicError(f'Campo inválido: {field}')


def _parse_datetime_arg(name: str):
    raw = request.args.get(name, '').strip()
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw)
    except ValueError:
        raise BusinessLogicError(f'Fecha inválida: {name}')


def _cart_response(db_session, cart: dict, **extra) -> Response:
    totals = cart_service.get_cart_totals(db_session, cart)
    return jsonify({'status': 'success', 'cart': cart, 'totals': totals, **extra})


# =====================================================
# CART
# =====================================================

@sales_bp.route('/cart', methods=['GET'])
def cart_view() -> Response:
    """Current cart with server-side totals."""
    return _cart_response(get_session(), get_cart())


@sales_bp.route('/cart/add', methods=['POST'])
def cart_add() -> Response:
    """Add a product by id or barcode."""
    db_session = get_session()
    payload = _payload()

    product_id = payload.get('product_id')
    product = find_product(
        db_session,
        product_id=_int_field(product_id, 'product_id') if product_id else None,
        barcode=payload.get('barcode')
    )

    cart = get_cart()
    cart_service.add_item(cart, product, payload.get('qty', 1))
    save_cart(cart)

    current_app.logger.info(f"[cart_add] product_id={product.id}, cart_size={len(cart['items'])}")
    return _cart_response(db_session, cart)


@sales_bp.route('/cart/update', methods=['POST'])
def cart_update() -> Response:
    """Change quantity and/or line discount."""
    db_session = get_session()
    payload = _payload()
    product = get_product(db_session, _int_field(payload.get('product_id'), 'product_id'))

    cart = get_cart()
    cart_service.update_item(
        cart,
        product,
        qty=payload.get('qty'),
        discount_type=payload.get('discount_type'),
        discount_value=payload.get('discount_value')
    )
    save_cart(cart)
    return _cart_response(db_session, cart)


@sales_bp.route('/cart/remove', methods=['POST'])
def cart_remove() -> Response:
    payload = _payload()
    cart = get_cart()
    cart_service.remove_item(cart, _int_field(payload.get('product_id'), 'product_id'))
    save_cart(cart)
    return _cart_response(get_session(), cart)


@sales_bp.route('/cart/clear', methods=['POST'])
def cart_clear() -> Response:
    cart = cart_service.new_cart()
    save_cart(cart)
    return _cart_response(get_session(), cart)


@sales_bp.route('/cart/promo', methods=['POST'])
def cart_apply_promo() -> Response:
    """Apply a promo code. Rejections return the reason in the error body."""
    db_session = get_session()
    cart = get_cart()
    promo = cart_service.apply_promo_code(db_session, cart, _payload().get('code'))
    save_cart(cart)
    return _cart_response(db_session, cart, message=f'Código {promo.code} aplicado')


@sales_bp.route('/cart/promo/<code>', methods=['DELETE'])
def cart_remove_promo(code: str) -> Response:
    cart = get_cart()
    cart_service.remove_promo_code(cart, code)
    save_cart(cart)
    return _cart_response(get_session(), cart)


@sales_bp.route('/cart/discount', methods=['POST'])
def cart_set_discount() -> Response:
    payload = _payload()
    cart = get_cart()
    cart_service.set_manual_discount(cart, payload.get('type'), payload.get('value'), payload.get('reason'))
    save_cart(cart)
    return _cart_response(get_session(), cart)


@sales_bp.route('/cart/discount', methods=['DELETE'])
def cart_clear_discount() -> Response:
    cart = get_cart()
    cart_service.clear_manual_discount(cart)
    save_cart(cart)
    return _cart_response(get_session(), cart)


@sales_bp.route('/cart/customer', methods=['POST'])
def cart_attach_customer() -> Response:
    """Select the customer; a loyalty card auto-applies the loyalty code."""
    db_session = get_session()
    cart = get_cart()
    result = cart_service.attach_customer(db_session, cart, _int_field(_payload().get('customer_id'), 'customer_id'))
    save_cart(cart)
    return _cart_response(
        db_session,
        cart,
        customer=result['customer'].to_dict(),
        loyalty_applied=result['loyalty_applied'],
        loyalty_error=result['loyalty_error']
    )


@sales_bp.route('/cart/customer', methods=['DELETE'])
def cart_detach_customer() -> Response:
    cart = get_cart()
    cart_service.detach_customer(cart)
    save_cart(cart)
    return _cart_response(get_session(), cart)


# =====================================================
# CHECKOUT
# =====================================================

@sales_bp.route('/checkout', methods=['POST'])
def checkout() -> Tuple[Response, int]:
    """Commit the session cart as a sale. The cart is cleared only on success."""
    db_session = get_session()
    payload = _payload()

    sale_id = sales_service.commit_sale(
        db_session,
        get_cart(),
        payload.get('payment_method', ''),
        notes=payload.get('notes')
    )
    save_cart(cart_service.new_cart())

    sale = sales_service.get_sale(db_session, sale_id)
    return jsonify({
        'status': 'success',
        'message': f'Venta #{sale_id} confirmada',
        'sale': sale.to_dict()
    }), 201


# =====================================================
# SALES
# =====================================================

@sales_bp.route('/', methods=['GET'])
def list_sales() -> Response:
    customer_id = request.args.get('customer_id')
    sales = sales_service.list_sales(
        get_session(),
        start=_parse_datetime_arg('start'),
        end=_parse_datetime_arg('end'),
        customer_id=_int_field(customer_id, 'customer_id') if customer_id else None,
        limit=request.args.get('limit', 100, type=int)
    )
    return jsonify({'status': 'success', 'sales': [s.to_dict(include_items=False) for s in sales]})


@sales_bp.route('/<int:sale_id>', methods=['GET'])
def detail_sale(sale_id: int) -> Response:
    sale = sales_service.get_sale(get_session(), sale_id)
    return jsonify({'status': 'success', 'sale': sale.to_dict()})


@sales_bp.route('/<int:sale_id>', methods=['PATCH'])
def update_sale(sale_id: int) -> Response:
    payload = _payload()
    sale = sales_service.update_sale(
        get_session(),
        sale_id,
        notes=payload.get('notes'),
        payment_method=payload.get('payment_method')
    )
    return jsonify({'status': 'success', 'sale': sale.to_dict()})


@sales_bp.route('/<int:sale_id>/cancel', methods=['POST'])
def cancel_sale(sale_id: int) -> Response:
    sale = sales_service.cancel_sale(get_session(), sale_id)
    return jsonify({'status': 'success', 'message': f'Venta #{sale_id} anulada', 'sale': sale.to_dict()})


@sales_bp.route('/<int:sale_id>/return', methods=['POST'])
def return_items(sale_id: int) -> Response:
    payload = _payload()
    items = payload.get('items')
    if not isinstance(items, list):
        raise BusinessLogicError('Se requiere la lista de artículos a devolver')
    result = sales_service.process_return(get_session(), sale_id, items, payload.get('reason'))
    return jsonify({'status': 'success', **result})
