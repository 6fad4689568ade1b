"""
POS cart policy.

The cart is a JSON-safe dict kept client side (in the Flask session):

    {
        'items': {'<product_id>': {'qty': 2, 'discount_type': None, 'discount_value': None}},
        'promo_codes': ['WELCOME10'],
        'manual_discount': {'type': 'fixed', 'value': '5.00', 'reason': '...'} or None,
        'customer_id': 12 or None,
        'loyalty_code': 'FIDELITE20' or None,   # auto-applied with the customer
    }

Functions here mutate the cart only after every check passed, so a
rejected operation leaves it unchanged. Stock checks are advisory; the
authoritative check happens inside the sale commit transaction.
"""
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional, Dict, Any, List

from flask import current_app

from pos.models import Product, PromoCode
from pos.exceptions import BusinessLogicError, InsufficientStockError, PromoCodeError
from pos.services import pricing_service, promo_service, tax_service, customer_service
from pos.services.product_service import get_products_map
from pos.signals import promo_code_applied, promo_code_rejected

logger = logging.getLogger(__name__)


def new_cart() -> Dict[str, Any]:
    return {
        'items': {},
        'promo_codes': [],
        'manual_discount': None,
        'customer_id': None,
        'loyalty_code': None,
    }


def normalize_cart(cart: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Fill in missing keys (carts stored by older sessions)."""
    base = new_cart()
    if cart:
        base.update(cart)
    return base


def parse_qty(qty) -> int:
    try:
        value = Decimal(str(qty))
    except (InvalidOperation, TypeError):
        raise BusinessLogicError('Cantidad inválida')
    if value != value.to_integral_value():
        raise BusinessLogicError('La cantidad debe ser un número entero')
    if value <= 0:
        raise BusinessLogicError('La cantidad debe ser mayor a 0')
    return int(value)


def _parse_discount(discount_type, value, max_percentage=Decimal('100')):
    """Validate a (type, value) discount pair. Returns (type, Decimal value)."""
    if discount_type not in pricing_service.DISCOUNT_TYPES:
        raise BusinessLogicError('Tipo de descuento inválido (percentage | fixed)')
    try:
        value = Decimal(str(value))
    except (InvalidOperation, TypeError):
        raise BusinessLogicError('Valor de descuento inválido')
    if value <= 0:
        raise BusinessLogicError('El descuento debe ser mayor a 0')
    if discount_type == pricing_service.PERCENTAGE and value > max_percentage:
        raise BusinessLogicError('El porcentaje de descuento no puede superar 100')
    return discount_type, value


def _check_stock(product: Product, qty: int) -> None:
    if not product.active:
        raise BusinessLogicError(f'El producto "{product.name}" no está activo')
    if qty > product.stock:
        raise InsufficientStockError([{
            'product_id': product.id,
            'name': product.name,
            'requested': qty,
            'available': product.stock,
        }])


# =====================================================
# ITEMS
# =====================================================

def add_item(cart: Dict[str, Any], product: Product, qty=1) -> Dict[str, Any]:
    """Add ``qty`` units of a product, merging with an existing line."""
    qty = parse_qty(qty)
    items = cart['items']
    key = str(product.id)
    new_qty = items.get(key, {}).get('qty', 0) + qty

    _check_stock(product, new_qty)

    line = items.get(key) or {'qty': 0, 'discount_type': None, 'discount_value': None}
    line['qty'] = new_qty
    items[key] = line
    return line


def update_item(
    cart: Dict[str, Any],
    product: Product,
    qty=None,
    discount_type: Optional[str] = None,
    discount_value=None
) -> Dict[str, Any]:
    """Change quantity and/or per-line discount. Passing no discount clears it."""
    key = str(product.id)
    if key not in cart['items']:
        raise BusinessLogicError('El producto no está en el carrito')

    line = dict(cart['items'][key])
    if qty is not None:
        line['qty'] = parse_qty(qty)
        _check_stock(product, line['qty'])

    if discount_type:
        discount_type, value = _parse_discount(discount_type, discount_value)
        line['discount_type'] = discount_type
        line['discount_value'] = str(value)
    else:
        line['discount_type'] = None
        line['discount_value'] = None

    cart['items'][key] = line
    return line


def remove_item(cart: Dict[str, Any], product_id: int) -> None:
    cart['items'].pop(str(product_id), None)


def clear_cart(cart: Dict[str, Any]) -> Dict[str, Any]:
    cart.clear()
    cart.update(new_cart())
    return cart


# =====================================================
# DISCOUNTS
# =====================================================

def apply_promo_code(session, cart: Dict[str, Any], code: str, now: Optional[datetime] = None) -> PromoCode:
    """
    Apply a promo code to the cart.

    Rejects (PromoCodeError) a code already applied (DUPLICATE), a code
    beyond ``MAX_PROMO_CODES`` (LIMIT_REACHED) and any code failing
    server-side validation against the current subtotal.
    """
    code = promo_service.normalize_code(code)
    applied = cart['promo_codes']
    max_codes = current_app.config.get('MAX_PROMO_CODES', 2)

    try:
        if code in applied:
            raise PromoCodeError(PromoCodeError.DUPLICATE, f'El código {code} ya fue aplicado', code)
        if len(applied) >= max_codes:
            raise PromoCodeError(
                PromoCodeError.LIMIT_REACHED,
                f'Máximo {max_codes} códigos promocionales por venta',
                code
            )

        totals = get_cart_totals(session, cart)
        promo = promo_service.validate_promo_code(session, code, totals['subtotal'], now)
    except PromoCodeError as e:
        logger.info(f"Promo code {code} rejected: {e.reason}")
        promo_code_rejected.send(code, reason=e.reason, message=e.message)
        raise

    applied.append(promo.code)
    promo_code_applied.send(promo.code, discount=promo_service.preview_discount(promo, totals['subtotal']))
    return promo


def remove_promo_code(cart: Dict[str, Any], code: str) -> None:
    code = promo_service.normalize_code(code)
    if code in cart['promo_codes']:
        cart['promo_codes'].remove(code)
    if cart.get('loyalty_code') == code:
        cart['loyalty_code'] = None


def set_manual_discount(cart: Dict[str, Any], discount_type: str, value, reason: Optional[str] = None) -> Dict[str, Any]:
    """Set the single manual discount, replacing any previous one."""
    discount_type, value = _parse_discount(discount_type, value)
    cart['manual_discount'] = {
        'type': discount_type,
        'value': str(value),
        'reason': (reason or '').strip() or None,
    }
    return cart['manual_discount']


def clear_manual_discount(cart: Dict[str, Any]) -> None:
    cart['manual_discount'] = None


# =====================================================
# CUSTOMER
# =====================================================

def attach_customer(session, cart: Dict[str, Any], customer_id: int, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Attach a customer to the sale.

    A customer with a loyalty card triggers the loyalty promo code once.
    Failure to apply it does not fail the selection; the reason is
    returned in ``loyalty_error``.
    """
    customer = customer_service.get_customer(session, customer_id)
    cart['customer_id'] = customer.id

    result = {'customer': customer, 'loyalty_applied': False, 'loyalty_error': None}
    loyalty_code = promo_service.normalize_code(current_app.config.get('LOYALTY_PROMO_CODE'))

    if not loyalty_code or not (customer.loyalty_card or '').strip():
        return result
    if loyalty_code in cart['promo_codes']:
        return result

    try:
        apply_promo_code(session, cart, loyalty_code, now)
    except PromoCodeError as e:
        logger.info(f"Loyalty code {loyalty_code} not applied for customer {customer.id}: {e.reason}")
        result['loyalty_error'] = e.to_dict()
        return result

    cart['loyalty_code'] = loyalty_code
    result['loyalty_applied'] = True
    return result


def detach_customer(cart: Dict[str, Any]) -> None:
    """Remove the customer and the loyalty code it brought in."""
    if cart.get('loyalty_code'):
        remove_promo_code(cart, cart['loyalty_code'])
    cart['customer_id'] = None
    cart['loyalty_code'] = None


# =====================================================
# TOTALS
# =====================================================

def build_cart_lines(cart: Dict[str, Any], products: Dict[int, Product]) -> List[Dict[str, Any]]:
    """Pricing input lines using the products' current prices."""
    lines = []
    for pid_str, item in cart['items'].items():
        product = products.get(int(pid_str))
        if product is None:
            continue
        lines.append({
            'product_id': product.id,
            'name': product.name,
            'price': product.price,
            'qty': int(item['qty']),
            'discount_type': item.get('discount_type'),
            'discount_value': item.get('discount_value'),
            'tax_rate': tax_service.product_tax_rate(product),
        })
    return lines


def price_cart(session, cart: Dict[str, Any], products: Dict[int, Product], promo_codes: List[PromoCode]) -> Dict[str, Any]:
    """Run the pricing calculator with the configured tax and line discount cap."""
    return pricing_service.calculate_totals(
        build_cart_lines(cart, products),
        promo_codes,
        cart.get('manual_discount'),
        tax_rate=tax_service.resolve_tax_rate(session),
        line_discount_max_ratio=current_app.config.get('LINE_DISCOUNT_MAX_RATIO', Decimal('0.50'))
    )


def get_cart_totals(session, cart: Dict[str, Any]) -> Dict[str, Any]:
    """Price the cart for display. Unknown products and codes are ignored."""
    products = get_products_map(session, [int(pid) for pid in cart['items'].keys()])
    promo_codes = []
    for code in cart['promo_codes']:
        promo = promo_service.get_promo_code_by_code(session, code)
        if promo is not None:
            promo_codes.append(promo)
    return price_cart(session, cart, products, promo_codes)
