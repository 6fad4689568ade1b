"""
Checkout pricing calculator.

Pure computation, no database access: cart lines + applied promo codes +
manual discount + tax rate -> subtotal, discounts, tax and final total.

    taxable = subtotal - promo_discount - manual_discount
    tax     = taxable * tax_rate
    total   = taxable + tax

A line may carry its own ``tax_rate``; sale-level discounts are then spread
over the lines in proportion to their totals before each line is taxed.
When every line shares one rate this reduces to ``taxable * tax_rate``.

All amounts are Decimals quantized to cents and never negative.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Dict, Optional, Any, Iterable, Tuple

from pos.models import PromoCodeType

CENTS = Decimal('0.01')
ZERO = Decimal('0.00')
HUNDRED = Decimal('100')

PERCENTAGE = 'percentage'
FIXED = 'fixed'
DISCOUNT_TYPES = (PERCENTAGE, FIXED)


def to_money(value) -> Decimal:
    """Convert to Decimal and round half-up to cents."""
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def _clamp(value: Decimal, low: Decimal, high: Decimal) -> Decimal:
    return max(low, min(value, high))


def calculate_line(
    price,
    qty: int,
    discount_type: Optional[str] = None,
    discount_value=None,
    max_ratio: Decimal = Decimal('0.50')
) -> Dict[str, Decimal]:
    """Price a single cart line.

    The per-unit discount is a percentage of the unit price or a fixed
    amount, clamped to ``[0, price * max_ratio]``.
    """
    unit_price = to_money(price)
    unit_discount = ZERO

    if discount_type and discount_value is not None:
        value = Decimal(str(discount_value))
        if discount_type == PERCENTAGE:
            unit_discount = unit_price * value / HUNDRED
        elif discount_type == FIXED:
            unit_discount = value
        unit_discount = _clamp(to_money(unit_discount), ZERO, to_money(unit_price * max_ratio))

    unit_net = unit_price - unit_discount
    return {
        'unit_price': unit_price,
        'unit_discount': unit_discount,
        'unit_net_price': unit_net,
        'line_total': to_money(unit_net * qty),
    }


def calculate_promo_discount(subtotal: Decimal, promo_codes: Iterable[Any]) -> Tuple[Decimal, list, list]:
    """Accumulate promo discounts over the subtotal.

    A promo whose ``min_amount`` exceeds the subtotal is skipped, not an
    error. Returns ``(discount, applied, skipped)`` where ``applied`` is a
    list of ``{'code', 'amount'}`` and ``skipped`` a list of codes.
    """
    total = ZERO
    applied = []
    skipped = []

    for promo in promo_codes:
        min_amount = to_money(promo.min_amount)
        if subtotal < min_amount:
            skipped.append(promo.code)
            continue

        value = Decimal(str(promo.value))
        if PromoCodeType(promo.type) == PromoCodeType.PERCENTAGE:
            amount = to_money(subtotal * value / HUNDRED)
        else:
            amount = min(to_money(value), subtotal)

        total += amount
        applied.append({'code': promo.code, 'amount': amount})

    return min(total, subtotal), applied, skipped


def calculate_manual_discount(subtotal: Decimal, manual_discount: Optional[Dict[str, Any]], ceiling: Decimal) -> Decimal:
    """Manual discount on the subtotal, capped at ``ceiling``."""
    if not manual_discount:
        return ZERO

    value = Decimal(str(manual_discount.get('value') or 0))
    if manual_discount.get('type') == PERCENTAGE:
        amount = subtotal * value / HUNDRED
    else:
        amount = value

    return _clamp(to_money(amount), ZERO, max(ceiling, ZERO))


def calculate_tax(priced_lines: List[Dict[str, Any]], subtotal: Decimal, taxable: Decimal) -> Decimal:
    """Tax on ``taxable``, weighted by each line's share of the subtotal."""
    rates = {line['tax_rate'] for line in priced_lines}
    if len(rates) == 1:
        return to_money(taxable * rates.pop())
    if not priced_lines or subtotal <= ZERO:
        return ZERO

    weighted = sum((line['line_total'] * line['tax_rate'] for line in priced_lines), ZERO)
    return to_money(weighted * taxable / subtotal)


def calculate_totals(
    lines: List[Dict[str, Any]],
    promo_codes: Iterable[Any] = (),
    manual_discount: Optional[Dict[str, Any]] = None,
    tax_rate: Decimal = Decimal('0.20'),
    line_discount_max_ratio: Decimal = Decimal('0.50')
) -> Dict[str, Any]:
    """
    Compute checkout totals.

    Args:
        lines: dicts with ``product_id``, ``name``, ``price``, ``qty`` and
            optional ``discount_type`` / ``discount_value`` / ``tax_rate``
        promo_codes: objects exposing ``code``, ``type``, ``value``, ``min_amount``
        manual_discount: ``{'type': 'percentage'|'fixed', 'value': ...}`` or None
        tax_rate: default multiplier, e.g. ``Decimal('0.20')``, for lines
            without their own ``tax_rate``

    Returns:
        dict with ``lines``, ``subtotal``, ``promo_discount``,
        ``manual_discount``, ``discount_total``, ``taxable_amount``,
        ``tax_rate``, ``tax``, ``total``, ``applied_promos``, ``skipped_promos``
    """
    default_rate = Decimal(str(tax_rate))
    priced_lines = []
    subtotal = ZERO

    for line in lines:
        priced = calculate_line(
            line['price'],
            int(line['qty']),
            line.get('discount_type'),
            line.get('discount_value'),
            line_discount_max_ratio
        )
        priced_lines.append({
            'product_id': line.get('product_id'),
            'name': line.get('name'),
            'qty': int(line['qty']),
            'tax_rate': default_rate if line.get('tax_rate') is None else Decimal(str(line['tax_rate'])),
            **priced
        })
        subtotal += priced['line_total']

    subtotal = to_money(subtotal)
    promo_discount, applied, skipped = calculate_promo_discount(subtotal, promo_codes)
    manual = calculate_manual_discount(subtotal, manual_discount, subtotal - promo_discount)

    taxable = max(subtotal - promo_discount - manual, ZERO)
    tax = calculate_tax(priced_lines, subtotal, taxable)

    return {
        'lines': priced_lines,
        'subtotal': subtotal,
        'promo_discount': promo_discount,
        'manual_discount': manual,
        'discount_total': promo_discount + manual,
        'taxable_amount': taxable,
        'tax_rate': default_rate,
        'tax': tax,
        'total': taxable + tax,
        'applied_promos': applied,
        'skipped_promos': skipped,
    }
