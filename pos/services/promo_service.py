"""
Promo code registry and server-side validation.

Validation rejects with a PromoCodeError whose ``reason`` tells the
caller why (unknown, inactive, outside its validity window, usage cap
reached, subtotal below minimum). Usage is consumed at sale commit with a
conditional increment so concurrent checkouts cannot exceed ``max_uses``.
"""
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional, Dict, Any, List

from sqlalchemy import update, or_
from sqlalchemy.exc import IntegrityError

from pos.models import PromoCode, PromoCodeType
from pos.exceptions import BusinessLogicError, NotFoundError, PromoCodeError
from pos.services.pricing_service import to_money, HUNDRED

logger = logging.getLogger(__name__)


def normalize_code(code: Optional[str]) -> str:
    return (code or '').strip().upper()


def get_promo_code_by_code(session, code: str) -> Optional[PromoCode]:
    return session.query(PromoCode).filter(PromoCode.code == normalize_code(code)).first()


def check_promo_code(promo: Optional[PromoCode], code: str, now: Optional[datetime] = None) -> PromoCode:
    """Availability checks that do not depend on the cart amount."""
    now = now or datetime.now()

    if promo is None:
        raise PromoCodeError(PromoCodeError.NOT_FOUND, 'Código promocional inválido', code)
    if not promo.active:
        raise PromoCodeError(PromoCodeError.INACTIVE, 'Código promocional inactivo', promo.code)
    if not promo.is_started(now):
        raise PromoCodeError(PromoCodeError.NOT_YET_VALID, 'El código promocional aún no es válido', promo.code)
    if promo.is_expired(now):
        raise PromoCodeError(PromoCodeError.EXPIRED, 'Código promocional expirado', promo.code)
    if promo.usage_exhausted():
        raise PromoCodeError(PromoCodeError.USAGE_LIMIT, 'Límite de uso del código promocional alcanzado', promo.code)
    return promo


def validate_promo_code(session, code: str, amount, now: Optional[datetime] = None) -> PromoCode:
    """
    Validate a promo code against a cart amount.

    Args:
        session: SQLAlchemy session
        code: Code as typed by the cashier (case-insensitive)
        amount: Current cart subtotal
        now: Reference time (defaults to now)

    Returns:
        The PromoCode

    Raises:
        PromoCodeError: with the rejection reason
    """
    code = normalize_code(code)
    if not code:
        raise BusinessLogicError('El código promocional es requerido')

    promo = check_promo_code(get_promo_code_by_code(session, code), code, now)

    if to_money(amount) < to_money(promo.min_amount):
        raise PromoCodeError(
            PromoCodeError.BELOW_MINIMUM,
            f'Monto mínimo requerido: {to_money(promo.min_amount)}',
            promo.code,
            payload={'min_amount': str(to_money(promo.min_amount))}
        )
    return promo


def preview_discount(promo: PromoCode, amount) -> Decimal:
    """Discount a single promo would grant on ``amount``."""
    amount = to_money(amount)
    if PromoCodeType(promo.type) == PromoCodeType.PERCENTAGE:
        return to_money(amount * Decimal(str(promo.value)) / HUNDRED)
    return min(to_money(promo.value), amount)


def consume_promo_code(session, promo: PromoCode) -> None:
    """
    Increment ``used_count`` only while under ``max_uses``.

    Must run inside the sale commit transaction; raises PromoCodeError
    (USAGE_LIMIT) when the cap was reached by a concurrent sale.
    """
    result = session.execute(
        update(PromoCode)
        .where(
            PromoCode.id == promo.id,
            or_(PromoCode.max_uses.is_(None), PromoCode.used_count < PromoCode.max_uses)
        )
        .values(used_count=PromoCode.used_count + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise PromoCodeError(PromoCodeError.USAGE_LIMIT, 'Límite de uso del código promocional alcanzado', promo.code)


def _parse_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('true', '1', 'yes', 'on')
    return bool(value)


def _parse_promo_data(data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    """Validate and coerce promo code fields from a request payload."""
    parsed = {}

    if 'code' in data or not partial:
        code = normalize_code(data.get('code'))
        if not code:
            raise BusinessLogicError('El código es requerido')
        parsed['code'] = code

    if 'type' in data or not partial:
        try:
            parsed['type'] = PromoCodeType(str(data.get('type', '')).lower())
        except ValueError:
            raise BusinessLogicError('Tipo de código inválido (percentage | fixed)')

    try:
        for field in ('value', 'min_amount'):
            if field in data and data[field] is not None:
                parsed[field] = Decimal(str(data[field]))
        if 'max_uses' in data:
            parsed['max_uses'] = int(data['max_uses']) if data['max_uses'] not in (None, '') else None
    except (InvalidOperation, ValueError, TypeError):
        raise BusinessLogicError('Valores numéricos inválidos')

    if not partial and 'value' not in parsed:
        raise BusinessLogicError('El valor es requerido')
    if 'value' in parsed and parsed['value'] <= 0:
        raise BusinessLogicError('El valor debe ser mayor a 0')
    promo_type = parsed.get('type')
    if promo_type == PromoCodeType.PERCENTAGE and parsed.get('value', 0) > 100:
        raise BusinessLogicError('El porcentaje no puede superar 100')
    if parsed.get('min_amount') is not None and parsed['min_amount'] < 0:
        raise BusinessLogicError('El monto mínimo no puede ser negativo')

    for field in ('valid_from', 'valid_until'):
        if field in data:
            value = data[field]
            if isinstance(value, str) and value:
                try:
                    value = datetime.fromisoformat(value)
                except ValueError:
                    raise BusinessLogicError(f'Fecha inválida: {field}')
            parsed[field] = value or None

    if 'description' in data:
        parsed['description'] = data['description']
    if 'active' in data:
        parsed['active'] = _parse_bool(data['active'])

    return parsed


def create_promo_code(session, data: Dict[str, Any]) -> PromoCode:
    """Create a promo code. Codes are stored upper-case and unique."""
    fields = _parse_promo_data(data)
    fields.setdefault('min_amount', Decimal('0'))

    try:
        promo = PromoCode(**fields)
        session.add(promo)
        session.commit()
    except IntegrityError:
        session.rollback()
        raise BusinessLogicError(f"Ya existe un código '{fields['code']}'")
    except Exception:
        session.rollback()
        raise

    logger.info(f"Promo code created: {promo.code}")
    return promo


def update_promo_code(session, promo_id: int, data: Dict[str, Any]) -> PromoCode:
    promo = session.query(PromoCode).filter(PromoCode.id == promo_id).first()
    if not promo:
        raise NotFoundError('Código promocional no encontrado')

    fields = _parse_promo_data(data, partial=True)
    promo_type = PromoCodeType(fields.get('type', promo.type))
    if promo_type == PromoCodeType.PERCENTAGE and fields.get('value', promo.value) > 100:
        raise BusinessLogicError('El porcentaje no puede superar 100')

    try:
        for key, value in fields.items():
            setattr(promo, key, value)
        session.commit()
    except IntegrityError:
        session.rollback()
        raise BusinessLogicError(f"Ya existe un código '{fields.get('code')}'")
    except Exception:
        session.rollback()
        raise
    return promo


def deactivate_promo_code(session, promo_id: int) -> None:
    """Soft delete: sold sales keep referencing the code by name."""
    promo = session.query(PromoCode).filter(PromoCode.id == promo_id).first()
    if not promo:
        raise NotFoundError('Código promocional no encontrado')
    promo.active = False
    session.commit()
    logger.info(f"Promo code deactivated: {promo.code}")


def list_promo_codes(session, include_expired: bool = False, now: Optional[datetime] = None) -> List[PromoCode]:
    """Active promo codes, optionally including expired ones."""
    now = now or datetime.now()
    query = session.query(PromoCode).filter(PromoCode.active == True)
    if not include_expired:
        query = query.filter(or_(PromoCode.valid_until.is_(None), PromoCode.valid_until >= now))
    return query.order_by(PromoCode.code).all()
