"""Tax rate lookup and management."""
import logging
from decimal import Decimal, InvalidOperation
from typing import Optional
from flask import current_app
from pos.models import TaxRate
from pos.exceptions import BusinessLogicError

logger = logging.getLogger(__name__)


def product_tax_rate(product) -> Optional[Decimal]:
    """The product's own active rate, or None to use the store default."""
    tax_rate = product.tax_rate
    if tax_rate is not None and tax_rate.active:
        return tax_rate.fraction
    return None


def resolve_tax_rate(session) -> Decimal:
    """
    Tax multiplier applied at checkout.

    Uses the default active TaxRate row when one exists, otherwise the
    configured ``TAX_RATE`` fallback.
    """
    default_rate = session.query(TaxRate).filter(
        TaxRate.is_default == True,
        TaxRate.active == True
    ).first()

    if default_rate:
        return default_rate.fraction
    return Decimal(str(current_app.config.get('TAX_RATE', Decimal('0.20'))))


def list_tax_rates(session):
    """Default first, then by name."""
    return session.query(TaxRate).order_by(TaxRate.is_default.desc(), TaxRate.name).all()


def create_tax_rate(session, name: str, rate, is_default: bool = False, description: str = None) -> TaxRate:
    """Create a tax rate; a new default unsets the previous one."""
    if not name:
        raise BusinessLogicError('El nombre y la tasa son requeridos')
    try:
        rate = Decimal(str(rate))
    except (InvalidOperation, TypeError):
        raise BusinessLogicError('Tasa de impuesto inválida')
    if rate < 0 or rate > 100:
        raise BusinessLogicError('La tasa debe estar entre 0 y 100')

    try:
        if is_default:
            session.query(TaxRate).filter(TaxRate.is_default == True).update({'is_default': False})

        tax_rate = TaxRate(name=name, rate=rate, is_default=bool(is_default), description=description)
        session.add(tax_rate)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Tax rate created: {name} ({rate}%) default={is_default}")
    return tax_rate
