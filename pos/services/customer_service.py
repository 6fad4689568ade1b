"""Customer directory: lookup, search and creation with loyalty cards."""
import logging
import re
from typing import Optional, List, Dict, Any

from flask import current_app
from sqlalchemy import or_, func
from sqlalchemy.exc import IntegrityError

from pos.models import Customer
from pos.exceptions import BusinessLogicError, NotFoundError

logger = logging.getLogger(__name__)


def get_customer(session, customer_id: int) -> Customer:
    customer = session.query(Customer).filter(Customer.id == customer_id).first()
    if not customer:
        raise NotFoundError('Cliente no encontrado')
    return customer


def find_customer(session, phone: Optional[str] = None, loyalty_card: Optional[str] = None) -> Optional[Customer]:
    """Find an existing customer by loyalty card first, then by phone."""
    if loyalty_card:
        customer = session.query(Customer).filter(Customer.loyalty_card == loyalty_card.strip().upper()).first()
        if customer:
            return customer
    if phone:
        return session.query(Customer).filter(Customer.phone == phone.strip()).first()
    return None


def search_customers(session, query_str: str, limit: int = 10) -> List[Customer]:
    """Search active customers by name, phone, email or loyalty card."""
    if not query_str:
        return []
    term = f'%{query_str.lower()}%'
    return session.query(Customer).filter(
        Customer.active == True,
        or_(
            func.lower(Customer.name).like(term),
            Customer.phone.like(f'%{query_str}%'),
            func.lower(Customer.email).like(term),
            func.lower(Customer.loyalty_card).like(term)
        )
    ).order_by(Customer.name).limit(limit).all()


def generate_next_loyalty_card(session) -> str:
    """
    Next loyalty card number: highest existing ``<PREFIX><n>`` + 1,
    zero padded to 3 digits (LOY001, LOY002, ...).
    """
    prefix = current_app.config.get('LOYALTY_CARD_PREFIX', 'LOY')
    pattern = re.compile(rf'^{re.escape(prefix)}(\d+)$')

    cards = session.query(Customer.loyalty_card).filter(
        Customer.loyalty_card.like(f'{prefix}%')
    ).all()

    highest = 0
    for (card,) in cards:
        match = pattern.match(card or '')
        if match:
            highest = max(highest, int(match.group(1)))

    return f'{prefix}{highest + 1:03d}'


def create_customer(session, data: Dict[str, Any]) -> Customer:
    """
    Create a customer. A loyalty card is generated when none is given.

    Raises:
        BusinessLogicError: missing name or loyalty card already taken
    """
    name = (data.get('name') or '').strip()
    if not name:
        raise BusinessLogicError('El nombre del cliente es obligatorio')

    requested_card = (data.get('loyalty_card') or '').strip().upper() or None
    fields = {
        'name': name,
        'phone': (data.get('phone') or '').strip() or None,
        'email': (data.get('email') or '').strip() or None,
        'address': (data.get('address') or '').strip() or None,
    }

    # One retry: two cashiers may generate the same next card number
    for attempt in range(2):
        card = requested_card or generate_next_loyalty_card(session)
        try:
            customer = Customer(loyalty_card=card, **fields)
            session.add(customer)
            session.commit()
            logger.info(f"Customer created: {customer.id} '{customer.name}' card={card}")
            return customer
        except IntegrityError:
            session.rollback()
            if requested_card:
                raise BusinessLogicError(f"La tarjeta de fidelidad '{requested_card}' ya está asignada")
            logger.warning(f"Loyalty card collision on {card}, retrying (attempt {attempt + 1})")

    raise BusinessLogicError('No se pudo generar una tarjeta de fidelidad')
