"""
Sales service with transactional logic.
Handles sale commit, cancellation, returns and stock movements.

Every stock mutation runs inside one database transaction: the product
rows are locked (SELECT ... FOR UPDATE) and each decrement is a
conditional UPDATE that only succeeds while enough stock remains, so two
checkouts racing for the last unit cannot both succeed.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Dict, Optional, Any, Tuple

from flask import current_app
from sqlalchemy import update

from pos.models import (
    Product, Customer, Sale, SaleItem, SaleStatus, StockMove,
    StockMoveType, StockReferenceType, normalize_payment_method
)
from pos.exceptions import BusinessLogicError, NotFoundError, InsufficientStockError, SaleCommitError
from pos.services import cart_service, promo_service
from pos.services.cache_service import invalidate_dashboard_cache
from pos.services.pricing_service import to_money, ZERO
from pos.signals import sale_committed, sale_cancelled, sale_returned

logger = logging.getLogger(__name__)


def commit_sale(session, cart: dict, payment_method: str, notes: Optional[str] = None,
                now: Optional[datetime] = None) -> int:
    """
    Persist a sale from a finalized cart.

    All-or-nothing: on any failure no Sale, no SaleItem and no stock
    change persist.

    Args:
        session: SQLAlchemy session
        cart: Cart dict (see cart_service)
        payment_method: One of PaymentMethod (case-insensitive)
        notes: Optional free text
        now: Reference time for the sale and promo validity

    Returns:
        New sale id

    Raises:
        BusinessLogicError: empty cart, bad quantity, invalid payment method
        NotFoundError: unknown product or customer
        InsufficientStockError: lists every product short of stock
        PromoCodeError: an applied code is no longer usable
        SaleCommitError: unexpected database failure
    """
    cart = cart_service.normalize_cart(cart)
    if not cart['items']:
        raise BusinessLogicError('El carrito está vacío')

    try:
        method = normalize_payment_method(payment_method)
    except ValueError:
        raise BusinessLogicError(f'Método de pago inválido: {payment_method}')

    quantities = {int(pid): cart_service.parse_qty(item['qty']) for pid, item in cart['items'].items()}
    now = now or datetime.now()

    try:
        # 1. Lock products and validate
        products = _lock_products(session, list(quantities.keys()))
        missing = [pid for pid in quantities if pid not in products]
        if missing:
            raise NotFoundError(f'Producto(s) no encontrado(s): {", ".join(str(pid) for pid in missing)}')
        for product in products.values():
            if not product.active:
                raise BusinessLogicError(f'El producto "{product.name}" no está activo')

        shortages = [
            _shortage(products[pid], qty)
            for pid, qty in quantities.items()
            if products[pid].stock < qty
        ]
        if shortages:
            raise InsufficientStockError(shortages)

        customer_id = cart.get('customer_id')
        if customer_id and not session.query(Customer.id).filter(Customer.id == customer_id).first():
            raise NotFoundError('Cliente no encontrado')

        # 2. Re-validate promo codes and price server side
        promos = [
            promo_service.check_promo_code(promo_service.get_promo_code_by_code(session, code), code, now)
            for code in cart['promo_codes']
        ]
        totals = cart_service.price_cart(session, cart, products, promos)
        applied_codes = [a['code'] for a in totals['applied_promos']]

        # 3. Create Sale
        sale = Sale(
            customer_id=customer_id,
            datetime=now,
            total_amount=totals['subtotal'],
            discount_amount=totals['discount_total'],
            tax_amount=totals['tax'],
            final_amount=totals['total'],
            payment_method=method.value,
            status=SaleStatus.COMPLETED,
            promo_codes=','.join(applied_codes) or None,
            notes=notes
        )
        session.add(sale)
        session.flush()

        # 4. Items, compare-and-decrement stock, movements
        for line in totals['lines']:
            product = products[line['product_id']]
            session.add(SaleItem(
                sale_id=sale.id,
                product_id=product.id,
                quantity=line['qty'],
                unit_price=line['unit_price'],
                discount=line['unit_discount'],
                line_total=line['line_total']
            ))
            previous_qty, new_qty = _decrement_stock(session, product, line['qty'])
            session.add(StockMove(
                product_id=product.id,
                date=now,
                type=StockMoveType.OUT,
                reference_type=StockReferenceType.SALE,
                reference_id=sale.id,
                qty=-line['qty'],
                previous_qty=previous_qty,
                new_qty=new_qty,
                reason='SALE',
                notes=f'Venta #{sale.id}'
            ))

        # 5. Promo usage
        for promo in promos:
            if promo.code in applied_codes:
                promo_service.consume_promo_code(session, promo)

        session.commit()

    except (BusinessLogicError, NotFoundError) as e:
        session.rollback()
        logger.info(f"Sale rejected: {e.message}")
        raise
    except Exception as e:
        session.rollback()
        logger.exception(f"Error committing sale: {e}")
        raise SaleCommitError() from e

    logger.info(
        f"Sale #{sale.id} committed: subtotal={totals['subtotal']} discount={totals['discount_total']} "
        f"tax={totals['tax']} final={totals['total']} method={method.value}"
    )
    invalidate_dashboard_cache()
    sale_committed.send(sale, totals=totals)
    return sale.id


def get_sale(session, sale_id: int) -> Sale:
    sale = session.query(Sale).filter(Sale.id == sale_id).first()
    if not sale:
        raise NotFoundError('Venta no encontrada')
    return sale


def list_sales(
    session,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    customer_id: Optional[int] = None,
    limit: int = 100
) -> List[Sale]:
    """Sales newest first, filtered by date range [start, end) and customer."""
    query = session.query(Sale)
    if start:
        query = query.filter(Sale.datetime >= start)
    if end:
        query = query.filter(Sale.datetime < end)
    if customer_id:
        query = query.filter(Sale.customer_id == customer_id)
    return query.order_by(Sale.datetime.desc(), Sale.id.desc()).limit(limit).all()


def update_sale(session, sale_id: int, notes: Optional[str] = None, payment_method: Optional[str] = None) -> Sale:
    """Post-hoc edit of notes and payment method. Amounts are immutable."""
    sale = get_sale(session, sale_id)
    if payment_method is not None:
        try:
            sale.payment_method = normalize_payment_method(payment_method).value
        except ValueError:
            raise BusinessLogicError(f'Método de pago inválido: {payment_method}')
    if notes is not None:
        sale.notes = notes
    session.commit()
    return sale


def cancel_sale(session, sale_id: int, now: Optional[datetime] = None) -> Sale:
    """
    Cancel a completed sale within the cancellation window.

    Restores the stock of every unit not already returned and marks the
    sale CANCELLED, in a single transaction.
    """
    now = now or datetime.now()
    window = timedelta(hours=current_app.config.get('SALE_CANCEL_WINDOW_HOURS', 24))

    try:
        sale = _lock_sale(session, sale_id)
        if sale.status != SaleStatus.COMPLETED:
            raise BusinessLogicError(f'Solo se pueden anular ventas completadas. Estado actual: {sale.status.value}')
        if now - sale.datetime > window:
            raise BusinessLogicError(f'La venta no puede anularse después de {window.total_seconds() / 3600:g} horas')

        products = _lock_products(session, [item.product_id for item in sale.items])
        for item in sale.items:
            qty = item.returnable_quantity
            if qty <= 0:
                continue
            previous_qty, new_qty = _increment_stock(session, products[item.product_id], qty)
            session.add(StockMove(
                product_id=item.product_id,
                date=now,
                type=StockMoveType.IN,
                reference_type=StockReferenceType.SALE_CANCEL,
                reference_id=sale.id,
                qty=qty,
                previous_qty=previous_qty,
                new_qty=new_qty,
                reason='SALE_CANCEL',
                notes=f'Anulación de venta #{sale.id}'
            ))

        sale.status = SaleStatus.CANCELLED
        sale.notes = _append_note(sale.notes, f'[VENTA ANULADA - {now:%d/%m/%Y %H:%M}]')
        session.commit()

    except Exception:
        session.rollback()
        raise

    logger.info(f"Sale #{sale_id} cancelled")
    invalidate_dashboard_cache()
    sale_cancelled.send(sale)
    return sale


def process_return(session, sale_id: int, items: List[Dict[str, Any]], reason: str,
                   now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Return part of a completed sale.

    Args:
        items: list of ``{'item_id': int, 'quantity': int}``
        reason: required free text

    Returns:
        ``{'success': True, 'total_return_amount': Decimal, 'returned_items': int}``
    """
    if not items:
        raise BusinessLogicError('No se especificaron artículos para la devolución')
    if not (reason or '').strip():
        raise BusinessLogicError('El motivo de la devolución es requerido')

    requested: Dict[int, int] = {}
    for entry in items:
        try:
            item_id = int(entry['item_id'])
        except (KeyError, TypeError, ValueError):
            raise BusinessLogicError('Artículo de devolución inválido')
        requested[item_id] = requested.get(item_id, 0) + cart_service.parse_qty(entry.get('quantity'))

    now = now or datetime.now()
    currency = current_app.config.get('CURRENCY', '')

    try:
        sale = _lock_sale(session, sale_id)
        if sale.status != SaleStatus.COMPLETED:
            raise BusinessLogicError('Solo se pueden devolver artículos de ventas completadas')

        sale_items = {item.id: item for item in sale.items}
        for item_id, qty in requested.items():
            item = sale_items.get(item_id)
            if item is None:
                raise NotFoundError(f'Artículo {item_id} no pertenece a la venta #{sale.id}')
            if qty > item.returnable_quantity:
                raise BusinessLogicError(
                    f'La cantidad devuelta supera la cantidad vendida para "{item.product.name}" '
                    f'(disponible para devolver: {item.returnable_quantity})'
                )

        products = _lock_products(session, [sale_items[item_id].product_id for item_id in requested])
        total_return = ZERO
        summary = []

        for item_id, qty in requested.items():
            item = sale_items[item_id]
            previous_qty, new_qty = _increment_stock(session, products[item.product_id], qty)
            item.returned_quantity = (item.returned_quantity or 0) + qty
            total_return += to_money((item.unit_price - item.discount) * qty)
            summary.append(f'{item.product.name} ({qty})')
            session.add(StockMove(
                product_id=item.product_id,
                date=now,
                type=StockMoveType.IN,
                reference_type=StockReferenceType.RETURN,
                reference_id=sale.id,
                qty=qty,
                previous_qty=previous_qty,
                new_qty=new_qty,
                reason='RETURN',
                notes=f'Devolución: {reason}'
            ))

        sale.notes = _append_note(
            sale.notes,
            f'[DEVOLUCIÓN - {now:%d/%m/%Y %H:%M}]\nMotivo: {reason}\n'
            f'Artículos devueltos: {", ".join(summary)}\nMonto devuelto: {currency} {total_return}'
        )
        session.commit()

    except Exception:
        session.rollback()
        raise

    logger.info(f"Return on sale #{sale_id}: {len(requested)} item(s), amount={total_return}")
    invalidate_dashboard_cache()
    sale_returned.send(sale, amount=total_return)
    return {
        'success': True,
        'total_return_amount': total_return,
        'returned_items': len(requested),
    }


# =====================================================
# PRIVATE HELPERS
# =====================================================

def _lock_products(session, product_ids: List[int]) -> Dict[int, Product]:
    """Lock product rows FOR UPDATE (in id order) and return fresh copies."""
    if not product_ids:
        return {}
    products = session.query(Product).filter(
        Product.id.in_(set(product_ids))
    ).order_by(Product.id).with_for_update().populate_existing().all()
    return {p.id: p for p in products}


def _lock_sale(session, sale_id: int) -> Sale:
    sale = session.query(Sale).filter(Sale.id == sale_id).with_for_update().populate_existing().first()
    if not sale:
        raise NotFoundError('Venta no encontrada')
    return sale


def _shortage(product: Product, requested: int) -> Dict[str, Any]:
    return {
        'product_id': product.id,
        'name': product.name,
        'requested': requested,
        'available': product.stock,
    }


def _decrement_stock(session, product: Product, qty: int) -> Tuple[int, int]:
    """
    Compare-and-decrement: ``stock = stock - qty WHERE stock >= qty``.

    Returns (previous, new). Raises InsufficientStockError when the row
    no longer holds enough stock.
    """
    result = session.execute(
        update(Product)
        .where(Product.id == product.id, Product.stock >= qty)
        .values(stock=Product.stock - qty)
        .execution_options(synchronize_session=False)
    )
    session.refresh(product, ['stock'])
    if result.rowcount != 1:
        raise InsufficientStockError([_shortage(product, qty)])
    return product.stock + qty, product.stock


def _increment_stock(session, product: Product, qty: int) -> Tuple[int, int]:
    session.execute(
        update(Product)
        .where(Product.id == product.id)
        .values(stock=Product.stock + qty)
        .execution_options(synchronize_session=False)
    )
    session.refresh(product, ['stock'])
    return product.stock - qty, product.stock


def _append_note(notes: Optional[str], text: str) -> str:
    return f'{notes}\n\n{text}' if notes else text
