"""
Inventory service: manual stock adjustments and movement history.

Adjustments lock the product row, apply the operation and record an
ADJUST stock move in the same transaction.
"""
import logging
from datetime import datetime
from typing import List, Dict, Any, Optional

from flask import current_app

from pos.models import Product, StockMove, StockMoveType, StockReferenceType, AdjustmentType, AdjustmentReason
from pos.exceptions import BusinessLogicError, NotFoundError
from pos.services.cache_service import invalidate_dashboard_cache
from pos.signals import stock_adjusted

logger = logging.getLogger(__name__)


def _parse_adjustment(adjustment_type, quantity, reason):
    try:
        adjustment_type = AdjustmentType(str(adjustment_type).lower())
    except ValueError:
        raise BusinessLogicError('Tipo de ajuste inválido (add | remove | set)')

    try:
        reason = AdjustmentReason(str(reason).upper())
    except ValueError:
        raise BusinessLogicError(f'Motivo de ajuste inválido: {reason}')

    try:
        quantity = int(quantity)
    except (TypeError, ValueError):
        raise BusinessLogicError('Cantidad inválida')

    if quantity < 0:
        raise BusinessLogicError('La cantidad no puede ser negativa')
    if adjustment_type != AdjustmentType.SET and quantity == 0:
        raise BusinessLogicError('La cantidad debe ser mayor a 0')

    return adjustment_type, quantity, reason


def adjust_stock(
    session,
    product_id: int,
    adjustment_type: str,
    quantity,
    reason: str,
    notes: Optional[str] = None
) -> Dict[str, Any]:
    """
    Apply a manual stock adjustment.

    ``add`` increases stock, ``remove`` decreases it and floors at zero,
    ``set`` replaces it with ``quantity``.

    Returns:
        dict with product_id, previous_stock, new_stock and difference
    """
    adjustment_type, quantity, reason = _parse_adjustment(adjustment_type, quantity, reason)

    try:
        product = session.query(Product).filter(
            Product.id == product_id
        ).with_for_update().populate_existing().first()
        if not product:
            raise NotFoundError('Producto no encontrado')

        previous = product.stock
        if adjustment_type == AdjustmentType.ADD:
            new_stock = previous + quantity
        elif adjustment_type == AdjustmentType.REMOVE:
            new_stock = max(0, previous - quantity)
        else:
            new_stock = quantity

        product.stock = new_stock
        session.add(StockMove(
            product_id=product.id,
            date=datetime.now(),
            type=StockMoveType.ADJUST,
            reference_type=StockReferenceType.MANUAL,
            qty=new_stock - previous,
            previous_qty=previous,
            new_qty=new_stock,
            reason=reason.value,
            notes=notes
        ))
        session.commit()

    except Exception:
        session.rollback()
        raise

    logger.info(
        f"Stock adjusted for product {product_id}: {adjustment_type.value} {quantity} "
        f"({reason.value}) {previous} -> {new_stock}"
    )
    invalidate_dashboard_cache()
    stock_adjusted.send(product, previous=previous, new=new_stock, reason=reason.value)

    return {
        'product_id': product_id,
        'previous_stock': previous,
        'new_stock': new_stock,
        'difference': new_stock - previous,
    }


def bulk_adjust_stock(session, adjustments: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Apply several adjustments, each in its own transaction.

    A failing entry does not stop the others; its result carries
    ``success: False`` and the error message.
    """
    results = []
    for entry in adjustments:
        product_id = entry.get('product_id')
        try:
            outcome = adjust_stock(
                session,
                product_id,
                entry.get('adjustment_type') or entry.get('type'),
                entry.get('quantity'),
                entry.get('reason'),
                entry.get('notes')
            )
            results.append({'success': True, **outcome})
        except (BusinessLogicError, NotFoundError) as e:
            results.append({'success': False, 'product_id': product_id, 'error': e.message})
    return results


def list_stock_moves(session, product_id: Optional[int] = None, limit: int = 100) -> List[StockMove]:
    query = session.query(StockMove)
    if product_id:
        query = query.filter(StockMove.product_id == product_id)
    return query.order_by(StockMove.date.desc(), StockMove.id.desc()).limit(limit).all()


def get_low_stock_products(session, threshold: Optional[int] = None) -> List[Product]:
    """
    Active products at or below their minimum stock, or at or below
    ``threshold`` (defaults to LOW_STOCK_THRESHOLD). Most critical first.
    """
    query = session.query(Product).filter(Product.active == True)
    if threshold is None:
        threshold = current_app.config.get('LOW_STOCK_THRESHOLD')
    if threshold is not None:
        query = query.filter((Product.stock <= Product.min_stock) | (Product.stock <= int(threshold)))
    else:
        query = query.filter(Product.stock <= Product.min_stock)
    return query.order_by(Product.stock.asc(), Product.name).all()
