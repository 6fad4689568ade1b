"""Product directory: lookups by id or barcode, search and creation."""
import logging
from decimal import Decimal, InvalidOperation
from typing import Optional, List, Dict, Any

from sqlalchemy import or_, and_, func
from sqlalchemy.exc import IntegrityError

from pos.models import Product, TaxRate
from pos.exceptions import BusinessLogicError, NotFoundError

logger = logging.getLogger(__name__)


def get_product(session, product_id: int) -> Product:
    product = session.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise NotFoundError('Producto no encontrado')
    return product


def get_product_by_barcode(session, barcode: str) -> Product:
    """Exact, case-insensitive barcode match among active products."""
    barcode = (barcode or '').strip()
    product = None
    if barcode:
        product = session.query(Product).filter(
            Product.active == True,
            Product.barcode.isnot(None),
            func.lower(Product.barcode) == barcode.lower()
        ).first()
    if not product:
        raise NotFoundError(f'Ningún producto con el código de barras "{barcode}"')
    return product


def search_products(session, search_query: str = '', limit: int = 20) -> List[Product]:
    """Active products whose name, SKU or barcode contains the query."""
    query = session.query(Product).filter(Product.active == True)

    if search_query:
        term = f'%{search_query[:100].lower()}%'
        query = query.filter(or_(
            func.lower(Product.name).like(term),
            and_(Product.sku.isnot(None), func.lower(Product.sku).like(term)),
            and_(Product.barcode.isnot(None), func.lower(Product.barcode).like(term))
        ))

    return query.order_by(Product.name).limit(limit).all()


def create_product(session, data: Dict[str, Any]) -> Product:
    """Create a product. Initial stock defaults to 0 and may not be negative."""
    name = (data.get('name') or '').strip()
    if not name:
        raise BusinessLogicError('El nombre del producto es obligatorio')

    try:
        price = Decimal(str(data.get('price')))
        cost = Decimal(str(data.get('cost') or 0))
        stock = int(data.get('stock') or 0)
        min_stock = int(data.get('min_stock') or 0)
    except (InvalidOperation, ValueError, TypeError):
        raise BusinessLogicError('Precio o stock inválido')

    if price < 0 or cost < 0:
        raise BusinessLogicError('El precio no puede ser negativo')
    if stock < 0 or min_stock < 0:
        raise BusinessLogicError('El stock no puede ser negativo')

    tax_rate_id = data.get('tax_rate_id')
    if tax_rate_id is not None and session.get(TaxRate, tax_rate_id) is None:
        raise NotFoundError('Tasa de impuesto no encontrada')

    product = Product(
        name=name,
        sku=(data.get('sku') or '').strip() or None,
        barcode=(data.get('barcode') or '').strip() or None,
        price=price,
        cost=cost,
        stock=stock,
        min_stock=min_stock,
        tax_rate_id=tax_rate_id,
        active=True
    )

    try:
        session.add(product)
        session.commit()
    except IntegrityError:
        session.rollback()
        raise BusinessLogicError('Ya existe un producto con ese SKU o código de barras')
    except Exception:
        session.rollback()
        raise

    logger.info(f"Product created: {product.id} '{product.name}' stock={product.stock}")
    return product


def get_products_map(session, product_ids: List[int]) -> Dict[int, Product]:
    if not product_ids:
        return {}
    products = session.query(Product).filter(Product.id.in_(product_ids)).all()
    return {p.id: p for p in products}


def find_product(session, product_id: Optional[int] = None, barcode: Optional[str] = None) -> Product:
    """Lookup by id, falling back to barcode (scanner input)."""
    if product_id:
        return get_product(session, product_id)
    if barcode:
        return get_product_by_barcode(session, barcode)
    raise BusinessLogicError('Se requiere product_id o barcode')
