"""Models package - exports all SQLAlchemy models."""
from pos.models.tax_rate import TaxRate
from pos.models.product import Product
from pos.models.customer import Customer
from pos.models.promo_code import PromoCode, PromoCodeType
from pos.models.sale import Sale, SaleStatus, PaymentMethod, normalize_payment_method
from pos.models.sale_item import SaleItem
from pos.models.stock_move import (
    StockMove, StockMoveType, StockReferenceType, AdjustmentType, AdjustmentReason
)

__all__ = [
    'TaxRate', 'Product', 'Customer',
    'PromoCode', 'PromoCodeType',
    'Sale', 'SaleStatus', 'PaymentMethod', 'normalize_payment_method',
    'SaleItem',
    'StockMove', 'StockMoveType', 'StockReferenceType', 'AdjustmentType', 'AdjustmentReason',
]
