"""Sale model."""
from sqlalchemy import Column, BigInteger, String, Numeric, DateTime, Enum, ForeignKey, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pos.database import Base, BigIntegerPK
import enum


class SaleStatus(enum.Enum):
    """Sale status enum."""
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PaymentMethod(str, enum.Enum):
    """Accepted payment methods."""
    CASH = 'CASH'
    CARD = 'CARD'
    CHECK = 'CHECK'
    MOBILE_MONEY = 'MOBILE_MONEY'
    TRANSFER = 'TRANSFER'


def normalize_payment_method(method) -> PaymentMethod:
    """Map user input ('cash', 'Card', ...) to a PaymentMethod.

    Raises ValueError for unknown methods.
    """
    if isinstance(method, PaymentMethod):
        return method
    if not method:
        raise ValueError('Método de pago requerido')
    return PaymentMethod(str(method).strip().upper())


class Sale(Base):
    """Sale (venta confirmada).

    ``total_amount`` is the pre-discount subtotal; ``final_amount`` is what
    the customer paid after discounts and tax.
    """

    __tablename__ = 'sale'

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    customer_id = Column(BigInteger, ForeignKey('customer.id'), nullable=True)
    datetime = Column(DateTime, nullable=False, server_default=func.now())
    total_amount = Column(Numeric(10, 2), nullable=False)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(10, 2), nullable=False, default=0)
    final_amount = Column(Numeric(10, 2), nullable=False)
    payment_method = Column(String(20), nullable=False)
    status = Column(Enum(SaleStatus, name='sale_status'), nullable=False, default=SaleStatus.COMPLETED)
    promo_codes = Column(String(120), nullable=True)
    notes = Column(Text, nullable=True)

    # Relationships
    customer = relationship('Customer', back_populates='sales')
    items = relationship('SaleItem', back_populates='sale', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<Sale(id={self.id}, final_amount={self.final_amount}, status={self.status.value})>"

    def to_dict(self, include_items=True):
        data = {
            'id': self.id,
            'customer_id': self.customer_id,
            'customer': self.customer.name if self.customer else None,
            'datetime': self.datetime.isoformat() if self.datetime else None,
            'total_amount': str(self.total_amount),
            'discount_amount': str(self.discount_amount),
            'tax_amount': str(self.tax_amount),
            'final_amount': str(self.final_amount),
            'payment_method': self.payment_method,
            'status': self.status.value,
            'promo_codes': self.promo_codes.split(',') if self.promo_codes else [],
            'notes': self.notes,
        }
        if include_items:
            data['items'] = [item.to_dict() for item in self.items]
        return data
