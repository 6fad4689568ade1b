"""Sale Item model."""
from sqlalchemy import Column, BigInteger, Integer, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from pos.database import Base, BigIntegerPK


class SaleItem(Base):
    """Sale Item (detalle de venta). ``discount`` is per unit."""

    __tablename__ = 'sale_item'

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    sale_id = Column(BigInteger, ForeignKey('sale.id'), nullable=False, index=True)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    discount = Column(Numeric(10, 2), nullable=False, default=0)
    line_total = Column(Numeric(10, 2), nullable=False)
    returned_quantity = Column(Integer, nullable=False, default=0, server_default='0')

    # Relationships
    sale = relationship('Sale', back_populates='items')
    product = relationship('Product')

    @property
    def returnable_quantity(self) -> int:
        return self.quantity - (self.returned_quantity or 0)

    def __repr__(self):
        return f"<SaleItem(id={self.id}, product_id={self.product_id}, quantity={self.quantity})>"

    def to_dict(self):
        return {
            'id': self.id,
            'product_id': self.product_id,
            'product_name': self.product.name if self.product else None,
            'quantity': self.quantity,
            'unit_price': str(self.unit_price),
            'discount': str(self.discount),
            'line_total': str(self.line_total),
            'returned_quantity': self.returned_quantity or 0,
        }
