"""Product model."""
from sqlalchemy import Column, BigInteger, Integer, String, Boolean, Numeric, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pos.database import Base, BigIntegerPK


class Product(Base):
    """Product with its on-hand stock count."""

    __tablename__ = 'product'
    __table_args__ = (
        CheckConstraint('stock >= 0', name='ck_product_stock_non_negative'),
    )

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    sku = Column(String(64), nullable=True, unique=True)
    barcode = Column(String(64), nullable=True, unique=True, index=True)
    name = Column(String(200), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    cost = Column(Numeric(10, 2), nullable=False, default=0, server_default='0.00')  # Precio de compra
    stock = Column(Integer, nullable=False, default=0, server_default='0')
    min_stock = Column(Integer, nullable=False, default=0, server_default='0')
    tax_rate_id = Column(BigInteger, ForeignKey('tax_rate.id'), nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    tax_rate = relationship('TaxRate')

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', stock={self.stock})>"

    def to_dict(self):
        return {
            'id': self.id,
            'sku': self.sku,
            'barcode': self.barcode,
            'name': self.name,
            'price': str(self.price),
            'stock': self.stock,
            'min_stock': self.min_stock,
            'tax_rate_id': self.tax_rate_id,
            'active': self.active,
        }
