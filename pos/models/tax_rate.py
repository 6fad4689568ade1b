"""Tax Rate model."""
from decimal import Decimal
from sqlalchemy import Column, String, Boolean, Numeric, Text
from pos.database import Base, BigIntegerPK


class TaxRate(Base):
    """Tax rate (TVA). ``rate`` is stored as a percentage, e.g. 20.00."""

    __tablename__ = 'tax_rate'

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    rate = Column(Numeric(5, 2), nullable=False)
    is_default = Column(Boolean, nullable=False, default=False)
    active = Column(Boolean, nullable=False, default=True)
    description = Column(Text, nullable=True)

    @property
    def fraction(self) -> Decimal:
        """Rate as a multiplier (20.00 -> 0.20)."""
        return Decimal(str(self.rate)) / Decimal('100')

    def __repr__(self):
        return f"<TaxRate(id={self.id}, name='{self.name}', rate={self.rate})>"

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'rate': str(self.rate),
            'is_default': self.is_default,
            'active': self.active,
            'description': self.description,
        }
