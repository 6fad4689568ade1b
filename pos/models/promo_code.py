"""Promo Code model."""
from datetime import datetime
from decimal import Decimal
from sqlalchemy import Column, Integer, String, Boolean, Numeric, DateTime, Text, Enum
from sqlalchemy.sql import func
from pos.database import Base, BigIntegerPK
import enum


class PromoCodeType(str, enum.Enum):
    """Promo code discount type."""
    PERCENTAGE = 'percentage'
    FIXED = 'fixed'


class PromoCode(Base):
    """
    Promo code - named discount rule.

    ``min_amount`` is the minimum qualifying subtotal, ``max_uses`` caps
    ``used_count`` (NULL means unlimited) and the validity window is
    ``[valid_from, valid_until]`` (NULL bounds are open).
    """

    __tablename__ = 'promo_code'

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    code = Column(String(50), nullable=False, unique=True, index=True)
    type = Column(Enum(PromoCodeType, name='promo_code_type', values_callable=lambda e: [m.value for m in e]),
                  nullable=False)
    value = Column(Numeric(10, 2), nullable=False)
    min_amount = Column(Numeric(10, 2), nullable=False, default=0, server_default='0')
    max_uses = Column(Integer, nullable=True)
    used_count = Column(Integer, nullable=False, default=0, server_default='0')
    valid_from = Column(DateTime, nullable=True)
    valid_until = Column(DateTime, nullable=True)
    description = Column(Text, nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    def __repr__(self):
        return f"<PromoCode(code='{self.code}', type={self.type.value}, value={self.value})>"

    def is_expired(self, now: datetime) -> bool:
        return self.valid_until is not None and now > self.valid_until

    def is_started(self, now: datetime) -> bool:
        return self.valid_from is None or now >= self.valid_from

    def usage_exhausted(self) -> bool:
        return self.max_uses is not None and (self.used_count or 0) >= self.max_uses

    def to_dict(self):
        return {
            'id': self.id,
            'code': self.code,
            'type': self.type.value,
            'value': str(self.value),
            'min_amount': str(self.min_amount or Decimal('0')),
            'max_uses': self.max_uses,
            'used_count': self.used_count,
            'valid_from': self.valid_from.isoformat() if self.valid_from else None,
            'valid_until': self.valid_until.isoformat() if self.valid_until else None,
            'description': self.description,
            'active': self.active,
        }
