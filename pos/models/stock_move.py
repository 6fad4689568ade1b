"""Stock Move model."""
from sqlalchemy import Column, BigInteger, Integer, String, DateTime, Text, Enum, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pos.database import Base, BigIntegerPK
import enum


class StockMoveType(enum.Enum):
    """Stock move type enum."""
    IN = "IN"
    OUT = "OUT"
    ADJUST = "ADJUST"


class StockReferenceType(enum.Enum):
    """Stock move reference type enum."""
    SALE = "SALE"
    SALE_CANCEL = "SALE_CANCEL"
    RETURN = "RETURN"
    MANUAL = "MANUAL"


class AdjustmentType(str, enum.Enum):
    """Manual stock adjustment operation."""
    ADD = 'add'
    REMOVE = 'remove'
    SET = 'set'


class AdjustmentReason(str, enum.Enum):
    """Reason codes accepted for manual stock adjustments."""
    PHYSICAL_COUNT = 'PHYSICAL_COUNT'
    LOSS = 'LOSS'
    DEFECT = 'DEFECT'
    EXPIRATION = 'EXPIRATION'
    TRANSFER = 'TRANSFER'
    RECEIVING = 'RECEIVING'
    CORRECTION = 'CORRECTION'
    PROMOTION = 'PROMOTION'
    OTHER = 'OTHER'


class StockMove(Base):
    """Stock Move (movimiento de stock) - one row per product stock mutation."""

    __tablename__ = 'stock_move'

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=False, index=True)
    date = Column(DateTime, nullable=False, server_default=func.now())
    type = Column(Enum(StockMoveType, name='stock_move_type'), nullable=False)
    reference_type = Column(Enum(StockReferenceType, name='stock_ref_type'), nullable=False)
    reference_id = Column(BigInteger, nullable=True)
    qty = Column(Integer, nullable=False)  # signed delta
    previous_qty = Column(Integer, nullable=False)
    new_qty = Column(Integer, nullable=False)
    reason = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)

    # Relationships
    product = relationship('Product')

    def __repr__(self):
        return f"<StockMove(id={self.id}, type={self.type.value}, qty={self.qty})>"

    def to_dict(self):
        return {
            'id': self.id,
            'product_id': self.product_id,
            'date': self.date.isoformat() if self.date else None,
            'type': self.type.value,
            'reference_type': self.reference_type.value,
            'reference_id': self.reference_id,
            'qty': self.qty,
            'previous_qty': self.previous_qty,
            'new_qty': self.new_qty,
            'reason': self.reason,
            'notes': self.notes,
        }
