import enum

from sqlalchemy import Boolean, Column, Float, ForeignKey, Integer, String, TIMESTAMP
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.db import Base
from app.models.associations import transaction_promotions


class TransactionType(str, enum.Enum):
    PURCHASE = "purchase"
    ADJUSTMENT = "adjustment"
    TRANSFER = "transfer"
    REDEMPTION = "redemption"
    EVENT = "event"


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)

    utorid = Column(String(8), ForeignKey("users.utorid"), nullable=False, index=True)
    type = Column(String(20), nullable=False)

    amount = Column(Integer, nullable=False)
    spent = Column(Float, nullable=True)
    redeemed = Column(Integer, nullable=True)

    # transfer: other party's user id / adjustment: source transaction id
    # event: event id / processed redemption: processor's user id
    related_id = Column(Integer, nullable=True)

    suspicious = Column(Boolean, nullable=False, default=False)
    remark = Column(String(255), nullable=False, default="")

    created_by = Column(String(8), ForeignKey("users.utorid"), nullable=False)
    processed_by = Column(String(8), ForeignKey("users.utorid"), nullable=True)

    created_at = Column(TIMESTAMP, server_default=func.now())

    promotions = relationship("Promotion", secondary=transaction_promotions, order_by="Promotion.id")
