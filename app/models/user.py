from sqlalchemy import Boolean, Column, Integer, String, TIMESTAMP
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.db import Base
from app.models.associations import user_promotions


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)

    utorid = Column(String(8), nullable=False, unique=True, index=True)
    name = Column(String(50), nullable=False)
    email = Column(String(255), nullable=False, unique=True)

    role = Column(String(20), nullable=False, default="regular")
    # regular | cashier | manager | superuser

    # only ever changed through ledger_service.apply_delta
    points = Column(Integer, nullable=False, default=0)

    verified = Column(Boolean, nullable=False, default=False)
    suspicious = Column(Boolean, nullable=False, default=False)

    created_at = Column(TIMESTAMP, server_default=func.now())
    last_login = Column(TIMESTAMP, nullable=True)

    promotions = relationship("Promotion", secondary=user_promotions, order_by="Promotion.id")
