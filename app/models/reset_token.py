from sqlalchemy import Column, ForeignKey, Integer, String, TIMESTAMP
from sqlalchemy.sql import func

from app.db import Base


class ResetToken(Base):
    __tablename__ = "reset_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)

    token = Column(String(36), nullable=False, unique=True, index=True)
    utorid = Column(String(8), ForeignKey("users.utorid"), nullable=False)

    expires_at = Column(TIMESTAMP, nullable=False)

    created_at = Column(TIMESTAMP, server_default=func.now())
