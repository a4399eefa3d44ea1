from sqlalchemy import Column, Float, Integer, String, TIMESTAMP
from sqlalchemy.sql import func

from app.db import Base


class Promotion(Base):
    __tablename__ = "promotions"

    id = Column(Integer, primary_key=True, autoincrement=True)

    name = Column(String(100), nullable=False)
    description = Column(String(255), nullable=False)

    type = Column(String(20), nullable=False)  # automatic / onetime

    start_time = Column(TIMESTAMP, nullable=False)
    end_time = Column(TIMESTAMP, nullable=False)

    min_spending = Column(Float, nullable=True)

    # extra points per dollar on top of the base rate
    rate = Column(Float, nullable=True)

    # flat grant; stored but not part of the earning formula
    points = Column(Integer, nullable=True)

    created_at = Column(TIMESTAMP, server_default=func.now())
