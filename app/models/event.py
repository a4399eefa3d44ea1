from sqlalchemy import Boolean, Column, Integer, String, TIMESTAMP
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.db import Base
from app.models.associations import event_guests, event_organizers


class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, autoincrement=True)

    name = Column(String(100), nullable=False, unique=True)
    description = Column(String(255), nullable=False)
    location = Column(String(255), nullable=False)

    start_time = Column(TIMESTAMP, nullable=False)
    end_time = Column(TIMESTAMP, nullable=False)

    # NULL = unlimited
    capacity = Column(Integer, nullable=True)
    num_guests = Column(Integer, nullable=False, default=0)

    # points_remain + points_awarded never changes after creation
    points_remain = Column(Integer, nullable=False, default=0)
    points_awarded = Column(Integer, nullable=False, default=0)

    published = Column(Boolean, nullable=False, default=False)

    created_at = Column(TIMESTAMP, server_default=func.now())

    organizers = relationship("User", secondary=event_organizers, order_by="User.id")
    guests = relationship("User", secondary=event_guests, order_by="User.id")
