from sqlalchemy import Column, ForeignKey, Integer, Table

from app.db import Base


# promotions a user has consumed; the composite key makes consumption at-most-once
user_promotions = Table(
    "user_promotions",
    Base.metadata,
    Column("user_id", Integer, ForeignKey("users.id"), primary_key=True),
    Column("promotion_id", Integer, ForeignKey("promotions.id"), primary_key=True),
)

transaction_promotions = Table(
    "transaction_promotions",
    Base.metadata,
    Column("transaction_id", Integer, ForeignKey("transactions.id"), primary_key=True),
    Column("promotion_id", Integer, ForeignKey("promotions.id"), primary_key=True),
)

event_organizers = Table(
    "event_organizers",
    Base.metadata,
    Column("event_id", Integer, ForeignKey("events.id"), primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id"), primary_key=True),
)

event_guests = Table(
    "event_guests",
    Base.metadata,
    Column("event_id", Integer, ForeignKey("events.id"), primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id"), primary_key=True),
)
