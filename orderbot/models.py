# orderbot/models.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, Integer, Numeric, String, Text

from .db import Base


class StaffUser(Base):
    __tablename__ = "staff_users"
    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)


class Order(Base):
    __tablename__ = "orders"
    id = Column(Integer, primary_key=True)
    code = Column(String(7), unique=True, index=True, nullable=False)
    created_date = Column(Date, index=True, nullable=False)
    created_time = Column(String(5), nullable=False)  # HH:MM, restaurant timezone
    customer_identity = Column(String, index=True, nullable=False)
    customer_name = Column(String, default="")
    address = Column(Text, default="")
    item_summary = Column(Text, default="")
    status = Column(String, default="in-preparation")
    payment_method = Column(String, default="")
    cash_tendered = Column(Numeric(12, 2), nullable=True)
    change = Column(Numeric(12, 2), nullable=True)
    total = Column(Numeric(12, 2), nullable=False)
    invoiced = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)


class CustomerHistory(Base):
    __tablename__ = "customer_history"
    identity = Column(String, primary_key=True)
    display_name = Column(String, default="")
    visit_count = Column(Integer, default=0, nullable=False)


class PaymentVerification(Base):
    __tablename__ = "payment_verifications"
    id = Column(String(8), primary_key=True)
    customer_identity = Column(String, index=True, nullable=False)
    customer_name = Column(String, default="")
    order_summary = Column(Text, default="")
    amount = Column(Numeric(12, 2), nullable=False)
    payment_method = Column(String, default="")
    created_at = Column(DateTime, default=datetime.utcnow)
    status = Column(String, default="pending", index=True)  # pending | confirmed | denied
