"""ORM tables for the CRM records the pipeline engine reads.

Column names match the keys the engine's ``from_row`` constructors expect, so
a row maps onto its value type with a plain column -> value dict.
"""

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, Numeric, String, Text, func
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=False, unique=True)
    role = Column(String(32), nullable=True)  # admin | superadmin | member ...
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Company(Base):
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    company_type = Column(String(64), nullable=True)
    region = Column(String(128), nullable=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Contact(Base):
    __tablename__ = "contacts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=True)
    name = Column(String(255), nullable=False)
    role = Column(String(128), nullable=True)
    influence_level = Column(String(32), nullable=True)  # DECISION_MAKER | INFLUENCER | ...
    engagement_level = Column(String(32), nullable=True)  # VIP | HIGH | MEDIUM | LOW
    contact_score = Column(Float, default=0)
    last_interaction = Column(DateTime(timezone=True), nullable=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Opportunity(Base):
    __tablename__ = "opportunities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    stage = Column(String(32), nullable=False, default="PROSPECTING", index=True)
    deal_size = Column(Numeric(14, 2), nullable=True)
    probability = Column(Float, default=0)  # 0-100
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=True)
    primary_contact_id = Column(Integer, ForeignKey("contacts.id"), nullable=True)
    stage_velocity = Column(Float, nullable=True)  # days in current stage
    total_time_in_pipeline = Column(Float, nullable=True)  # days
    expected_close_date = Column(DateTime(timezone=True), nullable=True)
    last_activity_date = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class FollowUp(Base):
    __tablename__ = "follow_ups"

    id = Column(Integer, primary_key=True, autoincrement=True)
    opportunity_id = Column(Integer, ForeignKey("opportunities.id"), nullable=True)
    status = Column(String(32), nullable=False, default="PENDING")
    follow_up_date = Column(DateTime(timezone=True), nullable=True)
    priority_score = Column(Integer, default=1)  # 1-5
    assigned_to = Column(Integer, ForeignKey("users.id"), nullable=True)
    action_description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Activity(Base):
    __tablename__ = "activities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    contact_id = Column(Integer, ForeignKey("contacts.id"), nullable=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    channel = Column(String(32), nullable=True)  # EMAIL | CALL | MEETING | ...
    activity_type = Column(String(32), nullable=True)
    effectiveness = Column(String(16), nullable=True)  # LOW | MEDIUM | HIGH | EXCELLENT
    sentiment = Column(String(16), nullable=True)  # POSITIVE | NEUTRAL | NEGATIVE
    response_received = Column(Boolean, default=False)
    occurred_at = Column(DateTime(timezone=True), server_default=func.now())


class Quotation(Base):
    __tablename__ = "quotations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_name = Column(String(255), nullable=False)
    status = Column(String(32), nullable=False, default="PENDING")
    order_value = Column(Numeric(14, 2), nullable=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    deadline = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class PipelineOrder(Base):
    """An order tracked through production, delivery and payment."""

    __tablename__ = "pipelines"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    status = Column(String(32), nullable=False, default="ORDER_RECEIVED")
    order_value = Column(Numeric(14, 2), nullable=True)
    progress_percentage = Column(Float, default=0)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=True)
    order_date = Column(DateTime(timezone=True), nullable=True)
    expected_delivery_date = Column(DateTime(timezone=True), nullable=True)
    actual_delivery_date = Column(DateTime(timezone=True), nullable=True)
    actual_install_date = Column(DateTime(timezone=True), nullable=True)
    payment_date = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class Attendance(Base):
    __tablename__ = "attendances"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    date = Column(DateTime(timezone=True), nullable=False)
    status = Column(String(32), nullable=False, default="PRESENT")  # PRESENT | AUTO_FLAGGED | ...
