"""
db.py — Persistence layer (SQLAlchemy)

Tables:
    - orders                 Order Ledger
    - idempotency_records    Idempotency Ledger (key is the primary key)
    - product_pricing_cache  Product price projection, written only by the cache dispatcher
    - topping_pricing_cache  Topping price projection, written only by the cache dispatcher
    - coupons                Coupons (managed elsewhere, read-only here)

The engine and session factory are created explicitly and handed to the
workflow and the dispatcher; there is no module-level engine.
"""

from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc)


def as_utc(value):
    # SQLite hands back naive datetimes; they are stored as UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class OrderRecord(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True)
    tenant_id = Column(String(64), nullable=False, index=True)
    customer_id = Column(String(64), nullable=False, index=True)
    cart = Column(JSON, nullable=False)
    address = Column(Text, nullable=False)
    comment = Column(Text, nullable=True)
    delivery_charges = Column(Integer, nullable=False)
    discount = Column(Integer, nullable=False)
    taxes = Column(Integer, nullable=False)
    total = Column(Integer, nullable=False)
    order_status = Column(String(32), nullable=False)
    payment_mode = Column(String(32), nullable=False)
    payment_status = Column(String(32), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class IdempotencyRecord(Base):
    __tablename__ = "idempotency_records"

    key = Column(String(255), primary_key=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False)
    response = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class ProductPricingCache(Base):
    __tablename__ = "product_pricing_cache"

    product_id = Column(String(64), primary_key=True)
    tenant_id = Column(String(64), nullable=False, index=True)
    # {group: {option: price}}
    price_configuration = Column(JSON, nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class ToppingPricingCache(Base):
    __tablename__ = "topping_pricing_cache"

    topping_id = Column(String(64), primary_key=True)
    tenant_id = Column(String(64), nullable=False, index=True)
    price = Column(Integer, nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class Coupon(Base):
    __tablename__ = "coupons"
    __table_args__ = (UniqueConstraint("code", name="uq_coupons_code"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    code = Column(String(64), nullable=False)
    discount = Column(Integer, nullable=False)
    valid_upto = Column(DateTime(timezone=True), nullable=False)
    tenant_id = Column(String(64), nullable=False, index=True)


def create_db_engine(database_url: str):
    """Creates the engine and the schema. SQLite files get their parent directory created."""
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        if database_url.startswith("sqlite:///") and ":memory:" not in database_url:
            db_path = database_url.split("sqlite:///")[-1]
            Path(db_path).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(database_url, future=True, connect_args=connect_args)
    Base.metadata.create_all(engine)
    return engine


def make_session_factory(engine):
    """
    Returns a context-manager factory yielding one transaction per `with` block.

    The transaction commits when the block exits normally and rolls back on
    any exception, which is re-raised.
    """
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)

    @contextmanager
    def get_session():
        session = SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return get_session
