from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Text,
    false,
    text,
    true,
)
from sqlalchemy.orm import declarative_base, relationship

from .status import ACTIVE_BOOKING_STATUSES

Base = declarative_base()
metadata = Base.metadata

_ACTIVE_SLOT_PREDICATE = text(
    "status IN ({})".format(", ".join(f"'{s}'" for s in ACTIVE_BOOKING_STATUSES))
)


class Services(Base):
    """Consulting service; catalog-owned, only total_bookings is written here."""
    __tablename__ = 'services'

    id = Column(Integer, primary_key=True)
    title = Column(Text, nullable=False)
    price = Column(Float, nullable=False)
    currency = Column(Text, nullable=False, server_default=text("'INR'"))
    duration_min = Column(Integer, nullable=False)
    available_days = Column(Text, nullable=False, server_default=text("'[]'"))
    time_slots = Column(Text, nullable=False, server_default=text("'[]'"))
    is_active = Column(Boolean, nullable=False, server_default=true())
    total_bookings = Column(Integer, nullable=False, server_default=text('0'))
    description = Column(Text)

    bookings = relationship('Bookings', back_populates='service')


class Resources(Base):
    """Purchasable digital resource; catalog-owned, only downloads is written here."""
    __tablename__ = 'resources'

    id = Column(Integer, primary_key=True)
    title = Column(Text, nullable=False)
    price = Column(Float, nullable=False)
    currency = Column(Text, nullable=False, server_default=text("'INR'"))
    file_url = Column(Text, nullable=False)
    is_active = Column(Boolean, nullable=False, server_default=true())
    downloads = Column(Integer, nullable=False, server_default=text('0'))

    purchases = relationship('Purchases', back_populates='resource')


class Bookings(Base):
    __tablename__ = 'bookings'
    __table_args__ = (
        # at most one pending/confirmed booking per (service, instant)
        Index(
            'uq_bookings_active_slot',
            'service_id',
            'scheduled_at',
            unique=True,
            sqlite_where=_ACTIVE_SLOT_PREDICATE,
            postgresql_where=_ACTIVE_SLOT_PREDICATE,
        ),
        Index('ix_bookings_scheduled_status', 'scheduled_at', 'status'),
        Index('ix_bookings_user_created', 'user_id', 'created_at'),
    )

    id = Column(Integer, primary_key=True)
    service_id = Column(ForeignKey('services.id'), nullable=False)
    user_id = Column(Text)
    customer_name = Column(Text, nullable=False)
    customer_email = Column(Text, nullable=False)
    customer_phone = Column(Text)
    additional_info = Column(Text)
    requirements = Column(Text, nullable=False, server_default=text("'[]'"))
    scheduled_at = Column(DateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    status = Column(Text, nullable=False, server_default=text("'pending'"))
    payment_status = Column(Text, nullable=False, server_default=text("'pending'"))
    payment_order_id = Column(Text)
    payment_id = Column(Text)
    amount = Column(Float, nullable=False)
    currency = Column(Text, nullable=False, server_default=text("'INR'"))
    meeting_link = Column(Text)
    confirmed_at = Column(DateTime)
    cancelled_at = Column(DateTime)
    cancel_reason = Column(Text)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    service = relationship('Services', back_populates='bookings')


class Purchases(Base):
    __tablename__ = 'purchases'
    __table_args__ = (
        Index('ix_purchases_user_created', 'user_id', 'created_at'),
    )

    id = Column(Integer, primary_key=True)
    resource_id = Column(ForeignKey('resources.id'), nullable=False)
    user_id = Column(Text)
    customer_name = Column(Text)
    customer_email = Column(Text, nullable=False)
    payment_id = Column(Text, nullable=False, unique=True)
    payment_order_id = Column(Text)
    amount = Column(Float, nullable=False)
    currency = Column(Text, nullable=False, server_default=text("'INR'"))
    status = Column(Text, nullable=False, server_default=text("'pending'"))
    download_count = Column(Integer, nullable=False, server_default=text('0'))
    max_downloads = Column(Integer, nullable=False, server_default=text('5'))
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False)

    resource = relationship('Resources', back_populates='purchases')
    download_links = relationship(
        'DownloadLinks',
        back_populates='purchase',
        order_by='DownloadLinks.id',
    )


class DownloadLinks(Base):
    __tablename__ = 'download_links'

    id = Column(Integer, primary_key=True)
    purchase_id = Column(ForeignKey('purchases.id', ondelete='CASCADE'), nullable=False, index=True)
    token = Column(Text, nullable=False, unique=True)
    created_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    used = Column(Boolean, nullable=False, server_default=false())
    used_at = Column(DateTime)

    purchase = relationship('Purchases', back_populates='download_links')
