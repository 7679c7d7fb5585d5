from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    Text,
    Time,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()
metadata = Base.metadata

# Appointment statuses that hold capacity
ACTIVE_STATUSES = ("pending", "confirmed", "started", "completed")
# Transaction statuses that still accept a transition
OPEN_PAYMENT_STATUSES = ("created", "pending")


class Establishments(Base):
    __tablename__ = 'establishments'

    name = Column(Text, nullable=False)
    slug = Column(Text, nullable=False, unique=True)
    timezone = Column(Text, nullable=False, default='America/Sao_Paulo', server_default=text("'America/Sao_Paulo'"))
    # {"monday": {"open": true, "start": "09:00", "end": "18:00"}, ...}
    working_hours = Column(JSON, nullable=False, default=dict)
    slots_per_hour = Column(Integer, nullable=False, default=1, server_default=text('1'))
    booking_interval_minutes = Column(Integer)
    earliest_booking_time = Column(Text)
    latest_booking_time = Column(Text)
    booking_fee_enabled = Column(Boolean, nullable=False, default=False, server_default=text('0'))
    booking_fee_type = Column(Text, nullable=False, default='fixed', server_default=text("'fixed'"))
    booking_fee_amount = Column(Numeric(10, 2), nullable=False, default=0, server_default=text('0'))
    booking_fee_percentage = Column(Numeric(5, 2), nullable=False, default=0, server_default=text('0'))
    required_fields = Column(JSON, nullable=False, default=list)
    notification_settings = Column(JSON, nullable=False, default=dict)
    is_active = Column(Boolean, nullable=False, default=True, server_default=text('1'))
    id = Column(Integer, primary_key=True)

    blocked_dates = relationship('BlockedDates', back_populates='establishment')
    blocked_times = relationship('BlockedTimes', back_populates='establishment')
    services = relationship('Services', back_populates='establishment')
    coupons = relationship('Coupons', back_populates='establishment')
    appointments = relationship('Appointments', back_populates='establishment')


class BlockedDates(Base):
    __tablename__ = 'blocked_dates'
    __table_args__ = (
        UniqueConstraint('establishment_id', 'blocked_date'),
    )

    establishment_id = Column(ForeignKey('establishments.id', ondelete='CASCADE'), nullable=False)
    blocked_date = Column(Date, nullable=False)
    is_recurring = Column(Boolean, nullable=False, default=False, server_default=text('0'))
    reason = Column(Text)
    id = Column(Integer, primary_key=True)

    establishment = relationship('Establishments', back_populates='blocked_dates')


class BlockedTimes(Base):
    __tablename__ = 'blocked_times'

    establishment_id = Column(ForeignKey('establishments.id', ondelete='CASCADE'), nullable=False)
    blocked_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    reason = Column(Text)
    id = Column(Integer, primary_key=True)

    establishment = relationship('Establishments', back_populates='blocked_times')


class Services(Base):
    __tablename__ = 'services'

    establishment_id = Column(ForeignKey('establishments.id', ondelete='CASCADE'), nullable=False)
    name = Column(Text, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    has_promotion = Column(Boolean, nullable=False, default=False, server_default=text('0'))
    promotion_price = Column(Numeric(10, 2))
    is_active = Column(Boolean, nullable=False, default=True, server_default=text('1'))
    id = Column(Integer, primary_key=True)

    establishment = relationship('Establishments', back_populates='services')
    appointments = relationship('Appointments', back_populates='service')


class Customers(Base):
    __tablename__ = 'customers'

    phone = Column(Text, nullable=False, unique=True)
    name = Column(Text)
    last_name = Column(Text)
    email = Column(Text)
    birth_date = Column(Date)
    id = Column(Integer, primary_key=True)
    created_at = Column(DateTime, server_default=text('CURRENT_TIMESTAMP'))

    appointments = relationship('Appointments', back_populates='customer')


class Coupons(Base):
    __tablename__ = 'coupons'
    __table_args__ = (
        UniqueConstraint('establishment_id', 'code'),
    )

    establishment_id = Column(ForeignKey('establishments.id', ondelete='CASCADE'), nullable=False)
    code = Column(Text, nullable=False)  # upper-case
    name = Column(Text)
    type = Column(Text, nullable=False)  # percentage | fixed
    value = Column(Numeric(10, 2), nullable=False)
    valid_from = Column(Date)
    valid_until = Column(Date)
    usage_limit = Column(Integer)
    used_count = Column(Integer, nullable=False, default=0, server_default=text('0'))
    is_active = Column(Boolean, nullable=False, default=True, server_default=text('1'))
    id = Column(Integer, primary_key=True)

    establishment = relationship('Establishments', back_populates='coupons')


class Appointments(Base):
    __tablename__ = 'appointments'

    establishment_id = Column(ForeignKey('establishments.id', ondelete='CASCADE'), nullable=False)
    service_id = Column(ForeignKey('services.id'), nullable=False)
    customer_id = Column(ForeignKey('customers.id'), nullable=False)
    scheduled_at = Column(DateTime, nullable=False, index=True)  # naive UTC
    duration_minutes = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0, server_default=text('0'))
    discount_code = Column(Text)
    coupon_id = Column(ForeignKey('coupons.id', ondelete='SET NULL'))
    coupon_redeemed = Column(Boolean, nullable=False, default=False, server_default=text('0'))
    final_price = Column(Numeric(10, 2), nullable=False)
    booking_fee_amount = Column(Numeric(10, 2), nullable=False, default=0, server_default=text('0'))
    status = Column(Text, nullable=False, default='pending', server_default=text("'pending'"))
    cancellation_reason = Column(Text)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)
    id = Column(Integer, primary_key=True)

    establishment = relationship('Establishments', back_populates='appointments')
    service = relationship('Services', back_populates='appointments')
    customer = relationship('Customers', back_populates='appointments')
    coupon = relationship('Coupons')
    transaction = relationship('Transactions', back_populates='appointment', uselist=False)


class SlotClaims(Base):
    """One row per occupied seat of a slot. seat is in [0, slots_per_hour)."""
    __tablename__ = 'slot_claims'
    __table_args__ = (
        UniqueConstraint('establishment_id', 'scheduled_at', 'seat'),
    )

    establishment_id = Column(ForeignKey('establishments.id', ondelete='CASCADE'), nullable=False)
    scheduled_at = Column(DateTime, nullable=False)
    seat = Column(Integer, nullable=False)
    appointment_id = Column(ForeignKey('appointments.id', ondelete='CASCADE'), nullable=False, unique=True)
    id = Column(Integer, primary_key=True)


class Transactions(Base):
    __tablename__ = 'transactions'

    appointment_id = Column(ForeignKey('appointments.id', ondelete='CASCADE'), nullable=False, unique=True)
    gateway_ref = Column(Text, unique=True)
    amount = Column(Numeric(10, 2), nullable=False)
    payment_status = Column(Text, nullable=False, default='created', server_default=text("'created'"))
    idempotency_key = Column(Text, nullable=False, unique=True)
    qr_payload = Column(Text)
    expires_at = Column(DateTime, nullable=False)  # naive UTC
    paid_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)
    id = Column(Integer, primary_key=True)

    appointment = relationship('Appointments', back_populates='transaction')
