from sqlalchemy import (
    Column,
    Date,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Text,
    Time,
    func,
    text,
)
from sqlalchemy.orm import declarative_base, relationship

from .types import (
    AppointmentStatus,
    ExceptionType,
    RuleKind,
    UTCDateTime,
    enum_values,
)

Base = declarative_base()
metadata = Base.metadata


class Doctors(Base):
    __tablename__ = 'doctors'

    id = Column(Integer, primary_key=True)
    display_name = Column(Text, nullable=False)
    timezone = Column(Text, nullable=False, server_default=text("'UTC'"))
    is_active = Column(Integer, nullable=False, server_default=text('1'))
    schedule_version = Column(Integer, nullable=False, server_default=text('0'))
    created_at = Column(UTCDateTime, server_default=func.current_timestamp())

    availability_rules = relationship('AvailabilityRules', back_populates='doctor')
    slot_template = relationship('SlotTemplates', uselist=False, back_populates='doctor')
    schedule_exceptions = relationship('ScheduleExceptions', back_populates='doctor')
    appointments = relationship('Appointments', back_populates='doctor')


class AvailabilityRules(Base):
    __tablename__ = 'availability_rules'

    id = Column(Integer, primary_key=True)
    doctor_id = Column(ForeignKey('doctors.id', ondelete='CASCADE'), nullable=False, index=True)
    kind = Column(
        Enum(RuleKind, name='rule_kind', native_enum=False, values_callable=enum_values),
        nullable=False,
    )

    # RECURRING: wall-clock window in the doctor's timezone
    day_of_week = Column(Integer)  # 0 = Sunday ... 6 = Saturday
    start_time = Column(Time)
    end_time = Column(Time)
    valid_from = Column(Date)
    valid_to = Column(Date)  # NULL = open-ended

    # ONE_OFF: absolute UTC window
    starts_at = Column(UTCDateTime)
    ends_at = Column(UTCDateTime)

    created_at = Column(UTCDateTime, server_default=func.current_timestamp())
    updated_at = Column(UTCDateTime, server_default=func.current_timestamp(), onupdate=func.current_timestamp())

    doctor = relationship('Doctors', back_populates='availability_rules')


class SlotTemplates(Base):
    __tablename__ = 'slot_templates'

    id = Column(Integer, primary_key=True)
    doctor_id = Column(ForeignKey('doctors.id', ondelete='CASCADE'), nullable=False, unique=True)
    duration_minutes = Column(Integer, nullable=False, server_default=text('30'))
    buffer_minutes = Column(Integer, nullable=False, server_default=text('0'))
    advance_booking_days = Column(Integer, nullable=False, server_default=text('30'))
    updated_at = Column(UTCDateTime, server_default=func.current_timestamp(), onupdate=func.current_timestamp())

    doctor = relationship('Doctors', back_populates='slot_template')


class ScheduleExceptions(Base):
    __tablename__ = 'schedule_exceptions'

    id = Column(Integer, primary_key=True)
    doctor_id = Column(ForeignKey('doctors.id', ondelete='CASCADE'), index=True)  # NULL = all doctors
    type = Column(
        Enum(ExceptionType, name='exception_type', native_enum=False, values_callable=enum_values),
        nullable=False,
    )
    date_from = Column(Date, nullable=False)
    date_to = Column(Date, nullable=False)
    start_time = Column(Time)  # NULL = whole day
    end_time = Column(Time)
    reason = Column(Text, nullable=False)
    label = Column(Text)
    created_by = Column(Integer)
    created_at = Column(UTCDateTime, server_default=func.current_timestamp())

    doctor = relationship('Doctors', back_populates='schedule_exceptions')


class Appointments(Base):
    __tablename__ = 'appointments'
    __table_args__ = (
        # One live appointment per exact slot tuple; cancelled rows drop out
        Index(
            'uq_appointments_live_slot',
            'doctor_id', 'start_time', 'end_time',
            unique=True,
            sqlite_where=text("status != 'cancelled'"),
            postgresql_where=text("status != 'cancelled'"),
        ),
    )

    id = Column(Integer, primary_key=True)
    doctor_id = Column(ForeignKey('doctors.id', ondelete='CASCADE'), nullable=False)
    patient_id = Column(Integer, nullable=False, index=True)
    start_time = Column(UTCDateTime, nullable=False)
    end_time = Column(UTCDateTime, nullable=False)
    status = Column(
        Enum(AppointmentStatus, name='appointment_status', native_enum=False, values_callable=enum_values),
        nullable=False,
        server_default=text("'pending'"),
    )
    rule_id = Column(ForeignKey('availability_rules.id', ondelete='SET NULL'))
    exception_id = Column(ForeignKey('schedule_exceptions.id', ondelete='SET NULL'))
    notes = Column(Text)
    cancel_reason = Column(Text)
    created_at = Column(UTCDateTime, server_default=func.current_timestamp())
    updated_at = Column(UTCDateTime, server_default=func.current_timestamp(), onupdate=func.current_timestamp())

    doctor = relationship('Doctors', back_populates='appointments')
