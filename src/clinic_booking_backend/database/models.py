from typing import Optional

from sqlalchemy import Boolean, Column, Date, DateTime, Enum, ForeignKeyConstraint, Index, Integer, PrimaryKeyConstraint, String, Table, Text, Time, TypeDecorator, UniqueConstraint, Uuid, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
import datetime
import uuid

from .db_enums import AbsenceReason, AbsenceStatus, BookingStatus, BookingType, ResourceType, StaffRole, Weekday


class UTCDateTime(TypeDecorator):
    """
    Stores every timestamp as UTC and always hands back aware UTC datetimes,
    on PostgreSQL (timestamptz) as well as on SQLite (naive text).
    """
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("Naive datetimes cannot be stored; attach a timezone first.")
        return value.astimezone(datetime.timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=datetime.timezone.utc)
        return value.astimezone(datetime.timezone.utc)


class Base(DeclarativeBase):
    pass


def _enum(enum_cls, name: str) -> Enum:
    return Enum(*enum_cls.get_all_names(), name=name)


staff_role_enum = _enum(StaffRole, 'staff_role')
resource_type_enum = _enum(ResourceType, 'resource_type')


t_service_rooms = Table(
    'service_rooms', Base.metadata,
    Column('service_id', Uuid, primary_key=True),
    Column('room_id', Uuid, primary_key=True),
    ForeignKeyConstraint(['service_id'], ['service_definitions.id'], ondelete='CASCADE', name='service_rooms_service_id_fkey'),
    ForeignKeyConstraint(['room_id'], ['rooms.id'], ondelete='CASCADE', name='service_rooms_room_id_fkey'),
)


t_service_devices = Table(
    'service_devices', Base.metadata,
    Column('service_id', Uuid, primary_key=True),
    Column('device_id', Uuid, primary_key=True),
    ForeignKeyConstraint(['service_id'], ['service_definitions.id'], ondelete='CASCADE', name='service_devices_service_id_fkey'),
    ForeignKeyConstraint(['device_id'], ['devices.id'], ondelete='CASCADE', name='service_devices_device_id_fkey'),
)


class Locations(Base):
    __tablename__ = 'locations'
    __table_args__ = (
        PrimaryKeyConstraint('id', name='locations_pkey'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255))
    timezone: Mapped[str] = mapped_column(Text, default='Europe/Vienna')
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    location_hours: Mapped[list['LocationHours']] = relationship('LocationHours', back_populates='location')
    closures: Mapped[list['LocationClosures']] = relationship('LocationClosures', back_populates='location')


class Staff(Base):
    __tablename__ = 'staff'
    __table_args__ = (
        ForeignKeyConstraint(['location_id'], ['locations.id'], name='staff_location_id_fkey'),
        PrimaryKeyConstraint('id', name='staff_pkey'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    display_name: Mapped[str] = mapped_column(String(255))
    role: Mapped[str] = mapped_column(staff_role_enum)
    location_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    location: Mapped['Locations'] = relationship('Locations')
    weekly_schedules: Mapped[list['WeeklySchedules']] = relationship('WeeklySchedules', back_populates='staff')


class Rooms(Base):
    __tablename__ = 'rooms'
    __table_args__ = (
        ForeignKeyConstraint(['location_id'], ['locations.id'], name='rooms_location_id_fkey'),
        PrimaryKeyConstraint('id', name='rooms_pkey'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    location_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    name: Mapped[str] = mapped_column(String(255))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class Devices(Base):
    __tablename__ = 'devices'
    __table_args__ = (
        ForeignKeyConstraint(['location_id'], ['locations.id'], name='devices_location_id_fkey'),
        PrimaryKeyConstraint('id', name='devices_pkey'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    location_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    name: Mapped[str] = mapped_column(String(255))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class ServiceDefinitions(Base):
    __tablename__ = 'service_definitions'
    __table_args__ = (
        PrimaryKeyConstraint('id', name='service_definitions_pkey'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255))
    base_duration_min: Mapped[int] = mapped_column(Integer)
    required_role: Mapped[Optional[str]] = mapped_column(staff_role_enum)
    room_quantity_required: Mapped[int] = mapped_column(Integer, default=0)
    device_quantity_required: Mapped[int] = mapped_column(Integer, default=0)
    requires_consent: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    assigned_rooms: Mapped[list['Rooms']] = relationship('Rooms', secondary=t_service_rooms)
    assigned_devices: Mapped[list['Devices']] = relationship('Devices', secondary=t_service_devices)


class WeeklySchedules(Base):
    __tablename__ = 'weekly_schedules'
    __table_args__ = (
        ForeignKeyConstraint(['staff_id'], ['staff.id'], ondelete='CASCADE', name='weekly_schedules_staff_id_fkey'),
        PrimaryKeyConstraint('id', name='weekly_schedules_pkey'),
        Index('idx_weekly_schedules_validity', 'staff_id', 'valid_from', 'valid_to'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    staff_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    valid_from: Mapped[datetime.date] = mapped_column(Date)
    valid_to: Mapped[Optional[datetime.date]] = mapped_column(Date)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[Optional[datetime.datetime]] = mapped_column(UTCDateTime, server_default=func.now())

    staff: Mapped['Staff'] = relationship('Staff', back_populates='weekly_schedules')
    days: Mapped[list['WeeklyScheduleDays']] = relationship('WeeklyScheduleDays', back_populates='schedule', cascade='all, delete-orphan')


class WeeklyScheduleDays(Base):
    __tablename__ = 'weekly_schedule_days'
    __table_args__ = (
        ForeignKeyConstraint(['schedule_id'], ['weekly_schedules.id'], ondelete='CASCADE', name='weekly_schedule_days_schedule_id_fkey'),
        PrimaryKeyConstraint('id', name='weekly_schedule_days_pkey'),
        UniqueConstraint('schedule_id', 'day', name='weekly_schedule_days_schedule_id_day_key'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    schedule_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    day: Mapped[str] = mapped_column(_enum(Weekday, 'weekday_enum'))
    is_working: Mapped[bool] = mapped_column(Boolean, default=False)
    start_time: Mapped[Optional[datetime.time]] = mapped_column(Time)
    end_time: Mapped[Optional[datetime.time]] = mapped_column(Time)
    break_start: Mapped[Optional[datetime.time]] = mapped_column(Time)
    break_end: Mapped[Optional[datetime.time]] = mapped_column(Time)
    label: Mapped[Optional[str]] = mapped_column(String(100))

    schedule: Mapped['WeeklySchedules'] = relationship('WeeklySchedules', back_populates='days')


class LocationHours(Base):
    __tablename__ = 'location_hours'
    __table_args__ = (
        ForeignKeyConstraint(['location_id'], ['locations.id'], ondelete='CASCADE', name='location_hours_location_id_fkey'),
        PrimaryKeyConstraint('id', name='location_hours_pkey'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    location_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    rrule: Mapped[str] = mapped_column(Text)
    start_time: Mapped[datetime.time] = mapped_column(Time)
    end_time: Mapped[datetime.time] = mapped_column(Time)
    timezone: Mapped[Optional[str]] = mapped_column(Text)
    label: Mapped[Optional[str]] = mapped_column(Text)
    valid_from: Mapped[datetime.date] = mapped_column(Date)
    valid_until: Mapped[Optional[datetime.date]] = mapped_column(Date)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    location: Mapped['Locations'] = relationship('Locations', back_populates='location_hours')


class LocationClosures(Base):
    __tablename__ = 'location_closures'
    __table_args__ = (
        ForeignKeyConstraint(['location_id'], ['locations.id'], ondelete='CASCADE', name='location_closures_location_id_fkey'),
        PrimaryKeyConstraint('id', name='location_closures_pkey'),
        Index('idx_location_closures_range', 'location_id', 'starts_at', 'ends_at'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    location_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    starts_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime)
    ends_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime)
    reason: Mapped[Optional[str]] = mapped_column(Text)

    location: Mapped['Locations'] = relationship('Locations', back_populates='closures')


class Absences(Base):
    __tablename__ = 'absences'
    __table_args__ = (
        ForeignKeyConstraint(['staff_id'], ['staff.id'], ondelete='CASCADE', name='absences_staff_id_fkey'),
        PrimaryKeyConstraint('id', name='absences_pkey'),
        Index('idx_absences_staff_range', 'staff_id', 'starts_at', 'ends_at'),
        Index('idx_absences_status', 'status'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    staff_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    starts_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime)
    ends_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime)
    reason: Mapped[str] = mapped_column(_enum(AbsenceReason, 'absence_reason'))
    status: Mapped[str] = mapped_column(_enum(AbsenceStatus, 'absence_status'), default=AbsenceStatus.PENDING.value)
    description: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    approved_at: Mapped[Optional[datetime.datetime]] = mapped_column(UTCDateTime)
    approval_comment: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[Optional[datetime.datetime]] = mapped_column(UTCDateTime, server_default=func.now())


class Bookings(Base):
    __tablename__ = 'bookings'
    __table_args__ = (
        ForeignKeyConstraint(['service_id'], ['service_definitions.id'], name='bookings_service_id_fkey'),
        ForeignKeyConstraint(['location_id'], ['locations.id'], name='bookings_location_id_fkey'),
        ForeignKeyConstraint(['staff_id'], ['staff.id'], name='bookings_staff_id_fkey'),
        ForeignKeyConstraint(['room_id'], ['rooms.id'], name='bookings_room_id_fkey'),
        ForeignKeyConstraint(['device_id'], ['devices.id'], name='bookings_device_id_fkey'),
        PrimaryKeyConstraint('id', name='bookings_pkey'),
        Index('idx_bookings_staff_start', 'staff_id', 'start_time'),
        Index('idx_bookings_status', 'status'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    service_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    patient_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    location_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    staff_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    room_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    device_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    start_time: Mapped[datetime.datetime] = mapped_column(UTCDateTime)
    end_time: Mapped[datetime.datetime] = mapped_column(UTCDateTime)
    status: Mapped[str] = mapped_column(_enum(BookingStatus, 'booking_status'), default=BookingStatus.SCHEDULED.value)
    booking_type: Mapped[str] = mapped_column(_enum(BookingType, 'booking_type'), default=BookingType.INTERNAL.value)
    consent_given: Mapped[bool] = mapped_column(Boolean, default=False)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    created_at: Mapped[Optional[datetime.datetime]] = mapped_column(UTCDateTime, server_default=func.now())
    cancelled_at: Mapped[Optional[datetime.datetime]] = mapped_column(UTCDateTime)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text)

    resources: Mapped[list['BookingResources']] = relationship('BookingResources', back_populates='booking', cascade='all, delete-orphan')
    claims: Mapped[list['ResourceClaims']] = relationship('ResourceClaims', cascade='all, delete-orphan', passive_deletes=True)


class BookingResources(Base):
    """Per-resource timeline entry. One row for every staff member, room and device a booking holds."""
    __tablename__ = 'booking_resources'
    __table_args__ = (
        ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE', name='booking_resources_booking_id_fkey'),
        PrimaryKeyConstraint('id', name='booking_resources_pkey'),
        Index('idx_booking_resources_timeline', 'resource_type', 'resource_id', 'start_time'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    resource_type: Mapped[str] = mapped_column(resource_type_enum)
    resource_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    start_time: Mapped[datetime.datetime] = mapped_column(UTCDateTime)
    end_time: Mapped[datetime.datetime] = mapped_column(UTCDateTime)

    booking: Mapped['Bookings'] = relationship('Bookings', back_populates='resources')


class ResourceClaims(Base):
    """
    One row per reservation bucket held by an active booking. The primary key
    is the uniqueness guarantee that makes check-and-insert atomic.
    """
    __tablename__ = 'resource_claims'
    __table_args__ = (
        ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE', name='resource_claims_booking_id_fkey'),
        PrimaryKeyConstraint('resource_type', 'resource_id', 'bucket_start', name='resource_claims_pkey'),
        Index('idx_resource_claims_booking', 'booking_id'),
    )

    resource_type: Mapped[str] = mapped_column(resource_type_enum, primary_key=True)
    resource_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    bucket_start: Mapped[datetime.datetime] = mapped_column(UTCDateTime, primary_key=True)
    booking_id: Mapped[uuid.UUID] = mapped_column(Uuid)
