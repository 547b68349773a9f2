'''
Static enums shared by the ORM models, the pydantic API models and the services.
'''
import enum
from typing import Optional


# --- Base Enum Class ---
class ListableEnum(str, enum.Enum):
    """A custom Enum base class that can list all member names."""
    @classmethod
    def get_all_names(cls) -> list[str]:
        return [member.value for member in cls]


class StaffRole(ListableEnum):
    DOCTOR = "doctor"
    THERAPIST = "therapist"
    NURSE = "nurse"
    ASSISTANT = "assistant"
    RECEPTIONIST = "receptionist"
    ADMIN = "admin"


def role_satisfies(staff_role: StaffRole | str, required_role: Optional[StaffRole | str]) -> bool:
    """
    Eligibility predicate for service requirements.
    A service without a required role can be performed by anyone.
    """
    if required_role is None:
        return True
    return StaffRole(staff_role) is StaffRole(required_role)


class Weekday(ListableEnum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @classmethod
    def from_index(cls, weekday_index: int) -> "Weekday":
        """Python's date.weekday(): 0=Monday ... 6=Sunday."""
        return list(cls)[weekday_index]


class ResourceType(ListableEnum):
    STAFF = "staff"
    ROOM = "room"
    DEVICE = "device"


class BookingStatus(ListableEnum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


# Statuses that hold their resources.
ACTIVE_BOOKING_STATUSES = (
    BookingStatus.SCHEDULED.value,
    BookingStatus.CONFIRMED.value,
    BookingStatus.IN_PROGRESS.value,
)

CANCELLABLE_BOOKING_STATUSES = (
    BookingStatus.SCHEDULED.value,
    BookingStatus.CONFIRMED.value,
)

BOOKING_STATUS_TRANSITIONS = {
    BookingStatus.SCHEDULED: {BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS, BookingStatus.CANCELLED, BookingStatus.NO_SHOW},
    BookingStatus.CONFIRMED: {BookingStatus.IN_PROGRESS, BookingStatus.CANCELLED, BookingStatus.NO_SHOW},
    BookingStatus.IN_PROGRESS: {BookingStatus.COMPLETED},
    BookingStatus.COMPLETED: set(),
    BookingStatus.CANCELLED: set(),
    BookingStatus.NO_SHOW: set(),
}


class BookingType(ListableEnum):
    ONLINE = "online"
    INTERNAL = "internal"
    PHONE = "phone"
    WALK_IN = "walk_in"


class AbsenceStatus(ListableEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class AbsenceReason(ListableEnum):
    VACATION = "vacation"
    SICK = "sick"
    PERSONAL = "personal"
    TRAINING = "training"
    CONFERENCE = "conference"
    OTHER = "other"
