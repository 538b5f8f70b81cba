# taskflow/models.py
from __future__ import annotations

from datetime import date, datetime, time
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ──────────────────────────────────────────────────────────────────────────────
# Enums
# ──────────────────────────────────────────────────────────────────────────────
class BookingStatus(str, Enum):
    pending = "pending"
    confirmed = "confirmed"
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()

    @property
    def is_terminal(self) -> bool:
        return self in (BookingStatus.completed, BookingStatus.cancelled)


# Contracts are the provider's view of a booking and share its lifecycle.
ContractStatus = BookingStatus

UPCOMING_CONTRACT_STATUSES = [BookingStatus.pending.value, BookingStatus.confirmed.value]


class UserRole(str, Enum):
    tasker = "tasker"
    client = "client"

    @property
    def display_name(self) -> str:
        return "Service Provider" if self is UserRole.tasker else "Client"

    @property
    def description(self) -> str:
        if self is UserRole.tasker:
            return "Provide services to clients"
        return "Find and hire service providers"


class NotificationType(str, Enum):
    booking_confirmed = "booking_confirmed"
    booking_reminder = "booking_reminder"
    booking_status_update = "booking_status_update"
    servicer_assigned = "servicer_assigned"
    service_completed = "service_completed"
    payment_reminder = "payment_reminder"

    @property
    def title(self) -> str:
        return _NOTIFICATION_TITLES[self]


_NOTIFICATION_TITLES = {
    NotificationType.booking_confirmed: "Booking Confirmed! 🎉",
    NotificationType.booking_reminder: "Service Reminder 📅",
    NotificationType.booking_status_update: "Booking Update 📋",
    NotificationType.servicer_assigned: "Servicer Assigned 👨‍🔧",
    NotificationType.service_completed: "Service Completed ✅",
    NotificationType.payment_reminder: "Payment Due 💳",
}


# ──────────────────────────────────────────────────────────────────────────────
# Bookings
# ──────────────────────────────────────────────────────────────────────────────
class CustomerFields(BaseModel):
    customer_name: str = ""
    customer_email: str = ""
    customer_phone: str = ""
    customer_address: str = ""


class BookingCreate(CustomerFields):
    service_id: str
    scheduled_date: date
    scheduled_time: time
    notes: str = ""
    remind_day_before: bool = True


class ServiceBooking(BaseModel):
    id: str
    service_id: str
    service_name: str
    service_price: float
    estimated_duration: str = ""
    provider_id: Optional[str] = None

    customer_name: str
    customer_email: str = ""
    customer_phone: str
    customer_address: str

    scheduled_date: date
    scheduled_time: time
    scheduled_at: datetime
    notes: str = ""

    status: BookingStatus = BookingStatus.pending
    payment_status: str = "pending"
    total_amount: float
    currency: str = "LKR"
    created_by: str
    booking_type: str = "client_booking"
    platform: str = "api"
    version: str = "1.0"
    checkout_session_id: Optional[str] = None
    cancelled_by: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def formatted_price(self) -> str:
        return f"{self.currency} {self.service_price:.2f}"

    @property
    def formatted_date(self) -> str:
        return self.scheduled_date.strftime("%b %d, %Y")

    @property
    def formatted_time(self) -> str:
        return self.scheduled_time.strftime("%I:%M %p").lstrip("0")


class ClientBookings(BaseModel):
    bookings: List[ServiceBooking]
    total: int
    pending: int
    completed: int


class BookingValidation(BaseModel):
    valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    has_required_fields: bool


class BookingStatusUpdate(BaseModel):
    status: BookingStatus
    message: Optional[str] = None


# ──────────────────────────────────────────────────────────────────────────────
# Customer information
# ──────────────────────────────────────────────────────────────────────────────
class CustomerInformationIn(BaseModel):
    full_name: str
    phone_number: str
    service_address: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class CustomerInformation(BaseModel):
    id: str
    full_name: str
    email_address: str = ""
    phone_number: str
    service_address: str
    locality: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    user_uid: str
    created_by: str = ""
    platform: str = "api"
    version: str = "1.0"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class BookingPrefill(BaseModel):
    found: bool
    customer_name: str = ""
    customer_email: str = ""
    customer_phone: str = ""
    customer_address: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class CustomerStats(BaseModel):
    count: int
    unique_phones: int


# ──────────────────────────────────────────────────────────────────────────────
# Services
# ──────────────────────────────────────────────────────────────────────────────
class ServiceIn(BaseModel):
    name: str = ""
    description: str = ""
    price: str = ""
    estimated_time: str = ""


class Service(BaseModel):
    id: str
    name: str
    description: str
    price: float
    price_string: str = ""
    estimated_time: str = ""
    user_id: str
    image_url: str = ""
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ──────────────────────────────────────────────────────────────────────────────
# Profiles / accounts
# ──────────────────────────────────────────────────────────────────────────────
class UserProfile(BaseModel):
    id: str
    full_name: str = ""
    email: str = ""
    role: Optional[UserRole] = None
    phone_number: Optional[str] = None
    profile_image_url: Optional[str] = None
    profession: str = ""
    location: str = "Location not set"
    bio: Optional[str] = None
    rating: float = 0.0
    total_jobs: int = 0
    joined_date: Optional[datetime] = None
    is_verified: bool = False
    languages: List[str] = Field(default_factory=lambda: ["English"])
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = None
    phone_number: Optional[str] = None
    profile_image_url: Optional[str] = None
    profession: Optional[str] = None
    location: Optional[str] = None
    bio: Optional[str] = None
    languages: Optional[List[str]] = None


class SignupRequest(BaseModel):
    email: str
    password: str
    full_name: str = ""
    role: UserRole


class LoginRequest(BaseModel):
    email: str
    password: str


class AuthOut(BaseModel):
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    user_id: str
    role: UserRole
    profile: Optional[UserProfile] = None


# ──────────────────────────────────────────────────────────────────────────────
# Contracts
# ──────────────────────────────────────────────────────────────────────────────
class Contract(BaseModel):
    id: str
    customer_name: str = ""
    service_name: str = ""
    service_type: str = ""
    scheduled_date: datetime
    scheduled_time: str = ""
    location: str = ""
    status: ContractStatus = ContractStatus.pending
    customer_id: str = ""
    provider_id: str = ""
    service_id: str = ""
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ──────────────────────────────────────────────────────────────────────────────
# Notifications
# ──────────────────────────────────────────────────────────────────────────────
class ScheduledNotification(BaseModel):
    id: str
    user_id: str
    type: NotificationType
    title: str
    body: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    fire_at: datetime
    delivered_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class DeliveredNotifications(BaseModel):
    notifications: List[ScheduledNotification]
    badge: int


class DeviceRegistration(BaseModel):
    token: str = Field(..., min_length=1)
    platform: str = "ios"
    authorized: bool = True


# ──────────────────────────────────────────────────────────────────────────────
# Payments / geocoding
# ──────────────────────────────────────────────────────────────────────────────
class CheckoutOut(BaseModel):
    checkout_url: str
    session_id: str


class Place(BaseModel):
    name: str
    address: str
    latitude: float
    longitude: float
