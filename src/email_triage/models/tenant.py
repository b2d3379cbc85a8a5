"""Tenant configuration models."""

from __future__ import annotations

from pydantic import BaseModel, Field

WEEKDAYS: tuple[str, ...] = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


class BusinessContext(BaseModel):
    """Business details substituted into replies."""

    business_name: str = "Our Business"
    business_type: str = "Service Business"
    industry: str = "General"
    phone: str | None = None
    email: str | None = None


class DaySchedule(BaseModel):
    open: bool = False
    start: str = "09:00"
    end: str = "17:00"


def _default_schedule() -> dict[str, DaySchedule]:
    schedule = {day: DaySchedule(open=True) for day in WEEKDAYS[:5]}
    schedule.update({day: DaySchedule(open=False) for day in WEEKDAYS[5:]})
    return schedule


class BusinessHours(BaseModel):
    """Weekly opening hours in the tenant's timezone."""

    timezone: str = "America/New_York"
    schedule: dict[str, DaySchedule] = Field(default_factory=_default_schedule)


class NotificationSettings(BaseModel):
    auto_reply_enabled: bool = True
    immediate_notification: bool = True
    email_notifications: bool = True
    sms_notifications: bool = False
    phone_number: str | None = None
    escalation_enabled: bool = True


class Manager(BaseModel):
    name: str = ""
    email: str


class TenantSettings(BaseModel):
    """Everything the pipeline needs to know about one tenant."""

    business: BusinessContext = Field(default_factory=BusinessContext)
    business_hours: BusinessHours | None = Field(
        default=None, description="None means always open"
    )
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    managers: list[Manager] = Field(default_factory=list)
    vip_customers: list[str] = Field(default_factory=list)
    escalate_all: bool = False
