from dataclasses import dataclass
from datetime import date, time
from typing import Iterable, Optional, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from wa_agent.models import Appointment, BusinessHours, CompanySettings, TimeBlock

DEFAULT_SLOT_INTERVAL = 30
DEFAULT_MAX_CAPACITY = 1
MAX_SURFACED_SLOTS = 5

Interval = tuple[int, int]  # [start, end) in minutes since midnight


@dataclass
class SchedulingSettings:
    slot_interval: int = DEFAULT_SLOT_INTERVAL
    max_capacity_per_slot: int = DEFAULT_MAX_CAPACITY


def to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def format_minutes(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def day_of_week(day: date) -> int:
    """Sunday=0 .. Saturday=6, the convention business_hours is stored in."""
    return (day.weekday() + 1) % 7


def overlaps(a: Interval, b: Interval) -> bool:
    """Half-open overlap: [s1, e1) and [s2, e2) intersect."""
    return a[0] < b[1] and b[0] < a[1]


def compute_free_slots(
    open_time: time,
    close_time: time,
    slot_interval: int,
    max_capacity: int,
    appointments: Iterable[Interval],
    blocks: Iterable[Interval] = (),
) -> list[str]:
    """Walk the day in fixed slots and return the start time of every free slot."""
    interval = slot_interval if slot_interval and slot_interval > 0 else DEFAULT_SLOT_INTERVAL
    capacity = max_capacity if max_capacity and max_capacity > 0 else DEFAULT_MAX_CAPACITY
    occupied = list(appointments)
    blocked = list(blocks)

    free: list[str] = []
    current = to_minutes(open_time)
    end = to_minutes(close_time)
    while current + interval <= end:
        slot = (current, current + interval)
        if not any(overlaps(slot, block) for block in blocked):
            occupancy = sum(1 for appointment in occupied if overlaps(slot, appointment))
            if occupancy < capacity:
                free.append(format_minutes(current))
        current += interval
    return free


def get_scheduling_settings(db: Session, company_id: UUID) -> SchedulingSettings:
    row = db.query(CompanySettings).filter(CompanySettings.company_id == company_id).first()
    if not row:
        return SchedulingSettings()
    return SchedulingSettings(
        slot_interval=row.slot_interval or DEFAULT_SLOT_INTERVAL,
        max_capacity_per_slot=row.max_capacity_per_slot or DEFAULT_MAX_CAPACITY,
    )


def get_occupied_intervals(
    db: Session,
    company_id: UUID,
    day: date,
    exclude_appointment_id: Optional[UUID] = None,
) -> list[Interval]:
    query = db.query(Appointment).filter(
        Appointment.company_id == company_id,
        Appointment.appointment_date == day,
        Appointment.status != "canceled",
    )
    if exclude_appointment_id is not None:
        query = query.filter(Appointment.id != exclude_appointment_id)
    return [(to_minutes(a.start_time), to_minutes(a.end_time)) for a in query.all()]


def _unscoped_blocks(blocks: Sequence[TimeBlock]) -> tuple[bool, list[Interval]]:
    """Return (full_day_closed, partial intervals) for blocks without staff restriction."""
    partial: list[Interval] = []
    for block in blocks:
        if block.staff_id is not None:
            continue
        if block.start_time is None or block.end_time is None:
            return True, []
        partial.append((to_minutes(block.start_time), to_minutes(block.end_time)))
    return False, partial


def check_availability(db: Session, company_id: UUID, day: date) -> list[str]:
    """Free slot start times for the company on ``day``; empty when closed."""
    hours = (
        db.query(BusinessHours)
        .filter(BusinessHours.company_id == company_id, BusinessHours.day_of_week == day_of_week(day))
        .first()
    )
    if not hours or not hours.is_open:
        return []

    blocks = (
        db.query(TimeBlock)
        .filter(TimeBlock.company_id == company_id, TimeBlock.block_date == day)
        .all()
    )
    closed, blocked = _unscoped_blocks(blocks)
    if closed:
        return []

    settings = get_scheduling_settings(db, company_id)
    return compute_free_slots(
        hours.open_time,
        hours.close_time,
        settings.slot_interval,
        settings.max_capacity_per_slot,
        get_occupied_intervals(db, company_id, day),
        blocked,
    )


def has_capacity(
    db: Session,
    company_id: UUID,
    day: date,
    start: time,
    end: time,
    exclude_appointment_id: Optional[UUID] = None,
) -> bool:
    """Whether visible occupancy over [start, end) is still below the per-slot capacity."""
    settings = get_scheduling_settings(db, company_id)
    target = (to_minutes(start), to_minutes(end))
    occupancy = sum(
        1
        for interval in get_occupied_intervals(db, company_id, day, exclude_appointment_id)
        if overlaps(target, interval)
    )
    return occupancy < settings.max_capacity_per_slot
