from dataclasses import dataclass
from datetime import date, time
from typing import Optional

from models.slot import TimeSlot
from services.pricing import to_major
from utils.timeparse import format_time


@dataclass(frozen=True)
class SlotView:
    slot_id: int
    court_id: int
    date: date
    start_time: time
    end_time: time
    price: int
    status: str  # available | booked | blocked
    block_reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "slot_id": self.slot_id,
            "court_id": self.court_id,
            "date": self.date.isoformat(),
            "start_time": format_time(self.start_time),
            "end_time": format_time(self.end_time),
            "price": to_major(self.price),
            "status": self.status,
            "available": self.status == "available",
            "block_reason": self.block_reason,
        }


def court_availability(court_id: int, slot_date: date) -> list[SlotView]:
    """Read-only projection of a court's slots for one date, ordered by start time."""
    rows = (
        TimeSlot.query
        .filter_by(court_id=court_id, date=slot_date)
        .order_by(TimeSlot.start_time.asc())
        .all()
    )
    return [
        SlotView(
            slot_id=s.id,
            court_id=s.court_id,
            date=s.date,
            start_time=s.start_time,
            end_time=s.end_time,
            price=s.price,
            status=s.status,
            block_reason=s.block_reason if s.is_blocked else None,
        )
        for s in rows
    ]
