# backend/tutorbook/schemas/slot.py
import datetime as dt
from typing import List, Optional

from pydantic import Field

from ..models.slot import SlotState
from .base import StandardizedModel


class SlotWriteRequest(StandardizedModel):
    """Body for creating or moving a slot."""

    date: dt.date
    start_time: dt.time
    end_time: dt.time


class SlotResponse(StandardizedModel):
    id: str
    tutor_id: str
    date: dt.date = Field(validation_alias="slot_date")
    start_time: dt.time
    end_time: dt.time
    state: SlotState
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None


class SlotListResponse(StandardizedModel):
    slots: List[SlotResponse]
    total: int
