from pydantic import BaseModel, Field
from datetime import date, time, datetime
from typing import Optional, List


class ClassSessionCreate(BaseModel):
    session_date: date
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    topic: Optional[str] = Field(None, max_length=1000)
    material_url: Optional[str] = Field(None, max_length=1000)
    notes: Optional[str] = Field(None, max_length=1000)


class ClassSessionResponse(BaseModel):
    id: int
    class_id: int
    session_date: date
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    topic: Optional[str] = None
    material_url: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SessionGenerationRequest(BaseModel):
    """Weekly recurrence; weekday follows 0 = Sunday ... 6 = Saturday."""
    class_id: int = Field(..., gt=0)
    weekday: int = Field(..., ge=0, le=6)
    start_date: date
    end_date: date
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    skip_holidays: bool = True
    dry_run: bool = False


class SessionGenerationBody(BaseModel):
    """Request body when class_id comes from the URL."""
    weekday: int = Field(..., ge=0, le=6)
    start_date: date
    end_date: date
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    skip_holidays: bool = True
    dry_run: bool = False


class SessionGenerationResponse(BaseModel):
    dry_run: bool
    total_generated: int
    existing_skipped: int
    holidays_skipped: int
    dates: List[date]
    created_ids: List[int] = []
