"""
API shapes for the tables in models.py.

Report enumerations are Literal types so FastAPI rejects unknown values
before they reach the services.
"""
from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

Category = Literal["roads", "lighting", "sanitation", "water", "parks", "safety", "noise", "other"]
Priority = Literal["low", "medium", "high", "urgent"]
Status = Literal["submitted", "acknowledged", "in_progress", "resolved", "closed", "rejected"]


class ReportCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    category: Category = "other"
    priority: Priority = "medium"
    location_lat: Optional[float] = Field(None, ge=-90, le=90)
    location_lng: Optional[float] = Field(None, ge=-180, le=180)
    location_address: Optional[str] = None
    reporter_name: Optional[str] = None
    reporter_email: Optional[str] = None
    reporter_phone: Optional[str] = None


class ReportOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    description: Optional[str] = None
    category: str
    priority: str
    status: str
    location_lat: Optional[float] = None
    location_lng: Optional[float] = None
    location_address: Optional[str] = None
    reporter_name: Optional[str] = None
    department: Optional[str] = None
    assigned_to: Optional[str] = None
    citizen_rating: Optional[int] = None
    citizen_feedback: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    vote_count: int = 0


class ReportUpdateOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    report_id: UUID
    status: str
    message: Optional[str] = None
    updated_by_name: Optional[str] = None
    is_public: bool
    created_at: datetime


class ReportMediaOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    media_type: str
    file_url: str
    file_name: Optional[str] = None
    created_at: datetime


class VoteSummary(BaseModel):
    report_id: UUID
    votes: int
    has_voted: bool
    community_verified: bool


class ReportDetail(BaseModel):
    report: ReportOut
    updates: List[ReportUpdateOut]
    media: List[ReportMediaOut]
    votes: VoteSummary


class StatusChange(BaseModel):
    status: Status
    message: Optional[str] = None
    assigned_to: Optional[str] = None
    is_public: bool = True


class FeedbackIn(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None


class RoutingOut(BaseModel):
    department: str
    assignee: str
    priority: str


class DateRangeIn(BaseModel):
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def as_tuple(self):
        return self.start, self.end


class AnalyticsQuery(BaseModel):
    type: Literal["overview", "department_performance", "citizen_satisfaction", "trending_issues"]
    date_range: Optional[DateRangeIn] = None


class NotificationIn(BaseModel):
    report_id: UUID
    type: Literal["report_submitted", "status_update", "assignment", "resolution", "feedback_request"]
    title: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    user_id: Optional[str] = None
    email: Optional[str] = None
    push_notification: bool = True
    email_notification: bool = True


class NotificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    report_id: Optional[UUID] = None
    type: str
    title: str
    message: str
    is_read: bool
    created_at: datetime
