from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime
from typing import Optional

from sparkmatch.schemas.common import Pagination
from sparkmatch.schemas.message import MessageResponse
from sparkmatch.schemas.user import PublicProfile, SwipeStats


class LastMessageSummary(BaseModel):
    id: UUID
    content: Optional[str] = None
    sender_id: UUID
    message_type: str
    is_read: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class MatchDetails(BaseModel):
    match_id: UUID
    user: Optional[PublicProfile] = None
    last_message: Optional[LastMessageSummary] = None
    last_activity: datetime
    created_at: datetime
    unread_count: int


class MatchList(BaseModel):
    matches: list[MatchDetails]
    pagination: Pagination


class MatchStats(BaseModel):
    total_matches: int
    recent_matches: int
    matches_with_messages: int
    conversion_rate: float
    unread_matches_count: int
    total_unread_messages: int


class ActivitySummary(BaseModel):
    new_matches: int
    messages_sent: int
    messages_received: int


class RecentActivity(BaseModel):
    period: str
    recent_matches: list[MatchDetails]
    recent_messages: list[MessageResponse]
    summary: ActivitySummary


class MatchReport(BaseModel):
    reason: str = Field(min_length=1, max_length=100)
    description: str = Field("", max_length=1000)


class ProfileSummary(BaseModel):
    completeness: int
    photos_count: int
    joined_date: datetime
    last_active: datetime


class UserStats(BaseModel):
    swipes: SwipeStats
    matches: MatchStats
    profile: ProfileSummary
