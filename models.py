# models.py - Pydantic models and schemas
from pydantic import BaseModel, EmailStr, Field
from typing import Optional, List, Union
from datetime import datetime
from enum import Enum

# Enums
class IssueStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"

class Category(str, Enum):
    ROADS = "roads"
    UTILITIES = "utilities"
    ENVIRONMENT = "environment"
    SAFETY = "safety"
    PARKS = "parks"
    OTHER = "other"

class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

class UserType(str, Enum):
    USER = "user"
    ADMIN = "admin"
    TENDER = "tender"

class VoteType(str, Enum):
    UPVOTE = "upvote"
    DOWNVOTE = "downvote"

class TenderStatus(str, Enum):
    AVAILABLE = "available"
    CLOSED = "closed"
    AWARDED = "awarded"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

class BidStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"

class LeaderboardPeriod(str, Enum):
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"
    ALL = "all"

# The authenticated caller, passed explicitly into every mutating operation
class Actor(BaseModel):
    id: str
    email: Optional[str] = None
    user_type: UserType = UserType.USER

    @property
    def is_admin(self) -> bool:
        return self.user_type == UserType.ADMIN

# Auth Schemas
class ProfileData(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    full_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None

class SignUpRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    user_type: UserType = UserType.USER
    profile: ProfileData = Field(default_factory=ProfileData)

class SignInRequest(BaseModel):
    email: EmailStr
    password: str

class PasswordResetRequest(BaseModel):
    email: EmailStr

class Session(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    user_id: str
    user_type: str

# Profile Schemas
class ProfileAdminUpdate(BaseModel):
    user_type: Optional[UserType] = None
    is_verified: Optional[bool] = None
    points: Optional[Union[int, str]] = None

# Issue Schemas
class IssueCreate(BaseModel):
    title: str
    description: str
    category: Category
    priority: Priority = Priority.MEDIUM
    location_name: Optional[str] = None
    address: Optional[str] = None
    area: Optional[str] = None
    ward: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    images: List[str] = Field(default_factory=list)
    tags: Optional[List[str]] = None

class IssueUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[Category] = None
    priority: Optional[Priority] = None
    status: Optional[IssueStatus] = None
    assigned_department: Optional[str] = None
    assigned_to: Optional[str] = None
    estimated_resolution_date: Optional[datetime] = None

class IssueAssignment(BaseModel):
    department: str
    assigned_to: Optional[str] = None
    priority: Optional[Priority] = None
    estimated_date: Optional[datetime] = None

class VoteRequest(BaseModel):
    vote_type: VoteType

class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1)

# Tender Schemas
class TenderCreate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[Category] = None
    location: Optional[str] = None
    area: Optional[str] = None
    ward: Optional[str] = None
    priority: Optional[Priority] = None
    estimated_budget_min: Optional[float] = None
    estimated_budget_max: Optional[float] = None
    deadline_date: Optional[datetime] = None
    submission_deadline: Optional[datetime] = None
    requirements: Optional[Union[List[str], str]] = None
    status: Optional[TenderStatus] = None

class BidCreate(BaseModel):
    amount: float = Field(..., gt=0)
    details: Optional[str] = None

class BidStatusUpdate(BaseModel):
    status: BidStatus

# Feedback Schemas
class FeedbackCreate(BaseModel):
    subject: Optional[str] = None
    message: str
    rating: Optional[int] = Field(None, ge=1, le=5)

# Notification Schemas
class NotificationResponse(BaseModel):
    id: str
    user_id: str
    title: str
    message: str
    type: Optional[str] = None
    related_id: Optional[str] = None
    is_read: bool = False
    is_sent: bool = False
    read_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

# Analytics Schemas
class DashboardStats(BaseModel):
    total_issues: int
    pending_issues: int
    in_progress_issues: int
    resolved_issues: int
    recent_issues: int
    total_users: int
    users_by_type: dict
    total_tenders: int
    active_tenders: int
    total_posts: int
    total_feedback: int
    avg_response_time: str
    categories_breakdown: dict
    priority_breakdown: dict
    monthly_trend: dict

class LeaderboardEntry(BaseModel):
    rank: int
    user_id: str
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    points: int
    total_score: int
    level: str
    badges: List[str]
    issues_reported: int
    resolved_issues: int
    high_priority_issues: int
    upvotes_received: int
    posts: int
