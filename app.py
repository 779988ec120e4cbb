# app.py - JanConnect API Application
from fastapi import FastAPI, File, UploadFile, HTTPException, Depends, BackgroundTasks, Query
from fastapi.middleware.cors import CORSMiddleware
from supabase import Client
from typing import Optional, List
from datetime import datetime, timezone
import logging

# Local imports
from config import settings
from database import get_supabase, get_auth_client, check_database_setup
from errors import ServiceResult
from auth import (
    sign_up, sign_in, sign_out, reset_password, get_session_user,
    oauth2_scheme, get_current_user, get_current_user_optional,
    get_admin_user, get_tender_user
)
from models import (
    Actor, SignUpRequest, SignInRequest, PasswordResetRequest, Session,
    IssueCreate, IssueUpdate, IssueAssignment, VoteRequest, CommentCreate,
    TenderCreate, BidCreate, BidStatusUpdate, TenderStatus, FeedbackCreate,
    NotificationResponse, ProfileAdminUpdate, DashboardStats, LeaderboardEntry,
    LeaderboardPeriod
)
from services import (
    create_issue, get_issues, get_issue, update_issue, assign_issue, resolve_issue,
    increment_issue_views, get_trending_issues, vote_on_issue, get_user_vote,
    add_comment, get_issue_comments, award_issue_points, get_user_profile,
    list_profiles, update_profile_admin, delete_user, get_user_notifications,
    mark_notification_read, create_feedback, get_user_feedback, get_all_feedback,
    get_municipal_officials
)
from tenders import (
    create_tender, create_tender_from_issue, get_tenders, get_tender,
    update_tender_status, create_bid, get_user_bids, update_bid_status
)
from analytics import get_admin_dashboard_stats, get_leaderboard
from storage import upload_multiple_images

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Initialize FastAPI
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Civic issue reporting, triage and tendering"
)

# CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

def unwrap_or_raise(result: ServiceResult):
    """Map a service error onto the matching HTTP status"""
    if result.error is not None:
        raise HTTPException(status_code=result.error.status_code, detail=result.error.message)
    return result.data

# =====================================================
# STARTUP EVENT
# =====================================================

@app.on_event("startup")
async def startup_event():
    """Initialize application on startup"""
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    if check_database_setup(get_supabase()):
        logger.info("Database connection successful")
    else:
        logger.warning("Database setup incomplete - please run SQL scripts")

# =====================================================
# HEALTH CHECK
# =====================================================

@app.get("/", tags=["Health"])
def root():
    """API health check"""
    return {
        "status": "online",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }

@app.get("/health", tags=["Health"])
def health_check(client: Client = Depends(get_supabase)):
    """Detailed health check"""
    connected = check_database_setup(client)
    return {
        "status": "healthy" if connected else "degraded",
        "database": "connected" if connected else "unreachable",
        "timestamp": datetime.now(timezone.utc).isoformat()
    }

# =====================================================
# AUTHENTICATION ENDPOINTS
# =====================================================

@app.post("/auth/signup", tags=["Authentication"])
def register_user(body: SignUpRequest, client: Client = Depends(get_auth_client)):
    """
    Register new user

    - **email**: Valid email address
    - **password**: Minimum 6 characters
    - **user_type**: user, tender or admin
    - **profile**: Optional name, phone and address details
    """
    profile = unwrap_or_raise(sign_up(client, body.email, body.password, body.user_type, body.profile))
    return {
        "status": "success",
        "message": "Account created. Please check your email to verify your account.",
        "data": profile
    }

@app.post("/auth/signin", response_model=Session, tags=["Authentication"])
def login(body: SignInRequest, client: Client = Depends(get_auth_client)):
    """Sign in with email and password; returns the Supabase session"""
    return unwrap_or_raise(sign_in(client, body.email, body.password))

@app.post("/auth/signout", tags=["Authentication"])
def logout(token: str = Depends(oauth2_scheme), client: Client = Depends(get_supabase)):
    unwrap_or_raise(sign_out(client, token))
    return {"status": "success"}

@app.post("/auth/reset-password", tags=["Authentication"])
def request_password_reset(body: PasswordResetRequest, client: Client = Depends(get_auth_client)):
    unwrap_or_raise(reset_password(client, body.email))
    return {"status": "success", "message": f"Password reset instructions have been sent to {body.email}"}

@app.get("/auth/session", tags=["Authentication"])
def get_session(token: str = Depends(oauth2_scheme), client: Client = Depends(get_supabase)):
    """Resolve the bearer token against Supabase Auth"""
    user = unwrap_or_raise(get_session_user(client, token))
    return {"status": "success", "user_id": user.id, "email": user.email}

@app.get("/auth/me", tags=["Authentication"])
def get_current_user_info(
    current_user: Actor = Depends(get_current_user),
    client: Client = Depends(get_supabase)
):
    """Get current authenticated user's profile"""
    return unwrap_or_raise(get_user_profile(client, current_user.id))

# =====================================================
# ISSUE REPORTING & LIFECYCLE
# =====================================================

@app.post("/issues/images", tags=["Media"])
async def upload_issue_images(
    images: List[UploadFile] = File(...),
    current_user: Actor = Depends(get_current_user),
    client: Client = Depends(get_supabase)
):
    """
    Upload issue photos before reporting

    Each image succeeds or fails on its own; the URLs of the successful
    uploads go into the issue's images list.
    """
    files = []
    for image in images:
        file_ext = image.filename.split(".")[-1] if image.filename and "." in image.filename else "jpg"
        files.append((await image.read(), file_ext))

    result = upload_multiple_images(client, files)
    if files and not result.successful:
        raise HTTPException(status_code=502, detail="Failed to upload images")

    return {
        "status": "success" if not result.failed else "partial",
        "urls": [item["url"] for item in result.successful],
        "failed": result.failed
    }

@app.post("/issues", tags=["Issues"])
def report_issue(
    body: IssueCreate,
    current_user: Actor = Depends(get_current_user),
    client: Client = Depends(get_supabase)
):
    """
    Report new civic issue

    The issue starts as pending. The reporter earns points by priority:
    urgent 20, high 15, medium 10, low 5.
    """
    issue = unwrap_or_raise(create_issue(client, current_user, body.model_dump(exclude_none=True)))

    points = award_issue_points(client, current_user.id, body.priority)
    if points.error:
        logger.error(f"Issue {issue.get('id')} created but points not awarded: {points.error.message}")

    return {
        "status": "success",
        "message": "Issue reported successfully",
        "data": issue,
        "points_awarded": points.data["points_awarded"] if points.ok else 0
    }

@app.get("/issues", tags=["Issues"])
def list_issues(
    category: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    priority: Optional[str] = Query(None),
    department: Optional[str] = Query(None),
    location: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    limit: Optional[int] = Query(None, ge=1, le=500),
    client: Client = Depends(get_supabase)
):
    """List issues, newest first, with optional filters"""
    issues = unwrap_or_raise(get_issues(
        client, category=category, status=status, priority=priority,
        department=department, location=location, search=search, limit=limit
    ))
    return {"status": "success", "count": len(issues), "data": issues}

@app.get("/issues/mine", tags=["Issues"])
def list_my_issues(
    status: Optional[str] = Query(None),
    current_user: Actor = Depends(get_current_user),
    client: Client = Depends(get_supabase)
):
    issues = unwrap_or_raise(get_issues(client, status=status, user_id=current_user.id))
    return {"status": "success", "count": len(issues), "data": issues}

@app.get("/issues/trending", tags=["Issues"])
def trending_issues(limit: int = Query(10, ge=1, le=100), client: Client = Depends(get_supabase)):
    """Most viewed and upvoted issues reported recently"""
    issues = unwrap_or_raise(get_trending_issues(client, limit))
    return {"status": "success", "count": len(issues), "data": issues}

@app.get("/issues/{issue_id}", tags=["Issues"])
def get_issue_by_id(issue_id: str, background_tasks: BackgroundTasks, client: Client = Depends(get_supabase)):
    """Get issue details; counts as a view"""
    issue = unwrap_or_raise(get_issue(client, issue_id))
    background_tasks.add_task(increment_issue_views, client, issue_id)
    return {"status": "success", "data": issue}

@app.put("/issues/{issue_id}", tags=["Issues"])
def update_issue_endpoint(
    issue_id: str,
    body: IssueUpdate,
    current_user: Actor = Depends(get_admin_user),
    client: Client = Depends(get_supabase)
):
    """
    Update an issue (Admin only)

    Status moves only forward: pending -> in_progress -> resolved.
    """
    issue = unwrap_or_raise(update_issue(client, issue_id, body.model_dump(exclude_unset=True)))
    return {"status": "success", "data": issue}

@app.post("/issues/{issue_id}/assign", tags=["Issues"])
def assign_issue_endpoint(
    issue_id: str,
    body: IssueAssignment,
    current_user: Actor = Depends(get_admin_user),
    client: Client = Depends(get_supabase)
):
    """Assign to a department and move to In Progress (Admin only)"""
    issue = unwrap_or_raise(assign_issue(
        client, issue_id, body.department, body.assigned_to, body.priority, body.estimated_date
    ))
    return {"status": "success", "message": "Issue assigned and moved to In Progress", "data": issue}

@app.post("/issues/{issue_id}/resolve", tags=["Issues"])
def resolve_issue_endpoint(
    issue_id: str,
    current_user: Actor = Depends(get_admin_user),
    client: Client = Depends(get_supabase)
):
    issue = unwrap_or_raise(resolve_issue(client, issue_id))
    return {"status": "success", "message": "Issue status updated to Resolved", "data": issue}

@app.post("/issues/{issue_id}/tender", tags=["Tenders"])
def create_tender_from_issue_endpoint(
    issue_id: str,
    body: TenderCreate,
    current_user: Actor = Depends(get_admin_user),
    client: Client = Depends(get_supabase)
):
    """
    Create a tender from an issue (Admin only)

    Copies category, location and priority from the issue and moves the issue
    to In Progress under Tender Management.
    """
    tender = unwrap_or_raise(create_tender_from_issue(
        client, current_user, issue_id, body.model_dump(exclude_none=True)
    ))
    return {
        "status": "success",
        "message": "Tender created successfully and issue moved to In Progress",
        "data": tender
    }

# =====================================================
# VOTES & COMMENTS
# =====================================================

@app.post("/issues/{issue_id}/vote", tags=["Votes"])
def vote_issue(
    issue_id: str,
    body: VoteRequest,
    current_user: Actor = Depends(get_current_user),
    client: Client = Depends(get_supabase)
):
    """Cast, switch or (repeating the same vote) withdraw a vote"""
    return {"status": "success", "data": unwrap_or_raise(vote_on_issue(client, current_user, issue_id, body.vote_type))}

@app.get("/issues/{issue_id}/vote", tags=["Votes"])
def my_vote(
    issue_id: str,
    current_user: Actor = Depends(get_current_user),
    client: Client = Depends(get_supabase)
):
    return {"status": "success", "vote_type": unwrap_or_raise(get_user_vote(client, current_user, issue_id))}

@app.post("/issues/{issue_id}/comments", tags=["Comments"])
def comment_on_issue(
    issue_id: str,
    body: CommentCreate,
    current_user: Actor = Depends(get_current_user),
    client: Client = Depends(get_supabase)
):
    comment = unwrap_or_raise(add_comment(client, current_user, issue_id, body.content))
    return {"status": "success", "data": comment}

@app.get("/issues/{issue_id}/comments", tags=["Comments"])
def list_comments(issue_id: str, client: Client = Depends(get_supabase)):
    comments = unwrap_or_raise(get_issue_comments(client, issue_id))
    return {"status": "success", "count": len(comments), "data": comments}

# =====================================================
# TENDERS & BIDS
# =====================================================

@app.post("/tenders", tags=["Tenders"])
def post_tender(
    body: TenderCreate,
    current_user: Actor = Depends(get_admin_user),
    client: Client = Depends(get_supabase)
):
    tender = unwrap_or_raise(create_tender(client, current_user, body.model_dump(exclude_none=True)))
    return {"status": "success", "data": tender}

@app.get("/tenders", tags=["Tenders"])
def list_tenders(status: str = Query(TenderStatus.AVAILABLE.value), client: Client = Depends(get_supabase)):
    """List tenders with their bids; status=all lists every tender"""
    tenders = unwrap_or_raise(get_tenders(client, status))
    return {"status": "success", "count": len(tenders), "data": tenders}

@app.get("/tenders/{tender_id}", tags=["Tenders"])
def tender_detail(tender_id: str, client: Client = Depends(get_supabase)):
    return {"status": "success", "data": unwrap_or_raise(get_tender(client, tender_id))}

@app.put("/tenders/{tender_id}/status", tags=["Tenders"])
def set_tender_status(
    tender_id: str,
    status: TenderStatus = Query(...),
    current_user: Actor = Depends(get_admin_user),
    client: Client = Depends(get_supabase)
):
    return {"status": "success", "data": unwrap_or_raise(update_tender_status(client, tender_id, status))}

@app.post("/tenders/{tender_id}/bids", tags=["Bids"])
def place_bid(
    tender_id: str,
    body: BidCreate,
    current_user: Actor = Depends(get_tender_user),
    client: Client = Depends(get_supabase)
):
    """Place a bid on an available tender (Contractors only)"""
    bid = unwrap_or_raise(create_bid(client, current_user, tender_id, body.amount, body.details))
    return {"status": "success", "data": bid}

@app.get("/bids/mine", tags=["Bids"])
def my_bids(current_user: Actor = Depends(get_tender_user), client: Client = Depends(get_supabase)):
    bids = unwrap_or_raise(get_user_bids(client, current_user))
    return {"status": "success", "count": len(bids), "data": bids}

@app.put("/bids/{bid_id}/status", tags=["Bids"])
def set_bid_status(
    bid_id: str,
    body: BidStatusUpdate,
    current_user: Actor = Depends(get_admin_user),
    client: Client = Depends(get_supabase)
):
    return {"status": "success", "data": unwrap_or_raise(update_bid_status(client, bid_id, body.status))}

# =====================================================
# FEEDBACK & NOTIFICATIONS
# =====================================================

@app.post("/feedback", tags=["Feedback"])
def submit_feedback(
    body: FeedbackCreate,
    current_user: Optional[Actor] = Depends(get_current_user_optional),
    client: Client = Depends(get_supabase)
):
    """Submit feedback; signed-in users receive an acknowledgement notification"""
    feedback = unwrap_or_raise(create_feedback(client, body.model_dump(exclude_none=True), current_user))
    return {"status": "success", "data": feedback}

@app.get("/feedback/mine", tags=["Feedback"])
def my_feedback(current_user: Actor = Depends(get_current_user), client: Client = Depends(get_supabase)):
    feedback = unwrap_or_raise(get_user_feedback(client, current_user))
    return {"status": "success", "count": len(feedback), "data": feedback}

@app.get("/notifications/mine", response_model=List[NotificationResponse], tags=["Notifications"])
def my_notifications(
    unread_only: bool = Query(False),
    current_user: Actor = Depends(get_current_user),
    client: Client = Depends(get_supabase)
):
    return unwrap_or_raise(get_user_notifications(client, current_user, unread_only))

@app.put("/notifications/{notification_id}/read", tags=["Notifications"])
def read_notification(
    notification_id: str,
    current_user: Actor = Depends(get_current_user),
    client: Client = Depends(get_supabase)
):
    unwrap_or_raise(mark_notification_read(client, current_user, notification_id))
    return {"status": "success"}

@app.get("/officials", tags=["Reference Data"])
def municipal_officials(client: Client = Depends(get_supabase)):
    officials = unwrap_or_raise(get_municipal_officials(client))
    return {"status": "success", "count": len(officials), "data": officials}

# =====================================================
# ANALYTICS & LEADERBOARD
# =====================================================

@app.get("/analytics/dashboard", response_model=DashboardStats, tags=["Analytics"])
def dashboard_stats(current_user: Actor = Depends(get_admin_user), client: Client = Depends(get_supabase)):
    """
    Get dashboard statistics (Admin only)

    Returns phase counts, user and tender totals, average resolution time,
    category and priority breakdowns and the monthly trend.
    """
    return unwrap_or_raise(get_admin_dashboard_stats(client))

@app.get("/leaderboard", response_model=List[LeaderboardEntry], tags=["Analytics"])
def leaderboard(
    period: LeaderboardPeriod = Query(LeaderboardPeriod.ALL),
    client: Client = Depends(get_supabase)
):
    """Community leaderboard ranked by activity score for the period"""
    return unwrap_or_raise(get_leaderboard(client, period.value))

# =====================================================
# ADMIN ENDPOINTS
# =====================================================

@app.get("/admin/users", tags=["Admin"])
def get_all_users(
    user_type: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    current_user: Actor = Depends(get_admin_user),
    client: Client = Depends(get_supabase)
):
    """Get all users (Admin only)"""
    users = unwrap_or_raise(list_profiles(client, user_type, search))
    return {"status": "success", "count": len(users), "data": users}

@app.put("/admin/users/{user_id}", tags=["Admin"])
def update_user(
    user_id: str,
    body: ProfileAdminUpdate,
    current_user: Actor = Depends(get_admin_user),
    client: Client = Depends(get_supabase)
):
    """Change a user's role, verification flag or points (Admin only)"""
    profile = unwrap_or_raise(update_profile_admin(
        client, user_id, body.user_type, body.is_verified, body.points
    ))
    return {"status": "success", "message": "User updated successfully", "data": profile}

@app.delete("/admin/users/{user_id}", tags=["Admin"])
def remove_user(
    user_id: str,
    current_user: Actor = Depends(get_admin_user),
    client: Client = Depends(get_supabase)
):
    unwrap_or_raise(delete_user(client, user_id))
    return {"status": "success", "message": "User deleted successfully"}

@app.get("/admin/feedback", tags=["Admin"])
def all_feedback(current_user: Actor = Depends(get_admin_user), client: Client = Depends(get_supabase)):
    feedback = unwrap_or_raise(get_all_feedback(client))
    return {"status": "success", "count": len(feedback), "data": feedback}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
