# services.py - Backend access layer: issues, votes, comments, points, profiles
import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Dict, List, Optional

from supabase import Client

from config import settings
from errors import (
    AuthenticationRequired, BackendFailure, Conflict, NotFound, ValidationFailed,
    service_operation, unwrap
)
from lifecycle import resolution_stamps, validate_transition
from models import Actor, IssueStatus, VoteType
from scoring import points_for_priority

logger = logging.getLogger(__name__)

ISSUE_REPORTER_SELECT = """
    *,
    profiles:user_id (
        full_name,
        first_name,
        last_name,
        avatar_url,
        user_type
    )
"""

REQUIRED_ISSUE_FIELDS = ("title", "description", "category")

# None in an update means "leave unchanged" for these columns
NON_NULL_ISSUE_FIELDS = REQUIRED_ISSUE_FIELDS + ("priority", "status")

# =====================================================
# HELPERS
# =====================================================

def utc_now() -> datetime:
    return datetime.now(timezone.utc)

def require_actor(actor: Optional[Actor]) -> Actor:
    if actor is None or not actor.id:
        raise AuthenticationRequired()
    return actor

def to_row(data: Dict) -> Dict:
    """Make enum and datetime values JSON friendly for the query builder"""
    row = {}
    for key, value in data.items():
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, datetime):
            value = value.isoformat()
        row[key] = value
    return row

def quote_filter_value(value: str) -> str:
    """Double-quote a value for a PostgREST or_ expression so commas and parentheses stay literal"""
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'

def fetch_issue(client: Client, issue_id: str, columns: str = "*") -> Dict:
    response = client.table("issues").select(columns).eq("id", issue_id).execute()
    if not response.data:
        raise NotFound(f"Issue {issue_id} not found")
    return response.data[0]

def fetch_profile(client: Client, user_id: str, columns: str = "*") -> Dict:
    response = client.table("profiles").select(columns).eq("id", user_id).execute()
    if not response.data:
        raise NotFound(f"Profile {user_id} not found")
    return response.data[0]

def delete_row(client: Client, table: str, row_id: str):
    """Compensating delete for a partially applied multi-step write"""
    try:
        client.table(table).delete().eq("id", row_id).execute()
        logger.info(f"Rolled back {table} row {row_id}")
    except Exception as e:
        logger.error(f"Rollback of {table} row {row_id} failed: {e}")

# =====================================================
# ISSUE LIFECYCLE
# =====================================================

@service_operation("creating issue")
def create_issue(client: Client, actor: Optional[Actor], data: Dict) -> Dict:
    """
    Persist a new issue reported by actor.

    Status is always pending and the vote/comment/view counters start at zero.
    Points are not awarded here; call award_issue_points after success.
    """
    actor = require_actor(actor)

    missing = [f for f in REQUIRED_ISSUE_FIELDS if not str(data.get(f) or "").strip()]
    if missing:
        raise ValidationFailed(f"Missing required fields: {', '.join(missing)}")

    row = to_row(data)
    row.update({
        "user_id": actor.id,
        "status": IssueStatus.PENDING.value,
        "upvotes": 0,
        "downvotes": 0,
        "comments_count": 0,
        "views_count": 0,
    })
    row.setdefault("images", [])
    if not row.get("tags"):
        row["tags"] = [row["category"], row.get("priority") or "medium"]
    row.setdefault("metadata", {"source": "mobile_app", "submission_method": "form"})

    response = client.table("issues").insert(row).execute()
    if not response.data:
        raise BackendFailure("Failed to create issue")

    issue = response.data[0]
    logger.info(f"Issue {issue.get('id')} reported by {actor.id}")
    return issue

@service_operation("fetching issues")
def get_issues(
    client: Client,
    category: Optional[str] = None,
    status: Optional[str] = None,
    priority: Optional[str] = None,
    department: Optional[str] = None,
    user_id: Optional[str] = None,
    location: Optional[str] = None,
    search: Optional[str] = None,
    limit: Optional[int] = None
) -> List[Dict]:
    """Issues newest first; "all" or None disables a filter"""
    query = client.table("issues").select(ISSUE_REPORTER_SELECT)

    for column, value in (
        ("category", category),
        ("status", status),
        ("priority", priority),
        ("assigned_department", department),
        ("user_id", user_id),
    ):
        if value and value != "all":
            query = query.eq(column, value)

    if location and location != "all":
        place = quote_filter_value(location)
        query = query.or_(f"area.eq.{place},ward.eq.{place}")
    if search:
        query = query.ilike("title", f"%{search}%")

    query = query.order("created_at", desc=True)
    if limit:
        query = query.limit(limit)

    return query.execute().data or []

@service_operation("fetching issue")
def get_issue(client: Client, issue_id: str) -> Dict:
    return fetch_issue(client, issue_id, ISSUE_REPORTER_SELECT)

@service_operation("updating issue")
def update_issue(client: Client, issue_id: str, updates: Dict, now: Optional[datetime] = None) -> Dict:
    """
    Merge updates into an issue and stamp updated_at.

    A status change must follow pending -> in_progress -> resolved; resolving
    stamps resolved_at and actual_resolution_date unless already supplied.
    """
    now = now or utc_now()
    row = to_row({
        k: v for k, v in updates.items()
        if v is not None or k not in NON_NULL_ISSUE_FIELDS
    })

    current_status = None
    if "status" in row:
        current = fetch_issue(client, issue_id, "id, status")
        current_status = current.get("status")
        target = validate_transition(current_status, row["status"])
        row["status"] = target.value
        if target == IssueStatus.RESOLVED and current_status != target.value:
            for key, value in resolution_stamps(now).items():
                row.setdefault(key, value)

    row["updated_at"] = now.isoformat()

    query = client.table("issues").update(row).eq("id", issue_id)
    if "status" in row:
        # only apply if the status read above is still current
        if current_status is None:
            query = query.is_("status", "null")
        else:
            query = query.eq("status", current_status)

    response = query.execute()
    if not response.data:
        if "status" in row:
            raise Conflict(f"Issue {issue_id} changed while it was being updated")
        raise NotFound(f"Issue {issue_id} not found")

    logger.info(f"Issue {issue_id} updated: {sorted(row)}")
    return response.data[0]

@service_operation("assigning issue")
def assign_issue(
    client: Client,
    issue_id: str,
    department: str,
    assigned_to: Optional[str] = None,
    priority: Optional[str] = None,
    estimated_date: Optional[datetime] = None
) -> Dict:
    """Admin triage: route to a department and move into in_progress"""
    if not department:
        raise ValidationFailed("Please select a department")

    updates = {
        "assigned_department": department,
        "assigned_to": assigned_to,
        "status": IssueStatus.IN_PROGRESS,
        "estimated_resolution_date": estimated_date,
    }
    if priority:
        updates["priority"] = priority
    return unwrap(update_issue(client, issue_id, updates))

@service_operation("resolving issue")
def resolve_issue(client: Client, issue_id: str) -> Dict:
    return unwrap(update_issue(client, issue_id, {"status": IssueStatus.RESOLVED}))

@service_operation("incrementing issue views")
def increment_issue_views(client: Client, issue_id: str) -> None:
    """Bump views_count, falling back to read-then-write without the RPC"""
    try:
        client.rpc("increment_issue_views", {"issue_id": issue_id}).execute()
        return
    except Exception as e:
        logger.warning(f"increment_issue_views RPC unavailable, using fallback: {e}")

    issue = fetch_issue(client, issue_id, "id, views_count")
    views = (issue.get("views_count") or 0) + 1
    client.table("issues").update({"views_count": views}).eq("id", issue_id).execute()

@service_operation("fetching trending issues")
def get_trending_issues(client: Client, limit: int = 10, now: Optional[datetime] = None) -> List[Dict]:
    """Most viewed, then most upvoted, issues of the trending window"""
    now = now or utc_now()
    since = now - timedelta(hours=settings.TRENDING_WINDOW_HOURS)

    response = client.table("issues") \
        .select(ISSUE_REPORTER_SELECT) \
        .gte("created_at", since.isoformat()) \
        .order("views_count", desc=True) \
        .order("upvotes", desc=True) \
        .limit(limit) \
        .execute()
    return response.data or []

# =====================================================
# VOTING
# =====================================================

def recount_votes(client: Client, issue_id: str) -> Dict[str, int]:
    """Recompute the issue's vote counters from every vote row and write them back"""
    votes = client.table("issue_votes").select("vote_type").eq("issue_id", issue_id).execute()
    rows = votes.data or []
    totals = {
        "upvotes": sum(1 for v in rows if v.get("vote_type") == VoteType.UPVOTE.value),
        "downvotes": sum(1 for v in rows if v.get("vote_type") == VoteType.DOWNVOTE.value),
    }
    client.table("issues").update(totals).eq("id", issue_id).execute()
    return totals

@service_operation("voting on issue")
def vote_on_issue(client: Client, actor: Optional[Actor], issue_id: str, vote_type) -> Dict:
    """
    Toggle actor's vote on an issue.

    The same vote twice removes it, the opposite vote replaces it. Counters
    are rebuilt by full recount rather than incremented.
    """
    actor = require_actor(actor)
    try:
        vote_type = VoteType(getattr(vote_type, "value", vote_type))
    except ValueError:
        raise ValidationFailed(f"Invalid vote type: {vote_type}")

    fetch_issue(client, issue_id, "id")

    existing = client.table("issue_votes") \
        .select("id, vote_type") \
        .eq("issue_id", issue_id) \
        .eq("user_id", actor.id) \
        .execute()

    if existing.data:
        vote = existing.data[0]
        if vote.get("vote_type") == vote_type.value:
            client.table("issue_votes").delete().eq("id", vote["id"]).execute()
            action, current = "removed", None
        else:
            client.table("issue_votes").update({"vote_type": vote_type.value}).eq("id", vote["id"]).execute()
            action, current = "changed", vote_type.value
    else:
        client.table("issue_votes").insert({
            "issue_id": issue_id,
            "user_id": actor.id,
            "vote_type": vote_type.value,
        }).execute()
        action, current = "added", vote_type.value

    totals = recount_votes(client, issue_id)
    logger.info(f"Vote {action} on issue {issue_id} by {actor.id}: {totals}")
    return {"action": action, "vote_type": current, **totals}

@service_operation("fetching user vote")
def get_user_vote(client: Client, actor: Optional[Actor], issue_id: str) -> Optional[str]:
    actor = require_actor(actor)
    response = client.table("issue_votes") \
        .select("vote_type") \
        .eq("issue_id", issue_id) \
        .eq("user_id", actor.id) \
        .execute()
    return response.data[0]["vote_type"] if response.data else None

# =====================================================
# COMMENTS
# =====================================================

@service_operation("adding comment")
def add_comment(client: Client, actor: Optional[Actor], issue_id: str, content: str) -> Dict:
    """Insert a comment then recount comments_count; the comment is removed if the count write fails"""
    actor = require_actor(actor)
    if not (content or "").strip():
        raise ValidationFailed("Comment cannot be empty")

    fetch_issue(client, issue_id, "id")

    response = client.table("issue_comments").insert({
        "issue_id": issue_id,
        "user_id": actor.id,
        "content": content.strip(),
    }).execute()
    if not response.data:
        raise BackendFailure("Failed to add comment")
    comment = response.data[0]

    try:
        comments = client.table("issue_comments").select("id").eq("issue_id", issue_id).execute()
        client.table("issues").update({
            "comments_count": len(comments.data or []),
            "updated_at": utc_now().isoformat(),
        }).eq("id", issue_id).execute()
    except Exception as e:
        delete_row(client, "issue_comments", comment["id"])
        raise BackendFailure(f"Comment count update failed: {e}", cause=e)

    return comment

@service_operation("fetching comments")
def get_issue_comments(client: Client, issue_id: str) -> List[Dict]:
    response = client.table("issue_comments") \
        .select("*, profiles:user_id (full_name, avatar_url)") \
        .eq("issue_id", issue_id) \
        .order("created_at", desc=False) \
        .execute()
    return response.data or []

# =====================================================
# POINTS & PROFILES
# =====================================================

@service_operation("updating user points")
def update_user_points(client: Client, user_id: str, action: str, points: int) -> int:
    """Add points to a profile's accumulator; returns the new total"""
    profile = fetch_profile(client, user_id, "id, points")
    total = (profile.get("points") or 0) + points

    client.table("profiles").update({
        "points": total,
        "updated_at": utc_now().isoformat(),
    }).eq("id", user_id).execute()

    logger.info(f"Awarded {points} points to {user_id} for {action} (total {total})")
    return total

@service_operation("awarding issue points")
def award_issue_points(client: Client, user_id: str, priority) -> Dict:
    points = points_for_priority(priority)
    total = unwrap(update_user_points(client, user_id, "issue_reported", points))
    return {"points_awarded": points, "total_points": total}

@service_operation("fetching profile")
def get_user_profile(client: Client, user_id: str) -> Dict:
    return fetch_profile(client, user_id)

@service_operation("listing profiles")
def list_profiles(client: Client, user_type: Optional[str] = None, search: Optional[str] = None) -> List[Dict]:
    query = client.table("profiles").select(
        "id, full_name, first_name, last_name, email, user_type, city, state, "
        "is_verified, points, created_at, last_login_at"
    )
    if user_type and user_type != "all":
        query = query.eq("user_type", user_type)
    profiles = query.order("created_at", desc=True).execute().data or []

    if search and search.strip():
        needle = search.strip().lower()
        fields = ("full_name", "email", "first_name", "last_name")
        profiles = [
            p for p in profiles
            if any(needle in (p.get(f) or "").lower() for f in fields)
        ]
    return profiles

def _parse_points(value) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return 0

@service_operation("updating profile")
def update_profile_admin(
    client: Client,
    user_id: str,
    user_type: Optional[str] = None,
    is_verified: Optional[bool] = None,
    points=None
) -> Dict:
    updates = {"updated_at": utc_now().isoformat()}
    if user_type is not None:
        updates["user_type"] = getattr(user_type, "value", user_type)
    if is_verified is not None:
        updates["is_verified"] = is_verified
    if points is not None:
        updates["points"] = _parse_points(points)

    response = client.table("profiles").update(updates).eq("id", user_id).execute()
    if not response.data:
        raise NotFound(f"Profile {user_id} not found")
    return response.data[0]

@service_operation("deleting user")
def delete_user(client: Client, user_id: str) -> str:
    client.auth.admin.delete_user(user_id)
    logger.info(f"User {user_id} deleted")
    return user_id

# =====================================================
# NOTIFICATIONS
# =====================================================

@service_operation("creating notification")
def create_notification(
    client: Client,
    user_id: str,
    title: str,
    message: str,
    notification_type: str,
    related_id: Optional[str] = None
) -> Dict:
    response = client.table("notifications").insert({
        "user_id": user_id,
        "title": title,
        "message": message,
        "type": notification_type,
        "related_id": related_id,
        "is_read": False,
        "is_sent": False,
    }).execute()
    if not response.data:
        raise BackendFailure("Failed to create notification")
    logger.info(f"Notification created for user {user_id}")
    return response.data[0]

@service_operation("fetching notifications")
def get_user_notifications(client: Client, actor: Optional[Actor], unread_only: bool = False) -> List[Dict]:
    actor = require_actor(actor)
    query = client.table("notifications").select("*").eq("user_id", actor.id)
    if unread_only:
        query = query.eq("is_read", False)
    return query.order("created_at", desc=True).execute().data or []

@service_operation("marking notification read")
def mark_notification_read(client: Client, actor: Optional[Actor], notification_id: str) -> Dict:
    actor = require_actor(actor)
    response = client.table("notifications").update({
        "is_read": True,
        "read_at": utc_now().isoformat(),
    }).eq("id", notification_id).eq("user_id", actor.id).execute()
    if not response.data:
        raise NotFound(f"Notification {notification_id} not found")
    return response.data[0]

# =====================================================
# FEEDBACK & OFFICIALS
# =====================================================

@service_operation("submitting feedback")
def create_feedback(client: Client, data: Dict, actor: Optional[Actor] = None) -> Dict:
    """Append feedback; signed-in senders also get an acknowledgement notification"""
    row = to_row(data)
    if actor is not None:
        row["user_id"] = actor.id

    response = client.table("feedback").insert(row).execute()
    if not response.data:
        raise BackendFailure("Failed to submit feedback")
    feedback = response.data[0]

    if row.get("user_id"):
        notified = create_notification(
            client,
            row["user_id"],
            "Feedback Received",
            "Thank you for your feedback. We will review it and respond if necessary.",
            "feedback",
            feedback.get("id"),
        )
        if notified.error:
            logger.warning(f"Feedback {feedback.get('id')} saved without notification")

    return feedback

@service_operation("fetching feedback")
def get_user_feedback(client: Client, actor: Optional[Actor]) -> List[Dict]:
    actor = require_actor(actor)
    response = client.table("feedback") \
        .select("*") \
        .eq("user_id", actor.id) \
        .order("created_at", desc=True) \
        .execute()
    return response.data or []

@service_operation("fetching feedback list")
def get_all_feedback(client: Client) -> List[Dict]:
    return client.table("feedback").select("*").order("created_at", desc=True).execute().data or []

@service_operation("fetching municipal officials")
def get_municipal_officials(client: Client) -> List[Dict]:
    response = client.table("municipal_officials") \
        .select("*") \
        .eq("is_active", True) \
        .order("department", desc=False) \
        .execute()
    return response.data or []
