# analytics.py - Admin dashboard statistics and leaderboard
import logging
from datetime import datetime
from typing import Dict, List, Optional

from supabase import Client

from config import settings
from errors import service_operation
from scoring import aggregate_dashboard, build_leaderboard, period_start
from services import utc_now

logger = logging.getLogger(__name__)

def _fetch_all(client: Client, table: str, columns: str) -> List[Dict]:
    return client.table(table).select(columns).execute().data or []

@service_operation("generating dashboard stats")
def get_admin_dashboard_stats(client: Client, now: Optional[datetime] = None) -> Dict:
    """
    Fetch issues, posts, profiles, tenders and feedback and aggregate them.

    Nothing is cached; every call re-reads the five collections.
    """
    issues = _fetch_all(client, "issues", "id, status, category, priority, created_at, resolved_at")
    posts = _fetch_all(client, "community_posts", "id")
    profiles = _fetch_all(client, "profiles", "id, user_type")
    tenders = _fetch_all(client, "tenders", "id, status")
    feedback = _fetch_all(client, "feedback", "id")

    stats = aggregate_dashboard(
        issues, posts, profiles, tenders, feedback,
        now=now or utc_now(),
        recent_days=settings.RECENT_ISSUES_DAYS,
    )
    logger.info(f"Dashboard stats computed over {stats['total_issues']} issues")
    return stats

@service_operation("building leaderboard")
def get_leaderboard(
    client: Client,
    period: str = "all",
    limit: Optional[int] = None,
    now: Optional[datetime] = None
) -> List[Dict]:
    """
    Rank the top profiles by activity score within a time period.

    Profiles are pre-selected by stored points; the returned order is by
    total_score, which also counts activity in the period.
    """
    since = period_start(period, now or utc_now())
    limit = limit or settings.LEADERBOARD_LIMIT

    profiles = client.table("profiles") \
        .select("id, full_name, avatar_url, points, user_type") \
        .order("points", desc=True) \
        .limit(limit) \
        .execute().data or []
    if not profiles:
        return []

    user_ids = [p["id"] for p in profiles]

    issues_query = client.table("issues") \
        .select("id, user_id, status, priority, upvotes, created_at") \
        .in_("user_id", user_ids)
    posts_query = client.table("community_posts") \
        .select("id, user_id, created_at") \
        .in_("user_id", user_ids)
    if since is not None:
        issues_query = issues_query.gte("created_at", since.isoformat())
        posts_query = posts_query.gte("created_at", since.isoformat())

    issues = issues_query.execute().data or []
    posts = posts_query.execute().data or []

    return build_leaderboard(profiles, issues, posts)
