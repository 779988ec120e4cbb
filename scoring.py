# scoring.py - Points, leaderboard and dashboard rules
"""
Pure functions over rows already fetched from Supabase. Nothing here talks to
the database; see analytics.py for the fetch side.
"""
import math
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional

from errors import ValidationFailed
from models import IssueStatus, Priority

# =====================================================
# POINTS
# =====================================================

ISSUE_POINTS = {
    Priority.URGENT.value: 20,
    Priority.HIGH.value: 15,
    Priority.MEDIUM.value: 10,
    Priority.LOW.value: 5,
}

def points_for_priority(priority) -> int:
    """Points awarded once to the reporter when an issue is created"""
    key = getattr(priority, "value", priority)
    return ISSUE_POINTS.get(key, ISSUE_POINTS[Priority.LOW.value])

# =====================================================
# SCORE, LEVELS & BADGES
# =====================================================

ISSUE_WEIGHT = 10
POST_WEIGHT = 5
RESOLVED_WEIGHT = 25
HIGH_PRIORITY_WEIGHT = 15
UPVOTE_WEIGHT = 2

# Highest threshold first
LEVELS = [
    (2000, "Champion"),
    (1000, "Expert"),
    (500, "Advanced"),
    (100, "Intermediate"),
    (0, "Beginner"),
]

MAX_DISPLAYED_BADGES = 3

def activity_score(
    points: int = 0,
    issues: int = 0,
    posts: int = 0,
    resolved: int = 0,
    high_priority: int = 0,
    upvotes: int = 0
) -> int:
    """Stored points plus weighted activity"""
    return (
        (points or 0)
        + issues * ISSUE_WEIGHT
        + posts * POST_WEIGHT
        + resolved * RESOLVED_WEIGHT
        + high_priority * HIGH_PRIORITY_WEIGHT
        + upvotes * UPVOTE_WEIGHT
    )

def level_for_score(score: int) -> str:
    for threshold, label in LEVELS:
        if score >= threshold:
            return label
    return LEVELS[-1][1]

def badges_for(stats: Dict[str, int], score: int) -> List[str]:
    """
    Every badge whose threshold is met, in evaluation order.

    The order decides which badges survive display truncation.
    """
    rules = [
        ("Top Reporter", stats.get("issues_reported", 0) >= 50),
        ("Problem Solver", stats.get("resolved_issues", 0) >= 20),
        ("Community Voice", stats.get("posts", 0) >= 30),
        ("Elite Contributor", score >= 1000),
        ("Crowd Favorite", stats.get("upvotes_received", 0) >= 100),
        ("Urgent Responder", stats.get("high_priority_issues", 0) >= 10),
    ]
    return [name for name, earned in rules if earned]

def displayed_badges(badges: List[str]) -> List[str]:
    return badges[:MAX_DISPLAYED_BADGES]

# =====================================================
# LEADERBOARD
# =====================================================

PERIOD_DAYS = {
    "week": 7,
    "month": 30,
    "quarter": 90,
    "year": 365,
    "all": None,
}

HIGH_PRIORITIES = {Priority.HIGH.value, Priority.URGENT.value}

def period_start(period, now: Optional[datetime] = None) -> Optional[datetime]:
    """Earliest created_at counted for a leaderboard period, None for all time"""
    key = getattr(period, "value", period)
    if key not in PERIOD_DAYS:
        raise ValidationFailed(f"Unknown leaderboard period: {period}")
    days = PERIOD_DAYS[key]
    if days is None:
        return None
    now = now or datetime.now(timezone.utc)
    return now - timedelta(days=days)

def activity_stats(user_id: str, issues: Iterable[dict], posts: Iterable[dict]) -> Dict[str, int]:
    """Activity counts for one user over the fetched window"""
    own_issues = [i for i in issues if i.get("user_id") == user_id]
    return {
        "issues_reported": len(own_issues),
        "resolved_issues": sum(1 for i in own_issues if i.get("status") == IssueStatus.RESOLVED.value),
        "high_priority_issues": sum(1 for i in own_issues if i.get("priority") in HIGH_PRIORITIES),
        "upvotes_received": sum(i.get("upvotes") or 0 for i in own_issues),
        "posts": sum(1 for p in posts if p.get("user_id") == user_id),
    }

def build_leaderboard(profiles: List[dict], issues: List[dict], posts: List[dict]) -> List[dict]:
    """
    Score every profile and rank by total score.

    Profiles usually arrive ordered by stored points; that ordering only
    breaks ties, the final order is by total_score descending.
    """
    issues = list(issues)
    posts = list(posts)
    entries = []
    for profile in profiles:
        stats = activity_stats(profile["id"], issues, posts)
        points = profile.get("points") or 0
        score = activity_score(
            points=points,
            issues=stats["issues_reported"],
            posts=stats["posts"],
            resolved=stats["resolved_issues"],
            high_priority=stats["high_priority_issues"],
            upvotes=stats["upvotes_received"],
        )
        entries.append({
            "user_id": profile["id"],
            "full_name": profile.get("full_name"),
            "avatar_url": profile.get("avatar_url"),
            "points": points,
            "total_score": score,
            "level": level_for_score(score),
            "badges": displayed_badges(badges_for(stats, score)),
            **stats,
        })

    entries.sort(key=lambda e: e["total_score"], reverse=True)
    for rank, entry in enumerate(entries, start=1):
        entry["rank"] = rank
    return entries

# =====================================================
# DASHBOARD AGGREGATION
# =====================================================

def parse_timestamp(value) -> Optional[datetime]:
    """Parse a Supabase timestamp; naive values are taken as UTC"""
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed

def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))

def average_resolution_time(issues: Iterable[dict]) -> str:
    """Mean of whole days (rounded up) from creation to resolution"""
    durations = []
    for issue in issues:
        if issue.get("status") != IssueStatus.RESOLVED.value:
            continue
        created = parse_timestamp(issue.get("created_at"))
        resolved = parse_timestamp(issue.get("resolved_at"))
        if not created or not resolved:
            continue
        days = (resolved - created).total_seconds() / 86400
        durations.append(math.ceil(days))

    if not durations:
        return "0 days"
    return f"{_round_half_up(sum(durations) / len(durations))} days"

def breakdown(rows: Iterable[dict], field: str) -> Dict[str, int]:
    return dict(Counter(row.get(field) for row in rows))

def monthly_trend(issues: Iterable[dict]) -> Dict[str, int]:
    """Issue counts keyed by creation month, YYYY-MM in UTC"""
    months = Counter()
    for issue in issues:
        created = parse_timestamp(issue.get("created_at"))
        if created:
            months[created.astimezone(timezone.utc).strftime("%Y-%m")] += 1
    return dict(sorted(months.items()))

def status_counts(issues: Iterable[dict]) -> Dict[str, int]:
    """Counts per phase; anything not in progress or resolved is still pending"""
    counts = {status.value: 0 for status in IssueStatus}
    for issue in issues:
        status = issue.get("status")
        if status not in counts:
            status = IssueStatus.PENDING.value
        counts[status] += 1
    return counts

def aggregate_dashboard(
    issues: List[dict],
    posts: List[dict],
    profiles: List[dict],
    tenders: List[dict],
    feedback: List[dict],
    now: Optional[datetime] = None,
    recent_days: int = 7
) -> dict:
    """Single pass over the fetched collections, recomputed on every call"""
    now = now or datetime.now(timezone.utc)
    recent_cutoff = now - timedelta(days=recent_days)
    counts = status_counts(issues)

    recent = 0
    for issue in issues:
        created = parse_timestamp(issue.get("created_at"))
        if created and created >= recent_cutoff:
            recent += 1

    return {
        "total_issues": len(issues),
        "pending_issues": counts[IssueStatus.PENDING.value],
        "in_progress_issues": counts[IssueStatus.IN_PROGRESS.value],
        "resolved_issues": counts[IssueStatus.RESOLVED.value],
        "recent_issues": recent,
        "total_users": len(profiles),
        "users_by_type": breakdown(profiles, "user_type"),
        "total_tenders": len(tenders),
        "active_tenders": sum(1 for t in tenders if t.get("status") == "available"),
        "total_posts": len(posts),
        "total_feedback": len(feedback),
        "avg_response_time": average_resolution_time(issues),
        "categories_breakdown": breakdown(issues, "category"),
        "priority_breakdown": breakdown(issues, "priority"),
        "monthly_trend": monthly_trend(issues),
    }
