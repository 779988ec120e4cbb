# tenders.py - Tenders and contractor bids
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from supabase import Client

from config import settings
from errors import BackendFailure, NotFound, ValidationFailed, service_operation
from lifecycle import validate_transition
from models import Actor, BidStatus, IssueStatus, TenderStatus
from services import delete_row, fetch_issue, require_actor, to_row, utc_now

logger = logging.getLogger(__name__)

TENDER_WITH_BIDS_SELECT = """
    *,
    bids (
        id,
        amount,
        details,
        user_id,
        status,
        profiles:user_id (
            email,
            full_name
        )
    )
"""

# =====================================================
# TENDER PREPARATION
# =====================================================

def parse_requirements(requirements) -> List[str]:
    """Accept a list or newline separated text; blank entries are dropped"""
    if not requirements:
        return []
    if isinstance(requirements, str):
        requirements = requirements.split("\n")
    return [r.strip() for r in requirements if r and r.strip()]

def prepare_tender(fields: Dict, now: Optional[datetime] = None) -> Dict:
    """
    Apply tender defaults and check the budget range.

    - estimated_budget_max falls back to estimated_budget_min
    - estimated_budget_min must not exceed estimated_budget_max
    - submission_deadline defaults to TENDER_SUBMISSION_DAYS from now
    - status defaults to available
    """
    now = now or utc_now()
    tender = to_row({k: v for k, v in fields.items() if v is not None})

    budget_min = tender.get("estimated_budget_min")
    budget_max = tender.get("estimated_budget_max")
    if budget_max is None and budget_min is not None:
        budget_max = budget_min
        tender["estimated_budget_max"] = budget_max
    if budget_min is not None and budget_min < 0:
        raise ValidationFailed("Budget cannot be negative")
    if budget_min is not None and budget_max is not None and budget_min > budget_max:
        raise ValidationFailed("Minimum budget cannot exceed maximum budget")

    if not tender.get("submission_deadline"):
        deadline = now + timedelta(days=settings.TENDER_SUBMISSION_DAYS)
        tender["submission_deadline"] = deadline.isoformat()

    tender["requirements"] = parse_requirements(tender.get("requirements"))
    tender.setdefault("status", TenderStatus.AVAILABLE.value)
    return tender

# =====================================================
# TENDERS
# =====================================================

@service_operation("creating tender")
def create_tender(client: Client, actor: Optional[Actor], fields: Dict) -> Dict:
    actor = require_actor(actor)
    if not (fields.get("title") or "").strip():
        raise ValidationFailed("Tender title is required")

    tender = prepare_tender(fields)
    tender["posted_by"] = actor.id

    response = client.table("tenders").insert(tender).execute()
    if not response.data:
        raise BackendFailure("Failed to create tender")

    created = response.data[0]
    logger.info(f"Tender {created.get('id')} posted by {actor.id}")
    return created

@service_operation("creating tender from issue")
def create_tender_from_issue(client: Client, actor: Optional[Actor], issue_id: str, fields: Dict) -> Dict:
    """
    Turn an issue into a tender and move the issue into in_progress.

    Two writes: insert the tender, then update the issue. If the issue update
    fails the tender is deleted again so no orphan listing is left behind.
    """
    actor = require_actor(actor)
    issue = fetch_issue(client, issue_id)
    validate_transition(issue.get("status"), IssueStatus.IN_PROGRESS)

    defaults = {
        "title": f"Tender for: {issue.get('title')}",
        "description": f"{issue.get('description')}\n\nOriginal Issue ID: {issue_id}",
        "category": issue.get("category"),
        "location": issue.get("location_name") or issue.get("address"),
        "area": issue.get("area"),
        "ward": issue.get("ward"),
        "priority": issue.get("priority"),
    }
    overrides = {k: v for k, v in fields.items() if v not in (None, "")}
    tender = prepare_tender({**defaults, **overrides})
    tender["posted_by"] = actor.id
    tender["metadata"] = {"source_issue_id": issue_id, "source_type": "issue"}

    response = client.table("tenders").insert(tender).execute()
    if not response.data:
        raise BackendFailure("Failed to create tender")
    created = response.data[0]

    try:
        updated = client.table("issues").update({
            "status": IssueStatus.IN_PROGRESS.value,
            "assigned_department": settings.TENDER_DEPARTMENT,
            "updated_at": utc_now().isoformat(),
        }).eq("id", issue_id).execute()
    except Exception as e:
        delete_row(client, "tenders", created["id"])
        raise BackendFailure(f"Issue update failed after tender insert: {e}", cause=e)

    if not updated.data:
        delete_row(client, "tenders", created["id"])
        raise NotFound(f"Issue {issue_id} not found")

    logger.info(f"Tender {created.get('id')} created from issue {issue_id}")
    return created

@service_operation("fetching tenders")
def get_tenders(client: Client, status: str = TenderStatus.AVAILABLE.value) -> List[Dict]:
    query = client.table("tenders") \
        .select(TENDER_WITH_BIDS_SELECT) \
        .order("created_at", desc=True)
    if status != "all":
        query = query.eq("status", status)
    return query.execute().data or []

def fetch_tender(client: Client, tender_id: str, columns: str = "*") -> Dict:
    response = client.table("tenders").select(columns).eq("id", tender_id).execute()
    if not response.data:
        raise NotFound(f"Tender {tender_id} not found")
    return response.data[0]

@service_operation("fetching tender")
def get_tender(client: Client, tender_id: str) -> Dict:
    return fetch_tender(client, tender_id, TENDER_WITH_BIDS_SELECT)

@service_operation("updating tender status")
def update_tender_status(client: Client, tender_id: str, status) -> Dict:
    try:
        status = TenderStatus(getattr(status, "value", status))
    except ValueError:
        raise ValidationFailed(f"Invalid tender status: {status}")

    response = client.table("tenders").update({
        "status": status.value,
        "updated_at": utc_now().isoformat(),
    }).eq("id", tender_id).execute()
    if not response.data:
        raise NotFound(f"Tender {tender_id} not found")
    return response.data[0]

# =====================================================
# BIDS
# =====================================================

@service_operation("creating bid")
def create_bid(client: Client, actor: Optional[Actor], tender_id: str, amount: float, details: Optional[str] = None) -> Dict:
    """Place a bid on an open tender"""
    actor = require_actor(actor)
    if amount is None or amount <= 0:
        raise ValidationFailed("Bid amount must be positive")

    tender = fetch_tender(client, tender_id, "id, status")
    if tender.get("status") != TenderStatus.AVAILABLE.value:
        raise ValidationFailed(f"Tender {tender_id} is not accepting bids")

    response = client.table("bids").insert({
        "tender_id": tender_id,
        "user_id": actor.id,
        "amount": amount,
        "details": details,
        "status": BidStatus.PENDING.value,
    }).execute()
    if not response.data:
        raise BackendFailure("Failed to create bid")

    bid = response.data[0]
    logger.info(f"Bid {bid.get('id')} placed on tender {tender_id} by {actor.id}")
    return bid

@service_operation("fetching user bids")
def get_user_bids(client: Client, actor: Optional[Actor]) -> List[Dict]:
    actor = require_actor(actor)
    response = client.table("bids") \
        .select("*, tenders:tender_id (title, status, deadline_date)") \
        .eq("user_id", actor.id) \
        .order("created_at", desc=True) \
        .execute()
    return response.data or []

@service_operation("updating bid status")
def update_bid_status(client: Client, bid_id: str, status) -> Dict:
    try:
        status = BidStatus(getattr(status, "value", status))
    except ValueError:
        raise ValidationFailed(f"Invalid bid status: {status}")

    response = client.table("bids").update({"status": status.value}).eq("id", bid_id).execute()
    if not response.data:
        raise NotFound(f"Bid {bid_id} not found")
    return response.data[0]
