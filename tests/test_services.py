from datetime import timedelta

import services
from errors import AuthenticationRequired, BackendFailure, Conflict, InvalidTransition, NotFound, ValidationFailed
from fakes import increment_issue_views_rpc

from conftest import NOW

ISSUE = {
    "title": "Streetlight out",
    "description": "Lamp post 14 has been dark for a week",
    "category": "utilities",
    "priority": "urgent",
}


# Issue reporting

def test_create_issue_requires_actor(db):
    result = services.create_issue(db, None, ISSUE)
    assert isinstance(result.error, AuthenticationRequired)
    assert result.data is None
    assert "issues" not in db.tables


def test_create_issue_requires_core_fields(db, citizen):
    result = services.create_issue(db, citizen, {"title": "No details", "description": "  "})
    assert isinstance(result.error, ValidationFailed)
    assert "description" in result.error.message
    assert "category" in result.error.message


def test_create_issue_forces_pending_and_zero_counters(db, citizen):
    data = dict(ISSUE, status="resolved", upvotes=99, views_count=12)
    issue = services.create_issue(db, citizen, data).data

    assert issue["status"] == "pending"
    assert issue["user_id"] == citizen.id
    assert issue["upvotes"] == issue["downvotes"] == 0
    assert issue["comments_count"] == issue["views_count"] == 0
    assert issue["tags"] == ["utilities", "urgent"]
    assert issue["metadata"]["source"] == "mobile_app"


def test_get_issues_filters(db, citizen, pending_issue):
    db.seed("issues",
            {"user_id": citizen.id, "title": "Broken swing", "category": "parks", "status": "pending",
             "area": "North", "ward": "Ward 3"},
            {"user_id": "someone", "title": "Garbage pile", "category": "environment", "status": "resolved",
             "area": "South", "ward": "Central"})

    assert len(services.get_issues(db).data) == 3
    assert [i["title"] for i in services.get_issues(db, category="parks").data] == ["Broken swing"]
    assert len(services.get_issues(db, status="all").data) == 3
    by_location = services.get_issues(db, location="Central").data
    assert {i["title"] for i in by_location} == {"Pothole on MG Road", "Garbage pile"}
    assert [i["title"] for i in services.get_issues(db, search="pothole").data] == ["Pothole on MG Road"]
    assert len(services.get_issues(db, user_id=citizen.id, limit=1).data) == 1


def test_get_issue_missing(db):
    result = services.get_issue(db, "nope")
    assert isinstance(result.error, NotFound)


# Lifecycle

def test_update_issue_moves_forward_and_stamps_resolution(db, pending_issue):
    issue_id = pending_issue["id"]
    later = NOW + timedelta(hours=5)

    in_progress = services.update_issue(db, issue_id, {"status": "in_progress"}, now=NOW).data
    assert in_progress["status"] == "in_progress"
    assert in_progress["updated_at"] == NOW.isoformat()
    assert "resolved_at" not in in_progress

    resolved = services.update_issue(db, issue_id, {"status": "resolved"}, now=later).data
    assert resolved["status"] == "resolved"
    assert resolved["resolved_at"] == later.isoformat()
    assert resolved["actual_resolution_date"] == later.isoformat()


def test_update_issue_rejects_going_back(db, pending_issue):
    db.row("issues", pending_issue["id"])["status"] = "resolved"
    result = services.update_issue(db, pending_issue["id"], {"status": "pending"})

    assert isinstance(result.error, InvalidTransition)
    assert db.row("issues", pending_issue["id"])["status"] == "resolved"


def test_update_issue_rejects_skipping_a_phase(db, pending_issue):
    result = services.update_issue(db, pending_issue["id"], {"status": "resolved"})
    assert isinstance(result.error, InvalidTransition)


def test_update_issue_without_status_keeps_phase(db, pending_issue):
    issue = services.update_issue(db, pending_issue["id"], {"title": "Deep pothole"}, now=NOW).data
    assert issue["title"] == "Deep pothole"
    assert issue["status"] == "pending"


def test_update_missing_issue(db):
    assert isinstance(services.update_issue(db, "nope", {"title": "x"}).error, NotFound)


def test_assign_issue(db, pending_issue):
    issue = services.assign_issue(db, pending_issue["id"], "Public Works", "crew-7", "urgent").data
    assert issue["status"] == "in_progress"
    assert issue["assigned_department"] == "Public Works"
    assert issue["assigned_to"] == "crew-7"
    assert issue["priority"] == "urgent"


def test_assign_issue_requires_department(db, pending_issue):
    assert isinstance(services.assign_issue(db, pending_issue["id"], "").error, ValidationFailed)


def test_resolve_issue_from_in_progress(db, pending_issue):
    services.assign_issue(db, pending_issue["id"], "Public Works")
    issue = services.resolve_issue(db, pending_issue["id"]).data
    assert issue["status"] == "resolved"
    assert issue["resolved_at"]


def test_increment_views_uses_rpc(db, pending_issue):
    db.rpcs["increment_issue_views"] = increment_issue_views_rpc
    services.increment_issue_views(db, pending_issue["id"])
    services.increment_issue_views(db, pending_issue["id"])

    assert db.row("issues", pending_issue["id"])["views_count"] == 2
    assert ("issues", "update") not in db.calls


def test_increment_views_falls_back_without_rpc(db, pending_issue):
    result = services.increment_issue_views(db, pending_issue["id"])

    assert result.ok
    assert db.row("issues", pending_issue["id"])["views_count"] == 1
    assert ("issues", "update") in db.calls


def test_trending_issues_are_recent_and_ordered(db, citizen, pending_issue):
    fresh = db.seed("issues",
                    {"user_id": citizen.id, "title": "A", "views_count": 5, "upvotes": 1,
                     "created_at": (NOW - timedelta(hours=2)).isoformat()},
                    {"user_id": citizen.id, "title": "B", "views_count": 5, "upvotes": 3,
                     "created_at": (NOW - timedelta(hours=1)).isoformat()},
                    {"user_id": citizen.id, "title": "C", "views_count": 9, "upvotes": 0,
                     "created_at": (NOW - timedelta(hours=3)).isoformat()})

    trending = services.get_trending_issues(db, limit=10, now=NOW).data
    assert [i["title"] for i in trending] == ["C", "B", "A"]
    assert len(fresh) == 3


# Voting

def test_same_vote_twice_cancels(db, citizen, pending_issue):
    first = services.vote_on_issue(db, citizen, pending_issue["id"], "upvote").data
    assert first == {"action": "added", "vote_type": "upvote", "upvotes": 1, "downvotes": 0}

    second = services.vote_on_issue(db, citizen, pending_issue["id"], "upvote").data
    assert second["action"] == "removed"
    assert second["vote_type"] is None
    assert (second["upvotes"], second["downvotes"]) == (0, 0)
    assert db.tables["issue_votes"] == []


def test_switching_vote_keeps_total(db, citizen, pending_issue):
    services.vote_on_issue(db, citizen, pending_issue["id"], "upvote")
    switched = services.vote_on_issue(db, citizen, pending_issue["id"], "downvote").data

    assert switched["action"] == "changed"
    assert (switched["upvotes"], switched["downvotes"]) == (0, 1)
    issue = db.row("issues", pending_issue["id"])
    assert issue["upvotes"] + issue["downvotes"] == 1


def test_vote_counts_are_recounted_from_rows(db, citizen, pending_issue):
    db.row("issues", pending_issue["id"])["upvotes"] = 40
    db.seed("issue_votes", {"issue_id": pending_issue["id"], "user_id": "other", "vote_type": "upvote"})

    result = services.vote_on_issue(db, citizen, pending_issue["id"], "upvote").data
    assert result["upvotes"] == 2
    assert db.row("issues", pending_issue["id"])["upvotes"] == 2


def test_vote_validation(db, citizen, pending_issue):
    assert isinstance(services.vote_on_issue(db, None, pending_issue["id"], "upvote").error, AuthenticationRequired)
    assert isinstance(services.vote_on_issue(db, citizen, pending_issue["id"], "meh").error, ValidationFailed)
    assert isinstance(services.vote_on_issue(db, citizen, "nope", "upvote").error, NotFound)


def test_get_user_vote(db, citizen, pending_issue):
    assert services.get_user_vote(db, citizen, pending_issue["id"]).data is None
    services.vote_on_issue(db, citizen, pending_issue["id"], "downvote")
    assert services.get_user_vote(db, citizen, pending_issue["id"]).data == "downvote"


# Comments

def test_add_comment_updates_count(db, citizen, pending_issue):
    services.add_comment(db, citizen, pending_issue["id"], "  Still there today  ")
    comment = services.add_comment(db, citizen, pending_issue["id"], "Getting worse").data

    assert comment["content"] == "Getting worse"
    assert db.row("issues", pending_issue["id"])["comments_count"] == 2
    assert [c["content"] for c in services.get_issue_comments(db, pending_issue["id"]).data] == [
        "Still there today", "Getting worse"
    ]


def test_add_comment_rolls_back_when_count_update_fails(db, citizen, pending_issue):
    db.fail_on.add(("issues", "update"))
    result = services.add_comment(db, citizen, pending_issue["id"], "Lost comment")

    assert isinstance(result.error, BackendFailure)
    assert db.tables["issue_comments"] == []
    assert db.row("issues", pending_issue["id"])["comments_count"] == 0


def test_add_comment_rejects_blank(db, citizen, pending_issue):
    assert isinstance(services.add_comment(db, citizen, pending_issue["id"], "   ").error, ValidationFailed)


# Points & profiles

def test_award_issue_points(db, citizen):
    assert services.award_issue_points(db, citizen.id, "high").data == {"points_awarded": 15, "total_points": 15}
    assert services.award_issue_points(db, citizen.id, "low").data == {"points_awarded": 5, "total_points": 20}
    assert db.row("profiles", citizen.id)["points"] == 20


def test_award_points_to_missing_profile(db):
    assert isinstance(services.award_issue_points(db, "ghost", "high").error, NotFound)


def test_backend_errors_become_backend_failure(db, citizen):
    db.fail_on.add(("profiles", "select"))
    result = services.update_user_points(db, citizen.id, "issue_reported", 10)

    assert isinstance(result.error, BackendFailure)
    assert "simulated select failure" in result.error.message


def test_list_profiles_search_and_filter(db, citizen, admin, contractor):
    assert len(services.list_profiles(db).data) == 3
    assert [p["id"] for p in services.list_profiles(db, user_type="tender").data] == [contractor.id]
    assert [p["id"] for p in services.list_profiles(db, search="ASHA").data] == [citizen.id]


def test_update_profile_admin(db, citizen):
    profile = services.update_profile_admin(db, citizen.id, user_type="tender", is_verified=True, points="42").data
    assert profile["user_type"] == "tender"
    assert profile["is_verified"] is True
    assert profile["points"] == 42

    assert services.update_profile_admin(db, citizen.id, points="lots").data["points"] == 0


def test_delete_user(db, citizen):
    assert services.delete_user(db, citizen.id).data == citizen.id
    assert db.auth.admin.deleted == [citizen.id]


# Notifications & feedback

def test_feedback_from_signed_in_user_sends_notification(db, citizen):
    feedback = services.create_feedback(db, {"subject": "App", "message": "Works well", "rating": 5}, citizen).data

    assert feedback["user_id"] == citizen.id
    notifications = services.get_user_notifications(db, citizen).data
    assert len(notifications) == 1
    assert notifications[0]["title"] == "Feedback Received"
    assert notifications[0]["related_id"] == feedback["id"]


def test_anonymous_feedback_has_no_notification(db):
    assert services.create_feedback(db, {"message": "Anonymous note"}).ok
    assert "notifications" not in db.tables


def test_feedback_saved_when_notification_fails(db, citizen):
    db.fail_on.add(("notifications", "insert"))
    result = services.create_feedback(db, {"message": "Hello"}, citizen)
    assert result.ok
    assert len(db.tables["feedback"]) == 1


def test_mark_notification_read_only_for_owner(db, citizen, admin):
    note = services.create_notification(db, citizen.id, "Hi", "Welcome", "system").data

    assert isinstance(services.mark_notification_read(db, admin, note["id"]).error, NotFound)
    read = services.mark_notification_read(db, citizen, note["id"]).data
    assert read["is_read"] is True
    assert services.get_user_notifications(db, citizen, unread_only=True).data == []


def test_municipal_officials_only_active(db):
    db.seed("municipal_officials",
            {"name": "R. Iyer", "department": "Water", "is_active": True},
            {"name": "S. Khan", "department": "Roads", "is_active": False})
    assert [o["name"] for o in services.get_municipal_officials(db).data] == ["R. Iyer"]


def test_update_issue_ignores_null_for_required_columns(db, pending_issue):
    db.row("issues", pending_issue["id"])["assigned_to"] = "crew-7"
    issue = services.update_issue(
        db, pending_issue["id"], {"status": None, "title": None, "category": None, "assigned_to": None}, now=NOW
    ).data

    assert issue["status"] == "pending"
    assert issue["title"] == "Pothole on MG Road"
    assert issue["category"] == "roads"
    assert issue["assigned_to"] is None


def test_update_issue_refuses_stale_status(db, pending_issue, monkeypatch):
    # another admin resolves the issue after our read
    stale = dict(pending_issue)
    db.row("issues", pending_issue["id"])["status"] = "resolved"
    monkeypatch.setattr(services, "fetch_issue", lambda client, issue_id, columns="*": stale)

    result = services.update_issue(db, pending_issue["id"], {"status": "in_progress"})

    assert isinstance(result.error, Conflict)
    assert db.row("issues", pending_issue["id"])["status"] == "resolved"


def test_location_filter_keeps_commas_literal(db, citizen, pending_issue):
    db.row("issues", pending_issue["id"])["area"] = "Ward 12, North"
    db.seed("issues", {"user_id": "someone", "title": "Other", "area": "Ward 12", "ward": "North"})

    result = services.get_issues(db, location="Ward 12, North")
    assert result.ok
    assert [i["id"] for i in result.data] == [pending_issue["id"]]


def test_location_filter_cannot_add_clauses(db, citizen, pending_issue):
    result = services.get_issues(db, location=f'x",user_id.eq.{citizen.id}')
    assert result.ok
    assert result.data == []


def test_quote_filter_value():
    assert services.quote_filter_value("Ward 12, North") == '"Ward 12, North"'
    assert services.quote_filter_value('Sector "B" (east)') == '"Sector \\"B\\" (east)"'
