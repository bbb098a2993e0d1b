"""
Integration tests for the notification API.

Covers the inbox lifecycle (create, read, list, delete), bulk sends,
statistics and the error envelope.
"""

import pytest
from datetime import datetime, timedelta

from backend.app.core.timeutils import utc_now
from backend.app.services.notification_store import NotificationStore

# Note: Client and DB setup are in conftest.py


async def _seed(db_session, recipient, count, read=0, **overrides):
    """Insert ``count`` notifications for ``recipient``, the first ``read`` of them read."""
    for i in range(count):
        record = {
            "title": f"Notice {i}",
            "message": "Body",
            "recipient_id": recipient.id,
            "is_read": i < read,
        }
        record.update(overrides)
        await NotificationStore.insert(db_session, record)
    await db_session.commit()


# TEST 1: Create
@pytest.mark.asyncio
async def test_create_notification_defaults(client, ada):
    response = await client.post("/v1/notifications", json={
        "title": "T",
        "message": "M",
        "recipient": ada.id
    })

    assert response.status_code == 201
    data = response.json()
    assert data["isRead"] is False
    assert data["readAt"] is None
    assert data["type"] == "info"
    assert data["priority"] == "medium"
    assert data["category"] == "general"
    assert data["recipient"] == {"id": ada.id, "name": ada.name, "email": ada.email}
    assert data["sender"] is None


@pytest.mark.asyncio
async def test_create_then_get_round_trip(client, ada, bob):
    payload = {
        "title": "Freezer alarm",
        "message": "Freezer B2 is above -70C",
        "recipient": ada.id,
        "sender": bob.id,
        "type": "warning",
        "priority": "urgent",
        "category": "inventory",
        "relatedEntity": {"entityType": "InventoryItem", "entityId": 17},
        "actionUrl": "/inventory/17",
        "metadata": {"activityId": 5, "activityType": "inventory_low", "freezer": "B2"},
    }
    created = await client.post("/v1/notifications", json=payload)
    assert created.status_code == 201

    response = await client.get(f"/v1/notifications/{created.json()['id']}")

    assert response.status_code == 200
    data = response.json()
    for field in ("title", "message", "type", "priority", "category", "relatedEntity", "actionUrl", "metadata"):
        assert data[field] == payload[field]
    assert data["recipient"]["id"] == ada.id
    assert data["sender"]["id"] == bob.id


@pytest.mark.asyncio
async def test_create_rejects_invalid_type(client, ada):
    response = await client.post("/v1/notifications", json={
        "title": "T", "message": "M", "recipient": ada.id, "type": "panic"
    })

    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_VALIDATION_001"


@pytest.mark.asyncio
async def test_create_rejects_missing_title(client, ada):
    response = await client.post("/v1/notifications", json={"message": "M", "recipient": ada.id})

    assert response.status_code == 400
    assert "title" in response.json()["error"]


@pytest.mark.asyncio
async def test_create_rejects_unknown_recipient(client):
    response = await client.post("/v1/notifications", json={"title": "T", "message": "M", "recipient": 404})

    assert response.status_code == 400
    assert response.json()["details"]["user_ids"] == [404]


# TEST 2: Read state
@pytest.mark.asyncio
async def test_mark_read_sets_read_at(client, ada):
    created = await client.post("/v1/notifications", json={"title": "T", "message": "M", "recipient": ada.id})
    notification_id = created.json()["id"]

    response = await client.patch(f"/v1/notifications/{notification_id}/read")

    assert response.status_code == 200
    data = response.json()
    assert data["isRead"] is True
    assert data["readAt"] is not None
    assert datetime.fromisoformat(data["readAt"]) >= datetime.fromisoformat(data["createdAt"])


@pytest.mark.asyncio
async def test_mark_read_is_idempotent(client, ada):
    created = await client.post("/v1/notifications", json={"title": "T", "message": "M", "recipient": ada.id})
    notification_id = created.json()["id"]

    first = await client.patch(f"/v1/notifications/{notification_id}/read")
    second = await client.patch(f"/v1/notifications/{notification_id}/read")

    assert second.status_code == 200
    assert second.json()["readAt"] == first.json()["readAt"]


@pytest.mark.asyncio
async def test_mark_read_unknown_id_is_404(client, db_session, ada):
    await _seed(db_session, ada, 1)

    response = await client.patch("/v1/notifications/9999/read")

    assert response.status_code == 404
    assert response.json()["error_code"] == "ERR_NOT_FOUND_001"
    assert response.json()["error"] == "Notification with ID 9999 not found"
    assert await NotificationStore.count(db_session, {"recipient_id": ada.id, "is_read": False}) == 1


@pytest.mark.asyncio
async def test_mark_all_read(client, db_session, ada, bob):
    await _seed(db_session, ada, 4, read=1)
    await _seed(db_session, bob, 2)

    response = await client.patch(f"/v1/notifications/user/{ada.id}/read-all")

    assert response.status_code == 200
    assert response.json() == {"message": "All notifications marked as read", "modifiedCount": 3}

    unread = await client.get(f"/v1/notifications/user/{ada.id}/unread-count")
    assert unread.json() == {"unreadCount": 0}
    other = await client.get(f"/v1/notifications/user/{bob.id}/unread-count")
    assert other.json() == {"unreadCount": 2}


@pytest.mark.asyncio
async def test_mark_all_read_twice_changes_nothing(client, db_session, ada):
    await _seed(db_session, ada, 3, read=1)
    url = f"/v1/notifications/user/{ada.id}/read-all"

    first = await client.patch(url)
    inbox = await client.get(f"/v1/notifications/user/{ada.id}")
    read_at = {n["id"]: n["readAt"] for n in inbox.json()["notifications"]}

    second = await client.patch(url)
    inbox_again = await client.get(f"/v1/notifications/user/{ada.id}")

    assert first.json()["modifiedCount"] == 2
    assert second.status_code == 200
    assert second.json()["modifiedCount"] == 0
    assert inbox_again.json()["unreadCount"] == 0
    assert {n["id"]: n["readAt"] for n in inbox_again.json()["notifications"]} == read_at
    assert all(value is not None for value in read_at.values())


# TEST 3: Listing
@pytest.mark.asyncio
async def test_unread_count(client, db_session, ada):
    await _seed(db_session, ada, 5, read=3)

    response = await client.get(f"/v1/notifications/user/{ada.id}/unread-count")

    assert response.status_code == 200
    assert response.json()["unreadCount"] == 2


@pytest.mark.asyncio
async def test_list_empty_inbox(client, ada):
    response = await client.get(f"/v1/notifications/user/{ada.id}", params={"page": 1, "limit": 20})

    assert response.status_code == 200
    assert response.json() == {
        "notifications": [],
        "totalPages": 0,
        "currentPage": 1,
        "total": 0,
        "unreadCount": 0,
    }


@pytest.mark.asyncio
async def test_list_pagination(client, db_session, ada):
    await _seed(db_session, ada, 5)

    response = await client.get(f"/v1/notifications/user/{ada.id}", params={"page": 3, "limit": 2})

    data = response.json()
    assert data["totalPages"] == 3
    assert data["currentPage"] == 3
    assert data["total"] == 5
    assert len(data["notifications"]) == 1


@pytest.mark.asyncio
async def test_list_is_newest_first(client, ada):
    for title in ("first", "second", "third"):
        await client.post("/v1/notifications", json={"title": title, "message": "M", "recipient": ada.id})

    response = await client.get(f"/v1/notifications/user/{ada.id}")

    assert [n["title"] for n in response.json()["notifications"]] == ["third", "second", "first"]


@pytest.mark.asyncio
async def test_list_filters_keep_global_unread_count(client, db_session, ada):
    await _seed(db_session, ada, 3, read=1, type="warning")
    await _seed(db_session, ada, 2, type="info", category="task")

    response = await client.get(f"/v1/notifications/user/{ada.id}", params={"isRead": "true"})
    data = response.json()
    assert data["total"] == 1
    assert data["unreadCount"] == 4

    response = await client.get(f"/v1/notifications/user/{ada.id}", params={"type": "warning", "isRead": "false"})
    assert response.json()["total"] == 2

    response = await client.get(f"/v1/notifications/user/{ada.id}", params={"category": "task"})
    assert response.json()["total"] == 2


@pytest.mark.asyncio
async def test_list_unknown_user_is_404(client):
    response = await client.get("/v1/notifications/user/9999")

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_list_limit_bounds(client, ada):
    too_big = await client.get(f"/v1/notifications/user/{ada.id}", params={"limit": 101})
    zero_page = await client.get(f"/v1/notifications/user/{ada.id}", params={"page": 0})

    assert too_big.status_code == 400
    assert zero_page.status_code == 400


@pytest.mark.asyncio
async def test_expired_notification_not_listed(client, db_session, ada):
    await _seed(db_session, ada, 1, expires_at=utc_now() - timedelta(minutes=1))
    await _seed(db_session, ada, 1)

    response = await client.get(f"/v1/notifications/user/{ada.id}")

    assert response.json()["total"] == 1


# TEST 4: Bulk send
@pytest.mark.asyncio
async def test_bulk_send(client, ada, bob, carol, auth_headers):
    response = await client.post(
        "/v1/notifications/bulk",
        json={
            "recipients": [ada.id, bob.id, carol.id],
            "title": "Lab meeting",
            "message": "Friday 10:00 in room 3",
            "type": "info",
            "category": "project",
        },
        headers=auth_headers(ada)
    )

    assert response.status_code == 201
    data = response.json()
    assert data["message"] == "3 notifications sent successfully"
    assert len(data["notifications"]) == 3
    assert {n["recipient"]["id"] for n in data["notifications"]} == {ada.id, bob.id, carol.id}
    for notification in data["notifications"]:
        assert notification["sender"]["id"] == ada.id
        assert notification["title"] == "Lab meeting"
        assert notification["message"] == "Friday 10:00 in room 3"
        assert notification["type"] == "info"
        assert notification["category"] == "project"


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [
    {"recipients": [], "title": "T", "message": "M"},
    {"title": "T", "message": "M"},
])
async def test_bulk_send_requires_recipients(client, db_session, body):
    response = await client.post("/v1/notifications/bulk", json=body)

    assert response.status_code == 400
    assert response.json()["error"] == "Recipients array is required"
    assert await NotificationStore.count(db_session, {}) == 0


@pytest.mark.asyncio
async def test_bulk_send_unknown_recipient_inserts_nothing(client, db_session, ada):
    response = await client.post("/v1/notifications/bulk", json={
        "recipients": [ada.id, 9999],
        "title": "T",
        "message": "M",
    })

    assert response.status_code == 400
    assert await NotificationStore.count(db_session, {}) == 0


# TEST 5: Deletion
@pytest.mark.asyncio
async def test_delete_notification(client, ada):
    created = await client.post("/v1/notifications", json={"title": "T", "message": "M", "recipient": ada.id})
    notification_id = created.json()["id"]

    response = await client.delete(f"/v1/notifications/{notification_id}")
    assert response.status_code == 200
    assert response.json() == {"message": "Notification deleted successfully"}

    missing = await client.get(f"/v1/notifications/{notification_id}")
    assert missing.status_code == 404

    again = await client.delete(f"/v1/notifications/{notification_id}")
    assert again.status_code == 404


@pytest.mark.asyncio
async def test_delete_all(client, db_session, ada, bob):
    await _seed(db_session, ada, 4, read=2)
    await _seed(db_session, bob, 1)

    response = await client.delete(f"/v1/notifications/user/{ada.id}/all")

    assert response.status_code == 200
    assert response.json() == {"message": "All notifications deleted successfully", "deletedCount": 4}

    unread = await client.get(f"/v1/notifications/user/{ada.id}/unread-count")
    assert unread.json()["unreadCount"] == 0
    listing = await client.get(f"/v1/notifications/user/{ada.id}")
    assert listing.json()["total"] == 0
    assert listing.json()["notifications"] == []

    other = await client.get(f"/v1/notifications/user/{bob.id}")
    assert other.json()["total"] == 1


# TEST 6: Stats
@pytest.mark.asyncio
async def test_stats(client, db_session, ada, bob):
    await _seed(db_session, ada, 3, read=1, type="warning", category="task", sender_id=bob.id)
    await _seed(db_session, ada, 4, read=2, type="info", category="experiment")

    response = await client.get(f"/v1/notifications/user/{ada.id}/stats")

    assert response.status_code == 200
    data = response.json()
    assert data["totalNotifications"] == 7
    assert data["unreadNotifications"] == 4
    assert data["readNotifications"] == 3
    assert data["typeStats"] == [{"_id": "info", "count": 4}, {"_id": "warning", "count": 3}]
    assert data["categoryStats"] == [{"_id": "experiment", "count": 4}, {"_id": "task", "count": 3}]
    assert len(data["recentNotifications"]) == 5


@pytest.mark.asyncio
async def test_stats_recent_sender_is_name_only(client, db_session, ada, bob):
    await _seed(db_session, ada, 1, sender_id=bob.id)

    response = await client.get(f"/v1/notifications/user/{ada.id}/stats")

    recent = response.json()["recentNotifications"][0]
    assert recent["sender"] == {"id": bob.id, "name": bob.name}


# TEST 7: Authentication adapter
@pytest.mark.asyncio
async def test_invalid_token_is_401(client, ada):
    response = await client.post(
        "/v1/notifications",
        json={"title": "T", "message": "M", "recipient": ada.id},
        headers={"Authorization": "Bearer not-a-token"}
    )

    assert response.status_code == 401
    assert response.json()["error_code"] == "ERR_AUTH_001"


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["redis"] == "connected"


@pytest.mark.asyncio
async def test_health_reports_unreachable_redis(client, mocker):
    mocker.patch("backend.app.main.ping_redis", return_value=False)

    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["redis"] == "unavailable"
