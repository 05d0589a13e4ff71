import pytest

from sathi.domain.notifications.models import NotificationType


def _auth(token_for, user_id):
    return {"Authorization": f"Bearer {token_for(user_id)}"}


@pytest.mark.asyncio
async def test_notification_list_and_read_state(api_client, hub, token_for):
    first = await hub.notifications.notify(
        "bob",
        NotificationType.RIDE_REQUEST,
        "New ride request",
        "Alice wants to join your 8am ride",
        sender_id="alice",
        payload={"rideId": "r-1"},
    )
    await hub.notifications.notify("bob", NotificationType.SYSTEM, "Maintenance", "Tonight at 2am")
    await hub.notifications.notify("carol", NotificationType.SYSTEM, "Maintenance", "Tonight at 2am")
    bob = _auth(token_for, "bob")

    listing = await api_client.get("/notifications", headers=bob)
    assert listing.status_code == 200
    body = listing.json()
    assert body["unread"] == 2
    assert {item["title"] for item in body["items"]} == {"New ride request", "Maintenance"}
    ride = next(item for item in body["items"] if item["id"] == first.notification_id)
    assert ride["category"] == "ride"
    assert ride["senderId"] == "alice"
    assert ride["data"] == {"rideId": "r-1"}

    read = await api_client.post("/notifications/read", json={"ids": [first.notification_id]}, headers=bob)
    assert read.json() == {"updated": 1}
    again = await api_client.post("/notifications/read", json={"ids": [first.notification_id]}, headers=bob)
    assert again.json() == {"updated": 0}

    unread_only = await api_client.get("/notifications", params={"unreadOnly": "true"}, headers=bob)
    assert [item["title"] for item in unread_only.json()["items"]] == ["Maintenance"]

    count = await api_client.get("/notifications/unread-count", headers=bob)
    assert count.json() == {"unread": 1}


@pytest.mark.asyncio
async def test_read_all_is_scoped_to_caller(api_client, hub, token_for):
    await hub.notifications.notify("bob", NotificationType.FRIEND_REQUEST, "Request", "Dan wants to connect")
    await hub.notifications.notify("carol", NotificationType.FRIEND_REQUEST, "Request", "Dan wants to connect")

    response = await api_client.post("/notifications/read-all", headers=_auth(token_for, "bob"))

    assert response.json() == {"updated": 1}
    assert await hub.notifications.unread_count("bob") == 0
    assert await hub.notifications.unread_count("carol") == 1


@pytest.mark.asyncio
async def test_cannot_mark_someone_elses_notification(api_client, hub, token_for):
    foreign = await hub.notifications.notify("carol", NotificationType.SOS, "SOS", "Help")

    response = await api_client.post(
        "/notifications/read",
        json={"ids": [foreign.notification_id]},
        headers=_auth(token_for, "bob"),
    )

    assert response.json() == {"updated": 0}
    assert await hub.notifications.unread_count("carol") == 1


@pytest.mark.asyncio
async def test_notifications_require_auth(api_client):
    response = await api_client.get("/notifications")

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_list_filters_offset_and_category_counts(api_client, hub, token_for):
    await hub.notifications.notify("bob", NotificationType.RIDE_REQUEST, "Ride 1", "Join?", priority="high")
    ride_two = await hub.notifications.notify("bob", NotificationType.ROUTE_CHANGE, "Ride 2", "New route")
    await hub.notifications.notify("bob", NotificationType.FRIEND_REQUEST, "Friend", "Dan wants to connect")
    await hub.notifications.mark_read("bob", [ride_two.notification_id])
    bob = _auth(token_for, "bob")

    rides = await api_client.get("/notifications", params={"category": "ride"}, headers=bob)
    assert {item["title"] for item in rides.json()["items"]} == {"Ride 1", "Ride 2"}
    assert rides.json()["unread"] == 1

    read_rides = await api_client.get("/notifications", params={"category": "ride", "isRead": "true"}, headers=bob)
    assert [item["title"] for item in read_rides.json()["items"]] == ["Ride 2"]

    high = await api_client.get("/notifications", params={"priority": "high"}, headers=bob)
    assert [item["title"] for item in high.json()["items"]] == ["Ride 1"]

    page_one = await api_client.get("/notifications", params={"limit": 2}, headers=bob)
    page_two = await api_client.get("/notifications", params={"limit": 2, "offset": 2}, headers=bob)
    assert len(page_one.json()["items"]) == 2
    assert len(page_two.json()["items"]) == 1
    ids = [item["id"] for item in page_one.json()["items"] + page_two.json()["items"]]
    assert len(set(ids)) == 3

    categories = await api_client.get("/notifications/categories", headers=bob)
    assert categories.json() == {"categories": {"ride": 1, "social": 1, "sos": 0, "system": 0}, "total": 2}

    social_count = await api_client.get("/notifications/unread-count", params={"category": "social"}, headers=bob)
    assert social_count.json() == {"unread": 1}

    unknown = await api_client.get("/notifications", params={"category": "billing"}, headers=bob)
    assert unknown.status_code == 422


@pytest.mark.asyncio
async def test_read_all_can_target_one_category(api_client, hub, token_for):
    await hub.notifications.notify("bob", NotificationType.ETA_CHANGE, "ETA", "5 min")
    await hub.notifications.notify("bob", NotificationType.SYSTEM, "Maintenance", "Tonight")
    bob = _auth(token_for, "bob")

    response = await api_client.post("/notifications/read-all", params={"category": "ride"}, headers=bob)

    assert response.json() == {"updated": 1}
    assert await hub.notifications.unread_count("bob", category="ride") == 0
    assert await hub.notifications.unread_count("bob", category="system") == 1


@pytest.mark.asyncio
async def test_delete_notification(api_client, hub, token_for):
    mine = await hub.notifications.notify("bob", NotificationType.SYSTEM, "Maintenance", "Tonight")
    theirs = await hub.notifications.notify("carol", NotificationType.SYSTEM, "Maintenance", "Tonight")
    bob = _auth(token_for, "bob")

    deleted = await api_client.delete(f"/notifications/{mine.notification_id}", headers=bob)
    again = await api_client.delete(f"/notifications/{mine.notification_id}", headers=bob)
    foreign = await api_client.delete(f"/notifications/{theirs.notification_id}", headers=bob)

    assert deleted.status_code == 204
    assert again.status_code == 404
    assert again.json()["detail"] == "notification_not_found"
    assert foreign.status_code == 404
    assert await hub.notifications.unread_count("carol") == 1
    listing = await api_client.get("/notifications", headers=bob)
    assert listing.json()["items"] == []
