"""
Tests for the room registry and the /rooms endpoints.

Tests cover:
- Room creation, listing, lookup and deletion
- Join request / approve / decline workflow
- Member listing and kicking (admin is never kickable)
- Derived member counts
- HTTP status codes and envelopes
"""

import pytest

from roomchat.errors import NotFound, ValidationError


def create_room(client, name: str = "General", creator: str = "alice") -> dict:
    """Helper to create a room over HTTP and return its JSON."""
    response = client.post("/rooms", json={"name": name, "creator": creator})
    assert response.status_code == 201
    return response.json()["room"]


class TestRoomRegistryCreate:
    """Test room creation and lookup on the registry directly."""

    def test_creator_becomes_admin_and_member(self, registry):
        """Test the creator is admin and the only member."""
        room = registry.create_room("General", "alice")

        assert room.admin == "alice"
        assert room.members_list == ["alice"]
        assert room.pending_requests == []
        assert room.members == 1

    def test_name_is_trimmed(self, registry):
        """Test surrounding whitespace is removed from the name."""
        room = registry.create_room("  General  ", "alice")
        assert room.name == "General"

    def test_empty_name_rejected(self, registry):
        """Test a whitespace-only name raises ValidationError."""
        with pytest.raises(ValidationError):
            registry.create_room("   ", "alice")
        assert registry.list_rooms() == []

    def test_room_without_creator(self, registry):
        """Test a room can be created without an admin."""
        room = registry.create_room("Lobby", None)

        assert room.admin is None
        assert room.members_list == []
        assert room.members == 0

    def test_ids_are_unique(self, registry):
        """Test rapid creation never reuses an id."""
        ids = {registry.create_room(f"room-{i}", "alice").id for i in range(200)}
        assert len(ids) == 200

    def test_get_missing_room(self, registry):
        """Test looking up an unknown room raises NotFound."""
        with pytest.raises(NotFound):
            registry.get_room("missing")

    def test_returned_room_is_detached(self, registry):
        """Test mutating a returned room does not change the registry."""
        room = registry.create_room("General", "alice")
        room.members_list.append("mallory")

        assert registry.list_members(room.id) == ["alice"]


class TestRoomRegistryMembership:
    """Test the non-member / pending / member transitions."""

    def test_request_approve_scenario(self, registry):
        """Test request then approve moves the user into members."""
        room = registry.create_room("General", "alice")

        registry.request_join(room.id, "bob")
        assert registry.get_room(room.id).pending_requests == ["bob"]

        registry.approve_join(room.id, "bob")
        room = registry.get_room(room.id)
        assert room.members_list == ["alice", "bob"]
        assert room.pending_requests == []
        assert room.members == 2

    def test_request_is_idempotent(self, registry):
        """Test repeated requests queue the user once."""
        room = registry.create_room("General", "alice")

        registry.request_join(room.id, "bob")
        registry.request_join(room.id, "bob")

        assert registry.list_requests(room.id) == ["bob"]

    def test_member_request_is_noop(self, registry):
        """Test a member asking to join is not queued."""
        room = registry.create_room("General", "alice")

        registry.request_join(room.id, "alice")

        assert registry.list_requests(room.id) == []
        assert registry.list_members(room.id) == ["alice"]

    def test_request_on_missing_room(self, registry):
        """Test requesting to join an unknown room raises NotFound."""
        with pytest.raises(NotFound):
            registry.request_join("missing", "bob")

    def test_decline_removes_request_only(self, registry):
        """Test decline drops the request without adding a member."""
        room = registry.create_room("General", "alice")
        registry.request_join(room.id, "bob")

        registry.decline_join(room.id, "bob")

        assert registry.list_requests(room.id) == []
        assert registry.list_members(room.id) == ["alice"]

    def test_approve_without_request_is_noop(self, registry):
        """Test approving a user who never asked changes nothing."""
        room = registry.create_room("General", "alice")

        registry.approve_join(room.id, "carol")

        assert registry.list_members(room.id) == ["alice"]

    def test_second_terminal_transition_is_noop(self, registry):
        """Test approve then decline (and decline then approve) only apply once."""
        room = registry.create_room("General", "alice")

        registry.request_join(room.id, "bob")
        registry.approve_join(room.id, "bob")
        registry.decline_join(room.id, "bob")
        assert registry.list_members(room.id) == ["alice", "bob"]

        registry.request_join(room.id, "carol")
        registry.decline_join(room.id, "carol")
        registry.approve_join(room.id, "carol")
        assert registry.list_members(room.id) == ["alice", "bob"]
        assert registry.list_requests(room.id) == []

    def test_member_and_pending_are_disjoint(self, registry):
        """Test no username is ever both pending and a member."""
        room = registry.create_room("General", "alice")
        for name in ["bob", "carol", "dave"]:
            registry.request_join(room.id, name)
        registry.approve_join(room.id, "bob")
        registry.request_join(room.id, "bob")
        registry.kick_member(room.id, "bob")
        registry.request_join(room.id, "bob")

        room = registry.get_room(room.id)
        assert not set(room.members_list) & set(room.pending_requests)

    def test_kick_member(self, registry):
        """Test kicking a member removes them and updates the count."""
        room = registry.create_room("General", "alice")
        registry.request_join(room.id, "bob")
        registry.approve_join(room.id, "bob")

        registry.kick_member(room.id, "bob")

        room = registry.get_room(room.id)
        assert room.members_list == ["alice"]
        assert room.members == 1

    def test_admin_cannot_be_kicked(self, registry):
        """Test kicking the admin leaves the member list unchanged."""
        room = registry.create_room("General", "alice")

        registry.kick_member(room.id, "alice")

        assert registry.list_members(room.id) == ["alice"]

    def test_kick_non_member_is_noop(self, registry):
        """Test kicking someone who is not a member changes nothing."""
        room = registry.create_room("General", "alice")

        registry.kick_member(room.id, "zed")

        assert registry.list_members(room.id) == ["alice"]

    def test_member_count_tracks_list(self, registry):
        """Test members equals len(membersList) after every change."""
        room = registry.create_room("General", "alice")
        for name in ["bob", "carol"]:
            registry.request_join(room.id, name)
            registry.approve_join(room.id, name)
        registry.kick_member(room.id, "bob")

        for listed in registry.list_rooms():
            assert listed.members == len(listed.members_list)
        assert registry.get_room(room.id).members == 2


class TestRoomRegistryDelete:
    """Test deletion and its cascade into the message log."""

    def test_delete_room(self, registry):
        """Test a deleted room can no longer be found."""
        room = registry.create_room("General", "alice")

        registry.delete_room(room.id)

        with pytest.raises(NotFound):
            registry.get_room(room.id)

    def test_delete_missing_room(self, registry):
        """Test deleting an unknown room raises NotFound."""
        with pytest.raises(NotFound):
            registry.delete_room("missing")

    def test_delete_cascades_history(self, registry, log):
        """Test deleting a room empties its message history."""
        room = registry.create_room("General", "alice")
        log.create_message(room.id, "hi", "alice")
        log.create_message(room.id, "there", "alice")

        registry.delete_room(room.id)

        assert log.list_messages(room.id) == []


class TestRoomsApi:
    """Test the /rooms HTTP endpoints."""

    def test_list_rooms_empty(self, client):
        """Test GET /rooms with no rooms returns an empty list."""
        response = client.get("/rooms")

        assert response.status_code == 200
        assert response.json() == {"success": True, "rooms": []}

    def test_create_room(self, client):
        """Test POST /rooms returns 201 and a camelCase room."""
        response = client.post("/rooms", json={"name": "General", "creator": "alice"})

        assert response.status_code == 201
        data = response.json()
        assert data["success"] is True
        room = data["room"]
        assert room["name"] == "General"
        assert room["admin"] == "alice"
        assert room["membersList"] == ["alice"]
        assert room["members"] == 1
        assert room["pendingRequests"] == []
        assert "createdAt" in room

    def test_create_room_empty_name(self, client):
        """Test an empty room name is rejected with 422."""
        response = client.post("/rooms", json={"name": "  ", "creator": "alice"})

        assert response.status_code == 422
        assert response.json()["success"] is False

    def test_create_room_missing_name(self, client):
        """Test a body without name fails request validation."""
        response = client.post("/rooms", json={"creator": "alice"})
        assert response.status_code == 422

    def test_get_room(self, client):
        """Test GET /rooms/{id} returns the room."""
        room = create_room(client)

        response = client.get(f"/rooms/{room['id']}")

        assert response.status_code == 200
        assert response.json()["room"]["id"] == room["id"]

    def test_get_missing_room(self, client):
        """Test GET /rooms/{id} for an unknown room returns 404."""
        response = client.get("/rooms/missing")

        assert response.status_code == 404
        assert response.json() == {"success": False, "detail": "Room with ID missing not found"}

    def test_delete_room(self, client):
        """Test DELETE /rooms/{id} removes the room and its messages."""
        room = create_room(client)
        client.post("/messages", json={"roomId": room["id"], "text": "hi", "sender": "alice"})

        response = client.delete(f"/rooms/{room['id']}")

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert client.get("/rooms").json()["rooms"] == []
        assert client.get(f"/messages/{room['id']}").json()["messages"] == []

    def test_delete_missing_room(self, client):
        """Test DELETE /rooms/{id} for an unknown room returns 404."""
        response = client.delete("/rooms/missing")
        assert response.status_code == 404

    def test_join_workflow(self, client):
        """Test request, list requests, approve and list members."""
        room = create_room(client)
        room_id = room["id"]

        response = client.post(f"/rooms/{room_id}/join-request", json={"username": "bob"})
        assert response.status_code == 200
        assert response.json()["success"] is True

        response = client.get(f"/rooms/{room_id}/requests")
        assert response.json() == {"success": True, "requests": ["bob"]}

        response = client.post(f"/rooms/{room_id}/requests/bob/approve")
        assert response.status_code == 200

        response = client.get(f"/rooms/{room_id}/members")
        assert response.json() == {"success": True, "members": ["alice", "bob"]}

        rooms = client.get("/rooms").json()["rooms"]
        assert rooms[0]["members"] == 2
        assert rooms[0]["pendingRequests"] == []

    def test_decline_request(self, client):
        """Test declining clears the request without adding a member."""
        room = create_room(client)
        room_id = room["id"]
        client.post(f"/rooms/{room_id}/join-request", json={"username": "bob"})

        response = client.post(f"/rooms/{room_id}/requests/bob/decline")

        assert response.status_code == 200
        assert client.get(f"/rooms/{room_id}/requests").json()["requests"] == []
        assert client.get(f"/rooms/{room_id}/members").json()["members"] == ["alice"]

    def test_join_request_requires_username(self, client):
        """Test a join request without username fails validation."""
        room = create_room(client)

        response = client.post(f"/rooms/{room['id']}/join-request", json={})

        assert response.status_code == 422

    def test_join_request_missing_room(self, client):
        """Test a join request for an unknown room returns 404."""
        response = client.post("/rooms/missing/join-request", json={"username": "bob"})
        assert response.status_code == 404

    def test_kick_member(self, client):
        """Test kicking a member and refusing to kick the admin."""
        room = create_room(client)
        room_id = room["id"]
        client.post(f"/rooms/{room_id}/join-request", json={"username": "bob"})
        client.post(f"/rooms/{room_id}/requests/bob/approve")

        assert client.post(f"/rooms/{room_id}/members/bob/kick").status_code == 200
        assert client.post(f"/rooms/{room_id}/members/alice/kick").status_code == 200

        members = client.get(f"/rooms/{room_id}/members").json()["members"]
        assert members == ["alice"]

    def test_members_of_missing_room(self, client):
        """Test listing members of an unknown room returns 404."""
        response = client.get("/rooms/missing/members")
        assert response.status_code == 404
