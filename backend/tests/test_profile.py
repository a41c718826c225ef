"""Integration tests for avatar updates, the roster endpoint and health."""

import pytest

from chat_helpers import authenticate, bearer, expect, register


class TestAvatar:
    """Tests for PUT /api/avatar."""

    def test_update_is_stored_and_broadcast(self, client, store):
        alice = register(client, "alice")
        bob = register(client, "bob")
        with client.websocket_connect("/ws/chat") as ws_a, \
             client.websocket_connect("/ws/chat") as ws_b:
            authenticate(ws_a, alice["token"])
            authenticate(ws_b, bob["token"])
            expect(ws_a, "user_online")

            response = client.put(
                "/api/avatar",
                json={"color": "#ff8800", "emoji": "🦊"},
                headers=bearer(alice["token"]),
            )
            assert response.status_code == 200
            assert response.json() == {"success": True}

            expected = {
                "type": "avatar_updated",
                "id": alice["userId"],
                "avatar_color": "#ff8800",
                "avatar_emoji": "🦊",
                "avatar_image": None,
            }
            assert ws_a.receive_json() == expected
            assert ws_b.receive_json() == expected

        stored = store.get_user(alice["userId"])
        assert (stored.avatar_color, stored.avatar_emoji) == ("#ff8800", "🦊")

    def test_new_messages_carry_new_avatar(self, client):
        alice = register(client, "alice")
        client.put("/api/avatar", json={"color": "#000000", "image": "data:img"},
                   headers=bearer(alice["token"]))
        with client.websocket_connect("/ws/chat") as ws:
            authenticate(ws, alice["token"])
            ws.send_json({"type": "send_message", "room": "general", "content": "hi"})
            message = expect(ws, "message")
        assert message["avatar_color"] == "#000000"
        assert message["avatar_image"] == "data:img"

    @pytest.mark.parametrize("body,detail", [
        ({"color": "red"}, "Invalid color"),
        ({"color": "#12345"}, "Invalid color"),
        ({}, "Invalid color"),
        ({"color": "#123456", "emoji": "x" * 17}, "Avatar emoji too long"),
    ])
    def test_validation(self, client, body, detail):
        alice = register(client, "alice")
        response = client.put("/api/avatar", json=body, headers=bearer(alice["token"]))
        assert response.status_code == 400
        assert response.json()["detail"] == detail

    def test_picture_size_limit(self, client, chat_config):
        chat_config.profile.max_avatar_image_chars = 10
        alice = register(client, "alice")
        response = client.put(
            "/api/avatar",
            json={"color": "#123456", "image": "x" * 11},
            headers=bearer(alice["token"]),
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Profile picture too large"

    def test_requires_login(self, client):
        assert client.put("/api/avatar", json={"color": "#123456"}).status_code == 401


class TestUsersEndpoint:
    """Tests for GET /api/users."""

    def test_roster_with_online_flags(self, client):
        alice = register(client, "alice")
        register(client, "bob")
        with client.websocket_connect("/ws/chat") as ws:
            authenticate(ws, alice["token"])
            users = client.get("/api/users", headers=bearer(alice["token"])).json()["users"]

        assert [(u["username"], u["online"]) for u in users] == [
            ("alice", True), ("bob", False),
        ]
        assert set(users[0]) >= {
            "id", "username", "avatar_color", "avatar_emoji", "avatar_image",
            "is_admin", "is_banned", "online",
        }


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
