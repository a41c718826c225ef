"""Unit tests for presence tracking and room membership."""

from app.chat.membership import RoomMembership
from app.chat.presence import PresenceRegistry


class TestPresenceRegistry:
    """Tests for the 0 -> 1 and 1 -> 0 presence edges."""

    def test_first_connection_comes_online(self):
        presence = PresenceRegistry()
        assert presence.add_connection(1, "a") is True
        assert presence.is_online(1)

    def test_second_connection_is_not_an_edge(self):
        presence = PresenceRegistry()
        presence.add_connection(1, "a")
        assert presence.add_connection(1, "b") is False
        assert presence.connections_of(1) == {"a", "b"}

    def test_offline_only_after_last_connection(self):
        presence = PresenceRegistry()
        for cid in ("a", "b", "c"):
            presence.add_connection(1, cid)

        edges = [presence.remove_connection(1, cid) for cid in ("b", "a", "c")]

        assert edges == [False, False, True]
        assert not presence.is_online(1)
        assert len(presence) == 0

    def test_removing_unknown_connection_is_a_no_op(self):
        presence = PresenceRegistry()
        presence.add_connection(1, "a")
        assert presence.remove_connection(1, "zzz") is False
        assert presence.remove_connection(2, "a") is False
        assert presence.is_online(1)

    def test_double_remove_reports_offline_once(self):
        presence = PresenceRegistry()
        presence.add_connection(1, "a")
        assert presence.remove_connection(1, "a") is True
        assert presence.remove_connection(1, "a") is False

    def test_online_ids_sorted(self):
        presence = PresenceRegistry()
        presence.add_connection(5, "x")
        presence.add_connection(2, "y")
        assert presence.online_ids() == [2, 5]

    def test_connections_of_returns_a_copy(self):
        presence = PresenceRegistry()
        presence.add_connection(1, "a")
        presence.connections_of(1).add("b")
        assert presence.connections_of(1) == {"a"}


class TestRoomMembership:
    """Tests for subscriptions and dm auto-subscription."""

    def test_subscribe_is_idempotent(self):
        membership = RoomMembership(PresenceRegistry())
        assert membership.subscribe("a", "general") is True
        assert membership.subscribe("a", "general") is False
        assert membership.subscribers("general") == {"a"}

    def test_drop_removes_every_subscription(self):
        membership = RoomMembership(PresenceRegistry())
        membership.subscribe("a", "general")
        membership.subscribe("a", "dm:1:2")
        membership.subscribe("b", "general")

        assert membership.drop("a") == {"general", "dm:1:2"}
        assert membership.subscribers("general") == {"b"}
        assert membership.subscribers("dm:1:2") == set()
        assert membership.rooms_of("a") == set()

    def test_drop_unknown_connection(self):
        membership = RoomMembership(PresenceRegistry())
        assert membership.drop("nope") == set()

    def test_recipient_connections_are_pulled_into_dm(self):
        presence = PresenceRegistry()
        membership = RoomMembership(presence)
        presence.add_connection(2, "b1")
        presence.add_connection(2, "b2")

        joined = membership.ensure_recipient_subscribed("dm:1:2", sender_id=1)

        assert joined == ["b1", "b2"]
        assert membership.is_subscribed("b1", "dm:1:2")
        assert membership.is_subscribed("b2", "dm:1:2")

    def test_already_subscribed_recipient_not_reported(self):
        presence = PresenceRegistry()
        membership = RoomMembership(presence)
        presence.add_connection(2, "b1")
        membership.subscribe("b1", "dm:1:2")

        assert membership.ensure_recipient_subscribed("dm:1:2", sender_id=1) == []

    def test_offline_recipient_gets_nothing(self):
        membership = RoomMembership(PresenceRegistry())
        assert membership.ensure_recipient_subscribed("dm:1:2", sender_id=1) == []
        assert membership.subscribers("dm:1:2") == set()

    def test_public_room_and_outsider_left_untouched(self):
        presence = PresenceRegistry()
        membership = RoomMembership(presence)
        presence.add_connection(2, "b1")

        assert membership.ensure_recipient_subscribed("general", sender_id=1) == []
        assert membership.ensure_recipient_subscribed("dm:1:2", sender_id=3) == []
        assert membership.rooms_of("b1") == set()
