from datetime import timedelta

import pytest

from chat_sync import ChatTimeline, DeliveryState

ME = 1
THEM = 2


def row(id, sender_id, content, client_id=None, created_at="2024-10-03T09:00:00", is_read=False):
    return {
        "id": id,
        "room_id": 7,
        "sender_id": sender_id,
        "content": content,
        "client_id": client_id,
        "created_at": created_at,
        "is_read": is_read,
    }


def test_pending_message_shows_immediately():
    timeline = ChatTimeline(room_id=7, me=ME)
    msg = timeline.send_pending("  On my way  ")
    assert msg.client_id.startswith("local-")
    assert msg.content == "On my way"
    assert [m.state for m in timeline.messages()] == [DeliveryState.pending]


def test_empty_text_is_not_sent():
    timeline = ChatTimeline(room_id=7, me=ME)
    with pytest.raises(ValueError):
        timeline.send_pending("   ")


def test_confirm_replaces_pending_entry():
    timeline = ChatTimeline(room_id=7, me=ME)
    msg = timeline.send_pending("Hello")
    confirmed = timeline.confirm(row(10, ME, "Hello", client_id=msg.client_id))

    assert confirmed.state == DeliveryState.confirmed
    assert confirmed.id == 10
    assert len(timeline.messages()) == 1
    assert timeline.pending() == []


def test_push_event_before_write_returns():
    timeline = ChatTimeline(room_id=7, me=ME)
    msg = timeline.send_pending("Hello")
    # the push lands first, then the write response repeats it
    timeline.apply_incoming(row(10, ME, "Hello", client_id=msg.client_id))
    timeline.confirm(row(10, ME, "Hello", client_id=msg.client_id))

    messages = timeline.messages()
    assert len(messages) == 1
    assert messages[0].state == DeliveryState.confirmed


def test_identical_text_stays_separate():
    timeline = ChatTimeline(room_id=7, me=ME)
    first = timeline.send_pending("ok")
    second = timeline.send_pending("ok")
    timeline.confirm(row(10, ME, "ok", client_id=first.client_id))

    states = sorted(m.state.value for m in timeline.messages())
    assert states == ["confirmed", "pending"]
    assert timeline.pending()[0].client_id == second.client_id


def test_failed_send_hides_entry_and_returns_text():
    timeline = ChatTimeline(room_id=7, me=ME)
    msg = timeline.send_pending("Can I come at 5?")
    assert timeline.fail(msg.client_id) == "Can I come at 5?"
    assert timeline.messages() == []

    with pytest.raises(ValueError):
        timeline.fail(msg.client_id)


def test_history_and_duplicate_pushes():
    timeline = ChatTimeline(room_id=7, me=ME)
    timeline.load(
        [
            row(2, THEM, "second", created_at="2024-10-03T09:00:00"),
            row(1, ME, "first", created_at="2024-10-03T09:00:00"),
        ]
    )
    timeline.apply_incoming(row(2, THEM, "second", created_at="2024-10-03T09:00:00"))

    assert [m.content for m in timeline.messages()] == ["first", "second"]


def test_foreign_client_id_does_not_overwrite_mine():
    timeline = ChatTimeline(room_id=7, me=ME)
    mine = timeline.send_pending("mine", client_id="local-1")
    timeline.apply_incoming(row(5, THEM, "theirs", client_id="local-1"))

    contents = sorted(m.content for m in timeline.messages())
    assert contents == ["mine", "theirs"]
    assert timeline.pending()[0].client_id == mine.client_id


def test_unread_tracking():
    timeline = ChatTimeline(room_id=7, me=ME)
    timeline.load([row(1, THEM, "hi"), row(2, THEM, "hello?"), row(3, ME, "yes")])
    assert timeline.unread_for(ME) == 2

    timeline.mark_read_from_others()
    assert timeline.unread_for(ME) == 0


def test_server_timestamps_sort_with_local_ones():
    timeline = ChatTimeline(room_id=7, me=ME)
    timeline.load([
        row(1, THEM, "naive", created_at="2024-10-03T09:00:00"),
        row(2, THEM, "zulu", created_at="2024-10-03T09:05:00Z"),
        row(3, THEM, "offset", created_at="2024-10-03T09:10:00+00:00"),
    ])
    timeline.send_pending("mine")

    messages = timeline.messages()
    assert [m.content for m in messages] == ["naive", "zulu", "offset", "mine"]
    assert all(m.created_at.utcoffset() == timedelta(0) for m in messages)
