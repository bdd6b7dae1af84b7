import random

import pytest

from companion_core.domain.history import ConversationHistory
from companion_core.domain.models import Message


def _contents(history):
    return [m.content for m in history.as_ordered_list()]


def test_oldest_turn_evicted_keeps_directive():
    history = ConversationHistory("S", cap=3)
    history.append(Message(role="user", content="U1"))
    history.append(Message(role="assistant", content="A1"))
    history.append(Message(role="user", content="U2"))
    assert _contents(history) == ["S", "A1", "U2"]


def test_invariants_hold_after_random_appends():
    rnd = random.Random(7)
    for cap in (2, 3, 5, 20):
        history = ConversationHistory("directive", cap=cap)
        for i in range(60):
            role = rnd.choice(["user", "assistant"])
            history.append(Message(role=role, content=f"m{i}"))
            items = history.as_ordered_list()
            assert items[0].role == "system"
            assert items[0].content == "directive"
            assert len(items) <= cap
        # 最近的消息总是保留在末尾
        assert items[-1].content == "m59"


def test_clear_then_append_yields_two_entries():
    history = ConversationHistory("S", cap=4)
    for i in range(6):
        history.append(Message(role="user", content=str(i)))
    history.clear()
    history.append(Message(role="user", content="fresh"))
    assert _contents(history) == ["S", "fresh"]
    assert history.as_ordered_list()[0].role == "system"


def test_preview_does_not_mutate():
    history = ConversationHistory("S", cap=3)
    history.extend(Message(role="user", content="U1"), Message(role="assistant", content="A1"))
    preview = history.preview_with(Message(role="user", content="U2"))
    assert [m.content for m in preview] == ["S", "A1", "U2"]
    assert _contents(history) == ["S", "U1", "A1"]


def test_cap_must_leave_room_for_a_turn():
    with pytest.raises(ValueError):
        ConversationHistory("S", cap=1)


def test_as_ordered_list_is_a_copy():
    history = ConversationHistory("S", cap=3)
    snapshot = history.as_ordered_list()
    snapshot.append(Message(role="user", content="x"))
    assert len(history) == 1
