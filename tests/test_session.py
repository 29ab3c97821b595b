"""
Tests for Conversation - the system slot plus windowed history.
"""

import pytest

from codeloop.session import Conversation, ConversationMetadata
from codeloop.types import Role


class TestConversationBasics:
    """Tests for appending and reading turns."""

    def test_conversations_have_unique_ids(self) -> None:
        assert Conversation().metadata.id != Conversation().metadata.id

    def test_append_user_and_assistant(self) -> None:
        conversation = Conversation()
        conversation.append(Role.USER, "Hello")
        conversation.append(Role.ASSISTANT, "{}")
        assert [t.role for t in conversation.history] == [Role.USER, Role.ASSISTANT]

    def test_tool_turn_keeps_call_id(self) -> None:
        conversation = Conversation()
        conversation.append(Role.TOOL, '{"success": true}', tool_call_id="call_1_0")
        assert conversation.to_messages() == [
            {"role": "tool", "content": '{"success": true}', "tool_call_id": "call_1_0"}
        ]

    def test_system_turns_cannot_be_appended(self) -> None:
        with pytest.raises(ValueError):
            Conversation().append(Role.SYSTEM, "no")

    def test_history_is_a_snapshot(self) -> None:
        """Appending never mutates a history tuple already handed out."""
        conversation = Conversation()
        conversation.append(Role.USER, "one")
        before = conversation.history
        conversation.append(Role.USER, "two")
        assert len(before) == 1
        assert len(conversation.history) == 2

    def test_window_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            Conversation(history_window=0)


class TestSystemSlot:
    """The system turn is a single slot, outside the window."""

    def test_set_system_replaces(self) -> None:
        conversation = Conversation()
        conversation.set_system("first")
        conversation.set_system("second")
        turns = conversation.turns()
        assert len(turns) == 1
        assert turns[0].content == "second"

    def test_system_survives_window_trimming(self) -> None:
        conversation = Conversation(history_window=3)
        conversation.set_system("rules")
        for i in range(10):
            conversation.append(Role.USER, f"msg {i}")

        turns = conversation.turns()
        assert turns[0].role == Role.SYSTEM
        assert [t.content for t in turns[1:]] == ["msg 7", "msg 8", "msg 9"]
        assert conversation.turns_trimmed == 7


class TestUserTurnTracking:
    """has_user_turn drives the title follow-up flag."""

    def test_empty_conversation(self) -> None:
        assert not Conversation().has_user_turn()

    def test_assistant_only(self) -> None:
        conversation = Conversation()
        conversation.append(Role.ASSISTANT, "hi")
        assert not conversation.has_user_turn()

    def test_remembered_after_trimming(self) -> None:
        conversation = Conversation(history_window=1)
        conversation.append(Role.USER, "first")
        conversation.append(Role.ASSISTANT, "reply")
        assert conversation.has_user_turn()

    def test_clear_forgets(self) -> None:
        conversation = Conversation()
        conversation.set_system("rules")
        conversation.append(Role.USER, "first")
        conversation.clear()
        assert not conversation.has_user_turn()
        assert conversation.system is not None
        assert len(conversation) == 0


class TestRecords:
    """Tests for to_record/from_record."""

    def test_round_trip(self) -> None:
        conversation = Conversation(metadata=ConversationMetadata(name="Build a site", project_name="site"))
        conversation.set_system("rules")
        conversation.append(Role.USER, "make index.html")
        conversation.append(Role.TOOL, "{}", tool_call_id="call_1_0")

        record = conversation.to_record()
        restored = Conversation.from_record(record)

        assert restored.metadata.id == conversation.metadata.id
        assert restored.metadata.name == "Build a site"
        assert restored.metadata.project_name == "site"
        assert restored.system.content == "rules"
        assert restored.to_messages() == conversation.to_messages()
        assert restored.has_user_turn()

    def test_from_record_applies_window(self) -> None:
        conversation = Conversation(history_window=20)
        for i in range(15):
            conversation.append(Role.USER, str(i))

        restored = Conversation.from_record(conversation.to_record(), history_window=10)
        assert len(restored) == 10
        assert restored.history[0].content == "5"
