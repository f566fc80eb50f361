import hashlib
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from tangent.chain import (
    ROLE_ASSISTANT,
    ROLE_SYSTEM,
    ROLE_USER,
    ROOT,
    Conversation,
    Message,
    message_id,
    roll_dice,
)
from tangent.errors import (
    ChainCorruptedError,
    ConversationFormatError,
    InvalidIdPrefixError,
    MessageNotFoundError,
)
from tangent.models import Profile


def heads(conv):
    return [m for m in conv.messages if m.is_head]


class TestIdentity:
    def test_id_is_sha1_of_role_content_parent(self):
        expected = hashlib.sha1("userhiROOT".encode("utf-8")).hexdigest()
        assert message_id(ROLE_USER, "hi", ROOT) == expected

    def test_same_appends_give_same_ids(self, profile):
        """Two conversations fed the same turns end up with identical ids."""
        a = Conversation(profile=profile)
        b = Conversation(profile=profile)
        for conv in (a, b):
            conv.append(ROLE_USER, "hello")
            conv.append(ROLE_ASSISTANT, "hi there")
        assert [m.id for m in a.messages] == [m.id for m in b.messages]

    def test_id_depends_on_parent(self, conv):
        first = conv.append(ROLE_USER, "same")
        second = conv.append(ROLE_USER, "same")
        assert first.id != second.id
        assert second.parent_id == first.id


class TestAppend:
    def test_first_message_attaches_to_root(self, conv):
        msg = conv.append(ROLE_USER, "hello")
        assert msg.parent_id == ROOT
        assert msg.is_head
        assert conv.head == msg

    def test_author_name_only_on_user_messages(self, conv):
        user = conv.append(ROLE_USER, "hello")
        reply = conv.append(ROLE_ASSISTANT, "hi")
        assert user.author_name == "tester"
        assert reply.author_name == ""

    def test_unknown_role_rejected(self, conv):
        with pytest.raises(ValueError):
            conv.append("tool", "x")
        assert len(conv) == 0

    def test_single_head_after_every_operation(self, two_turns):
        assert len(heads(two_turns)) == 1
        first = two_turns.messages[0]
        two_turns.change_head(first.id[:6])
        assert heads(two_turns) == [two_turns.messages[0]]
        two_turns.append(ROLE_ASSISTANT, "another answer")
        assert len(heads(two_turns)) == 1
        two_turns.change_head("ROOT")
        assert heads(two_turns) == []


class TestHead:
    def test_change_head_by_prefix(self, two_turns):
        question, answer = two_turns.messages
        moved = two_turns.change_head(question.id[:6])
        assert moved.id == question.id
        assert two_turns.head.id == question.id
        assert [m.id for m in two_turns.path_from_head()] == [question.id]

    def test_root_returns_system_message(self, two_turns):
        sys_msg = two_turns.change_head("root")
        assert sys_msg.role == ROLE_SYSTEM
        assert sys_msg.parent_id == ROOT
        assert sys_msg.content == "Be brief."
        assert sys_msg.id == hashlib.sha1(b"Be brief.").hexdigest()
        assert two_turns.head is None
        assert two_turns.path_from_head() == []

    def test_append_after_root_starts_new_branch(self, two_turns):
        two_turns.change_head(ROOT)
        msg = two_turns.append(ROLE_USER, "Something else")
        assert msg.parent_id == ROOT
        assert len(two_turns) == 3

    def test_unknown_prefix_leaves_head_unchanged(self, two_turns):
        before = two_turns.head
        with pytest.raises(MessageNotFoundError):
            two_turns.change_head("0" * 40)
        assert two_turns.head == before

    @pytest.mark.parametrize("prefix", ["", "   "])
    def test_empty_prefix_rejected(self, two_turns, prefix):
        before = two_turns.head
        with pytest.raises(InvalidIdPrefixError):
            two_turns.change_head(prefix)
        assert two_turns.head == before

    @pytest.mark.parametrize("prefix", ["zzzzzz", "xyz", "12-34"])
    def test_non_hex_prefix_is_not_found(self, two_turns, prefix):
        before = two_turns.head
        assert two_turns.find_by_id_prefix(prefix) is None
        with pytest.raises(MessageNotFoundError):
            two_turns.change_head(prefix)
        assert two_turns.head == before
        assert len(heads(two_turns)) == 1

    def test_prefix_is_case_insensitive(self, two_turns):
        question = two_turns.messages[0]
        assert two_turns.find_by_id_prefix(question.id[:8].upper()).id == question.id


class TestCollisions:
    def test_identical_turn_on_new_branch_collides(self, two_turns):
        """Re-asking the first question from ROOT reproduces its id."""
        original = two_turns.messages[0]
        two_turns.change_head(ROOT)
        again = two_turns.append(ROLE_USER, original.content)
        assert again.id == original.id
        assert len(two_turns) == 3

    def test_lookup_resolves_to_first_inserted(self, two_turns):
        original = two_turns.messages[0]
        two_turns.change_head(ROOT)
        two_turns.append(ROLE_USER, original.content)
        found = two_turns.find_by_id_prefix(original.id)
        assert found is not None
        assert found.is_head is False
        assert two_turns.messages.index(found) == 0


class TestTraversal:
    def test_path_is_root_first(self, two_turns):
        path = two_turns.path_from_head()
        assert [m.role for m in path] == [ROLE_USER, ROLE_ASSISTANT]
        assert path[0].parent_id == ROOT
        assert path[1].parent_id == path[0].id

    def test_branch_path_excludes_siblings(self, two_turns):
        question, answer = two_turns.messages
        two_turns.change_head(question.id)
        alternative = two_turns.append(ROLE_ASSISTANT, "A burrito.")
        path = two_turns.path_from_head()
        assert [m.id for m in path] == [question.id, alternative.id]
        assert answer.id not in [m.id for m in path]

    def test_cycle_detected(self):
        a = Message(id="aaaa", parent_id="bbbb", role=ROLE_USER, content="a")
        b = Message(id="bbbb", parent_id="aaaa", role=ROLE_ASSISTANT, content="b")
        conv = Conversation.from_messages([a, b])
        conv.change_head("aaaa")
        with pytest.raises(ChainCorruptedError):
            conv.path_from_head()

    def test_dangling_parent_detected(self):
        orphan = Message(id="aaaa", parent_id="cccc", role=ROLE_USER, content="a")
        conv = Conversation.from_messages([orphan])
        conv.change_head("aaaa")
        with pytest.raises(ChainCorruptedError):
            conv.path_from_head()

    def test_root_message_is_first_attached_to_root(self, two_turns):
        assert two_turns.root_message() == two_turns.messages[0]
        assert Conversation().root_message() is None


class TestModify:
    def test_modify_changes_content_not_identity(self, two_turns):
        question, answer = two_turns.messages
        updated = two_turns.modify_content(question.id, "What is a functor?")
        assert updated.id == question.id
        assert two_turns.head.id == answer.id
        assert two_turns.path_from_head()[0].content == "What is a functor?"
        assert two_turns.path_from_head()[1].parent_id == question.id

    def test_modify_unknown_id(self, two_turns):
        with pytest.raises(MessageNotFoundError):
            two_turns.modify_content("0" * 40, "x")


class TestFromMessages:
    def test_rebuild_keeps_head(self, two_turns):
        rebuilt = Conversation.from_messages(two_turns.messages, system=two_turns.system)
        assert rebuilt.head == two_turns.head
        assert rebuilt.path_from_head() == two_turns.path_from_head()

    def test_two_heads_rejected(self):
        a = Message(id="aaaa", parent_id=ROOT, role=ROLE_USER, content="a", is_head=True)
        b = Message(id="bbbb", parent_id=ROOT, role=ROLE_USER, content="b", is_head=True)
        with pytest.raises(ConversationFormatError):
            Conversation.from_messages([a, b])

    def test_unknown_role_rejected(self):
        bad = Message(id="aaaa", parent_id=ROOT, role="tool", content="a")
        with pytest.raises(ConversationFormatError):
            Conversation.from_messages([bad])

    @pytest.mark.parametrize(
        "messages",
        [
            [
                Message(id="aaaa", parent_id="bbbb", role=ROLE_USER, content="a", is_head=True),
                Message(id="bbbb", parent_id="aaaa", role=ROLE_ASSISTANT, content="b"),
            ],
            [Message(id="aaaa", parent_id="cccc", role=ROLE_USER, content="a", is_head=True)],
        ],
    )
    def test_head_off_root_rejected(self, messages):
        with pytest.raises(ConversationFormatError):
            Conversation.from_messages(messages)


class TestDiceRoll:
    def test_roll_appended_after_hashing(self, profile):
        conv = Conversation(profile=profile.model_copy(update={"dice_roll": "2d6"}))
        with patch("tangent.chain.random.randint", return_value=4):
            msg = conv.append(ROLE_USER, "I attack the orc")
        assert msg.content == "I attack the orc\n DiceRoll 2d6: 8"
        assert msg.id == message_id(ROLE_USER, "I attack the orc", ROOT)

    def test_bonus_is_added(self):
        with patch("tangent.chain.random.randint", return_value=10):
            assert roll_dice("d20+3") == 13
            assert roll_dice("1d20-2") == 8

    @pytest.mark.parametrize("expr", ["20", "d0", "0d6", "two d6", "1d6+"])
    def test_invalid_expression_rejected_by_profile(self, expr):
        with pytest.raises(ValidationError):
            Profile(dice_roll=expr)
