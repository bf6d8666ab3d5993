from datetime import timedelta

import pytest

from app.exceptions import NotFoundError, ValidationError
from app.models import DirectMessage, utcnow
from app.services import ConversationAggregator, MessageStore
from conftest import ALICE, BOB, CAROL, DAVE


def _add(db, sender, receiver, content, at):
    db.add(DirectMessage(sender_id=sender, receiver_id=receiver, content=content, created_at=at))
    db.commit()


def test_no_messages_means_no_conversations(db_session, profiles):
    """Test empty list for a user who never messaged"""
    assert ConversationAggregator.list_conversations(db_session, ALICE) == []


def test_one_entry_per_counterpart(db_session, profiles):
    """Test many messages in both directions collapse into one entry"""
    base = utcnow()
    _add(db_session, ALICE, BOB, "hi bob", base)
    _add(db_session, BOB, ALICE, "hi alice", base + timedelta(seconds=1))
    _add(db_session, ALICE, BOB, "how are you", base + timedelta(seconds=2))
    _add(db_session, CAROL, ALICE, "club meeting?", base + timedelta(seconds=3))

    conversations = ConversationAggregator.list_conversations(db_session, ALICE)

    ids = [c.other_user_id for c in conversations]
    assert sorted(ids) == [BOB, CAROL]
    assert len(ids) == len(set(ids))


def test_ordered_by_latest_message(db_session, profiles):
    """Test most recent conversation first, with the latest preview"""
    base = utcnow()
    _add(db_session, ALICE, CAROL, "old", base)
    _add(db_session, BOB, ALICE, "older bob", base + timedelta(seconds=1))
    _add(db_session, ALICE, BOB, "newest bob", base + timedelta(seconds=5))
    _add(db_session, CAROL, ALICE, "newer carol", base + timedelta(seconds=3))

    conversations = ConversationAggregator.list_conversations(db_session, ALICE)

    assert [c.other_user_id for c in conversations] == [BOB, CAROL]
    assert conversations[0].last_message == "newest bob"
    assert conversations[1].last_message == "newer carol"
    for earlier, later in zip(conversations, conversations[1:]):
        assert earlier.last_message_at >= later.last_message_at


def test_entries_decorated_from_profiles(db_session, profiles):
    """Test display name and avatar come from the profile table"""
    MessageStore.insert(db_session, BOB, BOB, ALICE, "hello")

    [conversation] = ConversationAggregator.list_conversations(db_session, BOB)

    assert conversation.other_user_id == ALICE
    assert conversation.other_user_name == "Alice Menon"
    assert conversation.other_user_avatar == "https://img.example/alice.png"
    assert conversation.is_placeholder is False


def test_missing_profile_falls_back_to_user_id(db_session, profiles):
    """Test a counterpart without a profile is still listed"""
    MessageStore.insert(db_session, DAVE, DAVE, ALICE, "new here")

    [conversation] = ConversationAggregator.list_conversations(db_session, ALICE)

    assert conversation.other_user_id == DAVE
    assert conversation.other_user_name == DAVE
    assert conversation.other_user_avatar is None


def test_other_users_conversations_not_listed(db_session, profiles):
    """Test only pairs involving the caller show up"""
    MessageStore.insert(db_session, BOB, BOB, CAROL, "not for alice")

    assert ConversationAggregator.list_conversations(db_session, ALICE) == []


def test_open_conversation_placeholder(db_session, profiles):
    """Test a brand-new counterpart gets a placeholder from the profile"""
    conversation = ConversationAggregator.open_conversation(db_session, ALICE, BOB)

    assert conversation.other_user_id == BOB
    assert conversation.other_user_name == "Bob Iyer"
    assert conversation.last_message is None
    assert conversation.last_message_at is None
    assert conversation.is_placeholder is True


def test_open_conversation_existing(db_session, profiles):
    """Test an existing pair returns the latest message"""
    MessageStore.insert(db_session, ALICE, ALICE, BOB, "first")
    MessageStore.insert(db_session, BOB, BOB, ALICE, "reply")

    conversation = ConversationAggregator.open_conversation(db_session, ALICE, BOB)

    assert conversation.is_placeholder is False
    assert conversation.last_message == "reply"


def test_open_conversation_unknown_user(db_session, profiles):
    """Test a counterpart with no profile and no messages"""
    with pytest.raises(NotFoundError):
        ConversationAggregator.open_conversation(db_session, ALICE, "user_ghost")


def test_open_conversation_with_self(db_session, profiles):
    with pytest.raises(ValidationError):
        ConversationAggregator.open_conversation(db_session, ALICE, ALICE)
