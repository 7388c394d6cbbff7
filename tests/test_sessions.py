import pytest

from webapp.sessions import TITLE_CHARS, SessionManager


@pytest.fixture
def sessions(tmp_path):
    return SessionManager(str(tmp_path / "history" / "sessions.db"))


def test_first_user_message_creates_titled_session(sessions):
    question = "How did the third quarter go? " * 10
    sessions.add_message("s1", "user", question)

    session = sessions.get_session("s1")
    assert session["title"] == question[:TITLE_CHARS]


def test_messages_come_back_in_conversation_order(sessions):
    sessions.add_message("s1", "user", "first")
    sessions.add_message("s1", "assistant", "second", model="gpt-4o-mini", sources=[{"id": "c1"}])
    sessions.add_message("s1", "user", "third")

    messages = sessions.get_messages("s1")
    assert [m["content"] for m in messages] == ["first", "second", "third"]
    assert messages[1]["sources"] == [{"id": "c1"}]
    assert messages[0]["sources"] == []

    assert [m["content"] for m in sessions.get_messages("s1", limit=2)] == ["second", "third"]


def test_unknown_session_has_no_messages(sessions):
    assert sessions.get_session("missing") is None
    assert sessions.get_messages("missing") == []


def test_delete_session_cascades(sessions):
    sessions.add_message("s1", "user", "hello")

    assert sessions.delete_session("s1") is True
    assert sessions.get_messages("s1") == []
    assert sessions.delete_session("s1") is False


def test_invalid_role_is_rejected(sessions):
    with pytest.raises(Exception):
        sessions.add_message("s1", "system", "not allowed")
