import pytest

from conftest import ALICE, BOB, CAROL, DAVE, auth_headers, make_token


def _send(client, sender, receiver, content, **extra):
    return client.post(
        "/dm/messages",
        json={"receiver_id": receiver, "content": content, **extra},
        headers=auth_headers(sender)
    )


# ----------------------------------------------------------------------
# Authentication
# ----------------------------------------------------------------------

@pytest.mark.parametrize("method,path", [
    ("get", "/dm/conversations"),
    ("get", f"/dm/conversation/{BOB}"),
    ("get", f"/dm/conversations/{BOB}"),
    ("get", "/profiles/me"),
])
def test_requires_authentication(client, method, path):
    """Test protected endpoints reject anonymous callers"""
    response = getattr(client, method)(path)

    assert response.status_code == 401
    assert response.json()["detail"] == "Not authenticated"


def test_rejects_token_signed_with_other_secret(client):
    headers = {"Authorization": f"Bearer {make_token(ALICE, secret='not-the-secret')}"}

    response = client.get("/dm/conversations", headers=headers)

    assert response.status_code == 401
    assert response.json()["detail"] == "Could not validate credentials"


# ----------------------------------------------------------------------
# Send
# ----------------------------------------------------------------------

def test_send_message(client, profiles):
    """Test POST /dm/messages stores and returns the message"""
    response = _send(client, ALICE, BOB, "hello bob")

    assert response.status_code == 201
    data = response.json()
    assert data["id"] > 0
    assert data["sender_id"] == ALICE
    assert data["receiver_id"] == BOB
    assert data["content"] == "hello bob"
    assert "created_at" in data
    assert "X-Trace-ID" in response.headers


def test_send_publishes_to_both_participants(client, broker, profiles):
    response = _send(client, ALICE, BOB, "live")

    assert response.status_code == 201
    assert broker.get_stats()["messages_published"] == 2


def test_send_blank_content(client, profiles):
    """Test blank content is a validation error and nothing is stored"""
    response = _send(client, ALICE, BOB, "   ")

    assert response.status_code == 422
    assert response.json()["error"] == "validation_error"

    history = client.get(f"/dm/conversation/{BOB}", headers=auth_headers(ALICE))
    assert history.json()["count"] == 0


def test_send_to_self(client, profiles):
    response = _send(client, ALICE, ALICE, "note to self")

    assert response.status_code == 422


def test_send_as_someone_else(client, profiles):
    """Test a spoofed sender gets a generic 403"""
    response = _send(client, ALICE, CAROL, "spoofed", sender_id=BOB)

    assert response.status_code == 403
    assert response.json() == {"error": "authorization_error", "detail": "Operation not permitted"}


# ----------------------------------------------------------------------
# History and conversations
# ----------------------------------------------------------------------

def test_history_is_shared_and_ordered(client, profiles):
    """Test both participants see the same ordered history"""
    _send(client, ALICE, BOB, "one")
    _send(client, BOB, ALICE, "two")
    _send(client, ALICE, BOB, "three")
    _send(client, ALICE, CAROL, "elsewhere")

    alice_view = client.get(f"/dm/conversation/{BOB}", headers=auth_headers(ALICE)).json()
    bob_view = client.get(f"/dm/conversation/{ALICE}", headers=auth_headers(BOB)).json()

    assert alice_view["count"] == 3
    assert [m["content"] for m in alice_view["messages"]] == ["one", "two", "three"]
    assert [m["id"] for m in alice_view["messages"]] == [m["id"] for m in bob_view["messages"]]


def test_conversation_list(client, profiles):
    _send(client, ALICE, CAROL, "first")
    _send(client, BOB, ALICE, "second")

    response = client.get("/dm/conversations", headers=auth_headers(ALICE))

    assert response.status_code == 200
    data = response.json()
    assert data["count"] == 2
    assert [c["other_user_id"] for c in data["conversations"]] == [BOB, CAROL]
    assert data["conversations"][0]["other_user_name"] == "Bob Iyer"
    assert data["conversations"][0]["last_message"] == "second"


def test_open_conversation_placeholder(client, profiles):
    response = client.get(f"/dm/conversations/{CAROL}", headers=auth_headers(ALICE))

    assert response.status_code == 200
    data = response.json()
    assert data["other_user_name"] == "Carol Das"
    assert data["is_placeholder"] is True
    assert data["last_message"] is None


def test_open_conversation_unknown_user(client, profiles):
    response = client.get("/dm/conversations/user_ghost", headers=auth_headers(ALICE))

    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


def test_open_conversation_without_profile_after_message(client, profiles):
    """Test a user with messages but no profile is still reachable"""
    _send(client, DAVE, ALICE, "hi, no profile yet")

    response = client.get(f"/dm/conversations/{DAVE}", headers=auth_headers(ALICE))

    assert response.status_code == 200
    assert response.json()["other_user_name"] == DAVE


# ----------------------------------------------------------------------
# Profiles
# ----------------------------------------------------------------------

def test_profile_upsert_and_get(client, db_session):
    """Test PUT /profiles/me creates and then updates"""
    created = client.put(
        "/profiles/me",
        json={"full_name": "Dave Kumar"},
        headers=auth_headers(DAVE)
    )
    assert created.status_code == 200
    assert created.json()["role"] == "student"

    updated = client.put(
        "/profiles/me",
        json={"full_name": "Dave K.", "role": "club_admin"},
        headers=auth_headers(DAVE)
    )
    assert updated.json()["full_name"] == "Dave K."

    me = client.get("/profiles/me", headers=auth_headers(DAVE)).json()
    assert me["user_id"] == DAVE
    assert me["role"] == "club_admin"


def test_profile_rejects_unknown_role(client, db_session):
    response = client.put(
        "/profiles/me",
        json={"full_name": "Dave", "role": "janitor"},
        headers=auth_headers(DAVE)
    )

    assert response.status_code == 422


def test_my_profile_missing(client, profiles):
    response = client.get("/profiles/me", headers=auth_headers(DAVE))

    assert response.status_code == 404


def test_get_profile(client, profiles):
    response = client.get(f"/profiles/{BOB}", headers=auth_headers(ALICE))

    assert response.status_code == 200
    assert response.json()["role"] == "hod"


def test_search_excludes_caller(client, profiles):
    """Test name search is case-insensitive and leaves out the caller"""
    response = client.get("/profiles/search", params={"query": "a"}, headers=auth_headers(ALICE))

    assert response.status_code == 200
    ids = [p["user_id"] for p in response.json()["profiles"]]
    assert ALICE not in ids
    assert CAROL in ids


# ----------------------------------------------------------------------
# Health
# ----------------------------------------------------------------------

def test_health(client, db_session):
    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["services"] == {"database": "up", "live_channel": "up"}


def test_live_stats(client, broker):
    response = client.get("/stats/live")

    assert response.status_code == 200
    assert response.json()["backend"] == "memory"
