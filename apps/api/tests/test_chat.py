"""
Tests for coach/client chat threads and unread counts.
"""
from tests.auth_helpers import auth_headers


def _post(client, headers, client_id, content):
    return client.post("/api/chat-messages", json={"clientId": str(client_id), "content": content}, headers=headers)


def test_both_sides_share_one_thread(client, coach_headers, client_headers, client_user):
    assert _post(client, coach_headers, client_user.id, "How did training go?").status_code == 201
    reply = _post(client, client_headers, client_user.id, "Great, hit a PB")
    assert reply.json()["message"]["sender"] == "client"

    messages = client.get(f"/api/chat-messages?clientId={client_user.slug}", headers=client_headers).json()["messages"]
    assert [(m["sender"], m["content"]) for m in messages] == [
        ("coach", "How did training go?"),
        ("client", "Great, hit a PB"),
    ]


def test_client_cannot_open_other_threads(client, client_headers, make_user, coach):
    other = make_user("client", coach=coach)
    resp = client.get(f"/api/chat-messages?clientId={other.id}", headers=client_headers)
    assert resp.status_code == 403


def test_empty_message_rejected(client, coach_headers, client_user):
    assert _post(client, coach_headers, client_user.id, "   ").status_code == 400


def test_thread_requires_client_id(client, coach_headers):
    assert client.get("/api/chat-messages", headers=coach_headers).status_code == 400


def test_unread_count_resets_when_seen(client, coach_headers, client_headers, client_user):
    _post(client, client_headers, client_user.id, "Question about macros")
    _post(client, client_headers, client_user.id, "And one about sleep")
    # the coach's own messages are never unread for the coach
    _post(client, coach_headers, client_user.id, "On it")

    url = f"/api/chat-unread-count?clientId={client_user.id}"
    assert client.get(url, headers=coach_headers).json() == {"unreadCount": 2}
    assert client.get(url, headers=client_headers).json() == {"unreadCount": 1}

    client.post("/api/chat-last-seen", json={"clientId": str(client_user.id)}, headers=coach_headers)
    assert client.get(url, headers=coach_headers).json() == {"unreadCount": 0}

    _post(client, client_headers, client_user.id, "Also, rest day?")
    assert client.get(url, headers=coach_headers).json() == {"unreadCount": 1}


def test_unread_counts_cover_every_client(client, coach_headers, client_headers, client_user, make_user, coach):
    quiet = make_user("client", coach=coach)
    _post(client, client_headers, client_user.id, "Hi coach")

    counts = client.get("/api/chat-unread-counts", headers=coach_headers).json()["unreadCounts"]
    assert counts == {str(client_user.id): 1, str(quiet.id): 0}


def test_unread_counts_skip_inactive_clients(client, coach_headers, client_headers, client_user, db_session):
    _post(client, client_headers, client_user.id, "Pausing for a while")
    client_user.status = "inactive"
    db_session.commit()

    assert client.get("/api/chat-unread-counts", headers=coach_headers).json()["unreadCounts"] == {}


def test_unread_counts_are_for_coaches(client, client_headers):
    assert client.get("/api/chat-unread-counts", headers=client_headers).status_code == 403


def test_other_coach_cannot_post(client, make_user, client_user):
    stranger = make_user("coach")
    resp = _post(client, auth_headers(stranger), client_user.id, "Hello")
    assert resp.status_code == 404
