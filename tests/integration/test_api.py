"""HTTP surface tests against in-memory services."""

import asyncio

import pytest
from fastapi.testclient import TestClient

from arthagent.agents.prompts import TRANSACTION_SYSTEM_PROMPT
from arthagent.api import create_app
from arthagent.auth import issue_token
from arthagent.constants import TRANSACTION_INPUT_RECEIVED
from arthagent.execute import EventExecutor


@pytest.fixture
def app(services):
    return create_app(services)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def auth(config):
    def _headers(user_id="u1"):
        return {"Authorization": f"Bearer {issue_token(user_id, config.auth)}"}

    return _headers


def drain(app):
    """Run queued events the way a worker would."""
    executor = EventExecutor(app.state.dispatcher)
    asyncio.run(executor.start(lifespan=0.2))
    return executor.results


def test_requests_without_valid_token_are_rejected(client):
    response = client.post("/chat", json={"message": "hi"})
    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"

    response = client.get("/chat", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


def test_body_user_must_match_token(client, auth):
    response = client.post("/chat", json={"message": "hi", "userId": "someone-else"}, headers=auth())
    assert response.status_code == 403


def test_empty_message_is_invalid(client, auth):
    assert client.post("/chat", json={"message": ""}, headers=auth()).status_code == 422


def test_chat_is_queued_then_answered(client, app, auth):
    response = client.post("/chat", json={"message": "How should I invest?"}, headers=auth())
    assert response.status_code == 202
    body = response.json()
    assert body["status"] == "queued"
    message_id, chat_id = body["messageId"], body["chatId"]

    assert client.get(f"/chat/runs/{message_id}", headers=auth()).status_code == 404

    drain(app)

    response = client.get(f"/chat/runs/{message_id}", headers=auth())
    assert response.status_code == 200
    run = response.json()
    assert run["status"] == "awaiting_input"
    assert "What is your age?" in run["reply"]
    assert run["data"]["chatId"] == chat_id
    assert {"name": "store-user-message", "status": "completed"} in run["steps"]

    assert client.get(f"/chat/runs/{message_id}", headers=auth("u2")).status_code == 404

    response = client.get("/chat", params={"chatId": chat_id}, headers=auth())
    assert response.status_code == 200
    messages = response.json()["messages"]
    assert [m["sender"] for m in messages] == ["user", "assistant"]
    assert response.json()["title"] == "How should I invest?"

    assert client.get("/chat", params={"chatId": chat_id}, headers=auth("u2")).status_code == 403
    chats = client.get("/chat", headers=auth()).json()["chats"]
    assert [c["chat_id"] for c in chats] == [chat_id]


def test_follow_up_messages_share_a_chat(client, app, auth):
    first = client.post("/chat", json={"message": "Hi"}, headers=auth()).json()
    second = client.post(
        "/chat", json={"message": "I am 30", "chatId": first["chatId"]}, headers=auth()
    ).json()
    drain(app)

    assert second["chatId"] == first["chatId"]
    messages = client.get("/chat", params={"chatId": first["chatId"]}, headers=auth()).json()[
        "messages"
    ]
    assert len(messages) == 4


def test_unknown_chat_is_empty(client, auth):
    response = client.get("/chat", params={"chatId": "nope"}, headers=auth())
    assert response.json() == {"chatId": "nope", "messages": []}


def test_transactions_endpoint(client, app, auth, llm):
    llm.script(
        TRANSACTION_SYSTEM_PROMPT,
        {"intent": "log_transaction", "transaction": {"type": "income", "amount": 2500, "category": "freelance"}},
    )
    response = client.post("/transactions", json={"text": "got 2500 for a gig"}, headers=auth())
    assert response.status_code == 202
    message_id = response.json()["messageId"]

    drain(app)

    response = client.get(
        f"/chat/runs/{message_id}",
        params={"eventType": TRANSACTION_INPUT_RECEIVED},
        headers=auth(),
    )
    assert response.status_code == 200
    assert response.json()["agents"] == ["transaction"]
    assert response.json()["data"]["balance"] == 2500


def test_goals_endpoint_queues(client, auth):
    response = client.post("/goals", json={"text": "Save for a bike"}, headers=auth())
    assert response.status_code == 202
    assert response.json()["status"] == "queued"


def test_cannot_post_into_another_users_chat(client, app, auth):
    chat_id = client.post("/chat", json={"message": "private note"}, headers=auth("alice")).json()[
        "chatId"
    ]
    drain(app)

    response = client.post(
        "/chat", json={"message": "let me in", "chatId": chat_id}, headers=auth("mallory")
    )
    assert response.status_code == 403
    drain(app)

    messages = client.get("/chat", params={"chatId": chat_id}, headers=auth("alice")).json()[
        "messages"
    ]
    assert [m["sender"] for m in messages] == ["user", "assistant"]
    assert "let me in" not in [m["text"] for m in messages]
