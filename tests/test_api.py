import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from feature_bot.routers import router
from feature_bot.settings import settings

from tests.conftest import make_feature


def make_client(services, application=None, webhook_mode=False, secret=None):
    app = FastAPI()
    app.include_router(router)
    app.state.services = services
    app.state.application = application
    app.state.webhook_mode = webhook_mode
    app.state.webhook_secret = secret
    return TestClient(app)


@pytest.fixture
def client(services):
    with make_client(services) as client:
        yield client


def test_status(client):
    response = client.get("/api/feature_bot/status")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "running"
    assert body["features_total"] == 2
    assert body["ai_enabled"] is False


def test_list_and_filter_features(client):
    client.patch("/api/feature_bot/features/echo", json={"enabled": False})

    ids = [f["id"] for f in client.get("/api/feature_bot/features").json()["features"]]
    assert ids == ["ping", "echo"]
    enabled = client.get("/api/feature_bot/features", params={"enabled": "true"}).json()
    assert [f["id"] for f in enabled["features"]] == ["ping"]


def test_create_feature(client, services):
    response = client.post("/api/feature_bot/features", json=make_feature("weather"))
    assert response.status_code == 201
    assert response.json()["createdAt"]

    assert client.post("/api/feature_bot/features", json=make_feature("weather")).status_code == 409
    assert client.post("/api/feature_bot/features", json=make_feature("Bad-Id")).status_code == 422
    assert client.post("/api/feature_bot/features", json={"id": "x"}).status_code == 422


def test_get_update_and_delete_feature(client):
    assert client.get("/api/feature_bot/features/ghost").status_code == 404

    response = client.patch("/api/feature_bot/features/ping", json={"name": "Pinger"})
    assert response.status_code == 200
    assert response.json()["name"] == "Pinger"
    assert client.get("/api/feature_bot/features/ping").json()["name"] == "Pinger"
    assert client.patch("/api/feature_bot/features/ghost", json={"name": "x"}).status_code == 404

    response = client.delete("/api/feature_bot/features/ping")
    assert response.json() == {"status": "deleted", "id": "ping"}
    assert client.delete("/api/feature_bot/features/ping").status_code == 404


def test_admin_token_required_when_secret_set(services):
    services.config.SECRET_KEY = "s3cret"
    with make_client(services) as client:
        assert client.get("/api/feature_bot/features").status_code == 401
        response = client.get("/api/feature_bot/features", headers={"X-Admin-Token": "s3cret"})
        assert response.status_code == 200
        assert client.get("/api/feature_bot/status").status_code == 200


def test_webhook_unavailable_without_bot(client):
    response = client.post("/api/feature_bot/webhook", json={"update_id": 1})
    assert response.status_code == 503


class FakeBot:
    def __init__(self):
        self.webhooks = []

    async def set_webhook(self, url, secret_token=None, allowed_updates=None):
        self.webhooks.append((url, secret_token))
        return True

    async def delete_webhook(self):
        return True


class FakeApplication:
    def __init__(self):
        self.bot = FakeBot()
        self.updater = None
        self.updates = []

    async def process_update(self, update):
        self.updates.append(update)


WEBHOOK = "/api/feature_bot/webhook"
SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"
FORGED_ADMIN_CALLBACK = {
    "update_id": 1,
    "callback_query": {
        "id": "1",
        "from": {"id": 1, "is_bot": False, "first_name": "Admin"},
        "chat_instance": "1",
        "data": "admin:delete:echo",
    },
}


def test_webhook_is_closed_in_polling_mode(services):
    application = FakeApplication()
    with make_client(services, application, webhook_mode=False, secret="s3cret") as client:
        response = client.post(WEBHOOK, json=FORGED_ADMIN_CALLBACK, headers={SECRET_HEADER: "s3cret"})
    assert response.status_code == 404
    assert application.updates == []


@pytest.mark.parametrize("headers", [{}, {SECRET_HEADER: "forged"}, {SECRET_HEADER: ""}])
def test_webhook_rejects_updates_without_valid_secret(services, headers):
    application = FakeApplication()
    with make_client(services, application, webhook_mode=True, secret="s3cret") as client:
        response = client.post(WEBHOOK, json=FORGED_ADMIN_CALLBACK, headers=headers)
    assert response.status_code == 403
    assert application.updates == []


def test_webhook_accepts_update_with_secret(services):
    application = FakeApplication()
    with make_client(services, application, webhook_mode=True, secret="s3cret") as client:
        response = client.post(WEBHOOK, json={"update_id": 7}, headers={SECRET_HEADER: "s3cret"})
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert [u.update_id for u in application.updates] == [7]


def test_set_webhook_registers_secret_and_opens_endpoint(services, monkeypatch):
    monkeypatch.setattr(settings, "WEBHOOK_URL", "https://bot.example.com")
    monkeypatch.setattr(settings, "WEBHOOK_SECRET", "")
    application = FakeApplication()
    with make_client(services, application) as client:
        response = client.get("/api/feature_bot/set-webhook")
        assert response.status_code == 200

        url, secret = application.bot.webhooks[0]
        assert url == "https://bot.example.com" + WEBHOOK
        assert secret and client.app.state.webhook_secret == secret
        assert client.post(WEBHOOK, json={"update_id": 2}).status_code == 403
        response = client.post(WEBHOOK, json={"update_id": 2}, headers={SECRET_HEADER: secret})
        assert response.status_code == 200

        assert client.get("/api/feature_bot/delete-webhook").status_code == 200
        response = client.post(WEBHOOK, json={"update_id": 3}, headers={SECRET_HEADER: secret})
        assert response.status_code == 404
    assert [u.update_id for u in application.updates] == [2]
