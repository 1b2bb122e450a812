from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from leadrelay import __version__
from leadrelay.database import get_db
from leadrelay.dependencies import get_pipeline
from leadrelay.main import app
from leadrelay.schemas.lead import LeadFields
from leadrelay.services.errors import GatewayError
from leadrelay.services.pipeline_service import DeliveryPipeline


@pytest.fixture
def client(pipeline, session_factory):
    def _get_test_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_pipeline] = lambda: pipeline
    app.dependency_overrides[get_db] = _get_test_db
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestStatusEndpoints:
    def test_root(self, client):
        assert client.get("/").json() == {"status": "ok", "version": __version__}

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_db_check_counts(self, client, registry, store):
        bot = registry.resolve("shop-bot")
        store.insert(bot.id, "shop-bot", LeadFields.salvage("raw"), {})

        response = client.get("/db-check")

        assert response.json() == {"status": "ok", "bots": 1, "staged_leads": 1}


class TestOpenRouterProxy:
    def test_forwards_payload(self, client, pipeline, monkeypatch):
        forward = Mock(return_value={"choices": [{"message": {"content": "hi"}}]})
        monkeypatch.setattr(pipeline.gateway, "forward", forward, raising=False)
        payload = {"model": "any/model", "messages": [{"role": "user", "content": "hello"}]}

        response = client.post("/openrouter-proxy", json=payload)

        assert response.status_code == 200
        assert response.json()["choices"][0]["message"]["content"] == "hi"
        forward.assert_called_once_with(payload)

    def test_gateway_error_is_500(self, client, pipeline, monkeypatch):
        monkeypatch.setattr(
            pipeline.gateway, "forward", Mock(side_effect=GatewayError("OpenRouter API error: 401")), raising=False
        )

        response = client.post("/openrouter-proxy", json={"model": "m", "messages": []})

        assert response.status_code == 500
        assert response.json() == {"error": "OpenRouter API error: 401"}


class TestStartup:
    def test_startup_builds_pipeline(self):
        with TestClient(app) as client:
            assert isinstance(app.state.pipeline, DeliveryPipeline)
            assert app.state.pipeline.sheets is None
            assert client.get("/health").status_code == 200
