import logging

import pytest
from fastapi.testclient import TestClient

from central_logger.mongo_logger import MongoLogger
from central_logger_config import Settings
from main import build_mongo_logger, create_app


@pytest.fixture
def demo_settings(tmp_path):
    return Settings(
        _env_file=None,
        APPLICATION_NAME="demo",
        API_KEY="s3cret",
        LOG_FILE_PATH=str(tmp_path / "demo.log"),
    )


@pytest.fixture
def client(demo_settings, fake_store):
    mongo_logger = MongoLogger(demo_settings, store=fake_store)
    with TestClient(create_app(demo_settings, mongo_logger)) as client:
        yield client


def test_echo_request_is_stored_with_user_metadata(client, fake_store):
    response = client.get("/echo", params={"message": "hello", "user_id": "u-1"})

    assert response.json() == {"message": "hello"}
    request_docs = [doc for doc in fake_store.documents if doc.get("path") == "/echo"]
    assert len(request_docs) == 1
    assert request_docs[0]["user_id"] == "u-1"
    assert request_docs[0]["messages"]["info"] == ["Echoing 'hello'"]
    assert request_docs[0]["application"] == "demo"


def test_rejected_admin_call_records_warning(client, fake_store):
    response = client.post("/api/admin/reset-log-collection")

    assert response.status_code == 403
    document = next(doc for doc in fake_store.documents if doc.get("path") == "/api/admin/reset-log-collection")
    assert document["status"] == 403
    assert any("Invalid or missing API key" in line for line in document["messages"]["warn"])


def test_admin_reset_with_key(client):
    response = client.post("/api/admin/reset-log-collection", headers={"X-API-Key": "s3cret"})
    assert response.status_code == 200
    assert response.json()["success"] is True


def test_health_reports_store(client):
    assert client.get("/health").json()["store"] == "mongodb"


def test_handler_is_removed_on_shutdown(demo_settings, fake_store):
    mongo_logger = MongoLogger(demo_settings, store=fake_store)
    with TestClient(create_app(demo_settings, mongo_logger)):
        pass
    assert not any(
        getattr(handler, "mongo_logger", None) is mongo_logger
        for handler in logging.getLogger().handlers
    )


def test_unreachable_database_falls_back_to_file(tmp_path):
    settings = Settings(
        _env_file=None,
        MONGODB_HOST="127.0.0.1",
        MONGODB_PORT=1,
        MONGODB_TIMEOUT_MS=50,
        LOG_FILE_PATH=str(tmp_path / "fallback.log"),
    )
    mongo_logger = build_mongo_logger(settings)
    assert mongo_logger.store is None
    assert mongo_logger.file_sink is not None
    mongo_logger.close()
