import copy
from typing import Any, Dict, Iterator, List

import pytest
from pymongo.errors import ServerSelectionTimeoutError

from central_logger.errors import StoreWriteFailure
from central_logger.mongo_logger import MongoLogger
from central_logger_config import Settings


class FakeStore:
    """In-memory stand-in for CappedCollectionStore."""

    collection_name = "test_log"

    def __init__(self):
        self.documents: List[Dict[str, Any]] = []
        self.fail = False

    def insert(self, document: Dict[str, Any]) -> None:
        if self.fail:
            raise StoreWriteFailure(self.collection_name, ServerSelectionTimeoutError("no servers"))
        self.documents.append(copy.deepcopy(document))

    def count(self) -> int:
        return len(self.documents)

    def find(self, **criteria) -> List[Dict[str, Any]]:
        return [doc for doc in self.documents if all(doc.get(k) == v for k, v in criteria.items())]


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def settings(tmp_path, monkeypatch) -> Settings:
    """Settings isolated from the developer's environment, logging to a temp file."""
    for name in ("LOG_LEVEL", "APP_ENV", "APPLICATION_NAME", "FILE_LOGGING_ENABLED", "LOG_FILE_PATH"):
        monkeypatch.delenv(name, raising=False)
    return Settings(
        _env_file=None,
        APPLICATION_NAME="central_foo",
        LOG_FILE_PATH=str(tmp_path / "log.out"),
    )


@pytest.fixture
def mongo_logger(settings, fake_store) -> Iterator[MongoLogger]:
    log = MongoLogger(settings, store=fake_store)
    yield log
    log.close()
