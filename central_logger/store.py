import logging
from typing import Any, Dict, Optional

from bson.errors import BSONError
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import CollectionInvalid, PyMongoError
from pymongo.write_concern import WriteConcern

from central_logger.errors import StoreWriteFailure
from central_logger_config import Settings

logger = logging.getLogger(__name__)


class CappedCollectionStore:
    """The fixed-size collection log documents rotate through."""

    def __init__(
        self,
        database: Database,
        collection_name: str,
        capsize_bytes: int,
        safe_insert: bool = False,
    ):
        self.database = database
        self.collection_name = collection_name
        self.capsize_bytes = capsize_bytes
        self.safe_insert = safe_insert

    @classmethod
    def from_settings(cls, database: Database, settings: Settings) -> "CappedCollectionStore":
        return cls(
            database,
            collection_name=settings.collection_name,
            capsize_bytes=settings.CAPSIZE_BYTES,
            safe_insert=settings.SAFE_INSERT,
        )

    @property
    def collection(self) -> Collection:
        write_concern = WriteConcern(w=1) if self.safe_insert else WriteConcern(w=0)
        return self.database.get_collection(self.collection_name, write_concern=write_concern)

    def exists(self) -> bool:
        return self.collection_name in self.database.list_collection_names()

    def create_capped(self, size_bytes: Optional[int] = None) -> None:
        size = size_bytes or self.capsize_bytes
        try:
            self.database.create_collection(self.collection_name, capped=True, size=size)
            logger.info(f"Created capped collection '{self.collection_name}' ({size} bytes)")
        except CollectionInvalid:
            logger.debug(f"Capped collection '{self.collection_name}' already exists")

    def ensure_collection(self) -> None:
        if not self.exists():
            self.create_capped()

    def drop(self) -> None:
        self.database.drop_collection(self.collection_name)
        logger.info(f"Dropped collection '{self.collection_name}'")

    def reset(self) -> None:
        """Drop and recreate the capped collection, removing every record."""
        self.drop()
        self.create_capped()

    def count(self) -> int:
        return self.database.get_collection(self.collection_name).count_documents({})

    def insert(self, document: Dict[str, Any]) -> None:
        try:
            self.collection.insert_one(document)
        except (PyMongoError, BSONError) as e:
            raise StoreWriteFailure(self.collection_name, e) from e
