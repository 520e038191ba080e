import logging
from typing import Optional

from pymongo import MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

from central_logger.errors import ConfigurationError
from central_logger_config import Settings

logger = logging.getLogger(__name__)


class MongoConnection:
    """Lazily created MongoClient for the configured log database."""

    def __init__(self, settings: Settings, client: Optional[MongoClient] = None):
        self.settings = settings
        self._client = client

    @property
    def client(self) -> MongoClient:
        if self._client is None:
            options = {
                "serverSelectionTimeoutMS": self.settings.MONGODB_TIMEOUT_MS,
                "connectTimeoutMS": self.settings.MONGODB_TIMEOUT_MS,
                "socketTimeoutMS": self.settings.MONGODB_TIMEOUT_MS,
            }
            if self.settings.MONGODB_USERNAME:
                options.update(
                    username=self.settings.MONGODB_USERNAME,
                    password=self.settings.MONGODB_PASSWORD.get_secret_value()
                    if self.settings.MONGODB_PASSWORD else None,
                    authSource=self.settings.MONGODB_DATABASE,
                )
            self._client = MongoClient(
                host=self.settings.MONGODB_HOST,
                port=self.settings.MONGODB_PORT,
                **options
            )
        return self._client

    @property
    def database(self) -> Database:
        return self.client[self.settings.MONGODB_DATABASE]

    def connect(self) -> Database:
        logger.info(f"Connecting to MongoDB at {self.settings.mongodb_url_safe}")
        try:
            self.client.admin.command("ping")
        except PyMongoError as e:
            logger.critical(f"Error connecting to MongoDB at {self.settings.mongodb_url_safe}: {e}", exc_info=True)
            raise ConfigurationError(f"Unable to connect to MongoDB at {self.settings.mongodb_url_safe}") from e
        logger.info(f"Successfully connected to MongoDB database '{self.settings.MONGODB_DATABASE}'")
        return self.database

    @property
    def authenticated(self) -> bool:
        try:
            status = self.database.command("connectionStatus")
        except PyMongoError as e:
            logger.warning(f"Could not read connection status: {e}")
            return False
        return bool(status.get("authInfo", {}).get("authenticatedUsers"))

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None