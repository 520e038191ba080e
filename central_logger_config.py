from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from central_logger.errors import ConfigurationError
from central_logger.severity import Severity

DEFAULT_COLLECTION_SIZE = 250 * 1024 * 1024

# keys accepted in YAML config files, mapped onto settings fields
YAML_KEYS = {
    "host": "MONGODB_HOST",
    "port": "MONGODB_PORT",
    "database": "MONGODB_DATABASE",
    "collection": "LOG_MONGODB_COLLECTION",
    "capsize": "CAPSIZE_BYTES",
    "application_name": "APPLICATION_NAME",
    "level": "LOG_LEVEL",
    "file_path": "LOG_FILE_PATH",
    "dual_output": "FILE_DUAL_OUTPUT",
    "safe_insert": "SAFE_INSERT",
    "username": "MONGODB_USERNAME",
    "password": "MONGODB_PASSWORD",
    "timeout_ms": "MONGODB_TIMEOUT_MS",
    "enabled": "MONGODB_ENABLED",
}


# files searched by Settings.from_config_dir, first match wins; database.yml
# keeps the logger settings under a "mongo" key of each environment
CONFIG_FILES = (
    ("central_logger.yml", None),
    ("mongoid.yml", None),
    ("database.yml", "mongo"),
)


class Settings(BaseSettings):
    APP_ENV: str = Field(
        default="development",
        description="Environment name; used in the default collection and log file names"
    )

    # --- Database Settings ---
    MONGODB_ENABLED: bool = Field(
        default=True,
        description="Write log records to MongoDB. When false only the file sink is used"
    )
    MONGODB_HOST: str = Field(
        default="localhost",
        description="MongoDB host"
    )
    MONGODB_PORT: int = Field(
        default=27017,
        description="MongoDB port"
    )
    MONGODB_DATABASE: str = Field(
        default="system_log",
        description="Database holding the log collection"
    )
    MONGODB_USERNAME: Optional[str] = Field(
        default=None,
        description="Username to authenticate with, if the server requires it"
    )
    MONGODB_PASSWORD: Optional[SecretStr] = Field(
        default=None,
        description="Password for MONGODB_USERNAME"
    )
    MONGODB_TIMEOUT_MS: int = Field(
        default=5000,
        gt=0,
        description="Server selection, connect and socket timeout; a slow insert fails after this long"
    )

    # --- Log Collection Settings ---
    LOG_MONGODB_COLLECTION: Optional[str] = Field(
        default=None,
        description="Capped collection name. Defaults to '<APP_ENV>_log'"
    )
    CAPSIZE_BYTES: int = Field(
        default=DEFAULT_COLLECTION_SIZE,
        gt=0,
        description="Size of the capped collection in bytes"
    )
    SAFE_INSERT: bool = Field(
        default=False,
        description="Wait for the server to acknowledge each insert"
    )
    APPLICATION_NAME: Optional[str] = Field(
        default=None,
        description="Name stored in the 'application' field of every record"
    )
    LOG_LEVEL: str = Field(
        default="debug",
        description="Minimum severity recorded (debug, info, warn, error, fatal)"
    )

    # --- File Logging Settings ---
    FILE_LOGGING_ENABLED: bool = Field(
        default=True,
        description="Write records to LOG_FILE_PATH when the store is disabled or an insert fails"
    )
    FILE_DUAL_OUTPUT: bool = Field(
        default=False,
        description="Also write successfully stored records to the log file"
    )
    LOG_FILE_PATH: Optional[str] = Field(
        default=None,
        description="Log file path. Defaults to 'log/<APP_ENV>.log'"
    )

    # --- Demo Server Settings ---
    API_KEY: Optional[SecretStr] = Field(
        default=None,
        description="API key for the admin endpoints of the demo server"
    )
    HOST: str = Field(
        default="0.0.0.0",
        description="Server host address"
    )
    PORT: int = Field(
        default=8000,
        description="Server port"
    )

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore',
        case_sensitive=False,
        frozen=True
    )

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def normalize_level(cls, v: Any) -> str:
        return Severity.parse(v).label

    @property
    def min_severity(self) -> Severity:
        return Severity.parse(self.LOG_LEVEL)

    @property
    def collection_name(self) -> str:
        return self.LOG_MONGODB_COLLECTION or f"{self.APP_ENV}_log"

    @property
    def log_file_path(self) -> Path:
        return Path(self.LOG_FILE_PATH or f"log/{self.APP_ENV}.log")

    @property
    def mongodb_url(self) -> str:
        if self.MONGODB_USERNAME:
            password = self.MONGODB_PASSWORD.get_secret_value() if self.MONGODB_PASSWORD else ""
            return f"mongodb://{self.MONGODB_USERNAME}:{password}@{self.MONGODB_HOST}:{self.MONGODB_PORT}"
        return f"mongodb://{self.MONGODB_HOST}:{self.MONGODB_PORT}"

    @property
    def mongodb_url_safe(self) -> str:
        if "://" in self.mongodb_url and "@" in self.mongodb_url:
            protocol, rest = self.mongodb_url.split("://", 1)
            creds, host_part = rest.split("@", 1)
            return f"{protocol}://***:***@{host_part}"
        return self.mongodb_url

    @classmethod
    def from_yaml(
        cls,
        path: Union[str, Path],
        section: Optional[str] = None,
        subsection: Optional[str] = None,
        **overrides
    ) -> "Settings":
        """
        Load settings from a YAML file such as::

            production:
              host: db.internal
              database: system_log
              capsize: 104857600
              application_name: storefront
              disable_file_logging: true

        ``section`` selects a top-level key (usually the environment name) and
        ``subsection`` a key nested inside it, such as ``mongo`` in a shared
        database.yml.
        Keyword overrides win over the file.
        """
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Unable to read configuration file {path}: {e}") from e

        if section is not None:
            if section not in data:
                raise ConfigurationError(f"Section '{section}' not found in {path}")
            data = data[section] or {}
        if subsection is not None:
            if not isinstance(data, dict) or subsection not in data:
                raise ConfigurationError(f"Section '{subsection}' not found in {path}")
            data = data[subsection] or {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration in {path} must be a mapping")

        values: Dict[str, Any] = {}
        for key, value in data.items():
            if key == "disable_file_logging":
                values["FILE_LOGGING_ENABLED"] = not value
            elif key in YAML_KEYS:
                values[YAML_KEYS[key]] = value
        if section is not None:
            values.setdefault("APP_ENV", section)
        values.update(overrides)
        return load_settings(**values)

    @classmethod
    def from_config_dir(cls, config_dir: Union[str, Path], env: str, **overrides) -> "Settings":
        """
        Load the first configuration file found in ``config_dir``, in the order
        of CONFIG_FILES, using the ``env`` section.
        """
        config_dir = Path(config_dir)
        for filename, subsection in CONFIG_FILES:
            path = config_dir / filename
            if path.is_file():
                return cls.from_yaml(path, section=env, subsection=subsection, **overrides)
        names = ", ".join(filename for filename, _ in CONFIG_FILES)
        raise ConfigurationError(f"No logger configuration in {config_dir} (looked for {names})")


def load_settings(**overrides) -> Settings:
    """Build Settings from the environment plus overrides; invalid values raise ConfigurationError."""
    try:
        settings = Settings(**overrides)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid logger configuration: {e}") from e
    validate_settings(settings)
    return settings


def validate_settings(settings: Settings) -> None:
    problems = []
    if settings.CAPSIZE_BYTES <= 0:
        problems.append("CAPSIZE_BYTES must be positive")
    if settings.MONGODB_USERNAME and settings.MONGODB_PASSWORD is None:
        problems.append("MONGODB_PASSWORD is required when MONGODB_USERNAME is set")
    if not settings.MONGODB_ENABLED and not settings.FILE_LOGGING_ENABLED:
        problems.append("at least one of MONGODB_ENABLED and FILE_LOGGING_ENABLED must be true")

    if problems:
        raise ConfigurationError(
            f"Invalid logger configuration: {'; '.join(problems)}. "
            "Please check your .env file or environment variables."
        )
