"""Mirror configuration management."""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from filelock import FileLock

from entrymirror.exceptions import ConfigError
from entrymirror.lists.sort import DEFAULT_SORT, SortSpec

DEFAULT_CONFIG_PATH = Path.home() / ".entrymirror" / "config.json"


@dataclass
class MirrorConfig:
    """Configuration for a repository connection.

    Attributes:
        base_uri: Base URI of the repository, e.g. 'https://example.com/store/'
        default_limit: Page size of list windows that do not set their own
        default_sort: Sort order of list windows that do not set their own
            (None uses the list's natural order)
        auth_max_age: Lifetime of an authenticated session in seconds (1 week)
        request_timeout: Timeout for repository requests in seconds
    """

    base_uri: Optional[str] = None
    default_limit: int = 50
    default_sort: Optional[SortSpec] = field(default_factory=lambda: DEFAULT_SORT)
    auth_max_age: int = 604800  # 1 week
    request_timeout: float = 30.0

    def __post_init__(self):
        """Normalize the base URI and validate numeric settings."""
        if self.base_uri and not self.base_uri.endswith("/"):
            self.base_uri = self.base_uri + "/"
        if isinstance(self.default_sort, dict):
            self.default_sort = SortSpec.from_dict(self.default_sort)
        if self.default_limit <= 0:
            raise ConfigError(f"default_limit must be positive, got {self.default_limit}")
        if self.auth_max_age <= 0:
            raise ConfigError(f"auth_max_age must be positive, got {self.auth_max_age}")
        if self.request_timeout <= 0:
            raise ConfigError(
                f"request_timeout must be positive, got {self.request_timeout}"
            )

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "MirrorConfig":
        """Load configuration from file.

        Args:
            config_path: Path to config file. If None, uses default location.

        Returns:
            MirrorConfig instance, defaults if the file does not exist

        Raises:
            ConfigError: If the file is not valid JSON or holds unknown keys
        """
        if config_path is None:
            config_path = DEFAULT_CONFIG_PATH

        if not config_path.exists():
            return cls()

        try:
            with open(config_path, "r") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid config file {config_path}: {e}") from e

        try:
            return cls(**data)
        except TypeError as e:
            raise ConfigError(f"Invalid config file {config_path}: {e}") from e

    def save(self, config_path: Optional[Path] = None) -> None:
        """Save configuration to file.

        Args:
            config_path: Path to config file. If None, uses default location.
        """
        if config_path is None:
            config_path = DEFAULT_CONFIG_PATH

        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "base_uri": self.base_uri,
            "default_limit": self.default_limit,
            "default_sort": self.default_sort.to_dict() if self.default_sort else None,
            "auth_max_age": self.auth_max_age,
            "request_timeout": self.request_timeout,
        }

        # Several processes may share one config file
        with FileLock(str(config_path) + ".lock", timeout=10):
            with open(config_path, "w") as f:
                json.dump(data, f, indent=2)

    @classmethod
    def from_env(cls) -> "MirrorConfig":
        """Create configuration from environment variables.

        Environment variables:
            ENTRYMIRROR_BASE_URI: Base URI of the repository
            ENTRYMIRROR_DEFAULT_LIMIT: Default page size
            ENTRYMIRROR_AUTH_MAX_AGE: Session lifetime in seconds
            ENTRYMIRROR_REQUEST_TIMEOUT: Request timeout in seconds

        Returns:
            MirrorConfig instance

        Raises:
            ConfigError: If a numeric variable cannot be parsed
        """
        kwargs = {}
        if os.getenv("ENTRYMIRROR_BASE_URI"):
            kwargs["base_uri"] = os.getenv("ENTRYMIRROR_BASE_URI")

        try:
            if os.getenv("ENTRYMIRROR_DEFAULT_LIMIT"):
                kwargs["default_limit"] = int(os.getenv("ENTRYMIRROR_DEFAULT_LIMIT"))
            if os.getenv("ENTRYMIRROR_AUTH_MAX_AGE"):
                kwargs["auth_max_age"] = int(os.getenv("ENTRYMIRROR_AUTH_MAX_AGE"))
            if os.getenv("ENTRYMIRROR_REQUEST_TIMEOUT"):
                kwargs["request_timeout"] = float(
                    os.getenv("ENTRYMIRROR_REQUEST_TIMEOUT")
                )
        except ValueError as e:
            raise ConfigError(f"Invalid environment configuration: {e}") from e

        return cls(**kwargs)
