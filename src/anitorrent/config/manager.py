"""Configuration manager for loading and saving anitorrent config."""

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from anitorrent.config.paths import get_config_dir
from anitorrent.config.schema import SECRET_FIELDS, AppConfig
from anitorrent.utils.errors import InvalidConfigError

logger = logging.getLogger(__name__)

MASK = "********"


class ConfigManager:
    """Manages the JSON config file and the token file next to it."""

    def __init__(self, config_dir: Path | None = None) -> None:
        """Initialize the config manager.

        Args:
            config_dir: Optional custom config directory. Defaults to the
                per-user config dir.
        """
        self.config_dir = config_dir or get_config_dir()
        self.config_file = self.config_dir / "config.json"
        self.token_file = self.config_dir / "peertube-token.json"

    def load_config(self) -> AppConfig:
        """Load and validate configuration.

        A default config file is written when none exists yet.

        Returns:
            Validated AppConfig instance

        Raises:
            InvalidConfigError: If the file is not valid JSON or fails validation
        """
        if not self.config_file.exists():
            config = AppConfig()
            self.save_config(config)
            logger.info(f"Created default configuration at {self.config_file}")
            return config

        try:
            data = json.loads(self.config_file.read_text(encoding="utf-8") or "{}")
            return AppConfig.model_validate(data)
        except (ValueError, ValidationError) as e:
            raise InvalidConfigError(
                f"Invalid configuration in {self.config_file}: {e}"
            ) from e

    def save_config(self, config: AppConfig) -> None:
        """Save configuration as pretty-printed JSON.

        Args:
            config: AppConfig instance to save
        """
        self.config_dir.mkdir(parents=True, exist_ok=True)
        data = config.model_dump(mode="json")
        self.config_file.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")

    def validate_for_run(self, config: AppConfig | None = None) -> AppConfig:
        """Load (if needed) and check that every required setting is present.

        Raises:
            InvalidConfigError: Naming every missing setting
        """
        config = config or self.load_config()
        missing = config.missing_required()
        if missing:
            raise InvalidConfigError(
                f"Missing required configuration in {self.config_file}: "
                + ", ".join(missing)
            )
        return config

    def masked(self, config: AppConfig | None = None) -> dict[str, Any]:
        """Return the configuration as a dict with secret values hidden."""
        config = config or self.load_config()
        data = config.model_dump(mode="json")
        for section, key in SECRET_FIELDS:
            if data.get(section, {}).get(key):
                data[section][key] = MASK
        return data
