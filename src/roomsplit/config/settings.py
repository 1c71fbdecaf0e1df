import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

# Bundled with the package
PACKAGE_CONFIG_DIR = Path(__file__).parent / "defaults"

# Per-checkout overrides (gitignored); ROOMSPLIT_CONFIG_DIR points elsewhere
PROJECT_ROOT = Path(__file__).parent.parent.parent.parent
USER_CONFIG_DIR = PROJECT_ROOT / "config"


def user_config_dir() -> Path:
    return Path(os.getenv("ROOMSPLIT_CONFIG_DIR", USER_CONFIG_DIR))


def _read_json(path: Path) -> Dict[str, Any]:
    with open(path) as f:
        return json.load(f)


class ConfigLoader:
    """JSON config files, looked up in the user config dir before the package defaults."""

    @staticmethod
    def load_config(config_name: str) -> Dict[str, Any]:
        """
        Load the first config file found: user dir, then package defaults.

        Raises:
            FileNotFoundError: If neither location has the file
        """
        candidates = [user_config_dir() / config_name, PACKAGE_CONFIG_DIR / config_name]
        for path in candidates:
            if path.exists():
                return _read_json(path)

        searched = "\n".join(f" - {p}" for p in candidates)
        raise FileNotFoundError(f"Config file '{config_name}' not found in:\n{searched}")

    @staticmethod
    def load_settings_config() -> Dict[str, Any]:
        """
        Packaged settings.json with the user's settings.json laid over it.

        A user file only needs the keys it changes.
        """
        config = _read_json(PACKAGE_CONFIG_DIR / "settings.json")
        user_path = user_config_dir() / "settings.json"
        if user_path.exists():
            config.update(_read_json(user_path))
        return config

    @staticmethod
    def load_rules_config() -> Dict[str, Any]:
        """Built-in categorization rules"""
        return _read_json(PACKAGE_CONFIG_DIR / "rules.json")


@dataclass
class Settings:
    """
    Runtime settings.

    Values come from settings.json and can be overridden through
    environment variables (a .env file is honoured).
    """
    database_path: Path
    media_root: Path
    media_base_url: str
    categorizer: str = "gemini"
    gemini_model: str = "gemini-2.5-flash"
    google_api_key: Optional[str] = None

    @classmethod
    def load(cls, config: Optional[Dict[str, Any]] = None) -> "Settings":
        """
        Build settings from config and environment.

        Args:
            config: Optional config dict. If None, loads from ConfigLoader.
                Useful for testing with custom configs.
        """
        load_dotenv()

        if config is None:
            config = ConfigLoader.load_settings_config()

        return cls(
            database_path=Path(os.getenv("ROOMSPLIT_DB", config["database_path"])),
            media_root=Path(os.getenv("ROOMSPLIT_MEDIA_ROOT", config["media_root"])),
            media_base_url=config["media_base_url"],
            categorizer=os.getenv("ROOMSPLIT_CATEGORIZER", config.get("categorizer", "gemini")),
            gemini_model=config.get("gemini_model", "gemini-2.5-flash"),
            google_api_key=os.getenv("GOOGLE_API_KEY"),
        )
