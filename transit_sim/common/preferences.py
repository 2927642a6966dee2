"""
User preferences for the OnTime transit simulator.

Display adapters read these settings; the engine only consumes the refresh
interval and the low-bandwidth flag. Preferences persist as a small YAML
key-value file.
"""

import logging
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Dict, List

import yaml

from .config_loader import MAX_TICK_INTERVAL_SECONDS, MIN_TICK_INTERVAL_SECONDS, ConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class Preferences:
    """
    User-facing display preferences.

    Attributes:
        theme: "dark" or "light"
        contrast: "normal" or "high"
        low_bandwidth: Prefer text lists over live map updates
        refresh_interval: Seconds between live refreshes (1-60)
        map_style: "dark" or "light"
        default_city: City shown on startup
        favorite_stops: Stop ids pinned by the user
    """
    theme: str = "dark"
    contrast: str = "normal"
    low_bandwidth: bool = False
    refresh_interval: int = 15
    map_style: str = "dark"
    default_city: str = "Chandigarh"
    favorite_stops: List[str] = field(default_factory=list)

    def validate(self) -> None:
        """
        Validate preferences.

        Raises:
            ValueError: If validation fails
        """
        if self.theme not in ("dark", "light"):
            raise ValueError(f"theme must be 'dark' or 'light', got '{self.theme}'")
        if self.contrast not in ("normal", "high"):
            raise ValueError(f"contrast must be 'normal' or 'high', got '{self.contrast}'")
        if self.map_style not in ("dark", "light"):
            raise ValueError(f"map_style must be 'dark' or 'light', got '{self.map_style}'")
        if not (MIN_TICK_INTERVAL_SECONDS <= self.refresh_interval <= MAX_TICK_INTERVAL_SECONDS):
            raise ValueError(
                f"refresh_interval must be between {MIN_TICK_INTERVAL_SECONDS} and "
                f"{MAX_TICK_INTERVAL_SECONDS}, got {self.refresh_interval}"
            )

    def add_favorite_stop(self, stop_id: str) -> None:
        if stop_id not in self.favorite_stops:
            self.favorite_stops.append(stop_id)

    def remove_favorite_stop(self, stop_id: str) -> None:
        self.favorite_stops = [s for s in self.favorite_stops if s != stop_id]

    def is_favorite(self, stop_id: str) -> bool:
        return stop_id in self.favorite_stops


class PreferenceStore:
    """
    YAML-file-backed store for a single Preferences record.

    A missing file yields default preferences. Unknown keys in the file are
    ignored so older files keep loading.
    """

    def __init__(self, path: str):
        self.path = Path(path)

    def load(self) -> Preferences:
        """
        Read preferences from disk.

        Raises:
            ConfigurationError: If the file exists but is unreadable or invalid
        """
        if not self.path.exists():
            logger.info(f"No preferences file at {self.path}, using defaults")
            return Preferences()

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse preferences: {e}")
        except OSError as e:
            raise ConfigurationError(f"Failed to read preferences file: {e}")

        if not isinstance(raw, dict):
            raise ConfigurationError("Preferences file must contain a mapping")

        known = {f.name for f in fields(Preferences)}
        values: Dict = {key: value for key, value in raw.items() if key in known}

        try:
            preferences = Preferences(**values)
            preferences.favorite_stops = list(preferences.favorite_stops)
            preferences.validate()
        except (ValueError, TypeError) as e:
            raise ConfigurationError(f"Invalid preferences: {e}")

        return preferences

    def save(self, preferences: Preferences) -> None:
        """
        Validate and write preferences to disk.

        Raises:
            ValueError: If the preferences are invalid
        """
        preferences.validate()

        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(asdict(preferences), f, sort_keys=True)

        logger.debug(f"Saved preferences to {self.path}")
