"""Location lookup table: location id -> display name and public profile URLs."""

import json
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import quote
from pydantic import BaseModel, ConfigDict, ValidationError
import structlog

from app.config import Settings

logger = structlog.get_logger(__name__)

GLOBAL_ENTRY_KEY = "GLOBAL"


class LocationEntry(BaseModel):
    """Per-location configuration."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    name: Optional[str] = None
    yelp_alias: Optional[str] = None
    google_url: Optional[str] = None
    trustpilot_url: Optional[str] = None

    @property
    def yelp_url(self) -> Optional[str]:
        if not self.yelp_alias:
            return None
        return f"https://www.yelp.com/biz/{quote(self.yelp_alias, safe='')}"


class LocationDirectory:
    """Read-only location table, built once at startup and passed to consumers."""

    def __init__(self, entries: Optional[Dict[str, LocationEntry]] = None):
        self._entries: Dict[str, LocationEntry] = dict(entries or {})

    @classmethod
    def from_mapping(cls, raw: Dict[str, Any]) -> "LocationDirectory":
        """
        Build a directory from a decoded JSON mapping.

        Entries that fail validation are skipped with a warning.
        """
        entries = {}
        for location_id, value in (raw or {}).items():
            if isinstance(value, str):
                value = {"name": value}
            try:
                entries[str(location_id)] = LocationEntry.model_validate(value)
            except ValidationError as e:
                logger.warning("invalid_location_entry", location_id=location_id, error=str(e))
        return cls(entries)

    @classmethod
    def from_settings(cls, settings: Settings) -> "LocationDirectory":
        """
        Load the table from LOCATION_MAP_JSON, else LOCATION_MAP_PATH.

        A missing or malformed table yields an empty directory.
        """
        raw_json = settings.location_map_json
        source = "env"

        if not raw_json and settings.location_map_path:
            source = settings.location_map_path
            try:
                raw_json = Path(settings.location_map_path).read_text(encoding="utf-8")
            except OSError as e:
                logger.warning("location_map_unreadable", path=source, error=str(e))
                return cls()

        if not raw_json:
            return cls()

        try:
            raw = json.loads(raw_json)
        except json.JSONDecodeError as e:
            logger.warning("location_map_invalid_json", source=source, error=str(e))
            return cls()

        if not isinstance(raw, dict):
            logger.warning("location_map_not_an_object", source=source)
            return cls()

        directory = cls.from_mapping(raw)
        logger.info("location_map_loaded", source=source, locations=len(directory))
        return directory

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, location_id: Optional[str]) -> Optional[LocationEntry]:
        if not location_id:
            return None
        return self._entries.get(str(location_id))

    def name_for(self, location_id: Optional[str]) -> Optional[str]:
        entry = self.get(location_id)
        return entry.name if entry and entry.name else None

    def profile_url(self, location_id: Optional[str], provider: str) -> Optional[str]:
        """
        Public profile URL of a location on a given provider, if configured.

        Trustpilot falls back to the global entry.
        """
        entry = self.get(location_id)
        provider = (provider or "").upper()

        if provider == "YELP":
            return entry.yelp_url if entry else None
        if provider == "GOOGLE":
            return entry.google_url if entry else None
        if provider == "TRUSTPILOT":
            if entry and entry.trustpilot_url:
                return entry.trustpilot_url
            global_entry = self._entries.get(GLOBAL_ENTRY_KEY)
            return global_entry.trustpilot_url if global_entry else None
        return None
