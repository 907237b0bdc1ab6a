"""
Configuration loader for the Tounesbet odds scraper.
Loads settings from YAML files.
"""

import logging
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

# Default config directory (tounesbet_odds/config.py -> tounesbet_odds -> project -> config)
CONFIG_DIR = Path(__file__).parent.parent / "config"

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120 Safari/537.36"
)


class ConfigLoader:
    """Loads and manages configuration from YAML files."""

    def __init__(self, config_dir: Optional[Path] = None, overrides: Optional[dict] = None):
        """
        Initialize config loader.

        Args:
            config_dir: Path to config directory (default: project/config/)
            overrides: Settings merged over settings.yaml section by section
                (used by tests and the CLI)
        """
        self.config_dir = Path(config_dir) if config_dir else CONFIG_DIR
        self._settings = None
        self._overrides = overrides or {}

    def load_settings(self) -> dict:
        """Load settings.yaml configuration."""
        if self._settings is None:
            path = self.config_dir / "settings.yaml"
            settings = self._load_yaml(path)
            for section, values in self._overrides.items():
                if isinstance(values, dict):
                    merged = dict(settings.get(section) or {})
                    merged.update(values)
                    settings[section] = merged
                else:
                    settings[section] = values
            self._settings = settings
        return self._settings

    def _load_yaml(self, path: Path) -> dict:
        """Load a YAML file."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                return yaml.safe_load(f) or {}
        except FileNotFoundError:
            logger.error(f"Config file not found: {path}")
            return {}
        except yaml.YAMLError as e:
            logger.error(f"Error parsing YAML file {path}: {e}")
            return {}

    def _section(self, name: str) -> dict:
        return self.load_settings().get(name) or {}

    # ==========================================
    # Convenience Methods
    # ==========================================

    def get_db_path(self) -> str:
        """Get database path from settings (always relative to project root)."""
        relative_path = self._section("database").get("path", "data/odds.db")
        if relative_path == ":memory:":
            return relative_path
        return str(self.config_dir.parent / relative_path)

    def get_source(self) -> str:
        """Source tag stored on every scraped row."""
        return self._section("scraper").get("source", "tounesbet")

    def get_default_sport_id(self) -> str:
        return str(self._section("scraper").get("default_sport_id", "1181"))

    # ==========================================
    # Fetch Settings
    # ==========================================

    def get_fetch_settings(self) -> dict:
        """
        Get HTTP fetch settings.

        Returns:
            Dict with 'base_urls', 'timeout', 'attempts', 'backoff_ms',
            'max_hops' and 'user_agent'
        """
        scraper = self._section("scraper")
        return {
            "base_urls": list(scraper.get("base_urls") or ["https://tounesbet.com", "http://tounesbet.com"]),
            "timeout": float(scraper.get("timeout", 10.0)),
            "attempts": int(scraper.get("attempts", 3)),
            "backoff_ms": int(scraper.get("backoff_ms", 300)),
            "max_hops": int(scraper.get("max_hops", 7)),
            "user_agent": scraper.get("user_agent", DEFAULT_USER_AGENT),
        }

    # ==========================================
    # Queue & Schedule Settings
    # ==========================================

    def get_queue_settings(self) -> dict:
        """Get crawl frontier and lease settings."""
        queue = self._section("queue")
        return {
            "discovery_batch": queue.get("discovery_batch", 3),
            "discovery_batch_max": queue.get("discovery_batch_max", 4),
            "hourly_batch": queue.get("hourly_batch", 12),
            "hourly_batch_max": queue.get("hourly_batch_max", 8),
            "empty_streak_limit": queue.get("empty_streak_limit", 8),
            "page_ceiling": queue.get("page_ceiling", 250),
            "fanout_non_empty": queue.get("fanout_non_empty", 3),
            "fanout_empty": queue.get("fanout_empty", 1),
            "stuck_horizon_minutes": queue.get("stuck_horizon_minutes", 120),
            "lease_minutes": queue.get("lease_minutes", 15),
        }

    def get_schedule_settings(self) -> dict:
        """
        Get reschedule delays (minutes) for queue tasks.

        Returns:
            Dict with success delays per task kind and the failure backoff step/cap
        """
        schedule = self._section("schedule")
        return {
            "catalog_success_minutes": schedule.get("catalog_success_minutes", 10),
            "catalog_empty_minutes": schedule.get("catalog_empty_minutes", 6 * 60),
            "hourly_success_minutes": schedule.get("hourly_success_minutes", 60),
            "full_markets_ttl_minutes": schedule.get("full_markets_ttl_minutes", 60),
            "backoff_step_minutes": schedule.get("backoff_step_minutes", 5),
            "backoff_cap_minutes": schedule.get("backoff_cap_minutes", 60),
            "loop_interval_seconds": schedule.get("loop_interval_seconds", 60),
        }

    # ==========================================
    # API & Provider Settings
    # ==========================================

    def get_api_settings(self) -> dict:
        api = self._section("api")
        return {
            "seen_within_minutes": api.get("seen_within_minutes", 180),
            "seen_within_max": api.get("seen_within_max", 7 * 24 * 60),
        }

    def get_statscore_settings(self) -> dict:
        statscore = self._section("statscore")
        return {
            "widget_group": statscore.get("widget_group", "65c592e745164675a446d35b"),
            "timezone": str(statscore.get("timezone", "0")),
        }


# Global config instance
config = ConfigLoader()
