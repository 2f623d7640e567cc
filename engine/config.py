"""
Builder configuration system for saving/loading user preferences.
"""

import json
import logging
from pathlib import Path
from typing import Optional, Dict, Any, Tuple

logger = logging.getLogger("charforge.config")

# Config file location
CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"
CONFIG_FILE = CONFIG_DIR / "settings.json"


class BuilderConfig:
    """Manages character builder configuration/settings."""

    def __init__(self) -> None:
        self.width: int = 1280
        self.height: int = 720
        self.fullscreen: bool = False

        # Seed for the hit point roller; None means a fresh random seed
        self.random_seed: Optional[int] = None
        # Simulated catalog latency in seconds (the in-memory catalog answers instantly otherwise)
        self.catalog_latency: float = 0.0

        self.telemetry_enabled: bool = False
        self.telemetry_path: str = "logs/telemetry.jsonl"
        self.upload_dir: str = "uploads"

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary for saving."""
        return {
            "width": self.width,
            "height": self.height,
            "fullscreen": self.fullscreen,
            "random_seed": self.random_seed,
            "catalog_latency": self.catalog_latency,
            "telemetry_enabled": self.telemetry_enabled,
            "telemetry_path": self.telemetry_path,
            "upload_dir": self.upload_dir,
        }

    def from_dict(self, data: Dict[str, Any]) -> None:
        """Load config from dictionary."""
        self.width = int(data.get("width", 1280))
        self.height = int(data.get("height", 720))
        self.fullscreen = bool(data.get("fullscreen", False))
        seed = data.get("random_seed")
        self.random_seed = int(seed) if seed is not None else None
        self.catalog_latency = max(0.0, float(data.get("catalog_latency", 0.0)))
        self.telemetry_enabled = bool(data.get("telemetry_enabled", False))
        self.telemetry_path = str(data.get("telemetry_path", "logs/telemetry.jsonl"))
        self.upload_dir = str(data.get("upload_dir", "uploads"))

    def get_resolution(self) -> Tuple[int, int]:
        return (self.width, self.height)

    def resolve_path(self, value: str) -> Path:
        """Relative paths in the config are relative to the project root."""
        path = Path(value)
        if not path.is_absolute():
            path = CONFIG_DIR.parent / path
        return path

    def save(self, path: Optional[Path] = None) -> bool:
        """Save config to file."""
        target = Path(path) if path is not None else CONFIG_FILE
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with target.open("w", encoding="utf-8") as f:
                json.dump(self.to_dict(), f, indent=2)
            return True
        except OSError as e:
            logger.warning(f"Error saving config: {e}")
            return False

    def load(self, path: Optional[Path] = None) -> bool:
        """Load config from file."""
        source = Path(path) if path is not None else CONFIG_FILE
        if not source.exists():
            return False

        try:
            with source.open("r", encoding="utf-8") as f:
                data = json.load(f)
            self.from_dict(data)
            return True
        except (OSError, ValueError, TypeError) as e:
            logger.warning(f"Error loading config: {e}")
            return False


# Global config instance
_config = BuilderConfig()


def get_config() -> BuilderConfig:
    """Get the global config instance."""
    return _config


def load_config() -> BuilderConfig:
    """Load and return the config."""
    _config.load()
    return _config


def save_config() -> bool:
    """Save the global config."""
    return _config.save()
