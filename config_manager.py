"""
Configuration management for the raster tools.
Handles loading, saving, and managing user preferences.
"""

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict

__all__ = [
    'ConfigManager',
    'DEFAULT_CONFIG_FILE',
]

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = str(Path.home() / ".raster_pie.json")


class ConfigManager:
    """Manages application configuration and user preferences."""

    DEFAULT_CONFIG = {
        # Default processing settings
        "defaults": {
            "random_seed": None,       # None means a fresh seed every run
            "output_format": "tga",    # extension used for folder output
            "overwrite": True
        },

        # Last used paths
        "paths": {
            "last_input_dir": None,
            "last_output_dir": None
        },

        # Recent files (keep last 10)
        "recent_files": []
    }

    def __init__(self, config_file: str = DEFAULT_CONFIG_FILE):
        """
        Initialize config manager.

        Args:
            config_file: Path to config file
        """
        self.config_file = config_file
        self.config = self._load_config()

    def _load_config(self) -> Dict:
        """Load config from file, falling back to defaults."""
        defaults = copy.deepcopy(self.DEFAULT_CONFIG)
        if not os.path.exists(self.config_file):
            return defaults
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                loaded = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Error loading config: {e}")
            return defaults
        if not isinstance(loaded, dict):
            logger.warning(f"Ignoring config {self.config_file}: top level is not an object")
            return defaults
        # Merge with defaults to handle new settings
        return self._merge_configs(defaults, loaded)

    def _merge_configs(self, default: Dict, loaded: Dict) -> Dict:
        """
        Recursively merge loaded config with defaults.
        Ensures all default keys exist even if not in loaded config.
        """
        for key, value in default.items():
            if key in loaded:
                if isinstance(value, dict) and isinstance(loaded[key], dict):
                    default[key] = self._merge_configs(value, loaded[key])
                else:
                    default[key] = loaded[key]
        return default

    def save(self) -> bool:
        """Save current config to file."""
        try:
            with open(self.config_file, 'w', encoding='utf-8') as f:
                json.dump(self.config, f, indent=4)
        except OSError as e:
            logger.warning(f"Error saving config: {e}")
            return False
        return True

    def get(self, *keys: str, default: Any = None) -> Any:
        """
        Get config value by nested keys.

        Args:
            *keys: Nested keys (e.g., "defaults", "random_seed")
            default: Default value if key not found

        Returns:
            Config value or default

        Example:
            config.get("defaults", "output_format")  # Returns "tga"
        """
        value = self.config
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value

    def set(self, *keys: str, value: Any):
        """
        Set config value by nested keys.

        Args:
            *keys: Nested keys (e.g., "defaults", "overwrite")
            value: Value to set

        Example:
            config.set("defaults", "overwrite", value=False)
        """
        if len(keys) == 0:
            return

        # Navigate to the parent dict
        current = self.config
        for key in keys[:-1]:
            if key not in current:
                current[key] = {}
            current = current[key]

        # Set the final value
        current[keys[-1]] = value

    def update_last_path(self, path_type: str, filepath: str):
        """
        Update last used directory for a path type.

        Args:
            path_type: "input" or "output"
            filepath: File path to extract directory from
        """
        if filepath:
            path = Path(filepath)
            directory = str(path if path.is_dir() else path.parent)
            self.set("paths", f"last_{path_type}_dir", value=directory)

    def add_recent_file(self, filepath: str, max_recent: int = 10):
        """
        Add file to recent files list.

        Args:
            filepath: File path to add
            max_recent: Maximum number of recent files to keep
        """
        recent = list(self.get("recent_files", default=[]))

        # Remove if already exists
        if filepath in recent:
            recent.remove(filepath)

        # Add to front
        recent.insert(0, filepath)

        self.set("recent_files", value=recent[:max_recent])

