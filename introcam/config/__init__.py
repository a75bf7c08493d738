"""YAML configuration loader for IntroCam."""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging

logger = logging.getLogger(__name__)

SECRET_ENV_VARS = {
    "supabase.service_key": "SUPABASE_SERVICE_KEY",
    "airtable.api_key": "AIRTABLE_API_KEY",
}


class IntroCamConfig:
    """IntroCam configuration loader."""

    def __init__(self, config_path: str):
        """Initialize configuration loader.

        Args:
            config_path: Path to YAML config file
        """
        self.config_file = Path(config_path)

        if not self.config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_file}")

        logger.info(f"Loading configuration from: {self.config_file}")
        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load and parse YAML configuration file."""
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}")

        if not config:
            raise ValueError("Configuration file is empty")
        if not isinstance(config, dict):
            raise ValueError("Configuration file must contain a mapping")

        self._resolve_paths(config)
        logger.info("Configuration loaded successfully")
        return config

    def _resolve_paths(self, config: Dict[str, Any]) -> None:
        """Resolve relative paths against the config file's directory."""
        config_dir = self.config_file.parent
        for section, key in (("storage", "data_directory"), ("storage", "downloads_directory"), ("logging", "file_path")):
            value = config.get(section, {}).get(key) if isinstance(config.get(section), dict) else None
            if value and not os.path.isabs(value):
                config[section][key] = str(config_dir / value)

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'capture.quality').

        Args:
            key_path: Dot-separated key path
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        value = self.config

        for key in key_path.split('.'):
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def set(self, key_path: str, value: Any) -> None:
        """Set configuration value using dot notation."""
        keys = key_path.split('.')
        config_dict = self.config

        for key in keys[:-1]:
            if key not in config_dict:
                config_dict[key] = {}
            config_dict = config_dict[key]

        config_dict[keys[-1]] = value
        logger.debug(f"Configuration key '{key_path}' set")

    def get_secret(self, key_path: str) -> Optional[str]:
        """Secret from its environment variable, falling back to the file."""
        env_var = SECRET_ENV_VARS.get(key_path)
        if env_var and os.environ.get(env_var):
            return os.environ[env_var]
        return self.get(key_path)

    def get_supabase_settings(self) -> Dict[str, str]:
        """Supabase URL, service key and bucket - raises if not configured."""
        url = self.get('supabase.url')
        service_key = self.get_secret('supabase.service_key')
        if not url:
            raise ValueError("Supabase URL not configured (supabase.url)")
        if not service_key:
            raise ValueError("Supabase service key not configured (supabase.service_key or SUPABASE_SERVICE_KEY)")
        return {
            "url": url,
            "service_key": service_key,
            "bucket": self.get('supabase.bucket', 'video'),
        }

    def get_airtable_settings(self) -> Dict[str, str]:
        """Airtable credentials and target table - raises if not configured."""
        api_key = self.get_secret('airtable.api_key')
        base_id = self.get('airtable.base_id')
        if not api_key:
            raise ValueError("Airtable API key not configured (airtable.api_key or AIRTABLE_API_KEY)")
        if not base_id:
            raise ValueError("Airtable base not configured (airtable.base_id)")
        return {
            "api_key": api_key,
            "base_id": base_id,
            "table": self.get('airtable.table', 'SFF Candidate Database'),
            "field": self.get('airtable.field', 'Video Instruction'),
        }

    def get_data_directory(self) -> str:
        """Get data directory path."""
        data_dir = self.get('storage.data_directory', 'data')
        return str(Path(data_dir).absolute())
