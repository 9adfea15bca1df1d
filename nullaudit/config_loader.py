"""YAML configuration loader with environment variable resolution."""
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from nullaudit.config import EngineConfig

logger = logging.getLogger(__name__)


class ConfigLoader:
    """Load and parse YAML configuration with environment variable support."""

    ENV_VAR_PATTERN = re.compile(r'\$\{([A-Z_][A-Z0-9_]*)\}')

    @classmethod
    def resolve_env_vars(cls, value: Any) -> Any:
        """
        Resolve environment variables in configuration values.

        Supports ${ENV_VAR} syntax.

        Args:
            value: Configuration value (str, dict, list, or other)

        Returns:
            Resolved value
        """
        if isinstance(value, str):
            def replace_env(match):
                var_name = match.group(1)
                env_value = os.environ.get(var_name)
                if env_value is None:
                    logger.warning(f"Environment variable '{var_name}' not found, using empty string")
                    return ""
                return env_value

            return cls.ENV_VAR_PATTERN.sub(replace_env, value)

        elif isinstance(value, dict):
            return {k: cls.resolve_env_vars(v) for k, v in value.items()}

        elif isinstance(value, list):
            return [cls.resolve_env_vars(item) for item in value]

        else:
            return value

    @classmethod
    def load_yaml(cls, config_path: Path) -> Dict[str, Any]:
        """
        Load YAML configuration file with environment variable resolution.

        Args:
            config_path: Path to YAML file

        Returns:
            Parsed configuration dict
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r', encoding='utf-8') as f:
            raw_config = yaml.safe_load(f) or {}

        if not isinstance(raw_config, dict):
            raise ValueError(f"Configuration root must be a mapping: {config_path}")

        return cls.resolve_env_vars(raw_config)

    @classmethod
    def load_engine_config(cls, config_path: Optional[Path] = None) -> EngineConfig:
        """
        Load engine configuration from YAML.

        Expected format:
        ```yaml
        engine:
          api_key: ${NULLAUDIT_API_KEY}
          models: [gpt-4, claude-3-opus, gemini-pro]
          confidence_threshold: 0.8
          rate_limit:
            requests: 100
            window_ms: 60000
          reviewer_weights:
            gpt-4: 0.4
        ```

        Without a path, configuration comes from the environment.
        """
        if config_path is None:
            return EngineConfig.from_env()

        config = cls.load_yaml(config_path)
        section = config.get("engine", config)
        logger.info(f"Loaded engine configuration from {config_path}")
        return EngineConfig.from_dict(section)
