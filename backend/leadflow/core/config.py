"""
Dialer Configuration
Environment settings (pydantic-settings) and layered YAML policy files
"""
import os
import re
import yaml
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional
from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

# ${VAR} references in the YAML layers resolve against .env values too
load_dotenv()


CONFIG_DIR = Path(__file__).resolve().parents[2] / "config"

# ${VAR} or ${VAR:-fallback}
_ENV_REF = re.compile(r"^\$\{(?P<name>[A-Za-z_][A-Za-z0-9_]*)(?::-(?P<fallback>.*))?\}$")


class Settings(BaseSettings):
    """Process settings read from the environment and .env"""

    environment: str = "development"
    debug: bool = True

    api_prefix: str = "/api/v1"

    # Store
    supabase_url: Optional[str] = None
    supabase_service_key: Optional[str] = None

    # Notification outbox
    redis_url: str = "redis://localhost:6379"

    # Call provider
    retell_api_key: Optional[str] = None
    retell_base_url: str = "https://api.retellai.com"

    # Payment provider
    stripe_secret_key: Optional[str] = None

    # Workflow relay
    workflow_relay_url: Optional[str] = None

    # Shared secret for the external cron caller
    cron_secret: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()


class ConfigManager:
    """
    Dialer policy from YAML.

    `default.yaml` is read first and `<environment>.yaml` is merged over it
    key by key. String values of the form ${VAR} or ${VAR:-fallback} are
    resolved from the environment.
    """

    def __init__(self, env: Optional[str] = None, config_dir: Optional[Path] = None):
        self.env = env or os.getenv("ENVIRONMENT", "development")
        self.config_dir = Path(config_dir) if config_dir else CONFIG_DIR
        self._config: Dict[str, Any] = {}
        for layer in self._layers():
            self._merge_into(self._config, layer)
        self._config = self._resolve(self._config)

    def _layers(self) -> List[Dict[str, Any]]:
        layers = []
        for name in ("default", self.env):
            path = self.config_dir / f"{name}.yaml"
            if path.is_file():
                with path.open("r", encoding="utf-8") as fh:
                    layers.append(yaml.safe_load(fh) or {})
        return layers

    @classmethod
    def _merge_into(cls, target: Dict[str, Any], layer: Dict[str, Any]) -> None:
        for key, value in layer.items():
            current = target.get(key)
            if isinstance(current, dict) and isinstance(value, dict):
                cls._merge_into(current, value)
            else:
                target[key] = value

    @classmethod
    def _resolve(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {k: cls._resolve(v) for k, v in value.items()}
        if isinstance(value, list):
            return [cls._resolve(v) for v in value]
        if isinstance(value, str):
            match = _ENV_REF.match(value)
            if match:
                fallback = match.group("fallback")
                return os.getenv(match.group("name"), value if fallback is None else fallback)
        return value

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Dotted lookup, e.g. config.get("dialer.reference_timezone").
        """
        node: Any = self._config
        for part in key_path.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def get_section(self, section: str) -> Dict[str, Any]:
        """A top-level section as a dict (empty when missing)."""
        value = self._config.get(section)
        return dict(value) if isinstance(value, dict) else {}
