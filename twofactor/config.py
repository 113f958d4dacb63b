"""
Configuration for the Twofactor Authenticator service

Values come from an optional YAML file and are overridden by environment
variables.
"""

import os
import secrets
from dataclasses import dataclass, field, fields
from functools import lru_cache
from typing import Any, Dict, Optional

import yaml

CONFIG_PATH = os.getenv("TWOFACTOR_CONFIG", "/etc/twofactor/config.yaml")

_TRUE_VALUES = ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Runtime settings"""
    database_url: str = "sqlite:///./twofactor.db"
    jwt_secret_key: str = field(default_factory=lambda: secrets.token_urlsafe(32))
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 1440  # 24 hours
    authenticator_disable_time_drift: bool = False
    totp_issuer: str = "Twofactor"
    mail_enabled: bool = False
    smtp_config_path: str = "/data/smtp_config.json"
    log_level: str = "INFO"


def _coerce(value: Any, default: Any) -> Any:
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in _TRUE_VALUES
    if isinstance(default, int):
        return int(value)
    return str(value)


def load_config_file(path: str) -> Dict[str, Any]:
    """Load the YAML config file, empty if it does not exist"""
    if not os.path.exists(path):
        return {}
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    return data


def load_settings(path: Optional[str] = None, environ: Optional[Dict[str, str]] = None) -> Settings:
    """
    Build settings from the config file and the environment

    Args:
        path: YAML config path, defaults to CONFIG_PATH
        environ: Environment mapping, defaults to os.environ

    Returns:
        Settings with environment values taking precedence
    """
    environ = os.environ if environ is None else environ
    file_values = load_config_file(path or CONFIG_PATH)

    settings = Settings()
    for f in fields(Settings):
        default = getattr(settings, f.name)
        if f.name in file_values:
            setattr(settings, f.name, _coerce(file_values[f.name], default))
        env_value = environ.get(f.name.upper())
        if env_value is not None and env_value != "":
            setattr(settings, f.name, _coerce(env_value, default))
    return settings


@lru_cache()
def get_settings() -> Settings:
    """Dependency returning the process-wide settings"""
    return load_settings()
