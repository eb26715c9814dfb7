"""
Configuration models and loaders for SOP-Proxy.
"""

import importlib.util
import json
import tomllib
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .utils import replace_env_strings_recursive

DEFAULT_MOUNT_PATH = "/proxy"
DEFAULT_BUFFER_SIZE = 4 * 1024
ISO_8859_1 = "ISO-8859-1"


class Config(BaseModel):
    """
    Main configuration of the proxy.

    destinations:
        Maps destination names to backend base URLs, either as a plain URL string
        or as a mapping {"url": ..., **httpx_client_options}.
    destination_resolver:
        Optional replacement of the configuration-backed resolver:
        dotted path, {"class": ...} mapping, DestinationResolver class or instance,
        or a callable mapping a destination name to a Destination or its URL.
    security_policy:
        Optional SecurityPolicy implementation contributing extra blocked header names.
    """

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)
    mount_path: str = DEFAULT_MOUNT_PATH
    destinations: dict[str, Union[str, dict[str, Any]]] = Field(default_factory=dict)
    destination_resolver: Optional[Any] = None
    security_policy: Optional[Any] = None
    buffer_size: int = Field(default=DEFAULT_BUFFER_SIZE, ge=1)
    default_charset: str = ISO_8859_1

    @field_validator("mount_path")
    @classmethod
    def normalize_mount_path(cls, v: str) -> str:
        v = "/" + v.strip("/")
        if v == "/":
            raise ValueError("mount_path must contain at least one path segment")
        return v

    @staticmethod
    def _load_python(path: Path) -> "Config":
        spec = importlib.util.spec_from_file_location(path.stem, path)
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        config = getattr(module, "config", None)
        if not isinstance(config, Config):
            raise ValueError(f"Python config {path} must define a 'config' variable of type Config")
        return config

    @classmethod
    def load(cls, path: Union[str, Path]) -> "Config":
        """Load configuration from a .toml, .json, .yml/.yaml or .py file."""
        path = Path(path)
        suffix = path.suffix.lower()
        if suffix == ".py":
            return cls._load_python(path)
        if suffix == ".toml":
            with open(path, "rb") as f:
                data = tomllib.load(f)
        elif suffix == ".json":
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        elif suffix in (".yml", ".yaml"):
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        else:
            raise ValueError(f"Unsupported configuration file format: {path.suffix}")
        return cls(**replace_env_strings_recursive(data))
