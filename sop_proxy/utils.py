"""Common helpers for configuration handling."""

import importlib
import logging
import os
from typing import Any, Optional, Sequence

log = logging.getLogger(__name__)

ENV_PREFIX = "env:"


def import_by_path(path: str) -> Any:
    """Import an object given as 'package.module.attribute'."""
    module_name, _, attr = path.rpartition(".")
    if not module_name:
        raise ValueError(f"Not a dotted import path: {path!r}")
    module = importlib.import_module(module_name)
    try:
        return getattr(module, attr)
    except AttributeError as e:
        raise ImportError(f"Module {module_name!r} has no attribute {attr!r}") from e


def resolve_instance_or_callable(
    item: Any,
    allow_types: Optional[Sequence[type]] = None,
    debug_name: str = "object",
) -> Any:
    """
    Turn a configuration value into a usable object.

    Accepted forms:
        - None (returned as is)
        - an instance of one of `allow_types`
        - a callable (returned as is)
        - a dotted import path string, e.g. "my_app.policies.StrictPolicy"
        - a mapping {"class": "<dotted path>", **constructor_kwargs}
    """
    if item is None:
        return None
    if allow_types and isinstance(item, tuple(allow_types)):
        return item
    if isinstance(item, str):
        return import_by_path(item)
    if isinstance(item, dict):
        if "class" not in item:
            raise ValueError(f"'class' key is required to create {debug_name} from a mapping")
        kwargs = dict(item)
        cls = import_by_path(kwargs.pop("class"))
        return cls(**kwargs)
    if callable(item):
        return item
    raise ValueError(f"Can't resolve {debug_name} from {type(item).__name__}: {item!r}")


def replace_env_strings_recursive(data: Any) -> Any:
    """
    Replace 'env:VAR_NAME' strings with values of the environment variables,
    walking through nested lists and dicts.
    """
    if isinstance(data, str):
        if not data.startswith(ENV_PREFIX):
            return data
        var_name = data[len(ENV_PREFIX) :]
        value = os.environ.get(var_name)
        if value is None:
            log.warning("Environment variable %s is not set", var_name)
            return ""
        return value
    if isinstance(data, list):
        return [replace_env_strings_recursive(i) for i in data]
    if isinstance(data, dict):
        return {k: replace_env_strings_recursive(v) for k, v in data.items()}
    return data
