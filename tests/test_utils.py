import logging
import os

import pytest

from sop_proxy.utils import import_by_path, replace_env_strings_recursive, resolve_instance_or_callable


def test_resolve_instance_or_callable():
    assert resolve_instance_or_callable(None) is None

    obj1, obj2 = object(), object()
    ins = resolve_instance_or_callable(obj1, allow_types=[object])
    assert ins is obj1 and ins is not obj2

    with pytest.raises(ValueError):
        resolve_instance_or_callable(123)

    with pytest.raises(ValueError):
        resolve_instance_or_callable([])

    with pytest.raises(ValueError):
        resolve_instance_or_callable({})

    assert resolve_instance_or_callable(lambda: 42)() == 42

    assert (
        resolve_instance_or_callable("sop_proxy.utils.resolve_instance_or_callable")
        is resolve_instance_or_callable
    )

    ins = resolve_instance_or_callable(
        {"class": "sop_proxy.security.StaticSecurityPolicy", "headers": ["x-a"]}
    )
    assert ins.__class__.__name__ == "StaticSecurityPolicy" and ins.headers == ["x-a"]


def test_import_by_path():
    assert import_by_path("os.path.join") is os.path.join
    with pytest.raises(ValueError):
        import_by_path("join")
    with pytest.raises(ImportError):
        import_by_path("os.path.no_such_function")


def test_replace_env_strings_recursive(caplog):
    os.environ["TEST_VAR1"] = "env_value1"
    assert replace_env_strings_recursive("env:TEST_VAR1") == "env_value1"
    assert replace_env_strings_recursive("plain") == "plain"

    caplog.set_level(logging.WARNING)
    assert replace_env_strings_recursive("env:NON_EXIST") == ""
    assert len(caplog.records) == 1

    assert replace_env_strings_recursive([["env:TEST_VAR1"]]) == [["env_value1"]]
    assert replace_env_strings_recursive({"data": {"field": "env:TEST_VAR1", "n": 1}}) == {
        "data": {"field": "env_value1", "n": 1}
    }
