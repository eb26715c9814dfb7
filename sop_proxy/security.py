"""
Header block lists and the pluggable security policy.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Iterable, Optional

from .utils import resolve_instance_or_callable

log = logging.getLogger(__name__)

# headers which will be blocked from forwarding in backend request
BLOCKED_REQUEST_HEADERS = (
    "host",
    "content-length",
    "SAP_SESSIONID_DT1_100",
    "MYSAPSSO2",
    "JSESSIONID",
)


class SecurityPolicy(ABC):
    """
    Application specific restrictions applied by the proxy.

    The proxy always blocks the built-in BLOCKED_REQUEST_HEADERS; a policy may
    contribute additional header names that must not be forwarded.
    """

    @abstractmethod
    def response_header_blacklist(self) -> list[str]:
        """Header names to suppress in addition to the built-in ones."""


class StaticSecurityPolicy(SecurityPolicy):
    """Policy configured with a fixed list of header names."""

    def __init__(self, headers: Iterable[str] = ()):
        self.headers = list(headers)

    def response_header_blacklist(self) -> list[str]:
        return list(self.headers)


class HeaderBlockSet(frozenset):
    """Immutable set of header names with case-insensitive membership."""

    def __new__(cls, names: Iterable[str] = ()):
        return super().__new__(cls, (name.lower() for name in names))

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and super().__contains__(name.lower())

    def __repr__(self) -> str:
        return f"HeaderBlockSet({sorted(self)!r})"


def _is_policy(obj: Any) -> bool:
    return isinstance(obj, SecurityPolicy) or callable(
        getattr(obj, "response_header_blacklist", None)
    )


def load_security_policy(policy: Any) -> Optional[SecurityPolicy]:
    """
    Create the security policy from its configuration value.
    The proxy works without a policy, so any problem is logged and None is returned.
    """
    if policy is None:
        return None
    try:
        resolved = resolve_instance_or_callable(
            policy, allow_types=[SecurityPolicy], debug_name="security policy"
        )
        if isinstance(resolved, type) or (callable(resolved) and not _is_policy(resolved)):
            resolved = resolved()
    except Exception as e:  # pylint: disable=broad-exception-caught
        log.error("Provided security policy %r cannot be loaded: %s", policy, e)
        return None
    if not _is_policy(resolved):
        log.error("Provided security policy %r is not an implementation of SecurityPolicy", policy)
        return None
    return resolved


def merged_block_set(
    policy: Optional[SecurityPolicy],
    builtins: Iterable[str] = BLOCKED_REQUEST_HEADERS,
) -> HeaderBlockSet:
    """Union of the built-in blocked header names and the ones provided by the policy."""
    names = set(builtins)
    if policy is not None:
        try:
            names.update(policy.response_header_blacklist() or [])
        except Exception as e:  # pylint: disable=broad-exception-caught
            log.error("Security policy %r failed to provide blocked headers: %s", policy, e)
    return HeaderBlockSet(names)
