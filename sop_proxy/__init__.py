"""
SOP-Proxy: same-origin-policy preserving reverse proxy.
"""

from .config import Config
from .destinations import Destination, DestinationResolver, StaticDestinationResolver
from .security import SecurityPolicy, StaticSecurityPolicy

__all__ = [
    "Config",
    "Destination",
    "DestinationResolver",
    "StaticDestinationResolver",
    "SecurityPolicy",
    "StaticSecurityPolicy",
]
