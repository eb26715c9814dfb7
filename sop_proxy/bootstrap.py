"""
Process-wide environment of SOP-Proxy: configuration, security policy
and the lazily created destination resolver.
"""

import logging
import sys
import threading
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv

from .config import Config
from .destinations import TResolver, create_resolver
from .security import SecurityPolicy, load_security_policy

log = logging.getLogger(__name__)


def setup_logging(debug: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )


class Env:
    """Holds the state shared by all requests."""

    config: Optional[Config] = None
    security_policy: Optional[SecurityPolicy] = None
    debug: bool = False

    def __init__(self):
        self._resolver: Optional[TResolver] = None
        self._resolver_lock = threading.Lock()

    def init(self, config: Config, debug: bool = False) -> None:
        self.config = config
        self.debug = debug
        self.security_policy = load_security_policy(config.security_policy)
        with self._resolver_lock:
            self._resolver = None

    @property
    def resolver(self) -> TResolver:
        """
        Destination resolver, created on first use.
        A failed creation is not cached, the next request tries again.
        """
        resolver = self._resolver
        if resolver is None:
            with self._resolver_lock:
                if self._resolver is None:
                    self._resolver = create_resolver(
                        self.config.destination_resolver, self.config.destinations
                    )
                    log.debug("Destination resolver initialized: %r", self._resolver)
                resolver = self._resolver
        return resolver


env = Env()


def bootstrap(
    config: Union[str, Path, Config] = "config.yml",
    env_file: Optional[str] = ".env",
    debug: bool = False,
) -> Env:
    """Load configuration and initialize the process environment."""
    if env_file:
        load_dotenv(env_file, override=True)
    if not isinstance(config, Config):
        log.info("Loading configuration from %s", config)
        config = Config.load(config)
    env.init(config, debug=debug)
    return env
