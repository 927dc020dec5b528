"""
Property store — externally supplied configuration values.

Values are resolved through three layers, highest precedence first:

    1. command-line overrides   (-P KEY=VALUE)
    2. process environment      (KEY=value)
    3. project file             (properties: in buildplane.yml)

Empty strings count as absent.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Mapping

from buildplane.core import errors

logger = logging.getLogger(__name__)

PROJECT_GROUP_ID = "PROJECT_GROUP_ID"
PROJECT_VERSION = "PROJECT_VERSION"
CICD_ICR_PUBLISH_REPO = "CICD_ICR_PUBLISH_REPO"


class PropertyStore:
    """Layered, read-only key-value lookup."""

    def __init__(
        self,
        overrides: Mapping[str, str] | None = None,
        environ: Mapping[str, str] | None = None,
        defaults: Mapping[str, str] | None = None,
    ):
        self._layers: list[tuple[str, Mapping[str, str]]] = [
            ("override", dict(overrides or {})),
            ("environment", os.environ if environ is None else environ),
            ("project", dict(defaults or {})),
        ]

    def get(self, key: str) -> str | None:
        """Return the first non-empty value for ``key``, or None."""
        for source, layer in self._layers:
            value = layer.get(key)
            if value:
                logger.debug("Property %s resolved from %s", key, source)
                return value
        return None

    def require(self, key: str) -> str:
        """Return the value for ``key``.

        Raises:
            MissingConfigurationError: If no layer supplies a value.
        """
        value = self.get(key)
        if value is None:
            raise errors.MissingConfigurationError(key, source="configuration")
        return value

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None


def parse_assignments(pairs: Iterable[str], option: str = "-P") -> dict[str, str]:
    """Parse ``KEY=VALUE`` strings from the command line.

    Raises:
        ConfigurationError: If an entry has no '=' or an empty key.
    """
    result: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        key = key.strip()
        if not sep or not key:
            raise errors.ConfigurationError(
                f"Invalid {option} value '{pair}' (expected KEY=VALUE)"
            )
        result[key] = value
    return result
