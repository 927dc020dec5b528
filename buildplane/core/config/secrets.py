"""
Secret providers — narrow credential lookup for the deployment step.

The configurator only ever asks a provider for a named secret. The
default reads the process environment; tests inject a static one.
Values come back as SecretStr and are never logged.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from collections.abc import Mapping

from pydantic import SecretStr

from buildplane.core import errors

GIT_USERNAME = "GIT_USERNAME"
GIT_PASSWORD = "GIT_PASSWORD"


class SecretProvider(ABC):
    """Credential lookup capability."""

    @abstractmethod
    def get(self, name: str) -> SecretStr | None:
        """Return the secret, or None if it is not available."""

    def require(self, name: str) -> SecretStr:
        """Return the secret.

        Raises:
            MissingConfigurationError: If the provider has no value.
        """
        secret = self.get(name)
        if secret is None or not secret.get_secret_value():
            raise errors.MissingConfigurationError(name, source="credential")
        return secret


class EnvironmentSecretProvider(SecretProvider):
    """Reads credentials from the process environment."""

    def __init__(self, environ: Mapping[str, str] | None = None):
        self._environ = os.environ if environ is None else environ

    def get(self, name: str) -> SecretStr | None:
        value = self._environ.get(name)
        return SecretStr(value) if value is not None else None


class StaticSecretProvider(SecretProvider):
    """Fixed in-memory secrets."""

    def __init__(self, secrets: Mapping[str, str] | None = None):
        self._secrets = dict(secrets or {})
        self.requested: list[str] = []

    def get(self, name: str) -> SecretStr | None:
        self.requested.append(name)
        value = self._secrets.get(name)
        return SecretStr(value) if value is not None else None
