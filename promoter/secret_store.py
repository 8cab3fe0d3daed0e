"""Secret store clients.

Secrets are read by reference at provisioning time and handed to the
provider as ``SecretStr``; they are never logged or stored on records.
"""

import os
from abc import ABC, abstractmethod

from pydantic import SecretStr

from promoter.core.exceptions import SecretNotFoundError


class SecretStore(ABC):
    """Looks up secret values by reference."""

    @abstractmethod
    async def get(self, reference: str) -> SecretStr:
        """Return the secret stored under ``reference``.

        Raises:
            SecretNotFoundError: If no such secret exists.
        """


class InMemorySecretStore(SecretStore):
    def __init__(self, secrets: dict[str, str] | None = None):
        self._secrets = {k: SecretStr(v) for k, v in (secrets or {}).items()}

    def put(self, reference: str, value: str) -> None:
        self._secrets[reference] = SecretStr(value)

    async def get(self, reference: str) -> SecretStr:
        try:
            return self._secrets[reference]
        except KeyError:
            raise SecretNotFoundError(reference) from None


class EnvironmentSecretStore(SecretStore):
    """Reads ``<prefix><REFERENCE>`` from the process environment.

    References are upper-cased and ``-``/``/``/``.`` become ``_``, so
    ``db/password`` is read from ``PROMOTER_SECRET_DB_PASSWORD``.
    """

    def __init__(self, prefix: str = "PROMOTER_SECRET_"):
        self.prefix = prefix

    def variable_name(self, reference: str) -> str:
        normalized = reference.upper()
        for char in "-/.":
            normalized = normalized.replace(char, "_")
        return f"{self.prefix}{normalized}"

    async def get(self, reference: str) -> SecretStr:
        value = os.environ.get(self.variable_name(reference))
        if value is None:
            raise SecretNotFoundError(reference)
        return SecretStr(value)
