"""Container registry clients.

A registry only has to answer one question for the orchestrator: which
digest does a tag point to right now.
"""

import hashlib
from abc import ABC, abstractmethod

import httpx

from promoter.core.exceptions import ArtifactNotFoundError, PromoterError
from promoter.utils.logging import get_logger

MANIFEST_MEDIA_TYPES = ", ".join(
    [
        "application/vnd.oci.image.index.v1+json",
        "application/vnd.oci.image.manifest.v1+json",
        "application/vnd.docker.distribution.manifest.list.v2+json",
        "application/vnd.docker.distribution.manifest.v2+json",
    ]
)


class ContainerRegistry(ABC):
    """Resolves mutable tags to immutable digests."""

    def __init__(self, address: str):
        self.address = address

    @abstractmethod
    async def resolve(self, tag: str) -> str:
        """Return the ``sha256:`` digest ``tag`` points to.

        Raises:
            ArtifactNotFoundError: If the tag does not exist.
        """

    async def close(self) -> None:
        """Release network resources."""


class InMemoryRegistry(ContainerRegistry):
    """Registry backed by a dict, for local runs and tests.

    With ``derive_missing`` set, unknown tags resolve to a digest derived
    from the tag name instead of failing.
    """

    def __init__(
        self,
        address: str,
        tags: dict[str, str] | None = None,
        derive_missing: bool = False,
    ):
        super().__init__(address)
        self._tags: dict[str, str] = dict(tags or {})
        self._derive_missing = derive_missing

    def push(self, tag: str, digest: str) -> None:
        """Point ``tag`` at ``digest``, replacing any previous target."""
        self._tags[tag] = digest

    async def resolve(self, tag: str) -> str:
        digest = self._tags.get(tag)
        if digest is not None:
            return digest
        if self._derive_missing:
            return "sha256:" + hashlib.sha256(f"{self.address}:{tag}".encode()).hexdigest()
        raise ArtifactNotFoundError(f"{self.address}:{tag}")


class OciRegistry(ContainerRegistry):
    """OCI distribution API client (``HEAD /v2/<name>/manifests/<tag>``)."""

    def __init__(
        self,
        address: str,
        base_url: str,
        token: str = "",
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ):
        super().__init__(address)
        self.base_url = base_url.rstrip("/")
        self._token = token
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self.logger = get_logger("registry.oci")

    @property
    def repository(self) -> str:
        """Repository path without the registry host."""
        host, _, path = self.address.partition("/")
        return path if "." in host or ":" in host or host == "localhost" else self.address

    async def resolve(self, tag: str) -> str:
        url = f"{self.base_url}/v2/{self.repository}/manifests/{tag}"
        headers = {"Accept": MANIFEST_MEDIA_TYPES}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        try:
            response = await self._client.head(url, headers=headers)
        except httpx.HTTPError as e:
            raise PromoterError(
                f"Registry request failed: {e}", {"url": url}
            ) from e

        if response.status_code == 404:
            raise ArtifactNotFoundError(f"{self.address}:{tag}")
        if response.status_code >= 400:
            raise PromoterError(
                f"Registry returned HTTP {response.status_code}",
                {"url": url, "status_code": response.status_code},
            )

        digest = response.headers.get("Docker-Content-Digest")
        if not digest:
            raise PromoterError(
                "Registry response has no Docker-Content-Digest header", {"url": url}
            )

        self.logger.debug("registry.resolved", tag=tag, digest=digest)
        return digest

    async def close(self) -> None:
        await self._client.aclose()
