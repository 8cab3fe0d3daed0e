"""Artifact and trigger data models."""

from pydantic import BaseModel, ConfigDict, Field

DIGEST_PATTERN = r"^sha256:[a-f0-9]{64}$"


class ArtifactReference(BaseModel):
    """Immutable identifier of a built container image.

    The digest is the authoritative identity. The tag is a mutable pointer
    kept for display; it is resolved to a digest before anything is deployed.
    """

    model_config = ConfigDict(frozen=True)

    registry_address: str = Field(..., min_length=1)
    tag: str = Field(..., min_length=1, max_length=128)
    digest: str | None = Field(default=None, pattern=DIGEST_PATTERN)
    commit_sha: str = Field(..., min_length=7, max_length=64)

    @property
    def is_resolved(self) -> bool:
        return self.digest is not None

    @property
    def image(self) -> str:
        """Pinned image reference, e.g. ``registry/app@sha256:...``."""
        if self.digest is None:
            raise ValueError(f"Artifact {self.display_name} has no resolved digest")
        return f"{self.registry_address}@{self.digest}"

    @property
    def display_name(self) -> str:
        return f"{self.registry_address}:{self.tag}"

    def with_digest(self, digest: str) -> "ArtifactReference":
        """Return a copy pinned to ``digest``."""
        return ArtifactReference(
            registry_address=self.registry_address,
            tag=self.tag,
            digest=digest,
            commit_sha=self.commit_sha,
        )


class TriggerEvent(BaseModel):
    """A completed build delivered by the event source."""

    model_config = ConfigDict(frozen=True)

    commit_sha: str = Field(..., min_length=7, max_length=64)
    branch_or_tag: str = Field(..., min_length=1)
    artifact_build_request_id: str = Field(..., min_length=1)
    tag: str | None = None

    @property
    def image_tag(self) -> str:
        """Tag to resolve in the registry; defaults to the commit sha."""
        return self.tag or self.commit_sha
