"""Pytest configuration and fixtures."""

import pytest
from httpx import ASGITransport, AsyncClient

from promoter.alerts import AlertDispatcher, LoggingAlertSink
from promoter.config import Settings
from promoter.core import orchestrator as orchestrator_module
from promoter.core.approvals import ApprovalGate
from promoter.core.environments import EnvironmentRegistry
from promoter.core.history import DeploymentHistory
from promoter.core.orchestrator import DeploymentOrchestrator
from promoter.models.artifact import ArtifactReference
from promoter.provisioning import ReconcilingProvisioner, SimulatedProvider
from promoter.registry import InMemoryRegistry
from promoter.secret_store import InMemorySecretStore
from promoter.verification import HealthVerifier

REGISTRY_ADDRESS = "registry.local/hello-world"

DIGEST_ABC = "sha256:" + "abc".ljust(64, "0")
DIGEST_DEF = "sha256:" + "def".ljust(64, "0")
DIGEST_A = "sha256:" + "a" * 64
DIGEST_B = "sha256:" + "b" * 64
DIGEST_C = "sha256:" + "c" * 64


def _artifact(
    digest: str | None = DIGEST_ABC,
    tag: str = "v1.0.0",
    commit_sha: str = "0123456789abcdef",
) -> ArtifactReference:
    return ArtifactReference(
        registry_address=REGISTRY_ADDRESS,
        tag=tag,
        digest=digest,
        commit_sha=commit_sha,
    )


@pytest.fixture
def make_artifact():
    """Factory for artifact references in the test registry."""
    return _artifact


@pytest.fixture
def digests() -> dict[str, str]:
    """Well-formed digests keyed by a short name."""
    return {
        "abc": DIGEST_ABC,
        "def": DIGEST_DEF,
        "a": DIGEST_A,
        "b": DIGEST_B,
        "c": DIGEST_C,
    }


@pytest.fixture
def settings() -> Settings:
    """Settings with timeouts scaled down to fractions of a second."""
    return Settings(
        environments_file=None,
        registry_url=None,
        provision_timeout_seconds=2.0,
        provision_max_attempts=3,
        retry_backoff_multiplier_seconds=0.0,
        retry_backoff_max_seconds=0.0,
        verification_timeout_seconds=0.3,
        verification_poll_interval_seconds=0.01,
        verification_required_consecutive=2,
        verification_failure_threshold=3,
        approval_timeout_seconds=0.2,
        supersede_in_flight=True,
        alert_webhook_url=None,
        history_path=None,
    )


@pytest.fixture
def provider() -> SimulatedProvider:
    """Create a fresh simulated infrastructure provider."""
    return SimulatedProvider()


@pytest.fixture
def registry() -> InMemoryRegistry:
    """Create a registry that derives digests for unknown tags."""
    return InMemoryRegistry(REGISTRY_ADDRESS, derive_missing=True)


@pytest.fixture
def secret_store() -> InMemorySecretStore:
    return InMemorySecretStore()


@pytest.fixture
def environments() -> EnvironmentRegistry:
    return EnvironmentRegistry.default()


@pytest.fixture
def history() -> DeploymentHistory:
    return DeploymentHistory()


@pytest.fixture
def alerts() -> AlertDispatcher:
    return AlertDispatcher([LoggingAlertSink()])


@pytest.fixture
def make_orchestrator(
    settings: Settings,
    provider: SimulatedProvider,
    registry: InMemoryRegistry,
    secret_store: InMemorySecretStore,
    environments: EnvironmentRegistry,
    history: DeploymentHistory,
    alerts: AlertDispatcher,
):
    """Factory for orchestrators sharing the test doubles, with overrides."""

    def factory(**overrides) -> DeploymentOrchestrator:
        test_settings = settings.model_copy(update=overrides.pop("settings", {}))
        return DeploymentOrchestrator(
            environments=overrides.pop("environments", environments),
            provisioner=ReconcilingProvisioner(provider, secret_store),
            verifier=HealthVerifier(
                provider,
                required_consecutive=test_settings.verification_required_consecutive,
                failure_threshold=test_settings.verification_failure_threshold,
            ),
            registry=overrides.pop("registry", registry),
            history=history,
            alerts=overrides.pop("alerts", alerts),
            approvals=ApprovalGate(),
            settings=test_settings,
        )

    return factory


@pytest.fixture
async def orchestrator(make_orchestrator):
    """Create an orchestrator with test dependencies."""
    orchestrator = make_orchestrator()
    yield orchestrator
    await orchestrator.shutdown()


@pytest.fixture
async def client(orchestrator: DeploymentOrchestrator) -> AsyncClient:
    """Create an async test client backed by the test orchestrator."""
    from promoter.main import app

    orchestrator_module._orchestrator = orchestrator

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    # Cleanup after test
    orchestrator_module.reset_orchestrator()
