"""Integration tests for API endpoints."""

from uuid import UUID, uuid4

import pytest
from httpx import AsyncClient

from promoter.core.orchestrator import DeploymentOrchestrator


def artifact_payload(digest: str | None, tag: str = "v1.0.0") -> dict:
    payload = {
        "registry_address": "registry.local/hello-world",
        "tag": tag,
        "commit_sha": "0123456789abcdef",
    }
    if digest:
        payload["digest"] = digest
    return payload


def _uuid(data: dict) -> UUID:
    return UUID(data["deployment_id"])


class TestHealthEndpoint:
    """Tests for health check endpoint."""

    @pytest.mark.asyncio
    async def test_health_check(self, client: AsyncClient):
        """Test health check returns healthy status."""
        response = await client.get("/v1/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["in_flight"] == 0
        assert "version" in data
        assert "environment" in data
        assert "timestamp" in data

    @pytest.mark.asyncio
    async def test_request_id_is_echoed(self, client: AsyncClient):
        """Test the request id header is propagated to the response."""
        response = await client.get("/v1/health", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"
        assert "X-Response-Time" in response.headers


class TestEnvironmentsEndpoint:
    """Tests for environment listing."""

    @pytest.mark.asyncio
    async def test_list_environments(self, client: AsyncClient):
        """Test environments are listed in promotion order."""
        response = await client.get("/v1/environments")

        assert response.status_code == 200
        data = response.json()
        names = [e["name"] for e in data["environments"]]
        assert names == ["dev", "staging", "prod"]

        by_name = {e["name"]: e for e in data["environments"]}
        assert by_name["dev"]["next_stage"] == "staging"
        assert by_name["prod"]["next_stage"] is None
        assert by_name["prod"]["approval_required"] is True
        assert {"pattern": "main", "environment": "staging"} in data["triggers"]


class TestTriggersEndpoint:
    """Tests for build-completion triggers."""

    @pytest.mark.asyncio
    async def test_trigger_starts_deployment(
        self, client: AsyncClient, orchestrator: DeploymentOrchestrator
    ):
        """Test a mapped branch creates a pending deployment."""
        response = await client.post(
            "/v1/triggers",
            json={
                "commit_sha": "a1b2c3d4e5f6",
                "branch_or_tag": "main",
                "artifact_build_request_id": "build-7",
            },
        )

        assert response.status_code == 202
        data = response.json()
        assert data["environment"] == "staging"
        assert data["state"] == "pending"
        assert data["tag"] == "a1b2c3d4e5f6"
        assert data["digest"].startswith("sha256:")

        record = await orchestrator.wait(_uuid(data))
        assert record.state.value == "healthy"

    @pytest.mark.asyncio
    async def test_unmapped_trigger(self, client: AsyncClient):
        """Test an unmapped branch is rejected as a configuration error."""
        response = await client.post(
            "/v1/triggers",
            json={
                "commit_sha": "a1b2c3d4e5f6",
                "branch_or_tag": "experiments/x",
                "artifact_build_request_id": "build-8",
            },
        )

        assert response.status_code == 422
        error = response.json()["error"]
        assert error["code"] == "UNMAPPEDTRIGGERERROR"
        assert error["details"]["branch_or_tag"] == "experiments/x"


class TestDeploymentsEndpoints:
    """Tests for deployment management endpoints."""

    @pytest.mark.asyncio
    async def test_create_and_get_deployment(
        self,
        client: AsyncClient,
        orchestrator: DeploymentOrchestrator,
        digests,
    ):
        """Test submitting a deployment and reading it back."""
        response = await client.post(
            "/v1/deployments",
            json={"environment": "dev", "artifact": artifact_payload(digests["abc"])},
        )

        assert response.status_code == 202
        data = response.json()
        assert data["state"] == "pending"
        assert data["image"] == f"registry.local/hello-world@{digests['abc']}"

        await orchestrator.wait(_uuid(data))

        get_response = await client.get(f"/v1/deployments/{data['deployment_id']}")
        assert get_response.status_code == 200
        fetched = get_response.json()
        assert fetched["state"] == "healthy"
        assert [t["to_state"] for t in fetched["transitions"]] == [
            "pending",
            "provisioning",
            "verifying",
            "healthy",
        ]

    @pytest.mark.asyncio
    async def test_invalid_digest_is_rejected(self, client: AsyncClient):
        """Test request validation of the artifact digest."""
        response = await client.post(
            "/v1/deployments",
            json={"environment": "dev", "artifact": artifact_payload("sha256:nothex")},
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_get_nonexistent_deployment(self, client: AsyncClient):
        """Test getting a deployment that doesn't exist."""
        response = await client.get(f"/v1/deployments/{uuid4()}")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_list_deployments_with_filters(
        self,
        client: AsyncClient,
        orchestrator: DeploymentOrchestrator,
        make_artifact,
        digests,
    ):
        """Test filtering deployment history by environment and state."""
        await orchestrator.deploy("dev", make_artifact(digests["a"], tag="a"))
        await orchestrator.deploy("dev", make_artifact(digests["b"], tag="b"))
        await orchestrator.deploy("staging", make_artifact(digests["a"], tag="a"))

        response = await client.get(
            "/v1/deployments", params={"environment": "dev", "limit": 1}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert len(data["deployments"]) == 1
        assert data["deployments"][0]["digest"] == digests["b"]

        response = await client.get("/v1/deployments", params={"state": "healthy"})
        assert response.json()["total"] == 3

    @pytest.mark.asyncio
    async def test_abort_deployment(
        self,
        client: AsyncClient,
        digests,
    ):
        """Test aborting a deployment held for approval."""
        response = await client.post(
            "/v1/deployments",
            json={"environment": "prod", "artifact": artifact_payload(digests["abc"])},
        )
        deployment_id = response.json()["deployment_id"]

        delete_response = await client.delete(f"/v1/deployments/{deployment_id}")
        assert delete_response.status_code == 200
        data = delete_response.json()
        assert data["state"] == "failed"
        assert data["error"]["kind"] == "Cancelled"

        # Already terminal
        second = await client.delete(f"/v1/deployments/{deployment_id}")
        assert second.status_code == 409

    @pytest.mark.asyncio
    async def test_approve_prod_deployment(
        self,
        client: AsyncClient,
        orchestrator: DeploymentOrchestrator,
        digests,
    ):
        """Test approving a gated prod deployment."""
        response = await client.post(
            "/v1/deployments",
            json={"environment": "prod", "artifact": artifact_payload(digests["abc"])},
        )
        data = response.json()

        approve_response = await client.post(
            f"/v1/deployments/{data['deployment_id']}/approve",
            json={"approver": "release-manager", "comment": "looks good"},
        )
        assert approve_response.status_code == 200
        assert approve_response.json()["approval"]["approver"] == "release-manager"

        record = await orchestrator.wait(_uuid(data))
        assert record.state.value == "healthy"
        assert record.approval is not None
        assert record.approval.approver == "release-manager"

    @pytest.mark.asyncio
    async def test_approve_ungated_deployment(
        self,
        client: AsyncClient,
        orchestrator: DeploymentOrchestrator,
        digests,
    ):
        """Test approving a deployment that needs no approval."""
        response = await client.post(
            "/v1/deployments",
            json={"environment": "dev", "artifact": artifact_payload(digests["abc"])},
        )
        data = response.json()

        approve_response = await client.post(
            f"/v1/deployments/{data['deployment_id']}/approve",
            json={"approver": "someone"},
        )
        assert approve_response.status_code == 409
        assert approve_response.json()["error"]["code"] == "APPROVALNOTPENDINGERROR"

        await orchestrator.wait(_uuid(data))

    @pytest.mark.asyncio
    async def test_promote_deployment(
        self,
        client: AsyncClient,
        orchestrator: DeploymentOrchestrator,
        make_artifact,
        digests,
    ):
        """Test promoting a healthy dev deployment."""
        dev = await orchestrator.deploy("dev", make_artifact(digests["abc"]))

        wrong = await client.post(
            f"/v1/deployments/{dev.id}/promote", json={"target": "prod"}
        )
        assert wrong.status_code == 409

        response = await client.post(f"/v1/deployments/{dev.id}/promote", json={})
        assert response.status_code == 202
        data = response.json()
        assert data["environment"] == "staging"
        assert data["promoted_from"] == str(dev.id)
        assert data["digest"] == digests["abc"]

        await orchestrator.wait(_uuid(data))

    @pytest.mark.asyncio
    async def test_stream_finished_deployment(
        self,
        client: AsyncClient,
        orchestrator: DeploymentOrchestrator,
        make_artifact,
    ):
        """Test the event stream of a finished deployment closes after connecting."""
        record = await orchestrator.deploy("dev", make_artifact())

        response = await client.get(f"/v1/deployments/{record.id}/stream")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert "event: connected" in response.text
        assert '"state": "healthy"' in response.text
