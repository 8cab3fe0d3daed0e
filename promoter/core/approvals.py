"""Approval gate for deployments that need an explicit go-ahead."""

import asyncio
from uuid import UUID

from promoter.core.exceptions import ApprovalNotPendingError, ApprovalTimeoutError
from promoter.models.deployment import Approval


class ApprovalGate:
    """Holds gated deployments until an approval signal or a timeout."""

    def __init__(self):
        self._waiting: dict[UUID, asyncio.Event] = {}
        self._approvals: dict[UUID, Approval] = {}

    def open(self, deployment_id: UUID) -> None:
        """Start accepting approval for ``deployment_id``."""
        self._waiting.setdefault(deployment_id, asyncio.Event())

    def is_waiting(self, deployment_id: UUID) -> bool:
        return deployment_id in self._waiting

    def close(self, deployment_id: UUID) -> None:
        """Stop accepting approval and forget any approval already granted."""
        self._waiting.pop(deployment_id, None)
        self._approvals.pop(deployment_id, None)

    def grant(
        self, deployment_id: UUID, approver: str, comment: str | None = None
    ) -> Approval:
        """Record an approval.

        Raises:
            ApprovalNotPendingError: If the deployment is not gated right now.
        """
        event = self._waiting.get(deployment_id)
        if event is None:
            raise ApprovalNotPendingError(str(deployment_id))

        approval = self._approvals.get(deployment_id)
        if approval is None:
            approval = Approval(approver=approver, comment=comment)
            self._approvals[deployment_id] = approval
            event.set()
        return approval

    async def wait(self, deployment_id: UUID, timeout: float) -> Approval:
        """Block until approved.

        Raises:
            ApprovalTimeoutError: If no approval arrives within ``timeout``.
        """
        self.open(deployment_id)
        try:
            await asyncio.wait_for(self._waiting[deployment_id].wait(), timeout=timeout)
            return self._approvals[deployment_id]
        except asyncio.TimeoutError:
            raise ApprovalTimeoutError(str(deployment_id), timeout) from None
        finally:
            self.close(deployment_id)
