"""Deployment record history."""

from datetime import datetime
from pathlib import Path
from uuid import UUID

from promoter.models.deployment import DeploymentRecord, DeploymentState
from promoter.models.environment import EnvironmentName
from promoter.utils.logging import get_logger


class DeploymentHistory:
    """Append-only log of deployment records, keyed by (environment, started_at).

    Records are never removed. When ``path`` is set, every append and update
    writes a JSON snapshot line to that file, and ``load()`` rebuilds the
    history from it (the last snapshot of each record wins).
    """

    def __init__(self, path: str | Path | None = None):
        self._records: dict[UUID, DeploymentRecord] = {}
        self._keys: dict[tuple[EnvironmentName, datetime], UUID] = {}
        self._path = Path(path) if path else None
        self.logger = get_logger("history")

    async def append(self, record: DeploymentRecord) -> DeploymentRecord:
        """Add a new record."""
        if record.id in self._records or record.key in self._keys:
            raise ValueError(
                f"Deployment {record.id} for {record.environment.value} "
                f"started at {record.started_at.isoformat()} is already recorded"
            )
        self._records[record.id] = record
        self._keys[record.key] = record.id
        self._write(record)
        return record

    async def update(self, record: DeploymentRecord) -> DeploymentRecord:
        """Persist the current state of an existing record."""
        if record.id not in self._records:
            raise KeyError(f"Deployment {record.id} was never appended")
        self._records[record.id] = record
        self._write(record)
        return record

    async def get(self, deployment_id: UUID) -> DeploymentRecord | None:
        """Get a record by ID."""
        return self._records.get(deployment_id)

    async def list_deployments(
        self,
        environment: EnvironmentName | None = None,
        state: DeploymentState | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[DeploymentRecord], int]:
        """List records, newest first, with optional filtering."""
        records = list(self._records.values())

        if environment:
            records = [r for r in records if r.environment == environment]
        if state:
            records = [r for r in records if r.state == state]

        records.sort(key=lambda r: r.started_at, reverse=True)

        total = len(records)
        return records[offset : offset + limit], total

    async def in_flight(self, environment: EnvironmentName) -> list[DeploymentRecord]:
        """Records for ``environment`` that have not reached a terminal state."""
        return [
            r
            for r in self._records.values()
            if r.environment == environment and not r.is_terminal
        ]

    async def last_healthy(
        self,
        environment: EnvironmentName,
        exclude: UUID | None = None,
    ) -> DeploymentRecord | None:
        """Most recent Healthy record for ``environment``."""
        healthy = [
            r
            for r in self._records.values()
            if r.environment == environment
            and r.state == DeploymentState.HEALTHY
            and r.id != exclude
        ]
        if not healthy:
            return None
        return max(healthy, key=lambda r: r.started_at)

    async def latest(self, environment: EnvironmentName) -> DeploymentRecord | None:
        """Most recently started record for ``environment``."""
        records = [r for r in self._records.values() if r.environment == environment]
        if not records:
            return None
        return max(records, key=lambda r: r.started_at)

    def load(self) -> int:
        """Replay the history file. Returns the number of records loaded."""
        if self._path is None or not self._path.exists():
            return 0

        with open(self._path, encoding="utf-8") as f:
            for line_number, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    record = DeploymentRecord.model_validate_json(line)
                except ValueError as e:
                    self.logger.warning(
                        "history.invalid_line",
                        path=str(self._path),
                        line=line_number,
                        error=str(e),
                    )
                    continue
                self._records[record.id] = record
                self._keys[record.key] = record.id

        self.logger.info(
            "history.loaded", path=str(self._path), records=len(self._records)
        )
        return len(self._records)

    def _write(self, record: DeploymentRecord) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._path, "a", encoding="utf-8") as f:
            f.write(record.model_dump_json() + "\n")
