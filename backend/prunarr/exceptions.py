"""Exceptions raised by the retention engine."""

from typing import Any


class PrunarrError(Exception):
    """Base exception. Keeps ``message`` as an attribute for API error bodies."""

    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class SyncInProgressError(PrunarrError):
    """A sync cycle is already running; concurrent triggers are rejected."""

    def __init__(self, running_job_id: str | None = None) -> None:
        super().__init__("sync already in progress")
        self.running_job_id = running_job_id


class MediaNotFoundError(PrunarrError):
    def __init__(self, item_id: str) -> None:
        super().__init__(f"media item {item_id} not found")
        self.item_id = item_id


class JobFinalizedError(PrunarrError):
    """Raised when a completed or failed job is modified."""

    def __init__(self, job_id: str, status: str) -> None:
        super().__init__(f"job {job_id} already {status}")
        self.job_id = job_id
        self.status = status


class IntegrationError(PrunarrError):
    """An external service fetch failed.

    ``required`` integrations (the media managers) abort the cycle;
    the rest degrade.
    """

    def __init__(self, integration: str, detail: str, required: bool = False) -> None:
        super().__init__(f"{integration}: {detail}")
        self.integration = integration
        self.detail = detail
        self.required = required


class ReconciliationError(PrunarrError):
    """Symlink bridge or library visibility operation failed."""


class DeletionError(PrunarrError):
    def __init__(self, item_id: str, detail: str) -> None:
        super().__init__(f"{item_id}: {detail}")
        self.item_id = item_id
        self.detail = detail
