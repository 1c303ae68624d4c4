"""Provisioning event models for observability.

This module defines the data models for run events:
- EventType: Enum of all event types emitted during a run
- ProvisionEvent: Structured event with run metadata

Events are emitted at each step of a provisioning run so that logs and
metrics show which step a run reached and where it failed.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Types of events emitted by the Provisioner.

    Attributes:
        STEP_STARTED: A step (fetch, install) began.
        STEP_COMPLETED: A step finished successfully or was skipped.
        ERROR: A step failed and the run is aborting.
        COMPLETION: Every sub-tool was installed.
        CLEANUP_WARNING: The workspace could not be removed.
    """

    STEP_STARTED = "step_started"
    STEP_COMPLETED = "step_completed"
    ERROR = "error"
    COMPLETION = "completion"
    CLEANUP_WARNING = "cleanup_warning"


class ProvisionEvent(BaseModel):
    """Structured event emitted during a provisioning run.

    Attributes:
        event_type: The category of event.
        source_url: The toolset repository being provisioned.
        timestamp: When the event occurred (UTC timezone).
        details: Additional context specific to the event type.

    Details Field Conventions:
        For STEP_* events:
            - step: "fetch" or "install"
            - tool_path: Sub-tool path (install steps)
            - skipped: True when the fetch was skipped

        For ERROR events:
            - step: Step where the error occurred
            - error_type: Exception class name
            - error_message: Human-readable description

        For COMPLETION events:
            - installed: Installed sub-tool paths
            - duration_seconds: Total run time
    """

    event_type: EventType
    source_url: str = Field(..., min_length=1)
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
    details: Dict[str, Any] = Field(default_factory=dict)

    def to_log_dict(self) -> Dict[str, Any]:
        """Flatten the event into a dictionary for structured logging."""
        return {
            "event_type": self.event_type.value,
            "source_url": self.source_url,
            "timestamp": self.timestamp.isoformat(),
            **self.details,
        }
