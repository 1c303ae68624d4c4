"""Event emitter implementations for provisioning observability.

- EventEmitter: Abstract interface
- LoggingEventEmitter: Emits events as structured log entries
- CompositeEventEmitter: Emits to multiple sinks simultaneously
- NullEventEmitter: Discards events

Emitter failures are logged and never propagated into a run.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from src.provisioning.events.models import EventType, ProvisionEvent

logger = logging.getLogger(__name__)


class EventEmitter(ABC):
    """Abstract base class for provisioning event emitters."""

    @abstractmethod
    async def emit(self, event: ProvisionEvent) -> None:
        """Publish the event to the sink.

        Args:
            event: The event to emit.
        """


class LoggingEventEmitter(EventEmitter):
    """Event emitter that writes events as log records.

    Log levels per event type:
    - STEP_STARTED, STEP_COMPLETED, COMPLETION: INFO
    - CLEANUP_WARNING: WARNING
    - ERROR: ERROR
    """

    def __init__(self, logger_name: Optional[str] = None):
        self._logger = logging.getLogger(logger_name) if logger_name else logger
        self._log_level_map = {
            EventType.STEP_STARTED: logging.INFO,
            EventType.STEP_COMPLETED: logging.INFO,
            EventType.COMPLETION: logging.INFO,
            EventType.CLEANUP_WARNING: logging.WARNING,
            EventType.ERROR: logging.ERROR,
        }

    async def emit(self, event: ProvisionEvent) -> None:
        log_level = self._log_level_map.get(event.event_type, logging.INFO)
        self._logger.log(
            log_level,
            "Provision event: %s for %s",
            event.event_type.value,
            event.source_url,
            extra=event.to_log_dict(),
        )


class CompositeEventEmitter(EventEmitter):
    """Event emitter that delegates to multiple child emitters.

    Each child is called independently; a failing child does not stop
    the others.

    Attributes:
        emitters: Child emitters to delegate to.
    """

    def __init__(self, emitters: Optional[List[EventEmitter]] = None):
        self.emitters: List[EventEmitter] = list(emitters or [])

    def add_emitter(self, emitter: EventEmitter) -> None:
        self.emitters.append(emitter)

    async def emit(self, event: ProvisionEvent) -> None:
        for emitter in self.emitters:
            try:
                await emitter.emit(event)
            except Exception:
                logger.exception(
                    "Event emitter %s failed",
                    type(emitter).__name__,
                    extra={"event_type": event.event_type.value},
                )


class NullEventEmitter(EventEmitter):
    """Event emitter that discards all events."""

    async def emit(self, event: ProvisionEvent) -> None:
        pass
