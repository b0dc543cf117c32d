#!/usr/bin/env python3
"""
SMC (Share Mirror Controller) - Platform Event Bus
Version: 1.0.0

Codec feedback is republished here as PlatformEvent values so the reconciler
can subscribe without knowing how the codec delivers them.
"""

import inspect
import logging
from enum import Enum
from typing import Dict, List, Any, Callable

class PlatformEvent(Enum):
    """Ambient events that may change the desired routing."""
    PRESENTATION_STARTED = "PresentationStarted"
    PRESENTATION_STOPPED = "PresentationStopped"
    PRESENTATION_MODE_CHANGED = "PresentationModeChanged"
    CALL_SUCCESSFUL = "CallSuccessful"
    CALL_DISCONNECT = "CallDisconnect"
    CONNECTOR_CHANGED = "ConnectorChanged"

# xAPI feedback paths backing each event
FEEDBACK_PATHS = {
    PlatformEvent.PRESENTATION_STARTED: ['Event', 'PresentationStarted'],
    PlatformEvent.PRESENTATION_STOPPED: ['Event', 'PresentationStopped'],
    PlatformEvent.PRESENTATION_MODE_CHANGED: ['Status', 'Conference', 'Presentation', 'Mode'],
    PlatformEvent.CALL_SUCCESSFUL: ['Event', 'CallSuccessful'],
    PlatformEvent.CALL_DISCONNECT: ['Event', 'CallDisconnect'],
    PlatformEvent.CONNECTOR_CHANGED: ['Status', 'Video', 'Input', 'Connector'],
}

class EventBus:
    """Minimal publish/subscribe dispatcher; handlers run in subscription order."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger
        self._handlers: Dict[PlatformEvent, List[Callable]] = {}

    def subscribe(self, event: PlatformEvent, handler: Callable):
        self._handlers.setdefault(event, []).append(handler)

    def has_subscribers(self, event: PlatformEvent) -> bool:
        return bool(self._handlers.get(event))

    async def publish(self, event: PlatformEvent, payload: Any = None):
        """Deliver an event to every handler; one failing handler does not stop the rest."""
        self.logger.debug(f"Event.{event.value} {payload if payload is not None else ''}")
        for handler in list(self._handlers.get(event, [])):
            try:
                if inspect.iscoroutinefunction(handler):
                    await handler(event, payload)
                else:
                    handler(event, payload)
            except Exception as e:
                self.logger.error(f"Handler for {event.value} failed: {e}")
