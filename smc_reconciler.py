#!/usr/bin/env python3
"""
SMC (Share Mirror Controller) - Routing Reconciler
Version: 1.0.0

Debounced, single-flight control loop for the secondary output:
- Bursts of codec events collapse into one scheduled reconciliation
- At most one reconciliation body runs at a time; firings that land while
  one is in flight are dropped and logged, not queued
- Each run recomputes the desired routing (meeting type, remote sharing,
  wired source selection) and only commands the actuator on a difference
"""

import time
import asyncio
import logging
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Dict, Optional, Any, Callable, Awaitable

from smc_events import EventBus, PlatformEvent
from smc_selection import pick
from smc_state import ReconcilerContext

DEFAULT_DEBOUNCE_SECONDS = 0.08

class GatePhase(Enum):
    """Debounce gate phases."""
    IDLE = "idle"
    SCHEDULED = "scheduled"
    RUNNING = "running"

class TriggerAction(Enum):
    """Work done immediately on an event, before the debounced run."""
    NONE = "none"
    REFRESH_MEETING = "refresh_meeting"
    CLEAR_MEETING = "clear_meeting"
    REFRESH_SOURCES = "refresh_sources"

# Every event schedules a reconciliation; some refresh ambient state first
EVENT_TRIGGERS = {
    PlatformEvent.PRESENTATION_STARTED: TriggerAction.REFRESH_MEETING,
    PlatformEvent.PRESENTATION_STOPPED: TriggerAction.NONE,
    PlatformEvent.PRESENTATION_MODE_CHANGED: TriggerAction.NONE,
    PlatformEvent.CALL_SUCCESSFUL: TriggerAction.REFRESH_MEETING,
    PlatformEvent.CALL_DISCONNECT: TriggerAction.CLEAR_MEETING,
    PlatformEvent.CONNECTOR_CHANGED: TriggerAction.REFRESH_SOURCES,
}

@dataclass
class ReconcileMetrics:
    """Counters for reconciliation runs."""
    runs: int = 0
    skipped: int = 0
    assigns: int = 0
    releases: int = 0
    last_run_at: float = 0
    last_run_duration: float = 0

class DebounceGate:
    """Cancellable delayed call with a single-flight guard."""

    def __init__(self, callback: Callable[[], Awaitable[Any]], delay: float, logger: logging.Logger):
        self.callback = callback
        self.delay = delay
        self.logger = logger
        self.skipped = 0
        self.last_reason: Optional[str] = None

        self._handle: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task] = None
        self._running = False

    @property
    def phase(self) -> GatePhase:
        if self._running:
            return GatePhase.RUNNING
        if self._handle is not None:
            return GatePhase.SCHEDULED
        return GatePhase.IDLE

    def trigger(self, reason: str):
        """(Re)arm the timer, replacing any pending one."""
        self.logger.debug(f"Schedule reconcile: {reason}")
        if self._handle is not None:
            self._handle.cancel()
        self.last_reason = reason
        self._handle = asyncio.get_running_loop().call_later(self.delay, self._fire)

    def _fire(self):
        self._handle = None
        if self._running:
            self.skipped += 1
            self.logger.debug(f"Skip: reconcile in flight (reason: {self.last_reason})")
            return
        self._running = True
        self._task = asyncio.ensure_future(self._run())

    async def _run(self):
        try:
            await self.callback()
        except Exception as e:
            self.logger.error(f"Reconcile error: {e}")
        finally:
            self._running = False

    async def wait_idle(self):
        """Wait for the in-flight run, if any, to finish."""
        if self._task is not None and not self._task.done():
            await asyncio.shield(self._task)

    def cancel(self):
        """Drop a pending timer; an in-flight run is left to complete."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

class ReconciliationEngine:
    """Diffs desired secondary-output routing against what was applied."""

    def __init__(self, config: Dict[str, Any], context: ReconcilerContext, classifier, discovery,
                 inspector, actuator, logger: logging.Logger):
        self.context = context
        self.classifier = classifier
        self.discovery = discovery
        self.inspector = inspector
        self.actuator = actuator
        self.logger = logger

        routing = config.get('routing', {})
        self.watch_connectors = config.get('discovery', {}).get('watch_connectors', False)
        self.gate = DebounceGate(self.reconcile, float(routing.get('debounce_seconds', DEFAULT_DEBOUNCE_SECONDS)), logger)
        self.metrics = ReconcileMetrics()

    def attach(self, bus: EventBus):
        """Subscribe to every event that should trigger a reconciliation."""
        for event in EVENT_TRIGGERS:
            if event == PlatformEvent.CONNECTOR_CHANGED and not self.watch_connectors:
                continue
            bus.subscribe(event, self.handle_event)

    async def handle_event(self, event: PlatformEvent, payload: Any = None):
        action = EVENT_TRIGGERS.get(event, TriggerAction.NONE)

        if action == TriggerAction.REFRESH_MEETING:
            await self.classifier.refresh()
        elif action == TriggerAction.CLEAR_MEETING:
            self.classifier.clear()
        elif action == TriggerAction.REFRESH_SOURCES:
            await self.discovery.refresh_allowed_sources()

        self.schedule(event.value)

    def schedule(self, reason: str):
        self.gate.trigger(reason)

    async def initialize(self):
        """Learn wired sources, classify the current call, and start from native routing."""
        self.logger.info("Reconciler init: discovering wired sources")
        await self.discovery.refresh_allowed_sources()
        await self.classifier.refresh()
        await self.actuator.release(force=True)

    def _signature(self, remote: bool) -> str:
        routing = self.actuator.state
        source = routing.current_source_id if routing.current_source_id is not None else 'null'
        return f"{int(self.context.meeting_active)}-{int(remote)}-{int(routing.engaged)}-{source}"

    async def reconcile(self):
        """One pass of the control loop. Call through the gate, not directly, while events flow."""
        started = time.time()
        self.metrics.runs += 1

        try:
            remote = await self.inspector.is_sharing_to_remote()

            signature = self._signature(remote)
            if signature != self.context.last_signature:
                self.logger.info(
                    f"Reconcile -> meeting: {self.context.meeting_active} remoteShare: {remote} "
                    f"engaged: {self.actuator.state.engaged} source: {self.actuator.state.current_source_id}"
                )
                self.context.last_signature = signature

            if not (self.context.meeting_active and remote):
                await self._release()
                return

            if not self.context.allowed_sources:
                await self.discovery.refresh_allowed_sources()

            active_ids = await self.inspector.get_active_source_ids()
            chosen = pick(active_ids, self.context.allowed_sources, self.actuator.state.current_source_id)

            if chosen is None:
                self.logger.debug(f"No wired source among active ids {active_ids}")
                await self._release()
                return

            routing = self.actuator.state
            if not routing.engaged or routing.current_source_id != chosen:
                if await self.actuator.assign(chosen):
                    self.metrics.assigns += 1

        finally:
            self.metrics.last_run_at = started
            self.metrics.last_run_duration = time.time() - started

    async def _release(self):
        was_engaged = self.actuator.state.engaged
        if await self.actuator.release() and was_engaged:
            self.metrics.releases += 1

    def get_status(self) -> Dict[str, Any]:
        """Snapshot of reconciler state for health logging."""
        self.metrics.skipped = self.gate.skipped
        return {
            'meeting_active': self.context.meeting_active,
            'allowed_sources': list(self.context.allowed_sources),
            'routing': asdict(self.actuator.state),
            'phase': self.gate.phase.value,
            'metrics': asdict(self.metrics)
        }
