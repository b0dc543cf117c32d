#!/usr/bin/env python3
"""
SMC (Share Mirror Controller) - State Model
Version: 1.0.0

Shared state objects for the routing reconciler:
- Presentation sending modes and per-run share snapshot
- Secondary output routing state (owned by the output actuator)
- Reconciler context replacing process-wide flags
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

class SendingMode(Enum):
    """Local presentation sending modes reported by the codec."""
    NONE = "Off"
    LOCAL_ONLY = "LocalOnly"
    LOCAL_REMOTE = "LocalRemote"

    @classmethod
    def parse(cls, value) -> "SendingMode":
        """Map a raw status value onto a mode, unknown values count as NONE."""
        text = str(value or '').strip()
        for mode in cls:
            if mode.value == text:
                return mode
        return cls.NONE

@dataclass
class PresentationShareState:
    """Snapshot of local presentation instances, read fresh on every run."""
    sending_mode: SendingMode = SendingMode.NONE
    active_source_ids: List[int] = field(default_factory=list)

@dataclass
class RoutingState:
    """What has actually been commanded on the secondary output."""
    engaged: bool = False
    current_source_id: Optional[int] = None

    def reset(self):
        self.engaged = False
        self.current_source_id = None

@dataclass
class ReconcilerContext:
    """Ambient state shared by the classifier, discovery and the engine."""
    meeting_active: bool = False
    allowed_sources: List[int] = field(default_factory=list)
    last_signature: str = ""
