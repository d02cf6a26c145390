"""Shared session state definitions for the rollingball pipeline."""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Dict, Optional


class SessionState(str, enum.Enum):
    """
    Session states:

    1. SCANNING    - Camera frames are re-detected every tick, preview shows shapes
    2. SIMULATING  - Detection frozen, bodies spawned from the last shapes, physics running
    """
    SCANNING = "scanning"
    SIMULATING = "simulating"

    @property
    def toggle_label(self) -> str:
        """Caption of the single start/stop control for this state."""
        return "Start Simulation" if self is SessionState.SCANNING else "Stop Simulation"


@dataclass
class SessionEvent:
    """Event payload distributed to UI clients over the local WebSocket."""

    type: str
    data: Dict[str, Any]
    state: SessionState
    error: Optional[str] = None


__all__ = ["SessionState", "SessionEvent"]
