"""Process states, process control blocks and their timing metrics."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional


class State(str, Enum):
    """Scheduling state of a process."""

    NEW = "NEW"
    READY = "READY"
    EXEC = "EXEC"
    BLOCKED = "BLOCKED"
    SUSP_READY = "SUSP.READY"
    SUSP_BLOCKED = "SUSP.BLOCKED"
    EXIT = "EXIT"

    def __str__(self) -> str:
        return self.value


@dataclass
class StateTime:
    """When a process last entered a state and how long it spent there."""

    started: Optional[float] = None
    accumulated: float = 0.0

    @property
    def millis(self) -> int:
        return int(self.accumulated * 1000)


_METRIC_ORDER = (
    ("NEW", State.NEW),
    ("READY", State.READY),
    ("EXEC", State.EXEC),
    ("BLOCKED", State.BLOCKED),
    ("SUSP. BLOCKED", State.SUSP_BLOCKED),
    ("SUSP. READY", State.SUSP_READY),
    ("EXIT", State.EXIT),
)


@dataclass
class PCB:
    """Process control block."""

    pid: int
    size: str
    file_name: str
    pc: int = 0
    counts: Dict[State, int] = field(default_factory=dict)
    times: Dict[State, StateTime] = field(default_factory=dict)
    last_burst: Optional[float] = None
    previous_estimate: float = 0.0

    def enter(self, state: State) -> None:
        """Record that the process entered ``state`` now."""
        self.times.setdefault(state, StateTime()).started = time.monotonic()
        self.counts[state] = self.counts.get(state, 0) + 1

    def leave(self, state: State) -> float:
        """Add the time since entering ``state`` to its total; return it."""
        entry = self.times.setdefault(state, StateTime())
        if entry.started is None:
            return 0.0
        elapsed = time.monotonic() - entry.started
        entry.accumulated += elapsed
        return elapsed

    def metrics_line(self) -> str:
        """The state metrics log line for this process."""
        parts = []
        for label, state in _METRIC_ORDER:
            entry = self.times.get(state)
            millis = entry.millis if entry is not None else 0
            parts.append(f"{label} {self.counts.get(state, 0)} {millis}")
        return f"## ({self.pid}) - Métricas de estado: " + ", ".join(parts)


@dataclass
class Process:
    """A schedulable process; ``pcb`` is dropped once it finishes."""

    pcb: Optional[PCB]

    @property
    def pid(self) -> int:
        if self.pcb is None:
            raise ValueError("el proceso ya fue finalizado")
        return self.pcb.pid


def create_process(pid: int, file_name: str, size: str, initial_estimate: int) -> Process:
    """Create a process in NEW with every state's metrics initialised."""
    pcb = PCB(
        pid=pid,
        size=size,
        file_name=file_name,
        previous_estimate=float(initial_estimate * 1000),
    )
    pcb.times[State.NEW] = StateTime(started=time.monotonic())
    pcb.counts[State.NEW] = 1
    for state in State:
        if state is not State.NEW:
            pcb.times[state] = StateTime()
    return Process(pcb)