"""Shared scheduler state: process queues, the CPU pool and lookups."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from queue import Full, Queue
from typing import Any, List, Mapping, Optional, Tuple

import requests

from kernsim.cpu_client import Cpu
from kernsim.memory_client import MemoryClient
from kernsim.process import Process, State

_CHANNEL_CAPACITY = 100
_MAX_CPUS = 100


@dataclass
class CpuIdentification:
    """What a CPU sends when it first connects to the kernel."""

    ip: str = ""
    port: int = 0
    cpu_id: str = ""
    free: bool = False

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "CpuIdentification":
        """Build from the CPU's handshake JSON."""
        return cls(
            ip=str(data.get("ip", "")),
            port=int(data.get("puerto", 0)),
            cpu_id=str(data.get("id", "")),
            free=bool(data.get("estado", False)),
        )

    def to_dict(self) -> dict:
        return {"ip": self.ip, "puerto": self.port, "id": self.cpu_id, "estado": self.free}


@dataclass
class SjfConfig:
    """Parameters of the shortest-job-first burst estimator."""

    alpha: float = 0.0
    initial_estimate: int = 0


class _Tokens:
    """A counting semaphore whose current count can be read."""

    def __init__(self, capacity: int) -> None:
        self._capacity = capacity
        self._count = 0
        self._cond = threading.Condition()

    def put(self) -> None:
        with self._cond:
            while self._count >= self._capacity:
                self._cond.wait()
            self._count += 1
            self._cond.notify_all()

    def take(self, blocking: bool = True) -> bool:
        with self._cond:
            if not blocking and self._count == 0:
                return False
            while self._count == 0:
                self._cond.wait()
            self._count -= 1
            self._cond.notify_all()
            return True

    def __len__(self) -> int:
        with self._cond:
            return self._count


class SchedulerCore:
    """Process queues, their locks, the signalling channels and the CPU pool."""

    def __init__(
        self,
        memory: MemoryClient,
        long_term_algorithm: str,
        short_term_algorithm: str,
        sjf: SjfConfig,
        suspension_time: int,
        logger: Optional[logging.Logger] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.log = logger or logging.getLogger(__name__)
        self.memory = memory
        self.long_term_algorithm = long_term_algorithm
        self.short_term_algorithm = short_term_algorithm
        self.sjf = sjf
        self.suspension_time = suspension_time
        self.http = session or requests.Session()

        self.new_queue: List[Process] = []
        self.ready_queue: List[Process] = []
        self.blocked_queue: List[Process] = []
        self.susp_ready_queue: List[Process] = []
        self.susp_blocked_queue: List[Process] = []
        self.exec_queue: List[Process] = []
        self.exit_queue: List[Process] = []

        self.new_lock = threading.RLock()
        self.ready_lock = threading.RLock()
        self.blocked_lock = threading.RLock()
        self.susp_ready_lock = threading.RLock()
        self.susp_blocked_lock = threading.RLock()
        self.exec_lock = threading.RLock()
        self.cpus_lock = threading.RLock()
        self.srt_lock = threading.RLock()

        self.cpus: List[Cpu] = []
        self._cpu_tokens = _Tokens(_MAX_CPUS)

        self.enter_pressed = threading.Event()
        self.ready_signal: "Queue[None]" = Queue(maxsize=_CHANNEL_CAPACITY)
        self.new_processes: "Queue[Process]" = Queue(maxsize=_CHANNEL_CAPACITY)
        self.blocked_processes: "Queue[Process]" = Queue(maxsize=_CHANNEL_CAPACITY)
        self.susp_ready_processes: "Queue[Process]" = Queue(maxsize=_CHANNEL_CAPACITY)

    # -- lookups ---------------------------------------------------------

    @staticmethod
    def _first_with_pid(pid: int, processes: List[Process]) -> Optional[Process]:
        return next(
            (p for p in processes if p is not None and p.pcb is not None and p.pcb.pid == pid),
            None,
        )

    def find_anywhere(self, pid: int) -> Tuple[Optional[Process], Optional[State]]:
        """Find a process in any live queue; return it and its state."""
        search = (
            (self.exec_lock, self.exec_queue, State.EXEC),
            (self.ready_lock, self.ready_queue, State.READY),
            (self.new_lock, self.new_queue, State.NEW),
            (self.blocked_lock, self.blocked_queue, State.BLOCKED),
            (self.susp_blocked_lock, self.susp_blocked_queue, State.SUSP_BLOCKED),
            (self.susp_ready_lock, self.susp_ready_queue, State.SUSP_READY),
        )
        for lock, processes, state in search:
            with lock:
                found = self._first_with_pid(pid, processes)
            if found is not None:
                return found, state
        return None, None

    def find_in(self, pid: int, queue: str) -> Optional[Process]:
        """Find a process in a named queue.

        Unknown names search BLOCKED and then SUSP.BLOCKED.
        """
        named = {
            "exec": [(self.exec_lock, self.exec_queue)],
            "suspended_blocked": [(self.susp_blocked_lock, self.susp_blocked_queue)],
            "blocked": [(self.blocked_lock, self.blocked_queue)],
            "ready": [(self.ready_lock, self.ready_queue)],
            "suspended_ready": [(self.susp_ready_lock, self.susp_ready_queue)],
        }
        default = [
            (self.blocked_lock, self.blocked_queue),
            (self.susp_blocked_lock, self.susp_blocked_queue),
        ]
        for lock, processes in named.get(queue.lower(), default):
            with lock:
                found = self._first_with_pid(pid, processes)
            if found is not None:
                return found
        self.log.debug(
            "Proceso no encontrado en la cola especificada",
            extra={"attrs": {"PID": pid, "Cola": queue}},
        )
        return None

    def remove_from(self, pid: int, queue: List[Process]) -> bool:
        """Drop the process with ``pid`` (and finished entries) from a queue.

        The caller must hold the queue's lock. Returns whether anything
        was removed.
        """
        size_before = len(queue)
        kept = [p for p in queue if p is not None and p.pcb is not None and p.pcb.pid != pid]
        removed = len(kept) != size_before
        queue[:] = kept
        if removed:
            self.log.debug(
                "Proceso removido de cola de forma segura",
                extra={
                    "attrs": {
                        "pid": pid,
                        "queue_size_before": size_before,
                        "queue_size_after": len(kept),
                    }
                },
            )
        else:
            self.log.debug(
                "Proceso NO encontrado en la cola para remover",
                extra={"attrs": {"pid": pid, "queue_size": size_before}},
            )
        return removed

    def _notify_ready(self, blocking: bool = True) -> bool:
        """Signal the short-term scheduler; without blocking, skip if full."""
        try:
            self.ready_signal.put(None, block=blocking)
        except Full:
            return False
        return True

    # -- CPU pool --------------------------------------------------------

    def add_cpu(self, ident: CpuIdentification) -> Cpu:
        """Register a newly connected CPU and make it available."""
        cpu = Cpu(ident.ip, ident.port, ident.cpu_id, self.log, self.http)
        with self.cpus_lock:
            self.cpus.append(cpu)
        self._cpu_tokens.put()
        self.log.debug(
            "CPU conectada y agregada al pool",
            extra={
                "attrs": {
                    "cpu_id": ident.cpu_id,
                    "cpu_ip": ident.ip,
                    "cpu_puerto": ident.port,
                    "cpus_disponibles": self.available_cpus(),
                }
            },
        )
        return cpu

    def _reserve_free_cpu(self, note: str) -> Optional[Cpu]:
        with self.cpus_lock:
            for cpu in self.cpus:
                if cpu.free and cpu.process.pid == -1:
                    cpu.free = False
                    self.log.debug(note, extra={"attrs": {"cpu_id": cpu.cpu_id}})
                    return cpu
        return None

    def acquire_cpu(self) -> Optional[Cpu]:
        """Wait until a CPU is available and reserve it."""
        self._cpu_tokens.take()
        return self._reserve_free_cpu("CPU adquirida")

    def try_acquire_cpu(self) -> Optional[Cpu]:
        """Reserve a CPU if one is available right now; otherwise None."""
        if not self._cpu_tokens.take(blocking=False):
            return None
        return self._reserve_free_cpu("CPU adquirida (no bloqueante)")

    def release_cpu(self, cpu: Cpu) -> None:
        """Return a CPU to the pool."""
        with self.cpus_lock:
            cpu.free = True
            cpu.process.pid = -1
            self._cpu_tokens.put()

    def available_cpus(self) -> int:
        """Number of CPUs that can be acquired without waiting."""
        return len(self._cpu_tokens)