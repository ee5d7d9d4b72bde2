"""Long-term scheduling: admission from NEW and finishing of processes."""

from __future__ import annotations

import sys
import threading
import time
from typing import List, Optional, Tuple

from kernsim.core import SchedulerCore
from kernsim.memory_client import MemoryRequestError
from kernsim.process import Process, State

STATE_STOP = "STOP"
STATE_START = "START"

_HTTP_OK = 200


def _size_of(process: Process) -> int:
    """The process size as an integer; unparsable sizes count as 0."""
    try:
        return int(process.pcb.size)
    except (TypeError, ValueError):
        return 0


class LongTermScheduler(SchedulerCore):
    """Admits processes to READY when memory has room and finishes them."""

    # -- main loop -------------------------------------------------------

    def _wait_for_enter(self) -> None:
        try:
            sys.stdin.readline()
        except (OSError, ValueError, AttributeError):
            pass
        self.enter_pressed.set()

    def run_long_term(self) -> None:
        """Wait for Enter on the console, then admit new processes forever."""
        threading.Thread(target=self._wait_for_enter, daemon=True).start()
        self.enter_pressed.wait()
        while True:
            process = self.new_processes.get()
            self._admit(process)
            self.check_memory()

    def _admit(self, process: Process) -> None:
        admit = {"FIFO": self.admit_fifo, "PMCP": self.admit_pmcp}.get(
            self.long_term_algorithm
        )
        if admit is None:
            self.log.warning("Algoritmo de largo plazo no reconocido")
            return
        admit(process)

    # -- admission policies ---------------------------------------------

    def admit_fifo(self, process: Process) -> None:
        """Queue a new process at the end of NEW."""
        with self.new_lock:
            self.new_queue.append(process)

    def admit_pmcp(self, process: Process) -> None:
        """Queue a new process before the first queued one that is larger.

        When no queued process is larger, it goes to the front of NEW.
        """
        incoming = _size_of(process)
        with self.new_lock:
            position = next(
                (i for i, queued in enumerate(self.new_queue) if incoming < _size_of(queued)),
                0,
            )
            self.new_queue.insert(position, process)

    # -- moving processes into memory -----------------------------------

    def _to_ready(self, process: Process, previous: State) -> None:
        with self.ready_lock:
            self.ready_queue.append(process)
            process.pcb.enter(State.READY)
        self.log.info(
            f"## ({process.pcb.pid}) Pasa del estado {previous} al estado READY"
        )

    def check_memory(self) -> None:
        """Bring SUSP.READY processes, then NEW ones, into memory while it has room."""
        with self.susp_ready_lock:
            while self.susp_ready_queue:
                process = self.susp_ready_queue[0]
                pid = process.pcb.pid
                if not self.memory.has_space(process.pcb.size, pid):
                    break
                self.remove_from(pid, self.susp_ready_queue)
                process.pcb.leave(State.SUSP_READY)
                self._to_ready(process, State.SUSP_READY)
                self.log.debug(
                    "Enviando señal al canal de corto plazo (SUSP.READY -> READY)",
                    extra={"attrs": {"pid": pid}},
                )
                self._notify_ready()

            if self.susp_ready_queue:
                return

            with self.new_lock:
                while self.new_queue:
                    process = self.new_queue[0]
                    pid = process.pcb.pid
                    if not self.memory.has_space(process.pcb.size, pid):
                        self.log.debug(
                            "No hay espacio en memoria para el proceso",
                            extra={"attrs": {"pid": pid}},
                        )
                        break
                    self.remove_from(pid, self.new_queue)
                    process.pcb.leave(State.NEW)
                    self.memory.load_system_memory(process.pcb.file_name, pid)
                    self._to_ready(process, State.NEW)
                    self.log.debug(
                        "Enviando señal al canal de corto plazo",
                        extra={"attrs": {"pid": pid}},
                    )
                    self._notify_ready()

    # -- finishing -------------------------------------------------------

    def _memory_finished(self, pid: int) -> Tuple[bool, Optional[str]]:
        try:
            status = self.memory.finish_process(pid)
        except MemoryRequestError as exc:
            return False, str(exc)
        if status != _HTTP_OK:
            return False, f"status {status}"
        return True, None

    def finish_process(self, pid: int) -> bool:
        """Finish a process that is in EXEC; True if it was finished."""
        with self.exec_lock:
            process = self._first_with_pid(pid, self.exec_queue)
        if process is None:
            self.log.debug(
                "No se encontró el proceso en la cola de exec", extra={"attrs": {"PID": pid}}
            )
            return False

        ok, error = self._memory_finished(pid)
        if not ok:
            self.log.error(
                "Error al finalizar proceso en memoria",
                extra={"attrs": {"PID": pid, "error": error}},
            )
            return False

        with self.exec_lock:
            if process in self.exec_queue:
                self.exec_queue.remove(process)

        pcb = process.pcb
        exit_time = pcb.times[State.EXIT] if State.EXIT in pcb.times else None
        if exit_time is None:
            pcb.enter(State.EXIT)
            pcb.counts[State.EXIT] -= 1
            exit_time = pcb.times[State.EXIT]
        exit_time.started = time.monotonic()
        exit_time.accumulated = time.monotonic() - exit_time.started
        pcb.counts[State.EXEC] = pcb.counts.get(State.EXEC, 0) + 1
        pcb.counts[State.EXIT] = pcb.counts.get(State.EXIT, 0) + 1

        self.log.info(f"## ({pid}) Pasa del estado EXEC al estado EXIT")
        self.log.info(f"## ({pid}) Finaliza el proceso")
        self.log.info(pcb.metrics_line())

        self.check_memory()
        return True

    def _queue_for(self, state: State) -> Optional[Tuple[threading.RLock, List[Process]]]:
        return {
            State.EXEC: (self.exec_lock, self.exec_queue),
            State.READY: (self.ready_lock, self.ready_queue),
            State.BLOCKED: (self.blocked_lock, self.blocked_queue),
            State.SUSP_BLOCKED: (self.susp_blocked_lock, self.susp_blocked_queue),
            State.SUSP_READY: (self.susp_ready_lock, self.susp_ready_queue),
            State.NEW: (self.new_lock, self.new_queue),
        }.get(state)

    def finish_anywhere(self, pid: int) -> bool:
        """Finish a process whatever queue it is in; True if it was finished."""
        process, state = self.find_anywhere(pid)
        again, again_state = self.find_anywhere(pid)
        if again is not None and again.pcb is not None and again.pcb.pid == pid:
            process, state = again, again_state

        if process is None or state is None:
            self.log.debug(
                "No se encontró el proceso en ninguna cola", extra={"attrs": {"PID": pid}}
            )
            return False

        process.pcb.leave(state)
        target = self._queue_for(state)
        if target is None:
            self.log.error(
                "🚨 Estado no reconocido al finalizar proceso",
                extra={"attrs": {"pid": pid, "estado": str(state)}},
            )
        else:
            lock, processes = target
            with lock:
                self.remove_from(pid, processes)

        ok, error = self._memory_finished(pid)
        if not ok:
            self.log.debug(
                "Error al finalizar proceso en memoria",
                extra={"attrs": {"PID": pid, "error": error}},
            )
            return False

        pcb = process.pcb
        pcb.enter(State.EXIT)
        self.log.info(f"## ({pid}) Pasa del estado {state} al estado EXIT")
        self.log.info(f"## ({pid}) Finaliza el proceso")
        pcb.leave(State.EXIT)
        self.log.info(pcb.metrics_line())

        process.pcb = None
        self.check_memory()
        return True