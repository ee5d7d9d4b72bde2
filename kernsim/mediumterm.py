"""Medium-term scheduling: IO blocking, suspension, swapping and memory dumps."""

from __future__ import annotations

import threading
import time
from typing import List, Optional

import requests

from kernsim.longterm import LongTermScheduler
from kernsim.memory_client import MemoryRequestError
from kernsim.process import Process, State

_TIMEOUT = 120.0


def is_in_queue(process: Optional[Process], queue: List[Process]) -> bool:
    """Whether a process with the same PID is in ``queue``."""
    if process is None or process.pcb is None:
        return False
    pid = process.pcb.pid
    return any(p is not None and p.pcb is not None and p.pcb.pid == pid for p in queue)


class MediumTermScheduler(LongTermScheduler):
    """Moves processes between EXEC, BLOCKED, the suspended states and READY."""

    # -- suspension ------------------------------------------------------

    def suspend_blocked_loop(self) -> None:
        """Watch processes entering BLOCKED and suspend those still blocked later."""
        while True:
            process = self.blocked_processes.get()
            threading.Thread(
                target=self._suspend_after_timeout, args=(process,), daemon=True
            ).start()

    def _suspend_after_timeout(self, process: Process) -> None:
        time.sleep(self.suspension_time / 1000)
        pcb = process.pcb if process is not None else None
        if pcb is None:
            return
        pid = pcb.pid
        if self.find_in(pid, "suspended_blocked") is not None:
            return
        if self.find_in(pid, "blocked") is None:
            return

        with self.blocked_lock:
            self.remove_from(pid, self.blocked_queue)
        with self.susp_blocked_lock:
            self.susp_blocked_queue.append(process)

        pcb.leave(State.BLOCKED)
        pcb.enter(State.SUSP_BLOCKED)
        self.log.info(f"## ({pid}) Pasa del estado BLOCKED al estado SUSP.BLOCKED")

        threading.Thread(target=self.swap_out, args=(process,), daemon=True).start()
        self.check_memory()

    def handle_io_end(self, process: Optional[Process]) -> None:
        """A process finished its IO: SUSP.BLOCKED goes to SUSP.READY, BLOCKED to READY."""
        if process is None or process.pcb is None:
            self.log.error("ManejarFinIO: proceso es nil")
            return
        pid = process.pcb.pid

        if self.find_in(pid, "suspended_blocked") is not None:
            with self.susp_blocked_lock:
                if not self.remove_from(pid, self.susp_blocked_queue):
                    self.log.debug(
                        "🚨 Proceso no encontrado en SuspBlockQueue durante ManejarFinIO",
                        extra={"attrs": {"pid": pid}},
                    )
            with self.susp_ready_lock:
                self.susp_ready_queue.append(process)

            process.pcb.leave(State.SUSP_BLOCKED)
            process.pcb.enter(State.SUSP_READY)
            self.log.info(f"## ({pid}) Pasa del estado SUSP.BLOCKED al estado SUSP.READY")
            self.check_memory()
            return

        with self.blocked_lock:
            if not self.remove_from(pid, self.blocked_queue):
                self.log.debug(
                    "🚨 Proceso no encontrado en BlockQueue durante ManejarFinIO",
                    extra={"attrs": {"pid": pid}},
                )
            process.pcb.leave(State.BLOCKED)

        with self.ready_lock:
            self.ready_queue.append(process)
            process.pcb.enter(State.READY)
        self.log.info(f"## ({pid}) Pasa del estado BLOCKED al estado READY")
        self._notify_ready()

    def swap_out(self, process: Process) -> bool:
        """Ask memory to swap a process out; True if memory accepted."""
        pid = process.pcb.pid
        try:
            self.memory.swap_process(pid)
        except MemoryRequestError as exc:
            self.log.error(
                "Error al notificar a memoria para swappear proceso",
                extra={"attrs": {"pid": pid, "error": str(exc)}},
            )
            return False
        return True

    # -- IO --------------------------------------------------------------

    def send_usleep(self, port: int, ip: str, pid: int, sleep_ms: int) -> Optional[int]:
        """Send a sleep request to an IO device; return its HTTP status or None."""
        body = {"pid": pid, "tiempo_sleep": sleep_ms}
        try:
            resp = self.http.post(
                f"http://{ip}:{port}/kernel/usleep", json=body, timeout=_TIMEOUT
            )
        except requests.RequestException as exc:
            self.log.debug(
                "Error al enviar el usleep al IO",
                extra={"attrs": {"pid": pid, "error": str(exc)}},
            )
            return None
        with resp:
            self.log.debug(
                "Respuesta del IO al usleep",
                extra={"attrs": {"status_code": resp.status_code, "response_body": resp.text}},
            )
            return resp.status_code

    def _take_from_exec(self, pid: int) -> Process:
        with self.exec_lock:
            process = self._first_with_pid(pid, self.exec_queue)
            if process is not None:
                self.remove_from(pid, self.exec_queue)
        if process is None:
            raise LookupError(f"proceso con PID {pid} no encontrado en EXEC")
        process.pcb.leave(State.EXEC)
        return process

    def _take_from_blocked(self, pid: int, note: str) -> Process:
        with self.blocked_lock:
            process = self._first_with_pid(pid, self.blocked_queue)
            if process is not None and not self.remove_from(pid, self.blocked_queue):
                self.log.error(note, extra={"attrs": {"pid": pid}})
        if process is None:
            raise LookupError(f"proceso con PID {pid} no encontrado en BLOCKED")
        process.pcb.leave(State.BLOCKED)
        return process

    def block_for_io(self, pid: int) -> Process:
        """Move a process from EXEC to BLOCKED for an IO request.

        Raises LookupError if the process is not in EXEC.
        """
        process = self._take_from_exec(pid)
        with self.blocked_lock:
            self.blocked_queue.append(process)
            self.log.info(f"## ({pid}) Pasa del estado EXEC al estado BLOCKED")
            process.pcb.enter(State.BLOCKED)
        self.blocked_processes.put(process)
        return process

    # -- memory dump -----------------------------------------------------

    def dump_memory(self, pid: int) -> threading.Thread:
        """Handle DUMP_MEMORY in the background; return the worker thread.

        The process is blocked while memory dumps it; afterwards it goes to
        READY, or to EXIT if the dump failed.
        """
        worker = threading.Thread(target=self._dump_worker, args=(pid,), daemon=True)
        worker.start()
        return worker

    def _dump_worker(self, pid: int) -> None:
        try:
            self.move_exec_to_blocked(pid)
        except LookupError as exc:
            self.log.error(
                "Error al mover proceso de EXEC a BLOCKED",
                extra={"attrs": {"pid": pid, "error": str(exc)}},
            )

        try:
            self.memory.dump_process(pid)
        except MemoryRequestError as exc:
            self.log.error(
                "Error en DUMP_MEMORY - enviando proceso a EXIT",
                extra={"attrs": {"pid": pid, "error": str(exc)}},
            )
            try:
                self.move_blocked_to_exit(pid)
            except LookupError as move_exc:
                self.log.error(
                    "Error al mover proceso de BLOCKED a EXIT",
                    extra={"attrs": {"pid": pid, "error": str(move_exc)}},
                )
            else:
                threading.Thread(
                    target=self.finish_anywhere, args=(pid,), daemon=True
                ).start()
            return

        self.log.debug(
            "DUMP_MEMORY exitoso - desbloqueando proceso", extra={"attrs": {"pid": pid}}
        )
        try:
            self.move_blocked_to_ready(pid)
        except LookupError as exc:
            self.log.error(
                "Error al mover proceso de BLOCKED a READY",
                extra={"attrs": {"pid": pid, "error": str(exc)}},
            )

    def move_exec_to_blocked(self, pid: int) -> Process:
        """Move a process from EXEC to BLOCKED; LookupError if not in EXEC."""
        process = self._take_from_exec(pid)
        with self.blocked_lock:
            self.blocked_queue.append(process)
        process.pcb.enter(State.BLOCKED)
        self.log.info(f"## ({pid}) Pasa del estado EXEC al estado BLOCKED")
        self.blocked_processes.put(process)
        return process

    def move_blocked_to_ready(self, pid: int) -> Process:
        """Move a process from BLOCKED to READY; LookupError if not in BLOCKED."""
        process = self._take_from_blocked(
            pid, "🚨 Proceso no encontrado en BlockQueue durante moverProcesoBlockedAReady"
        )
        with self.ready_lock:
            self.ready_queue.append(process)
            process.pcb.enter(State.READY)
        self.log.info(f"## ({pid}) Pasa del estado BLOCKED al estado READY")
        self._notify_ready()
        return process

    def move_blocked_to_exit(self, pid: int) -> Process:
        """Move a process from BLOCKED to EXIT; LookupError if not in BLOCKED."""
        process = self._take_from_blocked(
            pid, "🚨 Proceso no encontrado en BlockQueue durante moverProcesoBlockedAExit"
        )
        self.exit_queue.append(process)
        process.pcb.enter(State.EXIT)
        self.log.info(f"## ({pid}) Pasa del estado BLOCKED al estado EXIT")
        return process