"""Short-term scheduling: FIFO, SJF and SRT dispatch of READY processes."""

from __future__ import annotations

import queue
import threading
import time
from typing import Optional

from kernsim.cpu_client import Cpu
from kernsim.mediumterm import MediumTermScheduler
from kernsim.process import Process, State

_SUCCESS_REASON = "Proceso ejecutado exitosamente"
_IDLE_PAUSE = 0.01


class Scheduler(MediumTermScheduler):
    """The complete scheduler: long, medium and short term."""

    # -- entry point -----------------------------------------------------

    def run_short_term(self) -> Optional[threading.Thread]:
        """Start the short-term loop for the configured algorithm.

        Returns the thread running it, or None for an unknown algorithm.
        """
        loop = {"FIFO": self.run_fifo, "SJF": self.run_sjf, "SRT": self.run_srt}.get(
            self.short_term_algorithm
        )
        if loop is None:
            self.log.warning("Algoritmo de corto plazo no reconocido")
            return None
        worker = threading.Thread(target=loop, daemon=True)
        worker.start()
        return worker

    def _await_ready_work(self, note: str) -> None:
        """Consume a READY signal, or wait for one if READY is empty."""
        try:
            self.ready_signal.get_nowait()
            self.log.debug(note)
        except queue.Empty:
            if not self.ready_queue:
                self.log.debug(
                    "No hay procesos en ReadyQueue, esperando notificación... (SJF)"
                )
                self.ready_signal.get()

    def _drain_ready_signals(self) -> None:
        while True:
            try:
                self.ready_signal.get_nowait()
            except queue.Empty:
                return

    # -- FIFO ------------------------------------------------------------

    def run_fifo(self) -> None:
        """Dispatch READY processes in arrival order, forever."""
        while True:
            try:
                self.ready_signal.get_nowait()
                self.log.debug("Notificación de nuevo proceso en Ready recibida")
            except queue.Empty:
                if not self.ready_queue:
                    time.sleep(_IDLE_PAUSE)
                    continue

            while self.ready_queue:
                cpu = self.acquire_cpu()
                if cpu is None:
                    self.log.debug("No hay CPUs libres, esperando...")
                    break
                with self.ready_lock:
                    if not self.ready_queue:
                        self.release_cpu(cpu)
                        break
                    process = self.ready_queue.pop(0)
                threading.Thread(
                    target=self._run_fifo_process, args=(cpu, process), daemon=True
                ).start()

    def _run_fifo_process(self, cpu: Cpu, process: Process) -> None:
        pcb = process.pcb
        if pcb is None:
            self.release_cpu(cpu)
            return
        pcb.leave(State.READY)
        with self.exec_lock:
            self.exec_queue.append(process)
            pcb.enter(State.EXEC)
        self.log.info(f"## ({pcb.pid}) Pasa del estado READY al estado EXEC")

        cpu.process.pc = pcb.pc
        cpu.process.pid = pcb.pid
        self.log.debug(
            "CPU seleccionada para proceso",
            extra={"attrs": {"cpu_id": cpu.cpu_id, "pid": pcb.pid}},
        )

        new_pc, _ = cpu.dispatch()
        if process.pcb is not None:
            process.pcb.pc = new_pc
        self.release_cpu(cpu)
        self.log.debug(
            "Proceso completado en CPU",
            extra={"attrs": {"cpu_id": cpu.cpu_id, "pc_final": new_pc}},
        )

    # -- SJF / SRT -------------------------------------------------------

    def _shortest_ready(self) -> Optional[Process]:
        with self.ready_lock:
            if not self.ready_queue:
                return None
            self.sort_ready_sjf()
            return self.ready_queue[0]

    def run_sjf(self) -> None:
        """Dispatch the READY process with the shortest estimated burst, without preemption."""
        while True:
            self._await_ready_work("Notificación de nuevo proceso en Ready recibida (SJF)")
            while True:
                shortest = self._shortest_ready()
                if shortest is None:
                    break
                cpu = self.acquire_cpu()
                if cpu is not None:
                    self.assign_to_cpu(shortest, cpu)

    def run_srt(self) -> None:
        """Shortest remaining time: like SJF, but a shorter process may preempt."""
        while True:
            self._await_ready_work("Notificación de nuevo proceso en Ready recibida (SJF)")
            self._drain_ready_signals()
            with self.srt_lock:
                while True:
                    candidate = self._shortest_ready()
                    if candidate is None:
                        break
                    if self.evaluate_preemption(candidate):
                        continue
                    if self.available_cpus() > 0:
                        cpu = self.acquire_cpu()
                        if cpu is not None:
                            self.assign_to_cpu(candidate, cpu)
                        else:
                            self.log.debug(
                                "No hay CPUs libres para asignar el nuevo proceso (SJF)"
                            )
                    else:
                        time.sleep(_IDLE_PAUSE)

    def sort_ready_sjf(self) -> None:
        """Sort READY by estimated next burst, shortest first."""
        with self.ready_lock:
            self.ready_queue.sort(key=self.next_estimate)

    def next_estimate(self, process: Process) -> float:
        """Estimated next burst in ms: alpha * last burst + (1 - alpha) * previous estimate.

        A process that never ran gets the configured initial estimate.
        """
        pcb = process.pcb
        if pcb.last_burst is None:
            self.log.debug(
                "Proceso nuevo - usando estimación inicial",
                extra={
                    "attrs": {
                        "pid": pcb.pid,
                        "estimacion_inicial": float(self.sjf.initial_estimate),
                    }
                },
            )
            return float(self.sjf.initial_estimate)

        last_burst = float(int(pcb.last_burst * 1000))
        alpha = self.sjf.alpha
        estimate = alpha * last_burst + (1 - alpha) * pcb.previous_estimate
        self.log.debug(
            "Calculando nueva estimación SJF",
            extra={
                "attrs": {
                    "pid": pcb.pid,
                    "alpha": alpha,
                    "rafaga_anterior": last_burst,
                    "estimacion_anterior": pcb.previous_estimate,
                    "nueva_estimacion": estimate,
                }
            },
        )
        return estimate

    @staticmethod
    def _exec_elapsed_ms(process: Process) -> float:
        entry = process.pcb.times.get(State.EXEC)
        if entry is None or entry.started is None:
            return 0.0
        return float(int((time.monotonic() - entry.started) * 1000))

    def evaluate_preemption(self, process: Process) -> bool:
        """Preempt the running process with the most remaining time if ``process`` is shorter.

        Returns True if a CPU was freed and handed to ``process``.
        """
        if not self.exec_queue:
            self.log.debug("No hay procesos en ExecQueue para evaluar desalojo")
            return False

        new_burst = self.next_estimate(process)
        victim: Optional[Process] = None
        max_remaining = -1.0
        with self.exec_lock:
            for running in self.exec_queue:
                if running is None or running.pcb is None:
                    continue
                elapsed = self._exec_elapsed_ms(running)
                remaining = self.next_estimate(running) - elapsed
                if remaining > 0 and new_burst < remaining and remaining > max_remaining:
                    victim = running
                    max_remaining = remaining
                    self.log.debug(
                        "Candidato a desalojo encontrado",
                        extra={"attrs": {"pid_candidato": running.pcb.pid}},
                    )

        if victim is None:
            self.log.debug("❌ No se encontró proceso para desalojar")
            return False

        self.log.debug(
            "🎯 DESALOJO SRT - Proceso seleccionado para desalojo",
            extra={
                "attrs": {
                    "pid_desalojado": victim.pcb.pid,
                    "pid_nuevo": process.pcb.pid,
                    "rafaga_nueva": new_burst,
                }
            },
        )
        cpu = self.preempt(victim)
        if cpu is None:
            return False
        self.assign_to_cpu(process, cpu)
        return True

    def update_last_burst(self, process: Optional[Process]) -> Optional[float]:
        """Record the burst that just ended and store the next estimate; return it."""
        if process is None or process.pcb is None:
            return None
        pcb = process.pcb
        entry = pcb.times.get(State.EXEC)
        started = entry.started if entry is not None else None
        executed = time.monotonic() - started if started is not None else 0.0
        if entry is not None:
            entry.accumulated += executed

        estimate = self.next_estimate(process)
        pcb.last_burst = executed
        pcb.previous_estimate = estimate
        self.log.debug(
            "Ráfaga anterior actualizada",
            extra={
                "attrs": {
                    "pid": pcb.pid,
                    "rafaga_ejecutada_ms": float(int(executed * 1000)),
                    "nueva_estimacion": estimate,
                }
            },
        )
        return estimate

    def preempt(self, process: Process) -> Optional[Cpu]:
        """Interrupt the CPU running ``process`` and return it to READY.

        Returns the freed CPU, or None if no CPU runs the process.
        """
        pid = process.pcb.pid
        cpu = self.find_cpu_by_pid(pid)
        if cpu is None:
            self.log.error(
                "No se encontró CPU para el proceso a desalojar", extra={"attrs": {"pid": pid}}
            )
            return None

        cpu.interrupt("Desalojo", False)
        self._cpu_tokens.take()

        if self.find_in(pid, "EXEC") is None:
            self.log.info(
                "El proceso ya no se encuentra en Exec, por lo que no hace falta desalojarlo",
                extra={"attrs": {"pid": pid}},
            )
            return cpu

        with self.exec_lock:
            if self.remove_from(pid, self.exec_queue):
                process.pcb.leave(State.EXEC)

        self.log.info(f"## ({pid}) - Desalojado por algoritmo SJF/SRT")
        with self.ready_lock:
            self.ready_queue.append(process)
            process.pcb.enter(State.READY)
            self.log.info(f"## ({pid}) Pasa del estado EXEC al estado READY")

        if self._notify_ready(blocking=False):
            self.log.debug(
                "Notificación enviada al planificador tras desalojo",
                extra={"attrs": {"pid": pid}},
            )
        else:
            self.log.debug(
                "Canal de notificación lleno, no se bloquea tras desalojo",
                extra={"attrs": {"pid": pid}},
            )
        return cpu

    def find_cpu_by_pid(self, pid: int) -> Optional[Cpu]:
        """The CPU currently holding ``pid``, if any."""
        with self.cpus_lock:
            return next((cpu for cpu in self.cpus if cpu.process.pid == pid), None)

    def assign_to_cpu(self, process: Optional[Process], cpu: Optional[Cpu]) -> bool:
        """Move a READY process to EXEC on ``cpu`` and dispatch it in the background."""
        if process is None or process.pcb is None or cpu is None:
            self.log.error(
                "CPU o proceso inválido al asignar a CPU",
                extra={"attrs": {"proceso": repr(process), "cpu": repr(cpu)}},
            )
            return False
        pid = process.pcb.pid

        with self.exec_lock:
            if self._first_with_pid(pid, self.exec_queue) is not None:
                self.log.error(
                    "Proceso ya está en ExecQueue, no se puede asignar nuevamente",
                    extra={"attrs": {"pid": pid}},
                )
                return False

        with self.ready_lock:
            if not self.remove_from(pid, self.ready_queue):
                self.log.error(
                    "🚨 Proceso no encontrado en ReadyQueue durante asignarProcesoACPU",
                    extra={"attrs": {"pid": pid}},
                )
                return False
            process.pcb.leave(State.READY)

        with self.cpus_lock:
            cpu.process.pid = pid
            cpu.process.pc = process.pcb.pc
            cpu.free = False

        with self.exec_lock:
            self.exec_queue.append(process)
            process.pcb.enter(State.EXEC)
            self.log.debug(
                "Proceso asignado a CPU con SRT/SJF",
                extra={"attrs": {"PID": pid, "CPU_ID": cpu.cpu_id}},
            )
            self.log.info(f"## ({pid}) Pasa del estado READY al estado EXEC")
            threading.Thread(
                target=self._run_dispatch, args=(cpu, process), daemon=True
            ).start()
        return True

    def _run_dispatch(self, cpu: Cpu, process: Process) -> None:
        new_pc, reason = cpu.dispatch()
        pcb = process.pcb
        if pcb is not None:
            pcb.pc = new_pc
            if reason != _SUCCESS_REASON:
                self.log.debug(
                    "Proceso desalojado",
                    extra={"attrs": {"PID": pcb.pid, "motivo": reason}},
                )
        self.update_last_burst(process)
        self.release_cpu(cpu)