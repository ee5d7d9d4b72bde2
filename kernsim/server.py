"""HTTP front end of the kernel: IO, CPU and syscall endpoints."""

from __future__ import annotations

import json
import logging
import sys
import threading
from typing import Any, Callable, List, Mapping, Optional, Sequence

import requests
from flask import Flask, request

from kernsim.config import KernelConfig, load_config
from kernsim.core import CpuIdentification, SjfConfig
from kernsim.devices import DeviceRegistry, IODevice
from kernsim.logsetup import build_logger
from kernsim.memory_client import MemoryClient
from kernsim.process import Process, create_process
from kernsim.shortterm import Scheduler
from kernsim.uniqueid import UniqueID

CONFIG_DIR = "./configs/"
_TIMEOUT = 120.0
_TEXT = {"Content-Type": "text/plain; charset=utf-8"}
_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]

_IO_DECODE_ERROR = "Error al decodificar ioIdentificacion"
_CPU_DECODE_ERROR = "Error al decodificar cpuIdentificacion"
_SYSCALL_DECODE_ERROR = "Error al decodificar la RTA del Proceso"


class _Rejected(Exception):
    """A request the kernel refuses, with the HTTP status to answer."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status
        self.message = message


class Kernel:
    """The kernel: the scheduler, connected IO devices and PID allocation."""

    def __init__(
        self,
        config: KernelConfig,
        logger: Optional[logging.Logger] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.config = config
        self.log = logger or logging.getLogger("kernsim")
        self.http = session or requests.Session()
        self.unique_id = UniqueID()
        self.devices = DeviceRegistry()
        memory = MemoryClient(config.ip_memory, config.port_memory, self.log)
        self.scheduler = Scheduler(
            memory,
            config.ready_ingress_algorithm,
            config.scheduler_algorithm,
            SjfConfig(alpha=config.alpha, initial_estimate=config.initial_estimate),
            config.suspension_time,
            self.log,
            self.http,
        )

    @staticmethod
    def _spawn(target: Callable[..., Any], *args: Any) -> threading.Thread:
        worker = threading.Thread(target=target, args=args, daemon=True)
        worker.start()
        return worker

    # -- processes -------------------------------------------------------

    def create_process(self, file_name: str, size: str) -> Process:
        """Create a process in NEW with a fresh PID."""
        return create_process(
            self.unique_id.next(), file_name, size, self.config.initial_estimate
        )

    def _submit_new(self, process: Process) -> None:
        self.scheduler.new_processes.put(process)
        self.log.info(f"## ({process.pcb.pid}) Se crea el proceso - Estado: NEW")

    def start_schedulers(self, file_name: str, size: str) -> Process:
        """Start every scheduler and submit the first process."""
        process = self.create_process(file_name, size)
        self._spawn(self.scheduler.run_long_term)
        self.scheduler.run_short_term()
        self._spawn(self.scheduler.suspend_blocked_loop)
        self._submit_new(process)
        return process

    def memory_handshake(self, file_name: str, size: str) -> Optional[int]:
        """Send the initial size to memory; return its HTTP status, or None."""
        self.log.debug(
            "Conexión Inicial",
            extra={"attrs": {"archivo": file_name, "tamaño": size, "config": repr(self.config)}},
        )
        body = json.dumps(size)
        url = f"http://{self.config.ip_memory}:{self.config.port_memory}/kernel/acceso"
        try:
            resp = self.http.post(
                url,
                data=body,
                headers={"Content-Type": "application/json"},
                timeout=_TIMEOUT,
            )
        except requests.RequestException as exc:
            self.log.error(
                "Error enviando mensaje a memoria",
                extra={
                    "attrs": {
                        "error": str(exc),
                        "ip": self.config.ip_memory,
                        "puerto": self.config.port_memory,
                    }
                },
            )
            self.log.debug("Respuesta del servidor: nil")
            return None
        self.log.debug(
            "Respuesta del servidor",
            extra={"attrs": {"status": resp.status_code, "body": body}},
        )
        return resp.status_code

    # -- IO devices ------------------------------------------------------

    @staticmethod
    def _device_from(payload: Any) -> IODevice:
        if not isinstance(payload, Mapping):
            raise _Rejected(400, _IO_DECODE_ERROR)
        try:
            return IODevice.from_mapping(payload)
        except (TypeError, ValueError) as exc:
            raise _Rejected(400, _IO_DECODE_ERROR) from exc

    def _log_devices(self, message: str) -> None:
        self.log.debug(
            message,
            extra={"attrs": {"IOsConectadas": [d.to_dict() for d in self.devices.snapshot()]}},
        )

    def connect_io(self, payload: Any) -> str:
        """Register an IO device that announced itself."""
        self.devices.connect(self._device_from(payload))
        self._log_devices("Lista de IOs conectadas")
        return "ok"

    def disconnect_io(self, payload: Any) -> str:
        """Forget an IO device and send to EXIT the processes that needed it."""
        device = self._device_from(payload)
        self.log.debug(
            "Desconexión de dispositivo IO",
            extra={"attrs": {"dispositivo": device.name, "ip": device.ip, "puerto": device.port}},
        )
        for pid in self.devices.disconnect(device.name, device.ip, device.port):
            self.log.debug(
                f"## ({pid}) - Proceso enviado a EXIT por desconexión de IO: {device.name}"
            )
            self._spawn(self.scheduler.finish_anywhere, pid)
        self._log_devices("Estado actual de IOs conectadas después de desconexión")
        return "ok"

    def connect_cpu(self, payload: Any) -> str:
        """Add a CPU that performed its handshake to the pool."""
        if not isinstance(payload, Mapping):
            raise _Rejected(400, _CPU_DECODE_ERROR)
        try:
            ident = CpuIdentification.from_mapping(payload)
        except (TypeError, ValueError) as exc:
            raise _Rejected(400, _CPU_DECODE_ERROR) from exc
        self.log.debug(
            "Me llego la conexion de CPU", extra={"attrs": {"identificacionCPU": ident.to_dict()}}
        )
        ident.free = True
        self.scheduler.add_cpu(ident)
        self.log.debug(
            "Lista actual de CPUs conectadas",
            extra={"attrs": {"CPUsConectadas": [c.cpu_id for c in self.scheduler.cpus]}},
        )
        return "ok"

    def io_finished(self, payload: Any) -> str:
        """An IO device finished a request: free it and wake the process."""
        report = self._device_from(payload)
        handed = self.devices.release(report.name, report.ip, report.port)
        if handed is not None:
            device, waiting = handed
            self.log.debug(
                "Procesando siguiente proceso en cola de espera IO",
                extra={
                    "attrs": {
                        "dispositivo": device.name,
                        "proceso": waiting.pid,
                        "tiempo": waiting.sleep_ms,
                    }
                },
            )
            self._spawn(
                self.scheduler.send_usleep, device.port, device.ip, waiting.pid, waiting.sleep_ms
            )

        pid = report.pid
        self.log.info(f"## ({pid}) finalizó IO y pasa a READY")
        process = self.scheduler.find_in(pid, "blocked")
        if process is None:
            process = self.scheduler.find_in(pid, "suspended_blocked")
        if process is not None:
            self._spawn(self.scheduler.handle_io_end, process)
        else:
            self.log.error(
                "Proceso no encontrado en ninguna cola al finalizar IO",
                extra={"attrs": {"PID": pid, "Cola_original": report.queue}},
            )
        return "ok"

    # -- syscalls --------------------------------------------------------

    def cpu_syscall(self, payload: Any) -> str:
        """Handle a syscall a CPU reports for the process it runs."""
        if not isinstance(payload, Mapping):
            raise _Rejected(400, _SYSCALL_DECODE_ERROR)
        try:
            pid = int(payload.get("pid", 0))
            name = str(payload.get("instruccion", ""))
            raw_args = payload.get("args") or []
            if not isinstance(raw_args, list):
                raise TypeError("args")
            args: List[str] = [str(a) for a in raw_args]
        except (TypeError, ValueError) as exc:
            raise _Rejected(400, _SYSCALL_DECODE_ERROR) from exc

        self.log.debug(
            "Me llego la RTA del Proceso",
            extra={"attrs": {"syscall": {"pid": pid, "instruccion": name, "args": args}}},
        )
        self.log.info(f"## ({pid}) - Solicitó syscall: {name}")

        if name == "INIT_PROC":
            if len(args) < 2:
                raise _Rejected(
                    400,
                    "Error: no se recibieron los argumentos necesarios (archivo y tamaño)",
                )
            self._submit_new(self.create_process(args[0], args[1]))
        elif name == "IO":
            return self._syscall_io(pid, args)
        elif name == "DUMP_MEMORY":
            self.scheduler.dump_memory(pid)
        elif name == "EXIT":
            self._spawn(self.scheduler.finish_anywhere, pid)
        else:
            raise _Rejected(400, "Instrucción no reconocida")
        return "ok"

    def _syscall_io(self, pid: int, args: Sequence[str]) -> str:
        if not args:
            raise _Rejected(400, "Error: no se recibió el nombre de la IO")
        device_name = args[0]
        if not self.devices.exists(device_name):
            self._spawn(self.scheduler.finish_anywhere, pid)
            return ""

        if self.scheduler.find_in(pid, "EXEC") is None:
            self.log.debug("Proceso no encontrado en EXEC", extra={"attrs": {"pid": pid}})
            return ""

        if len(args) < 2:
            raise _Rejected(400, "Error: no se recibió el tiempo de la IO")
        try:
            sleep_ms = int(args[1])
        except ValueError as exc:
            self.log.error("Error convirtiendo a int", extra={"attrs": {"error": str(exc)}})
            return ""

        try:
            self.scheduler.block_for_io(pid)
        except LookupError as exc:
            self.log.debug(
                "Error al bloquear proceso por IO",
                extra={"attrs": {"error": str(exc), "pid": pid}},
            )
            raise _Rejected(500, '{"error":"error al bloquear proceso por IO"}') from exc

        self.log.info(f"## ({pid}) - Bloqueado por IO: {device_name}")

        device = self.devices.acquire_or_enqueue(device_name, pid, sleep_ms)
        if device is not None:
            self.log.debug(
                "Dispositivo IO marcado como ocupado",
                extra={"attrs": {"dispositivo": device_name, "proceso": pid}},
            )
            self._spawn(self.scheduler.send_usleep, device.port, device.ip, pid, sleep_ms)
        else:
            self.log.debug(
                "Proceso agregado a cola de espera IO (dispositivo ocupado)",
                extra={"attrs": {"dispositivo": device_name, "proceso": pid, "tiempo": sleep_ms}},
            )
        return ""


def create_app(kernel: Kernel) -> Flask:
    """The Flask application exposing the kernel's endpoints."""
    app = Flask(__name__)

    def register(path: str, handler: Callable[[Any], str]) -> None:
        def view():
            raw = request.get_data()
            try:
                payload = json.loads(raw) if raw else None
            except ValueError:
                payload = None
            try:
                body = handler(payload)
            except _Rejected as exc:
                return exc.message, exc.status, _TEXT
            return body, 200, _TEXT

        app.add_url_rule(path, endpoint=path, view_func=view, methods=_METHODS)

    register("/io/conexion-inicial", kernel.connect_io)
    register("/io/desconexion", kernel.disconnect_io)
    register("/cpu/conexion-inicial", kernel.connect_cpu)
    register("/io/peticion-finalizada", kernel.io_finished)
    register("/cpu/proceso", kernel.cpu_syscall)
    return app


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Start the kernel: <archivo> <tamaño> <config_id>."""
    args = list(sys.argv[1:] if argv is None else argv)
    if len(args) < 3:
        print(
            "Faltan argumentos. Uso: kernsim <archivo_nombre> <tamanio_proceso> <config_id>"
        )
        return 1

    file_name, size, config_id = args[0], args[1], args[2]
    config = load_config(CONFIG_DIR + config_id + ".json")
    logger = build_logger(config.log_level)
    kernel = Kernel(config, logger)
    app = create_app(kernel)
    kernel.start_schedulers(file_name, size)
    app.run(host="0.0.0.0", port=config.port_kernel, threaded=True)
    return 0