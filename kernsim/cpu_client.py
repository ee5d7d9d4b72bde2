"""Client for a connected CPU: dispatching processes and interrupting them."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import requests

_TIMEOUT = 120.0


@dataclass
class CpuProcess:
    """The process a CPU holds; pid -1 means none."""

    pid: int = -1
    pc: int = 0
    reason: str = ""


class Cpu:
    """A CPU known to the kernel, reachable over HTTP."""

    def __init__(
        self,
        ip: str,
        port: int,
        cpu_id: str,
        logger: Optional[logging.Logger] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.ip = ip
        self.port = port
        self.cpu_id = cpu_id
        self.free = True
        self.process = CpuProcess()
        self.log = logger or logging.getLogger(__name__)
        self._session = session or requests.Session()

    def _url(self, path: str) -> str:
        return f"http://{self.ip}:{self.port}{path}"

    def dispatch(self) -> Tuple[int, str]:
        """Send the held process to the CPU and wait for it to come back.

        Returns the new program counter and the reason the CPU gave.
        """
        body = {"pid": self.process.pid, "pc": self.process.pc}
        if self.process.reason:
            body["motivo"] = self.process.reason
        try:
            resp = self._session.post(self._url("/kernel/procesos"), json=body, timeout=_TIMEOUT)
        except requests.RequestException as exc:
            self.log.error(
                "error enviando mensaje",
                extra={"attrs": {"error": str(exc), "ip": self.ip, "puerto": self.port}},
            )
            return self.process.pc, ""

        self.log.debug(
            "Respuesta del servidor",
            extra={"attrs": {"status": resp.status_code, "body": body}},
        )
        try:
            data = resp.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}
        self.process.pid = int(data.get("pid", 0))
        self.process.pc = int(data.get("pc", 0))
        return self.process.pc, str(data.get("motivo", ""))

    def interrupt(self, kind: str, maskable: bool) -> bool:
        """Ask the CPU to interrupt its process; True if it accepted."""
        body = {"pid": self.process.pid, "tipo": kind, "es_enmascarable": maskable}
        try:
            resp = self._session.post(
                self._url("/kernel/interrupciones"), json=body, timeout=_TIMEOUT
            )
        except requests.RequestException as exc:
            self.log.error(
                "error enviando interrupción",
                extra={"attrs": {"error": str(exc), "ip": self.ip, "puerto": self.port}},
            )
            return False

        if resp.status_code != 200:
            self.log.error(
                "Error al enviar interrupción",
                extra={"attrs": {"status_code": resp.status_code}},
            )
            return False

        self.log.debug(
            "Interrupción enviada correctamente",
            extra={"attrs": {"tipo": kind, "es_enmascarable": maskable}},
        )
        return True