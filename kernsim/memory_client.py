"""Client for the memory module's kernel-facing endpoints."""

from __future__ import annotations

import logging
from typing import Optional

import requests

_TIMEOUT = 120.0


class MemoryRequestError(Exception):
    """A request to memory failed or memory answered with an error."""


class MemoryClient:
    """Talks to memory on behalf of the kernel."""

    def __init__(
        self,
        ip: str,
        port: int,
        logger: Optional[logging.Logger] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.ip = ip
        self.port = port
        self.log = logger or logging.getLogger(__name__)
        self._session = session or requests.Session()

    def _url(self, path: str) -> str:
        return f"http://{self.ip}:{self.port}{path}"

    def _attrs(self, **extra) -> dict:
        return {"attrs": {"ip": self.ip, "puerto": self.port, **extra}}

    def has_space(self, size: str, pid: int) -> bool:
        """Ask memory to reserve room for a process; True if it could."""
        try:
            resp = self._session.get(
                self._url("/kernel/espacio-disponible"),
                params={"tamanio-proceso": size, "pid": pid},
                timeout=_TIMEOUT,
            )
        except requests.RequestException as exc:
            self.log.error(
                "Error al consultar espacio en memoria", extra=self._attrs(error=str(exc))
            )
            return False
        with resp:
            if resp.status_code != 200:
                self.log.error(
                    "Memoria sin espacio disponible",
                    extra=self._attrs(status_code=resp.status_code),
                )
                return False
        self.log.debug(
            "Consulta de espacio en memoria exitosa",
            extra={"attrs": {"status_code": resp.status_code}},
        )
        return True

    def load_system_memory(self, file_name: str, pid: int) -> bool:
        """Ask memory to load a process's instructions; False on transport error."""
        try:
            resp = self._session.get(
                self._url("/kernel/cargar-memoria-de-sistema"),
                params={"archivo": file_name, "pid": pid},
                timeout=_TIMEOUT,
            )
        except requests.RequestException as exc:
            self.log.error(
                "Error cargar proceso en memoria de sistema", extra=self._attrs(error=str(exc))
            )
            return False
        resp.close()
        return True

    def finish_process(self, pid: int) -> int:
        """Tell memory a process ended; return the HTTP status it answered."""
        try:
            resp = self._session.post(
                self._url("/kernel/fin-proceso"), params={"pid": pid}, timeout=_TIMEOUT
            )
        except requests.RequestException as exc:
            raise MemoryRequestError(str(exc)) from exc
        with resp:
            return resp.status_code

    def _checked_get(self, path: str, pid: int, action: str) -> None:
        try:
            resp = self._session.get(self._url(path), params={"pid": pid}, timeout=_TIMEOUT)
        except requests.RequestException as exc:
            self.log.error(
                f"Error al solicitar {action} de proceso a memoria",
                extra=self._attrs(pid=pid, error=str(exc)),
            )
            raise MemoryRequestError(str(exc)) from exc
        with resp:
            if resp.status_code != 200:
                self.log.error(
                    f"Error en {action} de proceso - memoria respondió con error",
                    extra=self._attrs(pid=pid, status_code=resp.status_code),
                )
                raise MemoryRequestError(f"memoria respondió con status {resp.status_code}")
        self.log.debug(
            f"{action.capitalize()} de proceso realizado exitosamente",
            extra={"attrs": {"pid": pid, "status_code": resp.status_code}},
        )

    def dump_process(self, pid: int) -> None:
        """Ask memory to dump a process; raise MemoryRequestError on failure."""
        self._checked_get("/kernel/dump-proceso", pid, "dump")

    def swap_process(self, pid: int) -> None:
        """Ask memory to swap a process out; raise MemoryRequestError on failure."""
        self._checked_get("/kernel/swap-proceso", pid, "swap")