"""Registry of connected IO devices and the processes waiting for them."""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Mapping, Optional, Tuple


@dataclass
class IODevice:
    """A connected IO device; ``pid`` is -1 when it serves nobody."""

    name: str
    ip: str
    port: int
    free: bool = True
    pid: int = -1
    queue: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "IODevice":
        """Build from the JSON an IO module sends."""
        return cls(
            name=str(data.get("nombre", "")),
            ip=str(data.get("ip", "")),
            port=int(data.get("puerto", 0)),
            free=bool(data.get("estado", False)),
            pid=int(data.get("pid", 0)),
            queue=str(data.get("cola", "")),
        )

    def to_dict(self) -> dict:
        return {
            "nombre": self.name,
            "ip": self.ip,
            "puerto": self.port,
            "estado": self.free,
            "pid": self.pid,
            "cola": self.queue,
        }

    def matches(self, name: str, ip: str, port: int) -> bool:
        return self.name == name and self.ip == ip and self.port == port


@dataclass(frozen=True)
class IOWait:
    """A process waiting for a busy device, and how long it will sleep."""

    pid: int
    sleep_ms: int


class DeviceRegistry:
    """Thread-safe list of IO devices with a FIFO wait queue per name."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._devices: List[IODevice] = []
        self._waiting: Dict[str, List[IOWait]] = {}

    def connect(self, device: IODevice) -> IODevice:
        """Register a device as free and serving no process."""
        registered = replace(device, free=True, pid=-1)
        with self._lock:
            self._devices.append(registered)
        return replace(registered)

    def disconnect(self, name: str, ip: str, port: int) -> List[int]:
        """Remove a device; return the PIDs that must go to EXIT.

        These are the process the device was serving and, when no other
        device of the same name remains, the processes waiting for it.
        """
        with self._lock:
            found = next(
                (d for d in self._devices if d.matches(name, ip, port)), None
            )
            if found is None:
                return []
            self._devices.remove(found)
            doomed = [found.pid] if found.pid >= 0 else []
            if not any(d.name == found.name for d in self._devices):
                doomed.extend(w.pid for w in self._waiting.get(found.name, []))
            return doomed

    def exists(self, name: str) -> bool:
        """Whether any device with this name is connected."""
        with self._lock:
            return any(d.name == name for d in self._devices)

    def acquire_or_enqueue(self, name: str, pid: int, sleep_ms: int) -> Optional[IODevice]:
        """Take a free device for ``pid``, or queue the request.

        Returns a copy of the device taken, or None if the request waits.
        """
        with self._lock:
            for device in self._devices:
                if device.name == name and device.free:
                    device.free = False
                    device.pid = pid
                    device.queue = "blocked"
                    return replace(device)
            self._waiting.setdefault(name, []).append(IOWait(pid, sleep_ms))
            return None

    def release(self, name: str, ip: str, port: int) -> Optional[Tuple[IODevice, IOWait]]:
        """Free a busy device after its request ended.

        If a process waits for that device name it is handed the device at
        once; that device and the wait entry are returned. Otherwise None.
        """
        with self._lock:
            device = next(
                (d for d in self._devices if d.matches(name, ip, port) and not d.free),
                None,
            )
            if device is None:
                return None
            device.free = True
            device.pid = -1
            device.queue = ""
            waiters = self._waiting.get(device.name)
            if not waiters:
                return None
            nxt = waiters.pop(0)
            device.free = False
            device.pid = nxt.pid
            device.queue = "blocked"
            return replace(device), nxt

    def snapshot(self) -> List[IODevice]:
        """Copies of the connected devices, in connection order."""
        with self._lock:
            return [replace(d) for d in self._devices]