"""Loading of the kernel's JSON configuration file."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, fields
from os import PathLike
from typing import Any, Mapping, Union

_log = logging.getLogger(__name__)

PathType = Union[str, "PathLike[str]"]


def load_json(path: PathType) -> Any:
    """Read and decode a JSON file, logging and re-raising any failure."""
    try:
        with open(path, encoding="utf-8") as handle:
            return json.load(handle)
    except OSError as exc:
        _log.error(
            "Error al abrir el archivo de configuración",
            extra={"attrs": {"filePath": str(path), "error": str(exc)}},
        )
        raise
    except json.JSONDecodeError as exc:
        _log.error(
            "Error al decodificar el archivo de configuración",
            extra={"attrs": {"filePath": str(path), "error": str(exc)}},
        )
        raise


@dataclass
class KernelConfig:
    """Settings of the kernel: peer addresses, algorithms and timings."""

    ip_memory: str = ""
    port_memory: int = 0
    ip_kernel: str = ""
    port_kernel: int = 0
    ip_io: str = ""
    port_io: int = 0
    ip_cpu: str = ""
    port_cpu: int = 0
    scheduler_algorithm: str = ""
    ready_ingress_algorithm: str = ""
    alpha: float = 0.0
    initial_estimate: int = 0
    suspension_time: int = 0
    log_level: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "KernelConfig":
        """Build a config from decoded JSON; unknown keys are ignored."""
        values: dict[str, Any] = {}
        for spec in fields(cls):
            if spec.name not in data:
                continue
            value = data[spec.name]
            values[spec.name] = _coerce(spec.name, spec.type, value)
        return cls(**values)


def _coerce(name: str, kind: Any, value: Any) -> Any:
    kind_name = kind if isinstance(kind, str) else getattr(kind, "__name__", "")
    if kind_name == "str":
        if not isinstance(value, str):
            raise ValueError(f"campo {name!r}: se esperaba texto")
        return value
    if kind_name == "int":
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"campo {name!r}: se esperaba un entero")
        return value
    if kind_name == "float":
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"campo {name!r}: se esperaba un número")
        return float(value)
    return value


def load_config(path: PathType) -> KernelConfig:
    """Load the kernel configuration stored at ``path``."""
    data = load_json(path)
    if not isinstance(data, dict):
        raise ValueError("la configuración debe ser un objeto JSON")
    return KernelConfig.from_mapping(data)