import json
import logging
import re
import time

import pytest
import responses

from kernsim.config import KernelConfig
from kernsim.process import State
from kernsim.server import Kernel, create_app, main

MEMORY = "http://memoria.test:8002"
IO_IP = "10.0.0.5"
IO_PORT = 9000
USLEEP_URL = f"http://{IO_IP}:{IO_PORT}/kernel/usleep"
FIN_URL = re.compile(r"http://memoria\.test:8002/kernel/fin-proceso.*")
DUMP_URL = re.compile(r"http://memoria\.test:8002/kernel/dump-proceso.*")


def _wait_for(condition, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return condition()


@pytest.fixture
def kernel():
    config = KernelConfig(
        ip_memory="memoria.test",
        port_memory=8002,
        scheduler_algorithm="FIFO",
        ready_ingress_algorithm="FIFO",
        alpha=0.5,
        initial_estimate=10,
        suspension_time=100000,
    )
    return Kernel(config, logging.getLogger("kernsim-test"))


@pytest.fixture
def client(kernel):
    return create_app(kernel).test_client()


def _device(name="disco"):
    return {"nombre": name, "ip": IO_IP, "puerto": IO_PORT}


def _running(kernel, file_name="proc", size="64"):
    process = kernel.create_process(file_name, size)
    process.pcb.leave(State.NEW)
    process.pcb.enter(State.EXEC)
    kernel.scheduler.exec_queue.append(process)
    return process


def test_create_process_assigns_sequential_pids(kernel):
    first = kernel.create_process("a", "32")
    second = kernel.create_process("b", "64")
    assert first.pcb.pid == 1
    assert second.pcb.pid == 2
    assert first.pcb.file_name == "a"
    assert second.pcb.size == "64"
    assert first.pcb.counts[State.NEW] == 1


def test_connect_io_registers_free_device(kernel):
    assert kernel.connect_io(_device()) == "ok"
    devices = kernel.devices.snapshot()
    assert [d.name for d in devices] == ["disco"]
    assert devices[0].free is True
    assert devices[0].pid == -1


def test_connect_io_rejects_bad_body(client):
    resp = client.post("/io/conexion-inicial", data="{not json")
    assert resp.status_code == 400
    assert resp.get_data(as_text=True) == "Error al decodificar ioIdentificacion"


def test_connect_cpu_adds_to_pool(kernel, client):
    resp = client.post("/cpu/conexion-inicial", json={"ip": "10.0.0.9", "puerto": 8004, "id": "cpu1"})
    assert resp.status_code == 200
    assert resp.get_data(as_text=True) == "ok"
    assert kernel.scheduler.available_cpus() == 1
    assert [c.cpu_id for c in kernel.scheduler.cpus] == ["cpu1"]


def test_init_proc_without_args_is_rejected(client):
    resp = client.post("/cpu/proceso", json={"pid": 1, "pc": 3, "instruccion": "INIT_PROC", "args": ["x"]})
    assert resp.status_code == 400
    assert resp.get_data(as_text=True) == (
        "Error: no se recibieron los argumentos necesarios (archivo y tamaño)"
    )


def test_init_proc_submits_new_process(kernel):
    body = {"pid": 1, "pc": 3, "instruccion": "INIT_PROC", "args": ["hijo", "128"]}
    assert kernel.cpu_syscall(body) == "ok"
    submitted = kernel.scheduler.new_processes.get_nowait()
    assert submitted.pcb.file_name == "hijo"
    assert submitted.pcb.size == "128"


def test_unknown_syscall_is_rejected(client):
    resp = client.post("/cpu/proceso", json={"pid": 1, "pc": 0, "instruccion": "NOOP"})
    assert resp.status_code == 400
    assert resp.get_data(as_text=True) == "Instrucción no reconocida"


def test_io_to_missing_device_finishes_process(kernel):
    process = _running(kernel)
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        rsps.add(responses.POST, FIN_URL, status=200)
        result = kernel.cpu_syscall({"pid": 1, "instruccion": "IO", "args": ["impresora", "100"]})
        assert result == ""
        assert _wait_for(lambda: process.pcb is None)
    assert kernel.scheduler.exec_queue == []


def test_io_with_free_device_blocks_and_sends_usleep(kernel):
    process = _running(kernel)
    kernel.connect_io(_device())
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        rsps.add(responses.POST, USLEEP_URL, status=200)
        result = kernel.cpu_syscall({"pid": 1, "instruccion": "IO", "args": ["disco", "250"]})
        assert result == ""
        assert _wait_for(lambda: len(rsps.calls) == 1)
        assert json.loads(rsps.calls[0].request.body) == {"pid": 1, "tiempo_sleep": 250}
    assert kernel.scheduler.blocked_queue == [process]
    assert kernel.scheduler.exec_queue == []
    device = kernel.devices.snapshot()[0]
    assert device.free is False
    assert device.pid == 1


def test_busy_device_queues_then_hands_over(kernel):
    first = _running(kernel, "a")
    second = _running(kernel, "b")
    kernel.connect_io(_device())
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        rsps.add(responses.POST, USLEEP_URL, status=200)
        kernel.cpu_syscall({"pid": 1, "instruccion": "IO", "args": ["disco", "10"]})
        kernel.cpu_syscall({"pid": 2, "instruccion": "IO", "args": ["disco", "20"]})
        assert kernel.devices.snapshot()[0].pid == 1

        report = dict(_device(), pid=1)
        assert kernel.io_finished(report) == "ok"
        assert kernel.devices.snapshot()[0].pid == 2
        assert _wait_for(lambda: first in kernel.scheduler.ready_queue)
        assert _wait_for(lambda: len(rsps.calls) == 2)
        pids = sorted(json.loads(c.request.body)["pid"] for c in rsps.calls)
        assert pids == [1, 2]
    assert kernel.scheduler.blocked_queue == [second]


def test_io_finished_for_unknown_process_still_ok(kernel, client):
    kernel.connect_io(_device())
    resp = client.post("/io/peticion-finalizada", json=dict(_device(), pid=42))
    assert resp.status_code == 200
    assert resp.get_data(as_text=True) == "ok"
    assert kernel.devices.snapshot()[0].free is True


def test_disconnect_io_finishes_process_using_it(kernel):
    process = _running(kernel)
    kernel.connect_io(_device())
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        rsps.add(responses.POST, USLEEP_URL, status=200)
        rsps.add(responses.POST, FIN_URL, status=200)
        kernel.cpu_syscall({"pid": 1, "instruccion": "IO", "args": ["disco", "10"]})
        assert kernel.disconnect_io(_device()) == "ok"
        assert _wait_for(lambda: process.pcb is None)
    assert kernel.devices.snapshot() == []
    assert kernel.scheduler.blocked_queue == []


def test_exit_syscall_finishes_process(kernel, client):
    process = _running(kernel)
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        rsps.add(responses.POST, FIN_URL, status=200)
        resp = client.post("/cpu/proceso", json={"pid": 1, "pc": 5, "instruccion": "EXIT"})
        assert resp.get_data(as_text=True) == "ok"
        assert _wait_for(lambda: process.pcb is None)
    assert kernel.scheduler.exec_queue == []


def test_dump_memory_returns_process_to_ready(kernel):
    process = _running(kernel)
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        rsps.add(responses.GET, DUMP_URL, status=200)
        assert kernel.cpu_syscall({"pid": 1, "instruccion": "DUMP_MEMORY"}) == "ok"
        assert _wait_for(lambda: process in kernel.scheduler.ready_queue)
    assert kernel.scheduler.blocked_queue == []
    assert process.pcb.counts[State.BLOCKED] == 1


def test_memory_handshake_posts_size(kernel):
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, f"{MEMORY}/kernel/acceso", status=200)
        assert kernel.memory_handshake("proc", "1024") == 200
        assert json.loads(rsps.calls[0].request.body) == "1024"


def test_memory_handshake_connection_error(kernel):
    with responses.RequestsMock(assert_all_requests_are_fired=False):
        assert kernel.memory_handshake("proc", "1024") is None


def test_main_without_arguments(capsys):
    assert main([]) == 1
    assert "Faltan argumentos" in capsys.readouterr().out