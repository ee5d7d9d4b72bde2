import pytest

from kernsim.devices import DeviceRegistry, IODevice, IOWait


@pytest.fixture
def registry():
    return DeviceRegistry()


def disk(port=8001):
    return IODevice(name="DISCO", ip="127.0.0.1", port=port)


def test_from_mapping_round_trip():
    data = {"nombre": "DISCO", "ip": "1.2.3.4", "puerto": 8001, "estado": False, "pid": 3, "cola": "blocked"}
    device = IODevice.from_mapping(data)
    assert device.name == "DISCO"
    assert device.to_dict() == data


def test_connect_resets_state(registry):
    registry.connect(IODevice("DISCO", "127.0.0.1", 8001, free=False, pid=5))
    [device] = registry.snapshot()
    assert device.free is True
    assert device.pid == -1


def test_exists(registry):
    assert registry.exists("DISCO") is False
    registry.connect(disk())
    assert registry.exists("DISCO") is True
    assert registry.exists("TECLADO") is False


def test_acquire_marks_device_busy(registry):
    registry.connect(disk())
    taken = registry.acquire_or_enqueue("DISCO", 1, 500)
    assert taken is not None
    assert (taken.pid, taken.free, taken.queue) == (1, False, "blocked")
    assert registry.snapshot()[0].pid == 1


def test_second_request_waits_and_gets_device_on_release(registry):
    registry.connect(disk())
    registry.acquire_or_enqueue("DISCO", 1, 500)
    assert registry.acquire_or_enqueue("DISCO", 2, 300) is None
    handed = registry.release("DISCO", "127.0.0.1", 8001)
    assert handed is not None
    device, wait = handed
    assert wait == IOWait(2, 300)
    assert device.pid == 2
    assert device.free is False


def test_release_without_waiters_frees_device(registry):
    registry.connect(disk())
    registry.acquire_or_enqueue("DISCO", 1, 500)
    assert registry.release("DISCO", "127.0.0.1", 8001) is None
    [device] = registry.snapshot()
    assert (device.free, device.pid, device.queue) == (True, -1, "")


def test_release_of_free_device_does_nothing(registry):
    registry.connect(disk())
    registry.acquire_or_enqueue("OTRO", 4, 10)
    assert registry.release("DISCO", "127.0.0.1", 8001) is None
    assert registry.snapshot()[0].pid == -1


def test_waiters_served_in_fifo_order(registry):
    registry.connect(disk())
    registry.acquire_or_enqueue("DISCO", 1, 10)
    registry.acquire_or_enqueue("DISCO", 2, 20)
    registry.acquire_or_enqueue("DISCO", 3, 30)
    first = registry.release("DISCO", "127.0.0.1", 8001)
    second = registry.release("DISCO", "127.0.0.1", 8001)
    assert [first[1].pid, second[1].pid] == [2, 3]


def test_disconnect_last_device_dooms_user_and_waiters(registry):
    registry.connect(disk())
    registry.acquire_or_enqueue("DISCO", 1, 10)
    registry.acquire_or_enqueue("DISCO", 2, 20)
    assert registry.disconnect("DISCO", "127.0.0.1", 8001) == [1, 2]
    assert registry.exists("DISCO") is False


def test_disconnect_with_twin_keeps_waiters(registry):
    registry.connect(disk(8001))
    registry.connect(disk(8002))
    registry.acquire_or_enqueue("DISCO", 1, 10)
    registry.acquire_or_enqueue("DISCO", 2, 10)
    registry.acquire_or_enqueue("DISCO", 3, 10)
    assert registry.disconnect("DISCO", "127.0.0.1", 8001) == [1]
    assert [d.port for d in registry.snapshot()] == [8002]


def test_disconnect_idle_device(registry):
    registry.connect(disk())
    assert registry.disconnect("DISCO", "127.0.0.1", 8001) == []
    assert registry.snapshot() == []


def test_disconnect_unknown_device(registry):
    registry.connect(disk())
    assert registry.disconnect("DISCO", "127.0.0.1", 9999) == []
    assert len(registry.snapshot()) == 1


def test_snapshot_is_a_copy(registry):
    registry.connect(disk())
    registry.snapshot()[0].pid = 42
    assert registry.snapshot()[0].pid == -1