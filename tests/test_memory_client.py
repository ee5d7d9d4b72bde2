from urllib.parse import parse_qs, urlparse

import pytest
import requests
import responses

from kernsim.memory_client import MemoryClient, MemoryRequestError


@pytest.fixture
def mocked():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield rsps


def _client():
    return MemoryClient("1234", 5678)


def _base(m, path):
    return f"http://{m.ip}:{m.port}{path}"


@pytest.mark.parametrize(
    "status, body, want",
    [
        (200, '{"mensaje":"Espacio disponible en memoria","tamaño":1024}', True),
        (400, '{"mensaje":"No hay espacio disponible en memoria"}', False),
    ],
)
def test_has_space_by_status(mocked, status, body, want):
    m = _client()
    mocked.add(responses.GET, _base(m, "/kernel/espacio-disponible"), status=status, body=body)
    assert m.has_space("1024", 1) is want


def test_has_space_on_error(mocked):
    m = _client()
    mocked.add(
        responses.GET,
        _base(m, "/kernel/espacio-disponible"),
        body=requests.ConnectionError("error al consultar espacio en memoria"),
    )
    assert m.has_space("1024", 1) is False


def test_has_space_sends_query(mocked):
    m = _client()
    mocked.add(responses.GET, _base(m, "/kernel/espacio-disponible"), status=200)
    assert m.has_space("1024", 1) is True
    query = parse_qs(urlparse(mocked.calls[0].request.url).query)
    assert query == {"tamanio-proceso": ["1024"], "pid": ["1"]}


def test_load_system_memory_ignores_status(mocked):
    m = _client()
    mocked.add(responses.GET, _base(m, "/kernel/cargar-memoria-de-sistema"), status=500)
    assert m.load_system_memory("proceso1", 2) is True
    query = parse_qs(urlparse(mocked.calls[0].request.url).query)
    assert query == {"archivo": ["proceso1"], "pid": ["2"]}


def test_load_system_memory_transport_error(mocked):
    m = _client()
    mocked.add(
        responses.GET,
        _base(m, "/kernel/cargar-memoria-de-sistema"),
        body=requests.ConnectionError("caída"),
    )
    assert m.load_system_memory("proceso1", 2) is False


def test_finish_process_returns_status(mocked):
    m = _client()
    mocked.add(responses.POST, _base(m, "/kernel/fin-proceso"), status=404)
    assert m.finish_process(3) == 404
    assert "pid=3" in mocked.calls[0].request.url


def test_finish_process_transport_error(mocked):
    m = _client()
    mocked.add(
        responses.POST, _base(m, "/kernel/fin-proceso"), body=requests.ConnectionError("caída")
    )
    with pytest.raises(MemoryRequestError):
        m.finish_process(3)


def test_dump_process_success(mocked):
    m = _client()
    mocked.add(responses.GET, _base(m, "/kernel/dump-proceso"), status=200)
    m.dump_process(4)
    assert len(mocked.calls) == 1
    assert "pid=4" in mocked.calls[0].request.url


def test_dump_process_error_status(mocked):
    m = _client()
    mocked.add(responses.GET, _base(m, "/kernel/dump-proceso"), status=500)
    with pytest.raises(MemoryRequestError, match="memoria respondió con status 500"):
        m.dump_process(4)


def test_swap_process_success_and_failure(mocked):
    m = _client()
    mocked.add(responses.GET, _base(m, "/kernel/swap-proceso"), status=200)
    m.swap_process(5)
    assert "pid=5" in mocked.calls[0].request.url
    mocked.replace(
        responses.GET, _base(m, "/kernel/swap-proceso"), body=requests.ConnectionError("caída")
    )
    with pytest.raises(MemoryRequestError):
        m.swap_process(5)