import json
import logging

import pytest

from kernsim.logsetup import JsonFormatter, build_logger, level_by_name


@pytest.fixture
def built_logger(tmp_path):
    created = []

    def make(level):
        logger = build_logger(level, tmp_path)
        created.append(logger)
        return logger

    yield make
    for logger in created:
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()


@pytest.mark.parametrize(
    "name, expected",
    [
        ("debug", logging.DEBUG),
        ("DEBUG", logging.DEBUG),
        ("info", logging.INFO),
        ("warn", logging.WARNING),
        ("Error", logging.ERROR),
        ("otro", logging.INFO),
        ("", logging.INFO),
    ],
)
def test_level_by_name(name, expected):
    assert level_by_name(name) == expected


def test_formatter_renders_json_with_attrs():
    record = logging.LogRecord("x", logging.WARNING, __file__, 1, "hola %s", ("mundo",), None)
    record.attrs = {"pid": 4, "cola": "ready"}
    entry = json.loads(JsonFormatter().format(record))
    assert entry["msg"] == "hola mundo"
    assert entry["level"] == "WARN"
    assert entry["pid"] == 4
    assert entry["cola"] == "ready"
    assert "time" in entry


def test_formatter_without_attrs():
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "solo", (), None)
    entry = json.loads(JsonFormatter().format(record))
    assert set(entry) == {"time", "level", "msg"}


def test_build_logger_writes_file(tmp_path, built_logger, capsys):
    logger = built_logger("info")
    logger.info("## (1) Se crea el proceso - Estado: NEW", extra={"attrs": {"pid": 1}})
    logger.debug("oculto")
    files = list(tmp_path.glob("tp-*.log"))
    assert len(files) == 1
    lines = files[0].read_text(encoding="utf-8").splitlines()
    assert len(lines) == 1
    entry = json.loads(lines[0])
    assert entry["msg"] == "## (1) Se crea el proceso - Estado: NEW"
    assert entry["pid"] == 1
    assert "Se crea el proceso" in capsys.readouterr().out


def test_build_logger_sets_level(built_logger):
    logger = built_logger("error")
    assert logger.level == logging.ERROR
    assert len(logger.handlers) == 2


def test_rebuilding_does_not_duplicate_handlers(built_logger):
    built_logger("debug")
    logger = built_logger("debug")
    assert len(logger.handlers) == 2