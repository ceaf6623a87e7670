import io
import logging

import orjson

from solfinder.logging_utils import HANDLER_NAME, JsonFormatter, configure_logging, warn_throttled


def test_json_formatter_nests_extra_context():
    record = logging.makeLogRecord(
        {"name": "solfinder.search", "levelno": logging.INFO, "levelname": "INFO", "msg": "Search %s", "args": ("done",)}
    )
    record.query = "bonk"
    entry = orjson.loads(JsonFormatter().format(record))
    assert entry["message"] == "Search done"
    assert entry["level"] == "INFO"
    assert entry["context"] == {"query": "bonk"}
    assert entry["time"].endswith("Z")


def test_configure_logging_reuses_its_handler():
    stream = io.StringIO()
    first = configure_logging(logging.DEBUG, stream=stream)
    second = configure_logging(logging.INFO, json_format=True)
    assert first is second
    assert [h for h in logging.getLogger().handlers if h.get_name() == HANDLER_NAME] == [first]
    assert isinstance(second.formatter, JsonFormatter)
    assert logging.getLogger("aiohttp").level == logging.WARNING

    logging.getLogger("solfinder.test").info("hello", extra={"mint": "abc"})
    line = orjson.loads(stream.getvalue().strip().splitlines()[-1])
    assert line["context"]["mint"] == "abc"


def test_warn_throttled(caplog):
    logger = logging.getLogger("solfinder.test")
    with caplog.at_level(logging.WARNING):
        assert warn_throttled(logger, "key", "first %d", 1)
        assert not warn_throttled(logger, "key", "second")
        assert warn_throttled(logger, "other", "third")
        assert warn_throttled(logger, "key", "fourth", interval=0)
    assert [r.getMessage() for r in caplog.records] == ["first 1", "third", "fourth"]
