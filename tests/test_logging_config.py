import json
import logging

from hn_thread.logging_config import configure_logging, get_logger


def test_json_logs_to_stderr(capsys):
    configure_logging("INFO", json_logs=True)

    get_logger("hn_thread.test").warning("fetch.requeue", item_id=42)
    line = capsys.readouterr().err.strip().splitlines()[-1]
    event = json.loads(line)

    assert event["event"] == "fetch.requeue"
    assert event["item_id"] == 42
    assert event["level"] == "warning"


def test_http_client_logs_quieted():
    configure_logging("DEBUG")
    assert logging.getLogger("httpx").level == logging.WARNING

    configure_logging("ERROR")
    assert logging.getLogger("httpx").level == logging.ERROR
