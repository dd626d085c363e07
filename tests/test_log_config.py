import json
import logging
import sys

from utils.log_config import JsonFormatter


def test_json_formatter_escapes_quotes_and_tracebacks():
    try:
        raise ValueError('bad "value"')
    except ValueError:
        record = logging.LogRecord(
            "services.reservation", logging.ERROR, __file__, 1, 'Booking "%s" failed', ("x",), None,
        )
        record.exc_info = sys.exc_info()

    line = JsonFormatter().format(record)

    assert "\n" not in line
    entry = json.loads(line)
    assert entry["message"] == 'Booking "x" failed'
    assert entry["level"] == "ERROR"
    assert 'ValueError: bad "value"' in entry["exc_info"]
