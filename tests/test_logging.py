"""
Logging tests - JSON formatter output.
"""

import json
import logging

from app.core.logging import build_formatter


def test_records_are_json_with_standard_fields():
    record = logging.LogRecord(
        name="app.search", level=logging.WARNING, pathname=__file__, lineno=1,
        msg="Search index unavailable (%s)", args=("timeout",), exc_info=None,
    )
    payload = json.loads(build_formatter().format(record))
    assert payload["level"] == "WARNING"
    assert payload["logger"] == "app.search"
    assert payload["message"] == "Search index unavailable (timeout)"
    assert "timestamp" in payload
