from __future__ import annotations

import json
from datetime import datetime

import pytest

from sales_import.models.error_record import FILE_LEVEL_ROW, ErrorRecord


def test_create_sets_utc_timestamp():
    rec = ErrorRecord.create(file="sales.xlsx", row=3, error_type="VALIDATION_ERROR", message="bad")

    assert rec.timestamp.endswith("Z")
    datetime.fromisoformat(rec.timestamp.replace("Z", "+00:00"))


def test_to_json_line_has_fixed_keys():
    rec = ErrorRecord.create(file="売上.xlsx", row=FILE_LEVEL_ROW, error_type="SCHEMA_ERROR", message="Missing required columns: quantity")

    line = rec.to_json_line()
    data = json.loads(line)

    assert set(data) == {"timestamp", "file", "row", "error_type", "message"}
    assert data["row"] == -1
    # ensure_ascii=False
    assert "売上.xlsx" in line


def test_error_record_is_frozen():
    rec = ErrorRecord.create(file="f", row=2, error_type="INSERT_FAILED", message="m")
    with pytest.raises(AttributeError):
        rec.row = 5  # type: ignore[misc]
