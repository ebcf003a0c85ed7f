from utils.record import read_field, read_optional_float, read_text


class RowLike:
    def __init__(self, data):
        self._data = data

    def __getitem__(self, key):
        return self._data[key]


def test_read_field_with_dict():
    record = {"status": "reading"}

    assert read_field(record, "status") == "reading"
    assert read_field(record, "missing") is None
    assert read_field(record, "missing", "default") == "default"


def test_read_field_with_row_like():
    row = RowLike({"latest_known_chapter": 12.5})

    assert read_field(row, "latest_known_chapter") == 12.5
    assert read_field(row, "missing") is None
    assert read_field(row, "missing", "default") == "default"


def test_read_field_handles_none():
    assert read_field(None, "anything") is None
    assert read_field(None, "anything", "default") == "default"


def test_read_optional_float_coerces_numeric_columns():
    row = {"a": 10, "b": "11.5", "c": None, "d": "n/a", "e": float("nan")}

    assert read_optional_float(row, "a") == 10.0
    assert read_optional_float(row, "b") == 11.5
    assert read_optional_float(row, "c") is None
    assert read_optional_float(row, "d") is None
    assert read_optional_float(row, "e") is None
    assert read_optional_float(row, "missing") is None


def test_read_text_strips_and_defaults():
    row = {"title": "  Solo Leveling ", "source_item_id": None}

    assert read_text(row, "title") == "Solo Leveling"
    assert read_text(row, "source_item_id") == ""
    assert read_text(row, "source_item_id", "n/a") == "n/a"
