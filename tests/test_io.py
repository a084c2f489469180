from __future__ import annotations

import json

import pytest

from itemguard.utils.io import ensure_dir, read_json_records, read_yaml, write_json, write_jsonl


def test_read_yaml_empty_file_is_empty_mapping(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    assert read_yaml(path) == {}


def test_read_yaml_rejects_non_mapping(tmp_path):
    path = tmp_path / "list.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ValueError, match="Expected a mapping"):
        read_yaml(path)


def test_write_json_creates_parents(tmp_path):
    target = tmp_path / "a" / "b" / "out.json"
    write_json(target, {"topic": "Дроби", "n": 2})
    assert json.loads(target.read_text(encoding="utf-8")) == {"topic": "Дроби", "n": 2}
    assert "Дроби" in target.read_text(encoding="utf-8")


def test_ensure_dir_is_idempotent(tmp_path):
    first = ensure_dir(tmp_path / "runs" / "x")
    assert ensure_dir(str(first)) == first
    assert first.is_dir()


def test_jsonl_and_array_inputs_read_the_same(tmp_path):
    rows = [{"type": "open_question", "question": "q1"}, {"type": "open_question", "question": "q2"}]
    jsonl = tmp_path / "items.jsonl"
    assert write_jsonl(jsonl, rows) == 2
    with jsonl.open("a", encoding="utf-8") as f:
        f.write("\n")
    array = tmp_path / "items.json"
    array.write_text(json.dumps(rows), encoding="utf-8")

    assert read_json_records(jsonl) == rows
    assert read_json_records(array) == rows
