#!/usr/bin/env python3
"""
Tests for CSV dataset reading and atomic writing.
"""

import sys
from pathlib import Path

import pytest

# Add the src directory to the path
src_path = Path(__file__).parent / "src"
sys.path.insert(0, str(src_path))

from imgmigrate.core.dataset import Dataset, read_dataset, render_dataset, write_dataset
from imgmigrate.core.errors import DatasetReadError, DatasetWriteError
from imgmigrate.core.models import Record


def test_quoting_round_trip(tmp_path):
    tricky = 'He said "hi", then\nleft'
    dataset = Dataset(fieldnames=["id", "title", "body_markdown"], records=[
        Record(key="7", fields={"id": "7", "title": "plain", "body_markdown": tricky}),
        Record(key="8", fields={"id": "8", "title": "a,b", "body_markdown": ""}),
    ])
    path = tmp_path / "out.csv"

    write_dataset(path, dataset)
    loaded = read_dataset(path)

    assert loaded.fieldnames == ["id", "title", "body_markdown"]
    assert [r.fields for r in loaded.records] == [r.fields for r in dataset.records]
    assert [r.key for r in loaded.records] == ["7", "8"]


def test_render_uses_doubled_quotes_and_minimal_quoting():
    dataset = Dataset(fieldnames=["id", "body"], records=[
        Record(key="1", fields={"id": "1", "body": 'say "x"'}),
        Record(key="2", fields={"id": "2", "body": "simple"}),
    ])
    assert render_dataset(dataset) == 'id,body\n1,"say ""x"""\n2,simple\n'


def test_key_falls_back_to_row_number(tmp_path):
    path = tmp_path / "in.csv"
    path.write_text("title,main_image\nfirst,http://x/a.png\nsecond,\n", encoding="utf-8")
    loaded = read_dataset(path)
    assert [r.key for r in loaded.records] == ["1", "2"]
    assert loaded.records[1].fields == {"title": "second", "main_image": ""}


def test_large_fields_load(tmp_path):
    body = "x" * 300_000
    path = tmp_path / "in.csv"
    path.write_text(f'id,body_html\n1,"{body}"\n', encoding="utf-8")
    assert read_dataset(path).records[0].fields["body_html"] == body


def test_missing_input_is_read_error(tmp_path):
    with pytest.raises(DatasetReadError) as excinfo:
        read_dataset(tmp_path / "nope.csv")
    assert "read" in str(excinfo.value)


def test_empty_file_is_read_error(tmp_path):
    path = tmp_path / "empty.csv"
    path.write_text("", encoding="utf-8")
    with pytest.raises(DatasetReadError):
        read_dataset(path)


def test_header_only_dataset(tmp_path):
    path = tmp_path / "in.csv"
    path.write_text("id,body_html\n", encoding="utf-8")
    loaded = read_dataset(path)
    assert loaded.fieldnames == ["id", "body_html"]
    assert len(loaded) == 0
    assert render_dataset(loaded) == "id,body_html\n"


def test_failed_write_leaves_nothing_behind(tmp_path):
    target = tmp_path / "out.csv"
    target.mkdir()
    dataset = Dataset(fieldnames=["id"], records=[Record(key="1", fields={"id": "1"})])

    with pytest.raises(DatasetWriteError):
        write_dataset(target, dataset)

    assert target.is_dir()
    assert [p.name for p in tmp_path.iterdir()] == ["out.csv"]


if __name__ == "__main__":
    test_render_uses_doubled_quotes_and_minimal_quoting()
    print("✓ dataset tests passed")
