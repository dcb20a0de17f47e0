#!/usr/bin/env python3
"""
End-to-end migration tests: controller, manifest and CLI, with a fake fetcher.
"""

import csv
import logging
import sys
import threading
from pathlib import Path

import pytest

# Add the src directory to the path
src_path = Path(__file__).parent / "src"
sys.path.insert(0, str(src_path))

from imgmigrate import cli
from imgmigrate.core import controller as controller_module
from imgmigrate.core.controller import MigrationConfig, MigrationController
from imgmigrate.core.errors import DatasetReadError, DatasetWriteError, FetchHttpError
from imgmigrate.core.store import local_identity
from imgmigrate.utils.manifest import Manifest


HEADER = ["id", "title", "body_html", "body_markdown", "main_image"]
ROWS = [
    {
        "id": "101",
        "title": "First, with a comma",
        "body_html": '<p>Hi</p><img src="http://x/a.png"><img src="http://x/gone.png">',
        "body_markdown": "![a](http://x/a.png)\n![b(http://x/b.png)",
        "main_image": "http://x/cover.jpg",
    },
    {
        "id": "102",
        "title": 'Second "quoted"',
        "body_html": '<img src="http://x/a.png">',
        "body_markdown": "no images here",
        "main_image": "",
    },
]


class FakeFetcher:
    def __init__(self, failures=None):
        self.failures = failures or {}
        self.calls = []
        self._lock = threading.Lock()

    def fetch(self, reference, timeout=None):
        with self._lock:
            self.calls.append(reference)
        if reference in self.failures:
            raise self.failures[reference]
        return b"img:" + reference.encode()


def write_input(path, rows=ROWS):
    with open(path, "w", encoding="utf-8", newline="") as handle:
        writer = csv.DictWriter(handle, fieldnames=HEADER)
        writer.writeheader()
        writer.writerows(rows)


def read_output(path):
    with open(path, encoding="utf-8", newline="") as handle:
        reader = csv.DictReader(handle)
        return reader.fieldnames, list(reader)


def make_config(tmp_path, **overrides):
    config = MigrationConfig(
        input_path=str(tmp_path / "data" / "articles.csv"),
        output_path=str(tmp_path / "data" / "articles_local.csv"),
        storage_root=str(tmp_path / "public" / "images"),
        concurrency=4,
    )
    for key, value in overrides.items():
        setattr(config, key, value)
    return config


def failing_fetcher():
    return FakeFetcher(failures={"http://x/gone.png": FetchHttpError("http://x/gone.png", 404)})


@pytest.fixture
def input_csv(tmp_path):
    (tmp_path / "data").mkdir()
    path = tmp_path / "data" / "articles.csv"
    write_input(path)
    return path


def test_full_migration(tmp_path, input_csv):
    config = make_config(tmp_path)
    fetcher = failing_fetcher()

    stats = MigrationController(config, fetcher=fetcher).run()

    a_path = "/images/" + local_identity("http://x/a.png")
    header, rows = read_output(config.output_path)
    assert header == HEADER
    assert [r["id"] for r in rows] == ["101", "102"]
    assert rows[0]["title"] == "First, with a comma"
    assert rows[1]["title"] == 'Second "quoted"'
    assert rows[0]["body_html"] == f'<p>Hi</p><img src="{a_path}"><img src="http://x/gone.png">'
    assert rows[0]["body_markdown"] == (
        f"![a]({a_path})\n![b(/images/{local_identity('http://x/b.png')})"
    )
    assert rows[0]["main_image"] == "/images/" + local_identity("http://x/cover.jpg")
    assert rows[1]["body_html"] == f'<img src="{a_path}">'
    assert rows[1]["main_image"] == ""

    assert sorted(fetcher.calls) == sorted(["http://x/a.png", "http://x/gone.png", "http://x/b.png", "http://x/cover.jpg"])
    assert stats["records"] == 2
    assert stats["unique_references"] == 4
    assert stats["fetched"] == 3
    assert stats["failed"] == 1
    assert stats["already_present"] == 0
    assert stats["storage_files"] == 3
    assert (Path(config.storage_root) / local_identity("http://x/a.png")).read_bytes() == b"img:http://x/a.png"


def test_input_dataset_is_preserved(tmp_path, input_csv):
    before = input_csv.read_bytes()
    MigrationController(make_config(tmp_path), fetcher=FakeFetcher()).run()
    assert input_csv.read_bytes() == before


def test_second_run_is_idempotent(tmp_path, input_csv):
    config = make_config(tmp_path, use_manifest=False)
    MigrationController(config, fetcher=FakeFetcher()).run()
    first_output = Path(config.output_path).read_bytes()

    second_fetcher = FakeFetcher()
    stats = MigrationController(config, fetcher=second_fetcher).run()

    assert second_fetcher.calls == []
    assert stats["already_present"] == 4
    assert stats["fetched"] == 0
    assert Path(config.output_path).read_bytes() == first_output


def test_resume_only_fetches_missing_assets(tmp_path, input_csv):
    config = make_config(tmp_path)
    MigrationController(config, fetcher=failing_fetcher()).run()

    retry_fetcher = FakeFetcher()
    stats = MigrationController(config, fetcher=retry_fetcher).run()

    assert retry_fetcher.calls == ["http://x/gone.png"]
    assert stats["fetched"] == 1
    _, rows = read_output(config.output_path)
    assert "http://x/gone.png" not in rows[0]["body_html"]


def test_prepopulated_asset_is_not_fetched(tmp_path, input_csv):
    config = make_config(tmp_path)
    storage = Path(config.storage_root)
    storage.mkdir(parents=True)
    (storage / local_identity("http://x/a.png")).write_bytes(b"cached")
    fetcher = FakeFetcher()

    MigrationController(config, fetcher=fetcher).run()

    assert "http://x/a.png" not in fetcher.calls
    _, rows = read_output(config.output_path)
    assert rows[1]["body_html"] == '<img src="/images/' + local_identity("http://x/a.png") + '">'


def test_manifest_records_outcomes(tmp_path, input_csv):
    config = make_config(tmp_path)
    MigrationController(config, fetcher=failing_fetcher()).run()

    manifest = Manifest(config.resolved_manifest_path())
    assert Path(manifest.path).parent == Path(config.output_path).parent
    assert manifest.get_failed_set() == {"http://x/gone.png"}
    assert len(manifest.latest_status()) == 4


def test_unwritable_manifest_still_writes_output(tmp_path, input_csv):
    manifest_dir = tmp_path / "manifest_is_a_dir"
    manifest_dir.mkdir()
    config = make_config(tmp_path, manifest_path=str(manifest_dir))

    controller = MigrationController(config, fetcher=FakeFetcher())
    stats = controller.run()

    assert stats["fetched"] == 4
    assert Path(config.output_path).exists()
    assert {e["context"] for e in controller.errors.errors} == {"manifest_error"}


def test_missing_input_aborts_without_output(tmp_path):
    config = make_config(tmp_path)
    fetcher = FakeFetcher()
    with pytest.raises(DatasetReadError):
        MigrationController(config, fetcher=fetcher).run()
    assert not Path(config.output_path).exists()
    assert fetcher.calls == []


def test_output_may_not_overwrite_input(tmp_path, input_csv):
    config = make_config(tmp_path, output_path=str(input_csv))
    with pytest.raises(DatasetWriteError):
        MigrationController(config, fetcher=FakeFetcher()).run()


def test_unwritable_output_leaves_no_partial_file(tmp_path, input_csv):
    config = make_config(tmp_path)
    Path(config.output_path).mkdir()
    with pytest.raises(DatasetWriteError):
        MigrationController(config, fetcher=FakeFetcher()).run()
    assert Path(config.output_path).is_dir()
    assert not list(Path(config.output_path).parent.glob("*.tmp"))


@pytest.fixture
def reset_app_logger():
    yield
    app_logger = logging.getLogger("imgmigrate")
    for handler in list(app_logger.handlers):
        app_logger.removeHandler(handler)
        handler.close()


def test_cli_success(tmp_path, input_csv, monkeypatch, reset_app_logger):
    fetcher = failing_fetcher()
    monkeypatch.setattr(controller_module, "AssetFetcher", lambda **kwargs: fetcher)
    output = tmp_path / "data" / "out.csv"
    log_dir = tmp_path / "logs"

    code = cli.main([
        "--input", str(input_csv),
        "--output", str(output),
        "--storage-root", str(tmp_path / "site" / "img"),
        "--concurrency", "2",
        "--log-dir", str(log_dir),
        "--no-manifest",
    ])

    assert code == 0
    _, rows = read_output(output)
    assert rows[0]["main_image"] == "/img/" + local_identity("http://x/cover.jpg")
    assert (log_dir / "imgmigrate.log").exists()
    assert list(log_dir.glob("migration_errors_*.txt"))
    assert not (tmp_path / "data" / "migration_manifest.jsonl").exists()


def test_cli_missing_input_exits_nonzero(tmp_path, reset_app_logger):
    output = tmp_path / "out.csv"
    code = cli.main([
        "--input", str(tmp_path / "missing.csv"),
        "--output", str(output),
        "--storage-root", str(tmp_path / "images"),
        "--log-dir", str(tmp_path / "logs"),
    ])
    assert code == 1
    assert not output.exists()


def test_cli_rejects_bad_concurrency(tmp_path):
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--concurrency", "0", "--log-dir", str(tmp_path / "logs")])
    assert excinfo.value.code == 2

