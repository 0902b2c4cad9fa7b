"""
Tests for the command line interface.
"""

import json
import sys

import pytest

from entitypicker import __version__
from entitypicker.app import main


def run_cli(monkeypatch, *args):
    monkeypatch.setattr(sys, "argv", ["entitypicker", *args])
    main()


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("ENTITYPICKER_CATALOG_URL", raising=False)


@pytest.fixture
def record_file(tmp_path, jane):
    path = tmp_path / "jane.json"
    path.write_text(json.dumps(jane))
    return path


class TestCli:

    def test_version(self, monkeypatch, capsys):
        run_cli(monkeypatch, "--version")
        assert capsys.readouterr().out.strip() == __version__

    def test_render(self, monkeypatch, capsys, record_file):
        run_cli(monkeypatch, "render", "--input", str(record_file),
                "--template", "{{ metadata.title }} ({{ spec.profile.email }})")
        assert capsys.readouterr().out.strip() == "Jane Doe (jane@x.com)"

    def test_encode(self, monkeypatch, capsys, record_file):
        run_cli(monkeypatch, "encode", "--input", str(record_file),
                "--template", "{{ metadata.title }} ({{ spec.profile.email }})")
        assert capsys.readouterr().out.strip() == "Jane Doe (jane@x.com)|||user:default/jdoe"

    def test_resolve_from_snapshot(self, monkeypatch, capsys, snapshot_file):
        run_cli(monkeypatch, "resolve", "--display", "John Smith|||jsmith", "--kind", "User",
                "--fragment", "name", "--catalog", str(snapshot_file))
        outcome = json.loads(capsys.readouterr().out)
        assert outcome["identifier"] == "user:default/jsmith"
        assert outcome["resolution"] == "exact"
        assert "entity" not in outcome

    def test_resolve_without_kind_fails(self, monkeypatch, snapshot_file):
        with pytest.raises(SystemExit) as exc:
            run_cli(monkeypatch, "resolve", "--display", "John Smith|||jsmith", "--catalog", str(snapshot_file))
        assert "kind" in str(exc.value)

    def test_resolve_without_catalog_fails(self, monkeypatch):
        with pytest.raises(SystemExit):
            run_cli(monkeypatch, "resolve", "--display", "x|||y", "--kind", "User")

    def test_validate(self, monkeypatch, capsys, tmp_path):
        good = tmp_path / "good.json"
        good.write_text(json.dumps({"catalogFilter": {"kind": "User"}, "allowArbitraryValues": False}))
        run_cli(monkeypatch, "validate", "--input", str(good))
        assert capsys.readouterr().out.strip() == "Valid"

        bad = tmp_path / "bad.json"
        bad.write_text(json.dumps({"identityFragment": "uid"}))
        with pytest.raises(SystemExit) as exc:
            run_cli(monkeypatch, "validate", "--input", str(bad))
        assert exc.value.code == 2

    def test_import_then_resolve_from_db(self, monkeypatch, capsys, tmp_path, snapshot_file):
        db_path = tmp_path / "data" / "catalog.db"
        run_cli(monkeypatch, "import", "--input", str(snapshot_file), "--db", str(db_path))
        assert "new=6" in capsys.readouterr().out

        run_cli(monkeypatch, "resolve", "--display", "Platform Team|||group:default/platform",
                "--kind", "Group", "--db", str(db_path), "--with-entity")
        outcome = json.loads(capsys.readouterr().out)
        assert outcome["identifier"] == "group:default/platform"
        assert outcome["entity"]["spec"]["type"] == "team"

    def test_list(self, monkeypatch, capsys, snapshot_file):
        run_cli(monkeypatch, "list", "--kind", "Group", "--catalog", str(snapshot_file))
        out = capsys.readouterr().out
        assert "group:finance/payments" in out
        assert "Label: Platform Team" in out
        assert "user:" not in out
