"""
Tests for the command-line interface, run against JSON data files.
"""

import json
import sys

import pytest

from schemabridge import cli


@pytest.fixture
def data_file(tmp_path, legacy_products, orders, lookup_data):
    path = tmp_path / "data.json"
    path.write_text(json.dumps({"products": legacy_products, "orders": orders, **lookup_data}))
    return path


def run_cli(monkeypatch, *argv):
    monkeypatch.setattr(sys, "argv", ["schemabridge", *argv])
    with pytest.raises(SystemExit) as exc:
        cli.main()
    return exc.value.code


class TestCLI:
    def test_run(self, monkeypatch, tmp_path, data_file, capsys):
        output = tmp_path / "out.json"

        code = run_cli(
            monkeypatch,
            "--data", str(data_file), "--output-data", str(output),
            "run", "--entity", "products", "--batch-size", "2",
        )

        assert code == 0
        assert "MIGRATION COMPLETE" in capsys.readouterr().out
        products = {r["id"]: r for r in json.loads(output.read_text())["products"]}
        assert products["p1"]["title"] == "Ring"
        assert products["p1"]["brandId"] == "b1"

    def test_dry_run(self, monkeypatch, data_file, capsys):
        code = run_cli(monkeypatch, "--data", str(data_file), "dry-run", "--entity", "products", "--limit", "1")

        assert code == 0
        preview = json.loads(capsys.readouterr().out)
        assert preview["summary"]["total"] == 3

    def test_backup_verify_restore(self, monkeypatch, tmp_path, data_file):
        backup = tmp_path / "orders-backup.json"

        assert run_cli(monkeypatch, "--data", str(data_file), "backup", "--entity", "orders", "--output", str(backup)) == 0
        assert json.loads(backup.read_text())["metadata"]["recordCount"] == 3

        assert run_cli(monkeypatch, "--data", str(data_file), "verify-backup", "--backup-file", str(backup)) == 0

        changed = json.loads(data_file.read_text())
        changed["orders"] = changed["orders"][:1]
        data_file.write_text(json.dumps(changed))
        output = tmp_path / "restored.json"

        assert run_cli(monkeypatch, "--data", str(data_file), "verify-backup", "--backup-file", str(backup)) == 1
        assert run_cli(
            monkeypatch,
            "--data", str(data_file), "--output-data", str(output),
            "restore", "--backup-file", str(backup),
        ) == 0
        assert len(json.loads(output.read_text())["orders"]) == 3

    def test_can_disable_before_migration(self, monkeypatch, data_file, capsys):
        code = run_cli(monkeypatch, "--data", str(data_file), "can-disable", "--entity", "products")

        assert code == 1
        assert json.loads(capsys.readouterr().out)["canDisable"] is False

    def test_status_kept_between_runs(self, monkeypatch, tmp_path, data_file, capsys):
        migrated = tmp_path / "migrated.json"
        statuses = tmp_path / "statuses.json"

        assert run_cli(
            monkeypatch,
            "--data", str(data_file), "--output-data", str(migrated), "--status-file", str(statuses),
            "run", "--entity", "products",
        ) == 0
        capsys.readouterr()

        code = run_cli(
            monkeypatch,
            "--data", str(migrated), "--status-file", str(statuses),
            "can-disable", "--entity", "products",
        )

        assert code == 0
        assert json.loads(capsys.readouterr().out)["canDisable"] is True

        assert run_cli(monkeypatch, "--data", str(migrated), "--status-file", str(statuses), "status") == 0
        statistics = json.loads(capsys.readouterr().out)["statistics"]
        assert statistics["completedMigrations"] == 1

    def test_invalid_backup_exits_with_error(self, monkeypatch, data_file):
        code = run_cli(monkeypatch, "--data", str(data_file), "backup", "--entity", "products", "--output", "x.json", "--validate")
        assert code == 1
