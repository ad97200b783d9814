"""Tests for the command-line interface."""

import uuid

import pytest
from click.testing import CliRunner

from product_catalog.cli import cli

from conftest import make_product, write_products


@pytest.fixture
def runner(monkeypatch, app_context):
    """CliRunner whose commands use the temporary store."""
    monkeypatch.setattr("product_catalog.cli._build_context", lambda: app_context)
    return CliRunner()


class TestCli:
    """Tests for CLI commands."""

    def test_list(self, runner, seeded_store):
        result = runner.invoke(cli, ["list", "--sort-by", "name", "--sort-order", "asc"])

        assert result.exit_code == 0
        assert result.output.index("Desk Lamp") < result.output.index("Wireless Mouse")
        assert "3 of 3 product(s)" in result.output

    def test_stats(self, runner, seeded_store):
        result = runner.invoke(cli, ["stats"])

        assert result.exit_code == 0
        assert "Total products: 3" in result.output
        assert "Wireless Mouse: 5" in result.output

    def test_show(self, runner, seeded_store, sample_products):
        result = runner.invoke(cli, ["show", sample_products[1].id])

        assert result.exit_code == 0
        assert "Espresso Cups" in result.output
        assert "Set of porcelain cups" in result.output

    def test_show_missing_product(self, runner, seeded_store):
        result = runner.invoke(cli, ["show", str(uuid.uuid4())])

        assert result.exit_code == 1
        assert "NOT_FOUND" in result.output

    def test_adjust_stock(self, runner, seeded_store, sample_products):
        result = runner.invoke(
            cli, ["adjust-stock", sample_products[1].id, "5", "--operation", "subtract"]
        )

        assert result.exit_code == 0
        assert "Stock:       45" in result.output

    def test_adjust_stock_below_zero(self, runner, seeded_store, sample_products):
        result = runner.invoke(
            cli, ["adjust-stock", sample_products[0].id, "6", "--operation", "subtract"]
        )

        assert result.exit_code == 1
        assert "DOMAIN_ERROR" in result.output

    def test_restore_backup(self, runner, data_path, backup_path):
        data_path.parent.mkdir(parents=True, exist_ok=True)
        write_products(data_path, [make_product("Current")])
        write_products(backup_path, [make_product("Previous"), make_product("Older")])

        result = runner.invoke(cli, ["restore-backup", "--yes"])

        assert result.exit_code == 0
        assert "Restored 2 product(s)" in result.output

    def test_restore_backup_without_backup(self, runner, store):
        result = runner.invoke(cli, ["restore-backup", "--yes"])

        assert result.exit_code == 1
        assert "STORAGE_ERROR" in result.output
