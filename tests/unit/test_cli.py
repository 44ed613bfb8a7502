"""Unit tests for the command-line interface."""

import json

import pytest
import yaml

from src.cli import build_filters, main, parse_args
from src.domain.entities.listing import ScraperFilters
from src.infrastructure.security.crypto import SecretCipher
from src.utils.config import reset_config


@pytest.fixture
def cli_config(tmp_path, monkeypatch):
    """Config file pointing at a throwaway database, plus an encryption key."""
    config_path = tmp_path / "config.yaml"
    config_path.write_text(yaml.safe_dump({
        "database": {"url": f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"},
        "log_level": "WARNING",
    }))
    monkeypatch.setenv("DEALFLOW_ENCRYPTION_KEY", SecretCipher.generate_key())
    reset_config()
    yield config_path
    reset_config()


class TestParseArgs:
    """Test command-line parsing."""

    def test_scrape_arguments(self):
        args = parse_args(["scrape", "--platform", "bizbuysell", "--state", "CO", "--min-price", "500000"])

        assert args.command == "scrape"
        assert args.platform == "bizbuysell"
        assert args.min_price == 500000.0
        assert args.max_price is None

    def test_sync_defaults_to_all_accounts(self):
        args = parse_args(["sync"])
        assert args.account_id is None

    def test_cookie_import_requires_file(self):
        with pytest.raises(SystemExit):
            parse_args(["cookies", "import", "--platform", "DEALSTREAM"])

    def test_command_required(self):
        with pytest.raises(SystemExit):
            parse_args([])


class TestBuildFilters:
    def test_overrides_only_given_values(self):
        args = parse_args(["scrape", "--city", "Denver", "--keyword", "electrical"])
        defaults = ScraperFilters(state="CO", min_price=250000.0)

        filters = build_filters(args, defaults)

        assert filters.state == "CO"
        assert filters.city == "Denver"
        assert filters.keyword == "electrical"
        assert filters.min_price == 250000.0


class TestMain:
    """Test commands end to end against a temporary database."""

    def test_init_db(self, cli_config, capsys):
        assert main(["--config", str(cli_config), "init-db"]) == 0
        assert "Database ready" in capsys.readouterr().out

    def test_cookie_import_then_status(self, cli_config, tmp_path, capsys):
        cookie_file = tmp_path / "cookies.json"
        cookie_file.write_text(json.dumps([{"name": "sid", "value": "abc"}]))

        assert main([
            "--config", str(cli_config), "cookies", "import", "--platform", "dealstream", "--file", str(cookie_file),
        ]) == 0
        assert main(["--config", str(cli_config), "cookies", "status"]) == 0

        out = capsys.readouterr().out
        assert "Stored 1 cookies for DEALSTREAM" in out
        lines = {line.split()[0]: line for line in out.splitlines() if line and line.split()[0].isupper()}
        assert "valid" in lines["DEALSTREAM"].split()
        assert "none" in lines["LOOPNET"].split()

    def test_cookie_file_must_be_a_list(self, cli_config, tmp_path):
        cookie_file = tmp_path / "cookies.json"
        cookie_file.write_text(json.dumps({"name": "sid"}))

        assert main([
            "--config", str(cli_config), "cookies", "import", "--platform", "DEALSTREAM", "--file", str(cookie_file),
        ]) == 1

    def test_unknown_platform_fails(self, cli_config, capsys):
        assert main(["--config", str(cli_config), "cookies", "invalidate", "--platform", "craigslist"]) == 1
        assert "Invalid platform" in capsys.readouterr().out

    def test_missing_encryption_key(self, cli_config, monkeypatch):
        monkeypatch.delenv("DEALFLOW_ENCRYPTION_KEY")
        assert main(["--config", str(cli_config), "init-db"]) == 1
