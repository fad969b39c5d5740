"""
Tests for the command-line interface.
"""

from pathlib import Path

import bcrypt
import pytest
import yaml
from typer.testing import CliRunner

from burrow.main import cli


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "burrow.yaml"
    path.write_text(yaml.safe_dump({
        "server": {"port": 2022},
        "auth": {"password_file": str(tmp_path / "burrow.passwd"), "bcrypt_rounds": 4},
    }))
    return path


class TestCli:
    """Test cases for the burrow CLI."""

    def test_init_config(self, runner: CliRunner, tmp_path: Path) -> None:
        output = tmp_path / "generated.yaml"

        result = runner.invoke(cli, ["init-config", "--output", str(output)])

        assert result.exit_code == 0
        data = yaml.safe_load(output.read_text())
        assert data["server"]["port"] == 2222
        assert data["auth"]["backend"] == "local"

    def test_init_config_json(self, runner: CliRunner, tmp_path: Path) -> None:
        output = tmp_path / "generated.json"

        result = runner.invoke(cli, ["init-config", "--output", str(output), "--format", "json"])

        assert result.exit_code == 0
        assert output.read_text().startswith("{")

    def test_init_config_bad_format(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(cli, ["init-config", "--output", str(tmp_path / "x"), "--format", "xml"])

        assert result.exit_code == 1

    def test_validate_config(self, runner: CliRunner, config_file: Path) -> None:
        result = runner.invoke(cli, ["validate-config", str(config_file)])

        assert result.exit_code == 0
        assert "is valid" in result.output
        assert "0.0.0.0:2022" in result.output
        assert "Auth backend: local" in result.output

    def test_validate_invalid_config(self, runner: CliRunner, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text(yaml.safe_dump({"server": {"port": -1}}))

        result = runner.invoke(cli, ["validate-config", str(path)])

        assert result.exit_code == 1

    def test_validate_missing_config(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(cli, ["validate-config", str(tmp_path / "missing.yaml")])

        assert result.exit_code == 1

    def test_passwd(self, runner: CliRunner, config_file: Path, tmp_path: Path) -> None:
        result = runner.invoke(cli, ["passwd", "alice", "--config", str(config_file)],
                               input="hunter2\nhunter2\n")

        assert result.exit_code == 0
        lines = (tmp_path / "burrow.passwd").read_text().splitlines()
        assert lines[0] == "#username:salt:authCookie"
        username, _, hashed = lines[1].split(":")
        assert username == "alice"
        assert bcrypt.checkpw(b"hunter2", hashed.encode())

    def test_passwd_rejects_bad_username(self, runner: CliRunner, config_file: Path,
                                         tmp_path: Path) -> None:
        result = runner.invoke(cli, ["passwd", "bad:name", "--config", str(config_file)],
                               input="hunter2\nhunter2\n")

        assert result.exit_code == 1
        assert not (tmp_path / "burrow.passwd").exists()

    def test_start_with_missing_config(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(cli, ["start", "--config", str(tmp_path / "missing.yaml")])

        assert result.exit_code == 1
