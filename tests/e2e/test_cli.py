"""End-to-end tests asserting CLI commands execute successfully.

What:
  Launch the ``webmail.cli`` module through ``python -m`` and validate the
  ``init-db`` and ``reap`` commands plus the configuration failure path.

Why:
  These tests ensure the entry point wiring and configuration bootstrapping
  work when invoked the same way operators do from cron or a process manager.

How:
  Construct subprocess invocations with a controlled ``PYTHONPATH`` pointing to
  the in-repo source tree, write a configuration backed by a temporary SQLite
  file, and assert on return codes and output.

Invariants & Safety:
  - Tests run against the local source tree to avoid depending on installed
    packages.
  - Commands must succeed without requiring external network access.
"""

import json
import os
import pathlib
import sqlite3
import subprocess
import sys

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[2]


def _run_cli(*args: str) -> subprocess.CompletedProcess:
    """Execute the webmail CLI with the provided arguments."""

    cmd = [sys.executable, "-m", "webmail.cli", *args]
    env = dict(os.environ)
    env["PYTHONPATH"] = f"{PROJECT_ROOT / 'webmail' / 'src'}{os.pathsep}{env.get('PYTHONPATH', '')}"
    return subprocess.run(cmd, text=True, capture_output=True, cwd=PROJECT_ROOT, env=env)


def _write_config(tmp_path: pathlib.Path) -> pathlib.Path:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        f"""
database:
  url: "sqlite:///{tmp_path / 'webmail.db'}"
auth:
  token_secret: "cli-secret-0123456789abcdef0123456789"
"""
    )
    return config_path


def test_cli_init_db_creates_tables(tmp_path: pathlib.Path) -> None:
    config_path = _write_config(tmp_path)

    result = _run_cli("init-db", "--config", str(config_path))

    assert result.returncode == 0, result.stderr
    assert "Database initialised" in result.stdout
    with sqlite3.connect(tmp_path / "webmail.db") as connection:
        tables = {row[0] for row in connection.execute("SELECT name FROM sqlite_master WHERE type='table'")}
    assert {"accounts", "mail_credentials", "sessions"} <= tables


def test_cli_reap_prints_summary(tmp_path: pathlib.Path) -> None:
    config_path = _write_config(tmp_path)

    result = _run_cli("reap", "-c", str(config_path))

    assert result.returncode == 0, result.stderr
    summary = json.loads(result.stdout.strip().splitlines()[-1])
    assert summary == {"handles_reaped": 0, "sessions_purged": 0}


def test_cli_rejects_invalid_config(tmp_path: pathlib.Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("auth:\n  token_secret: short\n")

    result = _run_cli("init-db", "--config", str(config_path))

    assert result.returncode == 1
    assert "Configuration error" in result.stderr
