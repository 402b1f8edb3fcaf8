import json
from pathlib import Path

import pytest

from stageguard.cli import main
from stageguard.config import load_settings


def run(argv, capsys):
    try:
        main(argv)
        code = 0
    except SystemExit as exc:
        code = exc.code
    captured = capsys.readouterr()
    return code, captured.out, captured.err


@pytest.fixture
def config_dir(tmp_path: Path) -> Path:
    data = {
        "access": {"ip_restriction": False, "allowed_ips": "10.0.0.0/8"},
        "logging": {"level": "WARNING", "action_log": "stageguard-log.txt"},
    }
    (tmp_path / "stageguard.json").write_text(json.dumps(data))
    return tmp_path


def test_check_with_inline_list(capsys):
    code, out, _ = run(["check", "192.168.1.5", "--allow-list", "192.168.1.0/24"], capsys)
    assert code == 0
    assert out.strip() == "allowed"

    code, out, _ = run(["check", "192.168.2.5", "--allow-list", "192.168.1.0/24"], capsys)
    assert code == 1
    assert out.strip() == "denied"


def test_check_uses_configured_list(config_dir: Path, capsys):
    code, out, _ = run(["--config-dir", str(config_dir), "check", "10.2.3.4"], capsys)
    assert code == 0
    assert out.strip() == "allowed"


def test_check_config_dir_after_command(config_dir: Path, capsys):
    code, out, _ = run(["check", "--config-dir", str(config_dir), "11.2.3.4"], capsys)
    assert code == 1
    assert out.strip() == "denied"


def test_validate_reports_problems(tmp_path: Path, capsys):
    allow_file = tmp_path / "allow.txt"
    allow_file.write_text("10.0.0.1\n10.0.0.0/33\n")
    code, out, _ = run(["validate", "--allow-list-file", str(allow_file)], capsys)
    assert code == 1
    assert "line 2: 10.0.0.0/33" in out


def test_restriction_toggle_is_logged(config_dir: Path, capsys):
    code, out, _ = run(["--config-dir", str(config_dir), "restriction", "on"], capsys)
    assert code == 0
    assert load_settings(config_dir / "stageguard.json").access.ip_restriction is True

    code, out, _ = run(["--config-dir", str(config_dir), "show-log", "--lines", "1"], capsys)
    assert code == 0
    assert out.strip().endswith("IP restriction turned on")


def test_debug_mode_toggle(config_dir: Path, capsys):
    code, _, _ = run(["--config-dir", str(config_dir), "debug-mode", "off"], capsys)
    assert code == 0
    assert load_settings(config_dir / "stageguard.json").debug_mode is False


def test_allow_and_disallow(config_dir: Path, capsys):
    code, _, _ = run(["--config-dir", str(config_dir), "allow", "203.0.113.7"], capsys)
    assert code == 0
    assert load_settings(config_dir / "stageguard.json").access.allowed_ips == "10.0.0.0/8\n203.0.113.7"

    code, _, _ = run(["--config-dir", str(config_dir), "disallow", "10.0.0.0/8"], capsys)
    assert code == 0
    assert load_settings(config_dir / "stageguard.json").access.allowed_ips == "203.0.113.7"

    code, _, err = run(["--config-dir", str(config_dir), "disallow", "10.0.0.0/8"], capsys)
    assert code == 1
    assert "not in the allow list" in err


def test_show_log_missing_file(config_dir: Path, capsys):
    code, _, err = run(["--config-dir", str(config_dir), "show-log"], capsys)
    assert code == 1
    assert "Log file does not exist." in err


def test_invalid_settings_file(tmp_path: Path, capsys):
    (tmp_path / "stageguard.json").write_text("{broken")
    code, _, err = run(["--config-dir", str(tmp_path), "restriction", "on"], capsys)
    assert code == 1
    assert err.startswith("[error]")


def test_password_protection_toggle(config_dir: Path, capsys):
    code, out, _ = run(["--config-dir", str(config_dir), "password-protection", "on"], capsys)
    assert code == 0
    assert "turned on" in out
    assert load_settings(config_dir / "stageguard.json").access.password_protection is True
