"""Console entry point for stageguard."""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import NoReturn, Optional, Sequence

from .config import ConfigError, Settings, SettingsManager, resolve_settings_path
from .ipacl import is_allowed, is_valid_address, validate_allow_list
from .log import ActionLog, configure_logging, open_action_log

DEFAULT_LOG_LINES = 50

def _resolve_config_dir(config_dir: Optional[str]) -> Path:
    if config_dir:
        return Path(config_dir)
    env_dir = os.environ.get("STAGEGUARD_CONFIG_DIR")
    if env_dir:
        return Path(env_dir)
    return Path.cwd() / "config"

def _fail(message: str, code: int = 1) -> NoReturn:
    print(f"[error] {message}", file=sys.stderr)
    sys.exit(code)

def _manager(args: argparse.Namespace) -> SettingsManager:
    cfg_dir = _resolve_config_dir(getattr(args, "config_dir", None))
    manager = SettingsManager(resolve_settings_path(cfg_dir))
    try:
        settings = manager.load()
    except ConfigError as exc:
        _fail(str(exc))
    configure_logging(settings.logging)
    return manager

def _action_log(manager: SettingsManager) -> Optional[ActionLog]:
    return open_action_log(manager.current().logging, manager.path.parent)

def _record(manager: SettingsManager, message: str) -> None:
    action_log = _action_log(manager)
    if action_log is None:
        return
    try:
        action_log.record(message)
    except OSError as exc:
        print(f"[warning] Unable to write action log: {exc}", file=sys.stderr)

def _read_text(path: str) -> str:
    try:
        return Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        _fail(f"Unable to read {path}: {exc}")

def _parse_switch(value: str) -> bool:
    return value == "on"

def _update(manager: SettingsManager, **changes) -> Settings:
    try:
        return manager.update(**changes)
    except ConfigError as exc:
        _fail(str(exc))

def _command_check(args: argparse.Namespace) -> None:
    if args.allow_list is not None:
        raw = args.allow_list.replace("\\n", "\n")
    elif args.allow_list_file:
        raw = _read_text(args.allow_list_file)
    else:
        raw = _manager(args).current().access.allowed_ips

    if not is_valid_address(args.address):
        print(f"[warning] {args.address!r} is not a valid IP address", file=sys.stderr)

    if is_allowed(args.address, raw):
        print("allowed")
        return
    print("denied")
    sys.exit(1)

def _command_validate(args: argparse.Namespace) -> None:
    if args.allow_list_file:
        raw = _read_text(args.allow_list_file)
    else:
        raw = _manager(args).current().access.allowed_ips

    problems = validate_allow_list(raw)
    for problem in problems:
        print(f"line {problem.line}: {problem.token}: {problem.reason}")
    if problems:
        sys.exit(1)
    print("allow list OK")

def _command_restriction(args: argparse.Namespace) -> None:
    manager = _manager(args)
    value = _parse_switch(args.state)
    _update(manager, ip_restriction=value)
    _record(manager, f"IP restriction turned {args.state}")
    print(f"IP restriction has been turned {args.state}.")

def _command_password_protection(args: argparse.Namespace) -> None:
    manager = _manager(args)
    value = _parse_switch(args.state)
    _update(manager, password_protection=value)
    _record(manager, f"Password protection turned {args.state}")
    print(f"Password protection has been turned {args.state}.")

def _command_debug_mode(args: argparse.Namespace) -> None:
    manager = _manager(args)
    value = _parse_switch(args.state)
    _update(manager, debug_mode=value)
    _record(manager, f"Debug mode turned {args.state}")
    print(f"Debug mode has been turned {args.state}.")

def _command_allow(args: argparse.Namespace) -> None:
    manager = _manager(args)
    try:
        manager.add_allowed_ip(args.token)
    except ConfigError as exc:
        _fail(str(exc))
    for problem in validate_allow_list(args.token):
        print(f"[warning] {problem.token}: {problem.reason}", file=sys.stderr)
    _record(manager, f"Allowed {args.token.strip()}")
    print(f"Added {args.token.strip()} to the allow list.")

def _command_disallow(args: argparse.Namespace) -> None:
    manager = _manager(args)
    try:
        removed = manager.remove_allowed_ip(args.token)
    except ConfigError as exc:
        _fail(str(exc))
    if not removed:
        _fail(f"{args.token.strip()} is not in the allow list")
    _record(manager, f"Disallowed {args.token.strip()}")
    print(f"Removed {args.token.strip()} from the allow list.")

def _command_show_log(args: argparse.Namespace) -> None:
    manager = _manager(args)
    action_log = _action_log(manager)
    if action_log is None:
        _fail("No action log configured (logging.action_log).")
    try:
        lines = action_log.tail(args.lines)
    except FileNotFoundError:
        _fail("Log file does not exist.")
    for line in lines:
        print(line)

def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config-dir", default=argparse.SUPPRESS, help="Directory containing stageguard.json")

    parser = argparse.ArgumentParser(description="Staging site access control", parents=[common])
    subparsers = parser.add_subparsers(dest="command", required=True)

    check_parser = subparsers.add_parser("check", help="Check an address against the allow list", parents=[common])
    check_parser.add_argument("address", help="IPv4 or IPv6 address to check")
    source = check_parser.add_mutually_exclusive_group()
    source.add_argument("--allow-list", help="Allow-list text (use \\n between entries)")
    source.add_argument("--allow-list-file", help="File containing the allow list")
    check_parser.set_defaults(func=_command_check)

    validate_parser = subparsers.add_parser("validate", help="Report allow-list lines that never match", parents=[common])
    validate_parser.add_argument("--allow-list-file", help="File containing the allow list")
    validate_parser.set_defaults(func=_command_validate)

    restriction_parser = subparsers.add_parser("restriction", help="Turn the IP restriction on or off", parents=[common])
    restriction_parser.add_argument("state", choices=["on", "off"])
    restriction_parser.set_defaults(func=_command_restriction)

    password_parser = subparsers.add_parser(
        "password-protection", help="Require a login before showing the site", parents=[common]
    )
    password_parser.add_argument("state", choices=["on", "off"])
    password_parser.set_defaults(func=_command_password_protection)

    debug_parser = subparsers.add_parser("debug-mode", help="Turn debug mode on or off", parents=[common])
    debug_parser.add_argument("state", choices=["on", "off"])
    debug_parser.set_defaults(func=_command_debug_mode)

    allow_parser = subparsers.add_parser("allow", help="Add an address, CIDR block or range", parents=[common])
    allow_parser.add_argument("token")
    allow_parser.set_defaults(func=_command_allow)

    disallow_parser = subparsers.add_parser("disallow", help="Remove an allow-list entry", parents=[common])
    disallow_parser.add_argument("token")
    disallow_parser.set_defaults(func=_command_disallow)

    log_parser = subparsers.add_parser("show-log", help="Display the action log", parents=[common])
    log_parser.add_argument(
        "--lines", type=int, default=DEFAULT_LOG_LINES, help=f"Number of lines to display (default: {DEFAULT_LOG_LINES})"
    )
    log_parser.set_defaults(func=_command_show_log)

    return parser

def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    args.func(args)

if __name__ == "__main__":  # pragma: no cover
    main()
