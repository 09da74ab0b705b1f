import argparse
import importlib
import json
import os
import sys

import pytest

from secure_user_setup import cli
from secure_user_setup.core import PreconditionError, SafetyCheckError, load_config
from secure_user_setup.decommission import DecommissionState

from .conftest import Answers, printed

UBUNTU = 'ID=ubuntu\nID_LIKE=debian\nPRETTY_NAME="Ubuntu 24.04 LTS"\n'


@pytest.fixture
def as_root(monkeypatch):
    monkeypatch.setattr(os, "geteuid", lambda: 0)


@pytest.fixture
def os_release(tmp_path):
    path = tmp_path / "os-release"
    path.write_text(UBUNTU)
    return path


@pytest.fixture
def make_args(os_release, tmp_path):
    def make(*extra):
        argv = ["--os-release", str(os_release), "--config", str(tmp_path / "missing.json")]
        return cli.build_parser().parse_args(argv + list(extra))

    return make


@pytest.fixture
def host(runner, accounts, tmp_path):
    """A fresh Ubuntu image: 'ubuntu' exists with an authorized_keys file."""
    ubuntu_home = accounts.add("ubuntu")
    (ubuntu_home / ".ssh").mkdir(parents=True)
    (ubuntu_home / ".ssh" / "authorized_keys").write_text("ssh-ed25519 AAAA\n")
    runner.on("useradd", lambda cmd: accounts.add(cmd[-1]).mkdir(parents=True))
    runner.on("deluser", lambda cmd: accounts.remove(cmd[-1]))
    runner.script("who", (0, ""))
    return ubuntu_home


def test_full_run_replaces_default_user(as_root, host, make_args, runner, accounts, capsys):
    answers = Answers("Admin", "admin", "y", "y")
    outcome = cli.run_setup(
        make_args(), runner=runner, accounts=accounts, ask=answers, environ={"SUDO_USER": "ubuntu"}
    )

    assert outcome is DecommissionState.REMOVED
    assert runner.programs() == ["useradd", "passwd", "usermod", "who", "pkill", "deluser"]
    assert not accounts.exists("ubuntu")
    assert host.exists()
    assert (accounts.home_dir("admin") / ".ssh" / "authorized_keys").exists()
    out = printed(capsys)
    assert "Secure User Setup" in out
    assert "Script completed" in out


def test_declined_verification_leaves_default_user(as_root, host, make_args, runner, accounts, capsys):
    outcome = cli.run_setup(make_args(), runner=runner, accounts=accounts, ask=Answers("admin", ""), environ={})

    assert outcome is DecommissionState.SKIPPED
    assert accounts.exists("ubuntu")
    assert "deluser" not in runner.programs()
    out = printed(capsys)
    assert "sudo deluser ubuntu" in out
    assert "Script completed" in out


def test_default_user_flag_wins(as_root, host, make_args, runner, accounts):
    accounts.add("ec2-user")
    cli.run_setup(
        make_args("--default-user", "ec2-user", "--shell", "/bin/sh"),
        runner=runner,
        accounts=accounts,
        ask=Answers("admin", "y", "y"),
        environ={"SUDO_USER": "ubuntu"},
    )
    assert runner.calls[0] == ["useradd", "-m", "-s", "/bin/sh", "admin"]
    assert runner.calls[-1] == ["deluser", "ec2-user"]


def test_sudo_user_equal_to_new_name_is_refused(as_root, host, make_args, runner, accounts):
    with pytest.raises(SafetyCheckError):
        cli.run_setup(
            make_args("--default-user", "admin"),
            runner=runner,
            accounts=accounts,
            ask=Answers("admin", "y", "y"),
        )
    assert "deluser" not in runner.programs()


def test_requires_root(monkeypatch, make_args, runner, accounts):
    monkeypatch.setattr(os, "geteuid", lambda: 1000)
    with pytest.raises(PreconditionError):
        cli.run_setup(make_args(), runner=runner, accounts=accounts, ask=Answers())
    assert runner.calls == []


def test_missing_os_release_stops_before_prompting(as_root, tmp_path, runner, accounts):
    args = cli.build_parser().parse_args(
        ["--os-release", str(tmp_path / "absent"), "--config", str(tmp_path / "missing.json")]
    )
    with pytest.raises(PreconditionError):
        cli.run_setup(args, runner=runner, accounts=accounts, ask=Answers())
    assert runner.calls == []


def test_config_file_supplies_defaults(as_root, host, os_release, tmp_path, runner, accounts):
    config = tmp_path / "config.json"
    config.write_text(json.dumps({"fallback_user": "debian", "shell": "/bin/zsh", "unknown": "x"}))
    accounts.add("debian")
    args = cli.build_parser().parse_args(["--os-release", str(os_release), "--config", str(config)])

    cli.run_setup(args, runner=runner, accounts=accounts, ask=Answers("admin", "y", "y"), environ={})

    assert runner.calls[0] == ["useradd", "-m", "-s", "/bin/zsh", "admin"]
    assert runner.calls[-1] == ["deluser", "debian"]


def test_malformed_config_is_ignored(tmp_path, capsys):
    config = tmp_path / "config.json"
    config.write_text("{not json")
    assert load_config(config) == {}
    assert "Warning" in printed(capsys)


@pytest.mark.parametrize(
    "error,code",
    [
        (PreconditionError("This script must be run as root (or with sudo)"), 1),
        (SafetyCheckError("Cannot delete the user you just created."), 1),
        (KeyboardInterrupt(), 1),
    ],
)
def test_main_maps_errors_to_exit_codes(error, code, monkeypatch):
    def fail(args):
        raise error

    monkeypatch.setattr(cli, "configure_logging", lambda **kwargs: None)
    monkeypatch.setattr(cli, "run_setup", fail)
    with pytest.raises(SystemExit) as exc:
        cli.main([])
    assert exc.value.code == code


def test_main_exits_zero_on_skip(monkeypatch):
    monkeypatch.setattr(cli, "configure_logging", lambda **kwargs: None)
    monkeypatch.setattr(cli, "run_setup", lambda args: DecommissionState.SKIPPED)
    with pytest.raises(SystemExit) as exc:
        cli.main([])
    assert exc.value.code == 0


def test_parser_defaults():
    args = cli.build_parser().parse_args([])
    assert isinstance(args, argparse.Namespace)
    assert args.default_user is None
    assert not args.verbose


def test_importing_main_module_does_not_run(monkeypatch):
    calls = []
    monkeypatch.setattr(cli, "main", lambda *args: calls.append(args))
    monkeypatch.delitem(sys.modules, "secure_user_setup.__main__", raising=False)

    module = importlib.import_module("secure_user_setup.__main__")

    assert calls == []
    assert module.main is cli.main
