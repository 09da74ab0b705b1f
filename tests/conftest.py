import os
import pwd
import subprocess
from pathlib import Path

import pytest

from secure_user_setup.accounts import AccountDatabase
from secure_user_setup.core import CommandRunner
from secure_user_setup.os_profile import DeleteCommand, OSFamily, PlatformProfile


class FakeRunner(CommandRunner):
    """Records every command. Results are scripted per program name; default is success."""

    def __init__(self):
        self.calls = []
        self.results = {}
        self.hooks = {}

    def script(self, program, *results):
        """Queue (returncode, stdout) results for `program`. The last one repeats."""
        self.results[program] = list(results)

    def on(self, program, hook):
        self.hooks[program] = hook

    def programs(self):
        return [cmd[0] for cmd in self.calls]

    def run(self, cmd, capture_output=True):
        self.calls.append(list(cmd))
        if cmd[0] in self.hooks:
            self.hooks[cmd[0]](cmd)
        queue = self.results.get(cmd[0])
        returncode, stdout = 0, ""
        if queue:
            returncode, stdout = queue.pop(0) if len(queue) > 1 else queue[0]
        stderr = "" if returncode == 0 else f"{cmd[0]} failed"
        return subprocess.CompletedProcess(args=cmd, returncode=returncode, stdout=stdout, stderr=stderr)


class FakeAccounts(AccountDatabase):
    """Account database backed by a dict instead of NSS."""

    def __init__(self, runner, home_root):
        super().__init__(runner)
        self.home_root = Path(home_root)
        self.entries = {}

    def add(self, name, home=None):
        home = Path(home) if home else self.home_root / name
        self.entries[name] = pwd.struct_passwd(
            (name, "x", os.getuid(), os.getgid(), "", str(home), "/bin/bash")
        )
        return home

    def remove(self, name):
        self.entries.pop(name, None)

    def lookup(self, name):
        return self.entries.get(name)

    def home_dir(self, name, fallback=None):
        entry = self.lookup(name)
        return Path(entry.pw_dir) if entry else fallback or self.home_root / name


class Answers:
    """Feeds scripted answers to prompts and remembers what was asked."""

    def __init__(self, *answers):
        self.answers = list(answers)
        self.prompts = []

    def __call__(self, message):
        self.prompts.append(message)
        if not self.answers:
            raise AssertionError(f"unexpected prompt: {message}")
        return self.answers.pop(0)


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def accounts(runner, tmp_path):
    return FakeAccounts(runner, tmp_path / "home")


@pytest.fixture
def debian_profile():
    return PlatformProfile(OSFamily.DEBIAN, "sudo", DeleteCommand.DELUSER, "ubuntu", "Ubuntu 24.04 LTS")


@pytest.fixture
def rhel_profile():
    return PlatformProfile(OSFamily.RHEL, "wheel", DeleteCommand.USERDEL, "rocky", "Rocky Linux 9")


def printed(capsys):
    """Captured stdout with rich's line wrapping collapsed to single spaces."""
    return " ".join(capsys.readouterr().out.split())
