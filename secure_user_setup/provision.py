"""
Create the replacement admin account and carry over the default account's SSH access.

useradd, passwd and usermod must all succeed; anything else leaves a half-made
admin account, so their failures abort the run. Copying ~/.ssh is best-effort.
"""

import logging
import os
import shutil
from pathlib import Path
from typing import List

from .accounts import AccountDatabase
from .core import DEFAULT_SHELL, CommandRunner, StepResult, check_step
from .os_profile import PlatformProfile
from .tui import console

logger = logging.getLogger(__name__)

SSH_DIR_MODE = 0o700
SSH_FILE_MODE = 0o600
AUTHORIZED_KEYS = "authorized_keys"
SSH_STEP = "ssh-migration"


def _copy_entries(source: Path, target: Path, errors: List[str]):
    for entry in source.iterdir():
        dest = target / entry.name
        try:
            if entry.is_dir() and not entry.is_symlink():
                shutil.copytree(entry, dest, symlinks=True, dirs_exist_ok=True)
            else:
                shutil.copy2(entry, dest, follow_symlinks=False)
        except OSError as e:
            errors.append(f"copy {entry.name}: {e}")


def _secure_tree(ssh_dir: Path, uid: int, gid: int, errors: List[str]):
    """chown everything to the new account; 700 on directories, 600 on files."""
    paths = [ssh_dir] + sorted(ssh_dir.rglob("*"))
    for path in paths:
        try:
            os.chown(path, uid, gid, follow_symlinks=False)
            if path.is_symlink():
                continue
            path.chmod(SSH_DIR_MODE if path.is_dir() else SSH_FILE_MODE)
        except OSError as e:
            errors.append(f"permissions on {path}: {e}")


def migrate_ssh_config(source_home: Path, target_home: Path, uid: int, gid: int) -> StepResult:
    """
    Copy source_home/.ssh into target_home/.ssh owned by uid:gid.

    Missing source is a skip, not a failure, and creates nothing. Individual
    copy or permission errors are collected and reported as an ignorable result.
    """
    source = source_home / ".ssh"
    target = target_home / ".ssh"

    if not source.is_dir():
        console.print(f"No SSH configuration found in {source_home}, skipping copy.")
        return StepResult(step=SSH_STEP, ok=True, message=f"no {source}")

    console.print(f"Copying SSH keys from {source_home}...")
    errors: List[str] = []
    try:
        target.mkdir(mode=SSH_DIR_MODE, parents=True, exist_ok=True)
    except OSError as e:
        return StepResult(step=SSH_STEP, ok=False, message=f"mkdir {target}: {e}", ignorable=True)

    try:
        _copy_entries(source, target, errors)
    except OSError as e:
        errors.append(f"read {source}: {e}")
    _secure_tree(target, uid, gid, errors)

    # Re-assert the one file sshd is strict about.
    auth_keys = target / AUTHORIZED_KEYS
    if auth_keys.is_file():
        try:
            auth_keys.chmod(SSH_FILE_MODE)
        except OSError as e:
            errors.append(f"chmod {auth_keys}: {e}")

    if errors:
        for err in errors:
            logger.warning("SSH migration: %s", err)
        return StepResult(step=SSH_STEP, ok=False, message="; ".join(errors), ignorable=True)

    console.print("SSH configuration copied to new user")
    return StepResult(step=SSH_STEP, ok=True)


def provision_account(
    username: str,
    profile: PlatformProfile,
    default_user: str,
    accounts: AccountDatabase,
    runner: CommandRunner,
    shell: str = DEFAULT_SHELL,
) -> str:
    """Create `username` as an admin and return it. Raises CommandFailedError on any fatal step."""
    check_step(runner.run(["useradd", "-m", "-s", shell, username]), "create account")

    console.print(f"Setting password for {username}")
    check_step(runner.run(["passwd", username], capture_output=False), "set password")

    console.print(f"Adding user to '{profile.admin_group}' group...")
    check_step(runner.run(["usermod", "-aG", profile.admin_group, username]), "grant admin group")

    entry = accounts.lookup(username)
    if entry is None:
        result = StepResult(
            step=SSH_STEP,
            ok=False,
            message=f"account {username} not visible after creation",
            ignorable=True,
        )
    else:
        result = migrate_ssh_config(
            accounts.home_dir(default_user),
            Path(entry.pw_dir),
            entry.pw_uid,
            entry.pw_gid,
        )
    if not result.ok:
        console.print(f"[yellow]Warning: SSH configuration was not fully copied ({result.message}).[/yellow]")
        console.print(f"[yellow]Check ~{username}/.ssh before logging out.[/yellow]")

    console.print(
        f"[bold green]User {username} created successfully with {profile.admin_group} privileges[/bold green]"
    )
    return username
