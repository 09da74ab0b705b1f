"""
Replace a cloud image's default account (ubuntu, ec2-user, rocky, ...) with a named admin.

Creates the new account, sets its password, adds it to the sudo/wheel group and
copies the default account's ~/.ssh. Once the operator confirms the new login
works, removes the default account and keeps its home directory.

Must run as root. Nothing is rolled back: if removal is skipped or fails, the new
account stays.
"""

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from rich.panel import Panel

from .accounts import AccountDatabase, prompt_for_username
from .core import (
    DEFAULT_FALLBACK_USER,
    DEFAULT_OS_RELEASE,
    DEFAULT_SHELL,
    CommandRunner,
    LocalRunner,
    SetupError,
    check_root,
    load_config,
)
from .decommission import DecommissionCoordinator
from .logging_utils import configure_logging
from .os_profile import PlatformProfile, resolve_default_account, resolve_platform
from .provision import provision_account
from .tui import Ask, console

logger = logging.getLogger(__name__)

# Tool identity and descriptions (panel, -h)
TOOL_ID = "secure-user-setup"
TOOL_TITLE = "Secure User Setup"
TOOL_DESCRIPTION = "Create a new admin user, copy SSH access from the default account, then remove the default account (home directory kept)."


def show_summary(profile: PlatformProfile, default_user: str):
    summary = (
        f"[bold cyan]{TOOL_ID}[/bold cyan]: {TOOL_DESCRIPTION}\n\n"
        f"• [bold]Target System:[/bold] {profile.description} ({profile.family.value})\n"
        f"• [bold]Admin Group:[/bold] {profile.admin_group}\n"
        f"• [bold]Current Default User:[/bold] {default_user}\n\n"
        f"This script will create a new admin user and remove '{default_user}'.\n"
        "[yellow]Please ensure you have a backup method to access the system in case of issues.[/yellow]"
    )
    console.print(Panel(summary, title=f"=== {TOOL_TITLE} ===", expand=False))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=TOOL_ID, description=TOOL_DESCRIPTION)
    parser.add_argument("--default-user", metavar="NAME", help="Account to replace (default: $SUDO_USER, else 'ubuntu')")
    parser.add_argument("--shell", metavar="PATH", help=f"Login shell for the new account (default: {DEFAULT_SHELL})")
    parser.add_argument("--os-release", metavar="PATH", help=f"OS identification file (default: {DEFAULT_OS_RELEASE})")
    parser.add_argument("--config", metavar="PATH", help="JSON config file (default: ~/.pas/secure-user-setup.json)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log every command that is run")
    parser.add_argument("--log-file", metavar="PATH", help="Also write a debug log to this file")
    return parser


def run_setup(
    args: argparse.Namespace,
    runner: Optional[CommandRunner] = None,
    accounts: Optional[AccountDatabase] = None,
    ask: Optional[Ask] = None,
    environ=None,
):
    """The whole workflow, in order. Raises SetupError subclasses on fatal conditions."""
    check_root()

    config = load_config(Path(args.config) if args.config else None)
    os_release = Path(args.os_release or config.get("os_release") or DEFAULT_OS_RELEASE)
    shell = args.shell or config.get("shell") or DEFAULT_SHELL
    fallback_user = config.get("fallback_user") or DEFAULT_FALLBACK_USER

    profile = resolve_platform(os_release)
    environ = os.environ if environ is None else environ
    default_user = args.default_user or resolve_default_account(environ, fallback_user)
    logger.info("platform=%s default_user=%s", profile, default_user)

    show_summary(profile, default_user)
    console.print()

    runner = runner or LocalRunner()
    accounts = accounts or AccountDatabase(runner)

    username = prompt_for_username(accounts, ask=ask)
    new_user = provision_account(username, profile, default_user, accounts, runner, shell=shell)

    coordinator = DecommissionCoordinator(profile, accounts, runner, ask=ask)
    outcome = coordinator.run(default_user, new_user)
    logger.info("decommission of %s ended in %s", default_user, outcome.value)

    console.print("\nScript completed")
    return outcome


def main(argv: Optional[List[str]] = None):
    args = build_parser().parse_args(argv)
    configure_logging(verbose=args.verbose, log_path=args.log_file)

    try:
        run_setup(args)
    except SetupError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(e.exit_code)
    except KeyboardInterrupt:
        console.print("\n[yellow]Aborted.[/yellow]")
        sys.exit(1)
    sys.exit(0)

