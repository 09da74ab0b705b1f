"""
Account database access and username validation.

Lookups go through pwd (NSS), so accounts served by LDAP/SSSD are seen too.
Login sessions come from `who`.
"""

import logging
import pwd
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from rich.markup import escape

from .core import HOME_ROOT, CommandRunner
from .tui import Ask, console, prompt_text

logger = logging.getLogger(__name__)

USERNAME_RE = re.compile(r"[a-z][-a-z0-9]*")


class AccountDatabase:
    """Read-only view of the host's accounts and login sessions."""

    def __init__(self, runner: CommandRunner):
        self.runner = runner

    def lookup(self, name: str) -> Optional[pwd.struct_passwd]:
        if not name:
            return None
        try:
            return pwd.getpwnam(name)
        except KeyError:
            return None

    def exists(self, name: str) -> bool:
        return self.lookup(name) is not None

    def home_dir(self, name: str, fallback: Optional[Path] = None) -> Path:
        """Home directory of `name`; `fallback` (default /home/<name>) if the account is unknown."""
        entry = self.lookup(name)
        if entry is not None and entry.pw_dir:
            return Path(entry.pw_dir)
        return fallback or HOME_ROOT / name

    def is_logged_in(self, name: str) -> bool:
        res = self.runner.run(["who"])
        if res.returncode != 0:
            # A broken session table must not read as "nobody logged in".
            logger.warning("`who` failed (%s); assuming %s is logged in", res.returncode, name)
            return True
        for line in (res.stdout or "").splitlines():
            parts = line.split()
            if parts and parts[0] == name:
                return True
        return False


@dataclass(frozen=True)
class Validation:
    ok: bool
    reason: Optional[str] = None

    @classmethod
    def accepted(cls) -> "Validation":
        return cls(ok=True)

    @classmethod
    def rejected(cls, reason: str) -> "Validation":
        return cls(ok=False, reason=reason)


def check_syntax(candidate: str) -> Validation:
    if not candidate:
        return Validation.rejected("Username cannot be empty.")
    if USERNAME_RE.fullmatch(candidate):
        return Validation.accepted()

    if any(c.isupper() for c in candidate):
        reason = "Username must not contain uppercase letters."
    elif not ("a" <= candidate[0] <= "z"):
        reason = f"Username must start with a lowercase letter (got '{candidate[0]}')."
    else:
        bad = sorted({c for c in candidate if not USERNAME_RE.fullmatch("a" + c)})
        reason = f"Username contains invalid characters: {' '.join(repr(c) for c in bad)}."
    return Validation.rejected(
        f"Invalid username. {reason} Username must start with a letter and can only "
        "contain lowercase letters, numbers, and hyphens."
    )


def validate_username(candidate: str, accounts: AccountDatabase) -> Validation:
    """Syntax first, then uniqueness. Nothing is cached between calls."""
    result = check_syntax(candidate)
    if not result.ok:
        return result
    if accounts.exists(candidate):
        return Validation.rejected(
            f"Username '{candidate}' already exists. Please choose another one."
        )
    return Validation.accepted()


def prompt_for_username(accounts: AccountDatabase, ask: Optional[Ask] = None) -> str:
    """Ask until a valid, unused name is given. There is no retry limit."""
    while True:
        candidate = prompt_text("Enter new username:", ask=ask)
        result = validate_username(candidate, accounts)
        if result.ok:
            return candidate
        console.print(f"[red]{escape(result.reason)}[/red]")
