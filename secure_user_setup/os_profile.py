"""
Platform profile resolution.

Reads /etc/os-release once and decides which group grants sudo rights and which
command removes an account. Both deletion commands keep the home directory
unless told otherwise, and we never tell them otherwise.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from .core import DEFAULT_FALLBACK_USER, DEFAULT_OS_RELEASE, PreconditionError
from .tui import console

logger = logging.getLogger(__name__)

DEBIAN_IDS = {"debian", "ubuntu"}
RHEL_IDS = {"rhel", "fedora", "centos", "almalinux", "rocky"}


class OSFamily(Enum):
    DEBIAN = "debian"
    RHEL = "rhel"
    UNKNOWN = "unknown"


class DeleteCommand(Enum):
    DELUSER = "deluser"
    USERDEL = "userdel"


@dataclass(frozen=True)
class PlatformProfile:
    family: OSFamily
    admin_group: str
    delete_command: DeleteCommand
    distro_id: str = ""
    pretty_name: str = ""

    def removal_command(self, username: str) -> List[str]:
        """Command that removes `username` and leaves its home directory in place."""
        # Neither tool touches the home directory without --remove-home / -r.
        return [self.delete_command.value, username]

    def manual_removal_hint(self, username: str) -> str:
        return f"sudo {self.delete_command.value} {username}"

    @property
    def description(self) -> str:
        return self.pretty_name or self.distro_id or self.family.value


PROFILES = {
    OSFamily.DEBIAN: ("sudo", DeleteCommand.DELUSER),
    OSFamily.RHEL: ("wheel", DeleteCommand.USERDEL),
    OSFamily.UNKNOWN: ("wheel", DeleteCommand.USERDEL),
}


def parse_os_release(text: str) -> Dict[str, str]:
    """Parse os-release KEY=value lines. Quotes are stripped; comments and junk are skipped."""
    fields = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
            value = value[1:-1]
        fields[key.strip()] = value
    return fields


def classify(fields: Mapping[str, str]) -> OSFamily:
    distro_id = fields.get("ID", "").lower()
    id_like = fields.get("ID_LIKE", "").lower().split()

    if distro_id in DEBIAN_IDS or "debian" in id_like:
        return OSFamily.DEBIAN
    if distro_id in RHEL_IDS or "rhel" in id_like:
        return OSFamily.RHEL
    return OSFamily.UNKNOWN


def profile_for(fields: Mapping[str, str]) -> PlatformProfile:
    family = classify(fields)
    admin_group, delete_command = PROFILES[family]
    return PlatformProfile(
        family=family,
        admin_group=admin_group,
        delete_command=delete_command,
        distro_id=fields.get("ID", ""),
        pretty_name=fields.get("PRETTY_NAME", ""),
    )


def resolve_platform(path: Path = DEFAULT_OS_RELEASE) -> PlatformProfile:
    """
    Build the PlatformProfile for this host.
    An unknown distribution is not fatal, a missing os-release file is.
    """
    if not path.is_file():
        raise PreconditionError(f"Cannot detect OS ({path} not found). Exiting.")

    profile = profile_for(parse_os_release(path.read_text(errors="replace")))
    logger.debug("Resolved platform %s from %s", profile, path)

    if profile.family is OSFamily.DEBIAN:
        console.print("Detected Debian/Ubuntu-based system.")
    elif profile.family is OSFamily.RHEL:
        console.print("Detected RHEL/Fedora-based system.")
    else:
        console.print(
            "[yellow]Warning: Unsupported OS family. Proceeding with caution "
            f"(assuming generic Linux, admin group '{profile.admin_group}').[/yellow]"
        )
    return profile


def resolve_default_account(environ: Mapping[str, str], fallback: Optional[str] = None) -> str:
    """
    Name of the account to replace: whoever invoked sudo, else the conventional default.
    root is never a candidate.
    """
    sudo_user = (environ.get("SUDO_USER") or "").strip()
    if sudo_user and sudo_user != "root":
        return sudo_user
    return fallback or DEFAULT_FALLBACK_USER
