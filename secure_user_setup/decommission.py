"""
Removal of the default account once the replacement admin has been verified.

Undecided -> Verify-Access-Prompted -> Removal-Confirmed / Removal-Declined
-> (Logged-In-Wait)* -> Removed / Skipped. A target that no longer exists ends
in Absent, which is a success.
"""

import logging
from enum import Enum
from typing import List, Optional

from .accounts import AccountDatabase
from .core import CommandRunner, SafetyCheckError, StepResult, check_step
from .os_profile import PlatformProfile
from .tui import Ask, console, prompt_yes_no

logger = logging.getLogger(__name__)


class DecommissionState(Enum):
    UNDECIDED = "undecided"
    VERIFY_ACCESS_PROMPTED = "verify-access-prompted"
    REMOVAL_CONFIRMED = "removal-confirmed"
    REMOVAL_DECLINED = "removal-declined"
    LOGGED_IN_WAIT = "logged-in-wait"
    REMOVED = "removed"
    SKIPPED = "skipped"
    ABSENT = "absent"


TERMINAL_STATES = {DecommissionState.REMOVED, DecommissionState.SKIPPED, DecommissionState.ABSENT}


class DecommissionCoordinator:
    def __init__(
        self,
        profile: PlatformProfile,
        accounts: AccountDatabase,
        runner: CommandRunner,
        ask: Optional[Ask] = None,
    ):
        self.profile = profile
        self.accounts = accounts
        self.runner = runner
        self.ask = ask
        self.history: List[DecommissionState] = []

    @property
    def state(self) -> Optional[DecommissionState]:
        return self.history[-1] if self.history else None

    def _enter(self, state: DecommissionState):
        logger.debug("decommission: %s -> %s", self.state, state)
        self.history.append(state)

    def _skip(self, default_user: str, message: str) -> DecommissionState:
        console.print(f"[yellow]{message}[/yellow]")
        console.print(
            f"You can remove the user later by running: [bold]{self.profile.manual_removal_hint(default_user)}[/bold]"
        )
        self._enter(DecommissionState.SKIPPED)
        return DecommissionState.SKIPPED

    def run(self, default_user: str, new_user: str) -> DecommissionState:
        """Walk the operator through removing `default_user`. Returns the terminal state."""
        self._enter(DecommissionState.UNDECIDED)

        console.print("\n[bold]IMPORTANT: Before proceeding:[/bold]")
        self._enter(DecommissionState.VERIFY_ACCESS_PROMPTED)
        if not prompt_yes_no(f"Have you verified you can login as {new_user} and use sudo?", ask=self.ask):
            return self._skip(
                default_user,
                "Please verify your new user access before removing the old user",
            )

        console.print()
        if not prompt_yes_no(f"Do you want to proceed with removing the user '{default_user}'?", ask=self.ask):
            self._enter(DecommissionState.REMOVAL_DECLINED)
            return self._skip(default_user, "User removal skipped")
        self._enter(DecommissionState.REMOVAL_CONFIRMED)

        if default_user == new_user:
            raise SafetyCheckError("Cannot delete the user you just created.")

        if not self.accounts.exists(default_user):
            console.print(f"User {default_user} does not exist, nothing to delete.")
            self._enter(DecommissionState.ABSENT)
            return DecommissionState.ABSENT

        while self.accounts.is_logged_in(default_user):
            self._enter(DecommissionState.LOGGED_IN_WAIT)
            console.print(
                f"[bold yellow]WARNING: {default_user} is currently logged in. "
                "Please log out that user first.[/bold yellow]"
            )
            console.print(
                f"You can also remove the user later by running: "
                f"[bold]{self.profile.manual_removal_hint(default_user)}[/bold]"
            )
            if not prompt_yes_no("Try again?", ask=self.ask):
                console.print("[yellow]User removal skipped[/yellow]")
                self._enter(DecommissionState.SKIPPED)
                return DecommissionState.SKIPPED

        self.terminate_processes(default_user)
        self.remove_account(default_user)
        console.print(
            f"[bold green]User '{default_user}' has been removed successfully "
            "(home directory preserved)[/bold green]"
        )
        self._enter(DecommissionState.REMOVED)
        return DecommissionState.REMOVED

    def terminate_processes(self, username: str) -> StepResult:
        """pkill -u; exit status 1 just means there was nothing to kill."""
        return check_step(self.runner.run(["pkill", "-u", username]), "terminate processes", ignorable=True)

    def remove_account(self, username: str) -> StepResult:
        return check_step(self.runner.run(self.profile.removal_command(username)), "remove account")
