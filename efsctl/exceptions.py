"""Custom exception hierarchy for efsctl.

All efsctl-specific exceptions inherit from EfsctlError, enabling
callers to catch every provisioning failure with a single except clause.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from efsctl.models import MountTarget, ResourceLedger


class EfsctlError(Exception):
    """Base exception for all efsctl errors."""


class InputError(EfsctlError):
    """Raised for malformed or missing input. Never retried."""


class ConfigurationError(EfsctlError):
    """Raised for invalid configuration or missing required settings."""


class LedgerError(EfsctlError):
    """Raised when a ledger field is written more than once."""


class NotAvailableError(EfsctlError):
    """Raised when a poll runs out of attempts without a provider error."""

    def __init__(self, description: str) -> None:
        self.description = description
        super().__init__(f"{description}: not available after retries")


class CancelledError(EfsctlError):
    """Raised when a caller-supplied cancel event is set between attempts."""

    def __init__(self, description: str) -> None:
        self.description = description
        super().__init__(f"{description}: cancelled")


class ProvisioningError(EfsctlError):
    """Raised when a provisioning step fails.

    The ledger holds every resource created before the failure so the
    caller can decide between retrying forward and tearing down.
    """

    def __init__(
        self,
        kind: str,
        resource_id: str | None = None,
        reason: str | None = None,
        ledger: ResourceLedger | None = None,
        *,
        action: str = "creating",
    ) -> None:
        self.kind = kind
        self.resource_id = resource_id
        self.reason = reason
        self.ledger = ledger
        self.action = action
        target = f"{kind} {resource_id}" if resource_id else kind
        message = f"error {action} {target}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class MountTargetError(ProvisioningError):
    """Raised when a mount target fails; carries the ones created before it."""

    def __init__(
        self,
        subnet_id: str,
        created: Sequence[MountTarget],
        reason: str | None = None,
    ) -> None:
        self.subnet_id = subnet_id
        self.created = tuple(created)
        super().__init__("mount target", f"in subnet {subnet_id}", reason)


@dataclass(frozen=True, slots=True)
class StepFailure:
    """One failed teardown step."""

    kind: str
    resource_id: str
    error: Exception

    def __str__(self) -> str:
        return f"{self.kind} {self.resource_id}: {self.error}"


class TeardownError(EfsctlError):
    """Raised when one or more teardown steps fail.

    Every step is attempted regardless of earlier failures; ``errors``
    lists all of them in the order they happened.
    """

    def __init__(self, errors: Sequence[StepFailure]) -> None:
        self.errors = tuple(errors)
        details = "; ".join(str(e) for e in self.errors)
        super().__init__(f"failed to delete {len(self.errors)} resource(s): {details}")

    @property
    def last(self) -> StepFailure:
        """The most recent failure."""
        return self.errors[-1]
