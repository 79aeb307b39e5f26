"""Per-package install outcomes and the report that aggregates them."""

import logging
from enum import Enum
from pathlib import Path

from pydantic import BaseModel
from pydantic import ConfigDict

from .exceptions import ErrorRecord

logger = logging.getLogger(__name__)


class OutcomeStatus(str, Enum):
    INSTALLED = "installed"
    SKIPPED_ALREADY_SATISFIED = "skipped_already_satisfied"
    SKIPPED_UNTRUSTED_SOURCE = "skipped_untrusted_source"
    SKIPPED_NOT_FOUND = "skipped_not_found"
    FAILED = "failed"
    CANCELLED = "cancelled"


class InstallOutcome(BaseModel):
    """Result of processing one package name."""

    model_config = ConfigDict(frozen=True)

    name: str
    status: OutcomeStatus
    version: str | None = None
    repository: str | None = None
    path: Path | None = None
    message: str = ""
    error: ErrorRecord | None = None
    cleanup_error: ErrorRecord | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == OutcomeStatus.INSTALLED


class InstallReport:
    """
    Aggregates outcomes across repositories for one operation.

    Keys are case-insensitive package names. An installed outcome is final;
    any other outcome is replaced by a later one for the same name (a package
    that failed in one repository may still install from the next).
    """

    def __init__(self) -> None:
        self._outcomes: dict[str, InstallOutcome] = {}
        self.repository_errors: list[ErrorRecord] = []

    def record(self, outcome: InstallOutcome) -> None:
        key = outcome.name.casefold()
        current = self._outcomes.get(key)
        if current is not None and current.status == OutcomeStatus.INSTALLED:
            logger.debug(f"Keeping installed outcome for '{outcome.name}', ignoring {outcome.status.value}")
            return
        self._outcomes[key] = outcome

    def record_repository_error(self, error: ErrorRecord) -> None:
        self.repository_errors.append(error)

    def finalize(self, pending: list[str], untrusted_declined: bool) -> None:
        """Give every still-pending name without an outcome a skip outcome."""
        status = OutcomeStatus.SKIPPED_UNTRUSTED_SOURCE if untrusted_declined else OutcomeStatus.SKIPPED_NOT_FOUND
        for name in pending:
            if name.casefold() in self._outcomes:
                continue
            if status == OutcomeStatus.SKIPPED_UNTRUSTED_SOURCE:
                message = (
                    f"Package '{name}' was not installed: an untrusted repository was declined "
                    f"and no other repository provided it"
                )
            else:
                message = f"Package '{name}' was not found in any repository"
            logger.warning(message)
            self._outcomes[name.casefold()] = InstallOutcome(name=name, status=status, message=message)

    def get(self, name: str) -> InstallOutcome | None:
        return self._outcomes.get(name.casefold())

    @property
    def outcomes(self) -> dict[str, InstallOutcome]:
        """Outcomes keyed by package name as reported."""
        return {outcome.name: outcome for outcome in self._outcomes.values()}

    @property
    def installed(self) -> list[str]:
        return [o.name for o in self._outcomes.values() if o.status == OutcomeStatus.INSTALLED]

    @property
    def failed(self) -> list[str]:
        return [o.name for o in self._outcomes.values() if o.status == OutcomeStatus.FAILED]

    @property
    def errors(self) -> list[ErrorRecord]:
        """Every structured error: package failures, cleanup failures, repository failures."""
        errors: list[ErrorRecord] = []
        for outcome in self._outcomes.values():
            if outcome.error is not None:
                errors.append(outcome.error)
            if outcome.cleanup_error is not None:
                errors.append(outcome.cleanup_error)
        errors.extend(self.repository_errors)
        return errors
