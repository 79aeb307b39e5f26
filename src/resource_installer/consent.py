"""Consent callback and the repository trust gate.

Interactive prompts are injected as a ConsentProtocol so the core never
talks to a console. A decision may carry apply_to_all, which answers every
later prompt of the same kind for the rest of the operation.
"""

import logging
from typing import Protocol

from pydantic import BaseModel
from pydantic import ConfigDict

from .schema import RepositoryDescriptor

logger = logging.getLogger(__name__)

UNTRUSTED_REPOSITORY_TITLE = "Untrusted repository"
UNTRUSTED_REPOSITORY_MESSAGE = (
    "You are installing resources from an untrusted repository. If you trust this repository, "
    "change its trusted value in the repository settings. "
    "Are you sure you want to install from '{name}'?"
)


class ConsentDecision(BaseModel):
    """Answer to a yes/no question."""

    model_config = ConfigDict(frozen=True)

    accepted: bool
    apply_to_all: bool = False


class ConsentProtocol(Protocol):
    """Ask the user a yes/no question."""

    async def confirm(self, message: str, title: str) -> ConsentDecision:
        """Present message under title and return the user's decision."""
        ...


class StaticConsent:
    """Non-interactive consent that always gives the same answer.

    Records every prompt it receives so hosts (and tests) can show or
    inspect what would have been asked.
    """

    def __init__(self, accepted: bool, apply_to_all: bool = False):
        self.decision = ConsentDecision(accepted=accepted, apply_to_all=apply_to_all)
        self.prompts: list[tuple[str, str]] = []

    async def confirm(self, message: str, title: str) -> ConsentDecision:
        self.prompts.append((title, message))
        return self.decision


class TrustGate:
    """Decide whether an untrusted repository may be used.

    A repository is usable when it is trusted in settings, the caller forced
    trust or install, or the user consents. "Yes to all" / "no to all"
    answers are cached for the remainder of the operation.
    """

    def __init__(
        self,
        consent: ConsentProtocol | None,
        trust_repository: bool = False,
        force: bool = False,
    ):
        self.consent = consent
        self.trust_repository = trust_repository
        self.force = force
        self._yes_to_all = False
        self._no_to_all = False

    async def allows(self, repository: RepositoryDescriptor) -> bool:
        if repository.trusted or self.trust_repository or self.force:
            return True

        logger.debug(f"Checking if untrusted repository '{repository.name}' should be used")
        if self._yes_to_all:
            return True
        if self._no_to_all:
            return False

        if self.consent is None:
            logger.warning(f"Repository '{repository.name}' is untrusted and no consent callback was provided")
            return False

        message = UNTRUSTED_REPOSITORY_MESSAGE.format(name=repository.name)
        decision = await self.consent.confirm(message, UNTRUSTED_REPOSITORY_TITLE)
        if decision.apply_to_all:
            self._yes_to_all = decision.accepted
            self._no_to_all = not decision.accepted

        if decision.accepted:
            logger.debug("Untrusted repository accepted as trusted source.")
        return decision.accepted
