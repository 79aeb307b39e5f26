"""License acceptance gate for modules.

A module manifest declares that its license must be accepted with
``RequireLicenseAcceptance = $true``. Detection is a textual heuristic: the
directive must be present and must not appear commented out (``#`` or
``*`` prefix) anywhere in the manifest.

The accepted flag is scoped to the whole operation: once the user accepts
one license (or the caller passed accept_license), every later package in
the same operation is accepted without a prompt.
"""

import logging
import re
from enum import Enum
from pathlib import Path

from .consent import ConsentProtocol
from .exceptions import LicenseNotAcceptedError
from .exceptions import LicenseTextMissingError

logger = logging.getLogger(__name__)

LICENSE_FILE_NAME = "License.txt"
LICENSE_TITLE = "License Acceptance"
LICENSE_QUERY = "Do you accept the license terms for module '{name}'."

_REQUIRE_PATTERN = re.compile(r"RequireLicenseAcceptance\s*=\s*\$true")
_COMMENTED_PATTERN_HASH = re.compile(r"#\s*RequireLicenseAcceptance\s*=\s*\$true")
_COMMENTED_PATTERN_STAR = re.compile(r"\*\s*RequireLicenseAcceptance\s*=\s*\$true")


class LicenseState(str, Enum):
    NOT_CHECKED = "not_checked"
    NO_ACCEPTANCE_NEEDED = "no_acceptance_needed"
    REQUIRES_ACCEPTANCE = "requires_acceptance"
    AWAITING_USER_CONSENT = "awaiting_user_consent"
    ACCEPTED = "accepted"
    DECLINED = "declined"


def requires_license_acceptance(manifest_text: str) -> bool:
    """Check whether manifest text requires license acceptance."""
    return (
        _REQUIRE_PATTERN.search(manifest_text) is not None
        and _COMMENTED_PATTERN_HASH.search(manifest_text) is None
        and _COMMENTED_PATTERN_STAR.search(manifest_text) is None
    )


class LicenseGate:
    """Operation-scoped license acceptance."""

    def __init__(self, consent: ConsentProtocol | None, accepted: bool = False):
        """
        Args:
            consent: Callback used to show the license and ask for acceptance
            accepted: True when the caller accepted licenses up front
        """
        self.consent = consent
        self.accepted = accepted

    async def check(self, package_name: str, manifest_path: Path, content_dir: Path) -> LicenseState:
        """
        Run the gate for one module.

        Args:
            package_name: Module name (used in the prompt and errors)
            manifest_path: Staged module manifest
            content_dir: Staged module directory holding License.txt

        Returns:
            NO_ACCEPTANCE_NEEDED or ACCEPTED

        Raises:
            LicenseTextMissingError: Acceptance required, not yet granted, no License.txt
            LicenseNotAcceptedError: Acceptance required and declined
        """
        state = LicenseState.NOT_CHECKED
        if not manifest_path.exists():
            return LicenseState.NO_ACCEPTANCE_NEEDED

        text = manifest_path.read_text(encoding="utf-8-sig", errors="replace")
        if not requires_license_acceptance(text):
            return LicenseState.NO_ACCEPTANCE_NEEDED
        state = LicenseState.REQUIRES_ACCEPTANCE
        logger.debug(f"Module '{package_name}' requires license acceptance")

        if not self.accepted:
            license_path = content_dir / LICENSE_FILE_NAME
            if not license_path.exists():
                raise LicenseTextMissingError(
                    f"{LICENSE_FILE_NAME} not found for module '{package_name}'. "
                    f"{LICENSE_FILE_NAME} must be provided when user license acceptance is required.",
                    context={"package_name": package_name, "license_path": str(license_path)},
                )

            state = LicenseState.AWAITING_USER_CONSENT
            if self.consent is not None:
                license_text = license_path.read_text(encoding="utf-8-sig", errors="replace")
                message = f"{license_text}\n{LICENSE_QUERY.format(name=package_name)}"
                decision = await self.consent.confirm(message, LICENSE_TITLE)
                if decision.accepted:
                    # Granted for the rest of the operation, not just this package
                    self.accepted = True

        if not self.accepted:
            state = LicenseState.DECLINED
            logger.debug(f"License gate for '{package_name}' ended in state {state.value}")
            raise LicenseNotAcceptedError(
                f"License Acceptance is required for module '{package_name}'. "
                f"Please specify accept_license to perform this operation.",
                context={"package_name": package_name},
            )

        state = LicenseState.ACCEPTED
        return state
