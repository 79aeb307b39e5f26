"""Candidate set filters applied per repository pass."""

import logging
from pathlib import Path

from .protocols import InstallInspectorProtocol
from .schema import CandidatePackage
from .schema import InstalledPackage
from .utils import get_subdirectories
from .versioning import VersionRange

logger = logging.getLogger(__name__)


def select_latest_per_name(candidates: list[CandidatePackage]) -> list[CandidatePackage]:
    """
    Keep exactly one candidate per package name.

    The search collaborator returns versions descending, so the first
    candidate seen for a name is the latest one. Names compare
    case-insensitively; first-seen order is preserved.

    Example:
        >>> select_latest_per_name([a_2_0, a_1_0, b_1_0])
        [a_2_0, b_1_0]
    """
    selected: dict[str, CandidatePackage] = {}
    for candidate in candidates:
        selected.setdefault(candidate.name.casefold(), candidate)
    return list(selected.values())


def filter_installed(
    candidates: list[CandidatePackage],
    destination_roots: list[Path],
    version_range: VersionRange,
    inspector: InstallInspectorProtocol,
) -> tuple[list[CandidatePackage], list[InstalledPackage]]:
    """
    Remove candidates already installed at a version inside version_range.

    Every immediate subdirectory of every destination root is a candidate
    install location. Only warnings are emitted; nothing on disk changes.

    Args:
        candidates: Deduplicated candidates from one repository
        destination_roots: Install roots to search
        version_range: Requested range
        inspector: Local install inspector

    Returns:
        Tuple of (candidates still to install, installed packages that caused removals)
    """
    paths_to_search: list[Path] = []
    for root in destination_roots:
        paths_to_search.extend(get_subdirectories(root))

    remaining = {c.name.casefold(): c for c in candidates}
    if not paths_to_search or not remaining:
        return list(remaining.values()), []

    already_installed = inspector.get_installed(
        names=[c.name for c in candidates],
        version_range=version_range,
        paths=paths_to_search,
    )

    removed: list[InstalledPackage] = []
    for installed in already_installed:
        if remaining.pop(installed.name.casefold(), None) is None:
            continue
        logger.warning(
            f"Resource '{installed.name}' with version '{installed.version}' is already installed. "
            f"If you would like to reinstall, please run again with reinstall enabled."
        )
        removed.append(installed)

    return list(remaining.values()), removed
