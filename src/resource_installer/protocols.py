"""Protocols for the collaborators the install core depends on.

The core never searches feeds, downloads archives or talks to a user
itself; apps provide implementations of these interfaces. Default
implementations live in sources.py, inspector.py, manifest.py, metadata.py
and consent.py.
"""

import asyncio
from pathlib import Path
from typing import Protocol
from typing import runtime_checkable

from .schema import CandidatePackage
from .schema import Credential
from .schema import InstalledPackage
from .schema import RepositoryDescriptor
from .schema import ResourceInfo
from .schema import RetrievedPackage
from .versioning import VersionRange


@runtime_checkable
class SourceListingProtocol(Protocol):
    """Resolve named repositories from configuration."""

    def read(self, names: list[str] | None = None) -> tuple[list[RepositoryDescriptor], list[str]]:
        """Return (descriptors in priority order, requested names not registered)."""
        ...


@runtime_checkable
class PackageSearchProtocol(Protocol):
    """Find packages (and their dependencies) in one repository."""

    async def find(
        self,
        names: list[str],
        version_range: VersionRange,
        prerelease: bool,
        repository: RepositoryDescriptor,
        credential: Credential | None = None,
    ) -> list[CandidatePackage]:
        """Search a repository.

        Candidates for the same name must be returned version-descending.

        Raises:
            Exception: If the repository cannot be searched
        """
        ...


@runtime_checkable
class InstallInspectorProtocol(Protocol):
    """Report which packages are already installed."""

    def get_installed(
        self,
        names: list[str],
        version_range: VersionRange,
        paths: list[Path],
    ) -> list[InstalledPackage]:
        """Return installed packages matching names and range within paths."""
        ...


@runtime_checkable
class PackageRetrievalProtocol(Protocol):
    """Deliver package content into a staging directory."""

    async def retrieve(
        self,
        name: str,
        version: str,
        repository: RepositoryDescriptor,
        target_dir: Path,
        credential: Credential | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> RetrievedPackage:
        """Retrieve one package version.

        Args:
            name: Package name
            version: Full version (including prerelease label)
            repository: Local or remote repository
            target_dir: Staging directory owned by the caller
            credential: Optional credential for remote repositories
            cancel_event: Cooperative cancellation signal

        Returns:
            RetrievedPackage pointing at the extracted content

        Raises:
            InstallCancelledError: If cancel_event was set mid-flight
            Exception: If retrieval fails
        """
        ...


@runtime_checkable
class ManifestParserProtocol(Protocol):
    """Parse a module manifest file into key/value pairs."""

    def parse(self, manifest_path: Path) -> dict[str, str]:
        """Raises ManifestParseError if the file is malformed."""
        ...


@runtime_checkable
class MetadataWriterProtocol(Protocol):
    """Serialize install provenance next to installed content."""

    def write(self, info: ResourceInfo, path: Path) -> None:
        """Raises MetadataWriteError on serialization failure."""
        ...
