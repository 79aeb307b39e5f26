"""Install data model - repositories, candidates, requests, installed records.

All records are immutable pydantic models; the only mutable state of an
operation lives in the scanner (pending names) and the report.
"""

from datetime import datetime
from enum import Enum
from pathlib import Path
from urllib.parse import urlparse
from urllib.request import url2pathname

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import SecretStr
from pydantic import field_validator

from .versioning import VersionRange
from .versioning import full_version


class ResourceType(str, Enum):
    """Kind of installed resource, detected from staged content."""

    MODULE = "Module"
    SCRIPT = "Script"


class RepositoryDescriptor(BaseModel):
    """A package source (local folder or remote feed)."""

    model_config = ConfigDict(frozen=True)

    name: str
    url: str
    trusted: bool = False
    priority: int = 50

    @property
    def is_local(self) -> bool:
        """True for plain filesystem paths and file:// URLs."""
        scheme = urlparse(self.url).scheme.lower()
        # Single-letter schemes are Windows drive letters
        return scheme in ("", "file") or len(scheme) == 1

    @property
    def local_path(self) -> Path:
        """Filesystem path of a local repository."""
        parsed = urlparse(self.url)
        if parsed.scheme.lower() == "file":
            return Path(url2pathname(parsed.path))
        return Path(self.url).expanduser()


class Credential(BaseModel):
    """Credential used against a remote repository."""

    model_config = ConfigDict(frozen=True)

    username: str
    password: SecretStr


class CandidatePackage(BaseModel):
    """A (name, version) found in a specific repository, eligible for install."""

    model_config = ConfigDict(frozen=True)

    name: str
    version: str
    prerelease_label: str | None = None
    repository: str
    description: str = ""

    @property
    def is_prerelease(self) -> bool:
        return bool(self.prerelease_label)

    @property
    def full_version(self) -> str:
        """Version including the prerelease label, e.g. 2.0.2-beta1."""
        return full_version(self.version, self.prerelease_label)


class InstalledPackage(BaseModel):
    """A package found already installed under a destination root."""

    model_config = ConfigDict(frozen=True)

    name: str
    version: str
    path: Path


class RetrievedPackage(BaseModel):
    """Content delivered into the staging area by a retrieval collaborator."""

    model_config = ConfigDict(frozen=True)

    content_dir: Path
    archive_path: Path | None = None


class ResourceInfo(BaseModel):
    """Install provenance written to the metadata sidecar."""

    model_config = ConfigDict(frozen=True)

    name: str
    version: str
    type: ResourceType
    description: str = ""
    repository: str
    repository_url: str
    installed_date: datetime
    installed_location: str


class InstallRequest(BaseModel):
    """Everything that parameterizes one install operation (immutable)."""

    model_config = ConfigDict(frozen=True)

    names: list[str]
    version_range: VersionRange = Field(default_factory=VersionRange.any)
    prerelease: bool = False
    accept_license: bool = False
    reinstall: bool = False
    force: bool = False
    trust_repository: bool = False
    credential: Credential | None = None
    destination_roots: list[Path] = Field(default_factory=list)
    save_only: bool = False
    as_archive: bool = False
    include_metadata: bool = True

    @field_validator("version_range", mode="before")
    @classmethod
    def _parse_version_range(cls, value):
        return VersionRange.parse(value)
