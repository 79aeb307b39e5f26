"""resource-installer - Staged, rollback-safe installation of packages from prioritized repositories.

Public API exports. Apps inject policy (repositories, destination roots,
collaborators, consent); the library provides the install mechanism.
"""

from .consent import ConsentDecision
from .consent import ConsentProtocol
from .consent import StaticConsent
from .consent import TrustGate
from .exceptions import CommitError
from .exceptions import ErrorCategory
from .exceptions import ErrorKind
from .exceptions import ErrorRecord
from .exceptions import InstallCancelledError
from .exceptions import InstallError
from .exceptions import LicenseNotAcceptedError
from .exceptions import LicenseTextMissingError
from .exceptions import ManifestMissingError
from .exceptions import ManifestParseError
from .exceptions import MetadataWriteError
from .exceptions import NoRepositoriesError
from .exceptions import RepositorySearchError
from .exceptions import RepositorySettingsError
from .exceptions import RetrievalError
from .exceptions import StagingCleanupError
from .exceptions import VersionParseError
from .filters import filter_installed
from .filters import select_latest_per_name
from .inspector import DirectoryInstallInspector
from .installer import ResourceInstaller
from .installer import install_resources
from .license import LicenseGate
from .license import LicenseState
from .license import requires_license_acceptance
from .manifest import ModuleManifestParser
from .metadata import JsonMetadataWriter
from .outcomes import InstallOutcome
from .outcomes import InstallReport
from .outcomes import OutcomeStatus
from .protocols import InstallInspectorProtocol
from .protocols import ManifestParserProtocol
from .protocols import MetadataWriterProtocol
from .protocols import PackageRetrievalProtocol
from .protocols import PackageSearchProtocol
from .protocols import SourceListingProtocol
from .repositories import RepositorySettings
from .schema import CandidatePackage
from .schema import Credential
from .schema import InstalledPackage
from .schema import InstallRequest
from .schema import RepositoryDescriptor
from .schema import ResourceInfo
from .schema import ResourceType
from .schema import RetrievedPackage
from .sources import FolderPackageSearch
from .sources import PackageRetriever
from .staging import StagingArea
from .transaction import InstallTransaction
from .versioning import VersionRange

__all__ = [
    # Installation
    "install_resources",
    "ResourceInstaller",
    "InstallTransaction",
    "InstallRequest",
    # Outcomes
    "InstallOutcome",
    "InstallReport",
    "OutcomeStatus",
    # Data model
    "CandidatePackage",
    "Credential",
    "InstalledPackage",
    "RepositoryDescriptor",
    "ResourceInfo",
    "ResourceType",
    "RetrievedPackage",
    "VersionRange",
    # Repositories
    "RepositorySettings",
    # Filters
    "select_latest_per_name",
    "filter_installed",
    # Gates
    "ConsentDecision",
    "ConsentProtocol",
    "StaticConsent",
    "TrustGate",
    "LicenseGate",
    "LicenseState",
    "requires_license_acceptance",
    # Default collaborators
    "DirectoryInstallInspector",
    "FolderPackageSearch",
    "JsonMetadataWriter",
    "ModuleManifestParser",
    "PackageRetriever",
    "StagingArea",
    # Protocols
    "InstallInspectorProtocol",
    "ManifestParserProtocol",
    "MetadataWriterProtocol",
    "PackageRetrievalProtocol",
    "PackageSearchProtocol",
    "SourceListingProtocol",
    # Exceptions
    "ErrorCategory",
    "ErrorKind",
    "ErrorRecord",
    "InstallError",
    "CommitError",
    "InstallCancelledError",
    "LicenseNotAcceptedError",
    "LicenseTextMissingError",
    "ManifestMissingError",
    "ManifestParseError",
    "MetadataWriteError",
    "NoRepositoriesError",
    "RepositorySearchError",
    "RepositorySettingsError",
    "RetrievalError",
    "StagingCleanupError",
    "VersionParseError",
]

__version__ = "0.1.0"
