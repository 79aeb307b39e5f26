"""Install-specific exceptions and structured error records.

Every exception carries a kind (what went wrong) and a category (how a host
should classify it). The transaction boundary converts them into
ErrorRecord values so one bad package never aborts the batch.
"""

from enum import Enum

from pydantic import BaseModel
from pydantic import ConfigDict


class ErrorKind(str, Enum):
    """What went wrong."""

    UNTRUSTED_SOURCE_DECLINED = "untrusted_source_declined"
    PACKAGE_NOT_FOUND_IN_SOURCE = "package_not_found_in_source"
    VERSION_STRING_UNPARSABLE = "version_string_unparsable"
    RETRIEVAL_FAILED = "retrieval_failed"
    MANIFEST_MISSING = "manifest_missing"
    MANIFEST_UNPARSABLE = "manifest_unparsable"
    LICENSE_TEXT_MISSING = "license_text_missing"
    LICENSE_NOT_ACCEPTED = "license_not_accepted"
    COMMIT_FAILED = "commit_failed"
    STAGING_CLEANUP_FAILED = "staging_cleanup_failed"
    METADATA_WRITE_FAILED = "metadata_write_failed"
    REPOSITORY_FAILED = "repository_failed"
    REPOSITORY_SETTINGS_INVALID = "repository_settings_invalid"
    NO_REPOSITORIES = "no_repositories"
    INSTALL_CANCELLED = "install_cancelled"
    INSTALL_FAILED = "install_failed"


class ErrorCategory(str, Enum):
    """Coarse classification for hosts rendering errors."""

    OBJECT_NOT_FOUND = "ObjectNotFound"
    INVALID_ARGUMENT = "InvalidArgument"
    INVALID_OPERATION = "InvalidOperation"
    INVALID_RESULT = "InvalidResult"
    READ_ERROR = "ReadError"
    PARSER_ERROR = "ParserError"
    CONNECTION_ERROR = "ConnectionError"
    OPERATION_STOPPED = "OperationStopped"


class InstallError(Exception):
    """Base exception for install operations."""

    kind: ErrorKind = ErrorKind.INSTALL_FAILED
    category: ErrorCategory = ErrorCategory.INVALID_OPERATION

    def __init__(self, message: str, context: dict | None = None):
        """Initialize with message and optional context.

        Args:
            message: Human-readable error message
            context: Optional dict with additional context (package name, paths, etc.)
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}


class NoRepositoriesError(InstallError):
    """No repositories are configured for the operation."""

    kind = ErrorKind.NO_REPOSITORIES
    category = ErrorCategory.INVALID_ARGUMENT


class RepositorySettingsError(InstallError):
    """Repository settings file is malformed."""

    kind = ErrorKind.REPOSITORY_SETTINGS_INVALID
    category = ErrorCategory.PARSER_ERROR


class RepositorySearchError(InstallError):
    """Searching a repository failed."""

    kind = ErrorKind.REPOSITORY_FAILED
    category = ErrorCategory.CONNECTION_ERROR


class VersionParseError(InstallError):
    """A version string or version range could not be parsed."""

    kind = ErrorKind.VERSION_STRING_UNPARSABLE
    category = ErrorCategory.PARSER_ERROR


class RetrievalError(InstallError):
    """Package content could not be retrieved into the staging area."""

    kind = ErrorKind.RETRIEVAL_FAILED
    category = ErrorCategory.READ_ERROR


class ManifestMissingError(InstallError):
    """Module manifest (or script file) not found in staged content."""

    kind = ErrorKind.MANIFEST_MISSING
    category = ErrorCategory.READ_ERROR


class ManifestParseError(InstallError):
    """Module manifest exists but could not be parsed."""

    kind = ErrorKind.MANIFEST_UNPARSABLE
    category = ErrorCategory.PARSER_ERROR


class LicenseTextMissingError(InstallError):
    """License acceptance is required but License.txt was not shipped."""

    kind = ErrorKind.LICENSE_TEXT_MISSING
    category = ErrorCategory.OBJECT_NOT_FOUND


class LicenseNotAcceptedError(InstallError):
    """License acceptance is required and was not granted."""

    kind = ErrorKind.LICENSE_NOT_ACCEPTED
    category = ErrorCategory.INVALID_ARGUMENT


class CommitError(InstallError):
    """Moving staged content into its destination failed."""

    kind = ErrorKind.COMMIT_FAILED
    category = ErrorCategory.INVALID_OPERATION


class StagingCleanupError(InstallError):
    """Staging area could not be removed."""

    kind = ErrorKind.STAGING_CLEANUP_FAILED
    category = ErrorCategory.INVALID_RESULT


class MetadataWriteError(InstallError):
    """Metadata sidecar could not be serialized."""

    kind = ErrorKind.METADATA_WRITE_FAILED
    category = ErrorCategory.PARSER_ERROR


class InstallCancelledError(InstallError):
    """The operation was cancelled while a package was in flight."""

    kind = ErrorKind.INSTALL_CANCELLED
    category = ErrorCategory.OPERATION_STOPPED


class ErrorRecord(BaseModel):
    """Structured error reported to the caller instead of a raised exception."""

    model_config = ConfigDict(frozen=True)

    kind: ErrorKind
    category: ErrorCategory
    message: str
    package_name: str | None = None
    repository: str | None = None

    @classmethod
    def from_exception(
        cls,
        error: Exception,
        package_name: str | None = None,
        repository: str | None = None,
    ) -> "ErrorRecord":
        """Build a record from any exception.

        Exceptions outside the InstallError hierarchy are reported as
        install_failed / InvalidOperation with their string form as message.
        """
        if isinstance(error, InstallError):
            return cls(
                kind=error.kind,
                category=error.category,
                message=error.message,
                package_name=package_name or error.context.get("package_name"),
                repository=repository or error.context.get("repository"),
            )
        return cls(
            kind=ErrorKind.INSTALL_FAILED,
            category=ErrorCategory.INVALID_OPERATION,
            message=str(error) or type(error).__name__,
            package_name=package_name,
            repository=repository,
        )
