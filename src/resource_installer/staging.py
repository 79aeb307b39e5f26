"""Staging area for one install attempt.

Each attempt gets a uniquely named scratch directory that is removed on
every exit path. Cleanup failure never raises; it is kept on the staging
area so the caller can surface it next to the package outcome.
"""

import logging
import shutil
import tempfile
import uuid
from pathlib import Path

from .exceptions import StagingCleanupError
from .utils import delete_directory

logger = logging.getLogger(__name__)

# Files and directories added by the package format, never part of installed content
CONTENT_TYPES_FILE = "[Content_Types].xml"
PACKAGING_DIRECTORIES = ("_rels", "package")


class StagingArea:
    """
    Scoped scratch directory (context manager).

    Example:
        >>> with StagingArea() as staging:
        ...     do_work(staging.path)
        >>> staging.cleanup_error  # None unless removal failed
    """

    def __init__(self, root: Path | None = None):
        """
        Args:
            root: Parent directory for staging areas (defaults to the system temp dir)
        """
        self.root = root or Path(tempfile.gettempdir())
        self.path = self.root / uuid.uuid4().hex
        self.cleanup_error: StagingCleanupError | None = None

    def __enter__(self) -> "StagingArea":
        self.path.mkdir(parents=True)
        logger.debug(f"Created staging area '{self.path}'")
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cleanup()

    def cleanup(self) -> None:
        if not self.path.exists():
            return
        logger.debug(f"Attempting to delete '{self.path}'")
        try:
            delete_directory(self.path)
        except OSError as e:
            self.cleanup_error = StagingCleanupError(
                f"Could not delete staging area '{self.path}': {e}",
                context={"staging_path": str(self.path)},
            )
            logger.error(self.cleanup_error.message)
            return
        logger.debug(f"Successfully deleted '{self.path}'")


def remove_packaging_artifacts(
    content_dir: Path,
    name: str,
    version: str,
    archive_path: Path | None = None,
) -> list[Path]:
    """
    Delete packaging-format files that are not part of the logical package.

    Removes (case-insensitively) ``<name>.<version>.nupkg`` and its
    ``.sha512`` / ``.metadata`` sidecars, ``<name>.nuspec``,
    ``[Content_Types].xml`` and the ``_rels`` / ``package`` directories,
    plus the retrieved archive itself when it lives inside content_dir.

    Args:
        content_dir: Staged package content
        name: Package name
        version: Full package version
        archive_path: Retrieved archive, if any

    Returns:
        Paths that were removed
    """
    package_id = f"{name}.{version}"
    file_names = {
        f"{package_id}.nupkg".casefold(),
        f"{package_id}.nupkg.sha512".casefold(),
        f"{package_id}.nupkg.metadata".casefold(),
        f"{name}.nuspec".casefold(),
        CONTENT_TYPES_FILE.casefold(),
    }
    dir_names = {d.casefold() for d in PACKAGING_DIRECTORIES}

    removed: list[Path] = []
    for entry in content_dir.iterdir():
        key = entry.name.casefold()
        if entry.is_dir() and key in dir_names:
            logger.debug(f"Deleting '{entry}'")
            shutil.rmtree(entry)
            removed.append(entry)
        elif entry.is_file() and (key in file_names or (archive_path is not None and entry == archive_path)):
            logger.debug(f"Deleting '{entry}'")
            entry.unlink()
            removed.append(entry)
    return removed
