"""Repository settings - the source listing read from a TOML file.

Settings format:

    [[repository]]
    name = "Gallery"
    url = "https://gallery.example.com/api/v2"
    trusted = false
    priority = 50

    [[repository]]
    name = "Local"
    url = "file:///srv/packages"
    trusted = true
    priority = 10

Lower priority values are searched first; equal priorities keep file order.
The settings path is injected by the app.
"""

import fnmatch
import logging
import tomllib
from pathlib import Path

from pydantic import ValidationError

from .exceptions import RepositorySettingsError
from .schema import RepositoryDescriptor

logger = logging.getLogger(__name__)


class RepositorySettings:
    """Repository settings file reader (with injected settings path)."""

    def __init__(self, settings_path: Path):
        """Initialize with app-provided settings path.

        Args:
            settings_path: Path to the TOML settings file (app determines location)

        Example:
            >>> settings = RepositorySettings(Path.home() / ".resources" / "repositories.toml")
            >>> repositories, missing = settings.read(["Gallery"])
        """
        self.settings_path = settings_path

    def _load(self) -> list[RepositoryDescriptor]:
        if not self.settings_path.exists():
            logger.debug(f"Repository settings not found: {self.settings_path}")
            return []

        try:
            with open(self.settings_path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise RepositorySettingsError(
                f"Invalid repository settings file {self.settings_path}: {e}",
                context={"settings_path": str(self.settings_path)},
            ) from e

        entries = data.get("repository", [])
        if not isinstance(entries, list):
            raise RepositorySettingsError(
                f"Expected [[repository]] tables in {self.settings_path}",
                context={"settings_path": str(self.settings_path)},
            )

        try:
            return [RepositoryDescriptor(**entry) for entry in entries]
        except (TypeError, ValidationError) as e:
            raise RepositorySettingsError(
                f"Invalid repository entry in {self.settings_path}: {e}",
                context={"settings_path": str(self.settings_path)},
            ) from e

    def read(self, names: list[str] | None = None) -> tuple[list[RepositoryDescriptor], list[str]]:
        """
        Read repositories in priority order.

        Args:
            names: Optional repository names to select (case-insensitive, ``*`` wildcards).
                   None or empty selects every registered repository.

        Returns:
            Tuple of (repositories sorted by priority, requested names that matched nothing)

        Raises:
            RepositorySettingsError: If the settings file is malformed
        """
        repositories = self._load()
        missing: list[str] = []

        if names:
            selected: list[RepositoryDescriptor] = []
            for name in names:
                pattern = name.casefold()
                matches = [r for r in repositories if fnmatch.fnmatchcase(r.name.casefold(), pattern)]
                if not matches:
                    logger.warning(f"Unable to find repository '{name}' in repository settings")
                    missing.append(name)
                for repository in matches:
                    if repository not in selected:
                        selected.append(repository)
            repositories = selected

        # sorted() is stable, so equal priorities keep file order
        return sorted(repositories, key=lambda r: r.priority), missing
