"""Local install inspection - which packages are already on disk.

Layout under a destination root:

    <ModulesRoot>/<Name>/<Version>/...                       (modules)
    <ScriptsRoot>/InstalledScriptInfos/<Name>_InstalledScriptInfo.json  (scripts)

The inspector receives the immediate subdirectories of each root, so a
path is either a module's name directory or the script metadata directory.
"""

import logging
from pathlib import Path

from pydantic import ValidationError

from .exceptions import VersionParseError
from .metadata import SCRIPT_INFO_DIR
from .metadata import SCRIPT_INFO_SUFFIX
from .metadata import read_metadata
from .schema import InstalledPackage
from .versioning import NuGetVersion
from .versioning import VersionRange
from .versioning import parse_version

logger = logging.getLogger(__name__)


class DirectoryInstallInspector:
    """Default inspector reading module version directories and script sidecars."""

    def get_installed(
        self,
        names: list[str],
        version_range: VersionRange,
        paths: list[Path],
    ) -> list[InstalledPackage]:
        """
        Find installed packages matching names within version_range.

        Args:
            names: Package names (case-insensitive)
            version_range: Range an installed version must fall in
            paths: Candidate install directories to inspect

        Returns:
            Highest matching installed version per name
        """
        wanted = {name.casefold() for name in names}
        best: dict[str, tuple[NuGetVersion, InstalledPackage]] = {}

        def consider(name: str, version_text: str, path: Path) -> None:
            try:
                version = parse_version(version_text)
            except VersionParseError:
                logger.warning(f"Ignoring '{path}': cannot parse version '{version_text}'")
                return
            if not version_range.contains(version):
                return
            key = name.casefold()
            if key not in best or version > best[key][0]:
                best[key] = (version, InstalledPackage(name=name, version=version_text, path=path))

        for path in paths:
            if not path.is_dir():
                continue

            if path.name == SCRIPT_INFO_DIR:
                for info_file in path.glob(f"*{SCRIPT_INFO_SUFFIX}"):
                    try:
                        info = read_metadata(info_file)
                    except (OSError, ValidationError) as e:
                        logger.debug(f"Could not read script metadata {info_file}: {e}")
                        continue
                    if info.name.casefold() in wanted:
                        consider(info.name, info.version, info_file)
                continue

            if path.name.casefold() not in wanted:
                continue
            for version_dir in path.iterdir():
                if version_dir.is_dir() and not version_dir.name.startswith("."):
                    consider(path.name, version_dir.name, version_dir)

        return [installed for _, installed in best.values()]
