"""Module manifest parsing.

A module manifest is a PowerShell data file (``<Name>.psd1``) holding one
hashtable literal. Only top-level scalar entries are extracted; nested
hashtables and arrays are skipped. That is enough for ModuleVersion and the
other identity fields the installer needs.
"""

import logging
import re
from pathlib import Path

from .exceptions import ManifestMissingError
from .exceptions import ManifestParseError

logger = logging.getLogger(__name__)

MANIFEST_SUFFIX = ".psd1"
SCRIPT_SUFFIX = ".ps1"

_BLOCK_COMMENT = re.compile(r"<#.*?#>", re.DOTALL)
_LINE_COMMENT = re.compile(r"(?m)^\s*#.*$")
_ENTRY = re.compile(
    r"""(?mx)
    ^\s*(?P<key>[A-Za-z_][A-Za-z0-9_]*)\s*=\s*
    (?:
        '(?P<single>(?:[^']|'')*)'
      | "(?P<double>[^"]*)"
      | (?P<bare>\$true|\$false|\$null|[0-9][0-9A-Za-z.\-]*)
    )
    """
)


class ModuleManifestParser:
    """Default manifest parser for ``.psd1`` files."""

    def parse(self, manifest_path: Path) -> dict[str, str]:
        """
        Parse a module manifest into key/value pairs.

        Args:
            manifest_path: Path to the .psd1 file

        Returns:
            Mapping of top-level scalar keys to their string values

        Raises:
            ManifestMissingError: If the file does not exist
            ManifestParseError: If the file is not a hashtable literal
        """
        if not manifest_path.exists():
            raise ManifestMissingError(
                f"Module manifest file: {manifest_path} does not exist.",
                context={"manifest_path": str(manifest_path)},
            )

        try:
            text = manifest_path.read_text(encoding="utf-8-sig")
        except (OSError, UnicodeDecodeError) as e:
            raise ManifestParseError(
                f"Could not read module manifest {manifest_path}: {e}",
                context={"manifest_path": str(manifest_path)},
            ) from e

        body = _LINE_COMMENT.sub("", _BLOCK_COMMENT.sub("", text)).strip()
        if not body.startswith("@{") or not body.endswith("}"):
            raise ManifestParseError(
                f"Module manifest {manifest_path} is not a valid hashtable literal",
                context={"manifest_path": str(manifest_path)},
            )
        if body.count("{") != body.count("}"):
            raise ManifestParseError(
                f"Module manifest {manifest_path} has unbalanced braces",
                context={"manifest_path": str(manifest_path)},
            )

        values: dict[str, str] = {}
        depth = 0
        for line in body[2:-1].splitlines():
            if depth == 0:
                match = _ENTRY.match(line)
                if match:
                    if match.group("single") is not None:
                        value = match.group("single").replace("''", "'")
                    elif match.group("double") is not None:
                        value = match.group("double")
                    else:
                        value = match.group("bare")
                    values[match.group("key")] = value
            depth += line.count("{") + line.count("(") - line.count("}") - line.count(")")

        logger.debug(f"Parsed {len(values)} entries from {manifest_path}")
        return values


def find_file_ignore_case(directory: Path, file_name: str) -> Path | None:
    """Find a file directly inside directory by case-insensitive name."""
    exact = directory / file_name
    if exact.is_file():
        return exact
    wanted = file_name.casefold()
    for entry in directory.iterdir():
        if entry.is_file() and entry.name.casefold() == wanted:
            return entry
    return None
