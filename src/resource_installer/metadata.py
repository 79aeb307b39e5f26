"""Install metadata sidecar (JSON).

Modules carry ``ResourceInfo.json`` inside their version directory. Scripts
share one directory per install root, so each script gets
``<Name>_InstalledScriptInfo.json`` under ``InstalledScriptInfos/``.
"""

import logging
from pathlib import Path

from .exceptions import MetadataWriteError
from .schema import ResourceInfo
from .schema import ResourceType

logger = logging.getLogger(__name__)

MODULE_INFO_FILE = "ResourceInfo.json"
SCRIPT_INFO_DIR = "InstalledScriptInfos"
SCRIPT_INFO_SUFFIX = "_InstalledScriptInfo.json"


def metadata_file_name(name: str, resource_type: ResourceType) -> str:
    if resource_type == ResourceType.MODULE:
        return MODULE_INFO_FILE
    return f"{name}{SCRIPT_INFO_SUFFIX}"


class JsonMetadataWriter:
    """Default metadata writer."""

    def write(self, info: ResourceInfo, path: Path) -> None:
        try:
            path.write_text(info.model_dump_json(indent=2), encoding="utf-8")
        except (OSError, ValueError) as e:
            raise MetadataWriteError(
                f"Error writing metadata for '{info.name}' to {path}: {e}",
                context={"package_name": info.name, "metadata_path": str(path)},
            ) from e
        logger.debug(f"Wrote metadata for {info.name} to {path}")


def read_metadata(path: Path) -> ResourceInfo:
    """Load a sidecar written by JsonMetadataWriter.

    Raises:
        ValueError: If the file is not a valid sidecar (pydantic ValidationError)
        OSError: If the file cannot be read
    """
    return ResourceInfo.model_validate_json(path.read_text(encoding="utf-8"))
