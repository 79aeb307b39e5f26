"""Install transaction - stage, validate, gate, commit, clean up one package.

Each package is processed inside its own StagingArea. Every error is caught
at this boundary and turned into a failed outcome, so one bad package never
aborts the batch. The permanent destination is only touched by the commit
step, which runs synchronously: once started it is never interrupted by
task cancellation halfway through a move.
"""

import asyncio
import logging
import shutil
from datetime import datetime
from pathlib import Path

from .exceptions import CommitError
from .exceptions import ErrorRecord
from .exceptions import InstallCancelledError
from .exceptions import ManifestMissingError
from .exceptions import ManifestParseError
from .exceptions import RetrievalError
from .exceptions import VersionParseError
from .license import LicenseGate
from .manifest import MANIFEST_SUFFIX
from .manifest import SCRIPT_SUFFIX
from .manifest import find_file_ignore_case
from .metadata import SCRIPT_INFO_DIR
from .metadata import metadata_file_name
from .outcomes import InstallOutcome
from .outcomes import OutcomeStatus
from .protocols import ManifestParserProtocol
from .protocols import MetadataWriterProtocol
from .protocols import PackageRetrievalProtocol
from .schema import CandidatePackage
from .schema import InstallRequest
from .schema import RepositoryDescriptor
from .schema import ResourceInfo
from .schema import ResourceType
from .schema import RetrievedPackage
from .sources import archive_file_name
from .staging import StagingArea
from .staging import remove_packaging_artifacts
from .utils import delete_directory_with_restore
from .utils import move_directory
from .utils import move_file
from .versioning import parse_version
from .versioning import strip_prerelease

logger = logging.getLogger(__name__)

MODULES_ROOT_SUFFIX = "modules"
SCRIPTS_ROOT_SUFFIX = "scripts"


def detect_resource_type(content_dir: Path) -> ResourceType:
    """A package is a module when its staged content has a manifest, else a script."""
    for entry in content_dir.iterdir():
        if entry.is_file() and entry.suffix.casefold() == MANIFEST_SUFFIX:
            return ResourceType.MODULE
    return ResourceType.SCRIPT


def select_install_root(
    destination_roots: list[Path],
    resource_type: ResourceType,
    save_only: bool = False,
) -> Path:
    """
    Pick the destination parent for a package.

    Roots are ranked by desirability. Save-only uses the first root; otherwise
    modules go to the first root named ``*Modules`` and scripts to the first
    named ``*Scripts`` (case-insensitive).

    Raises:
        CommitError: If no root matches
    """
    if save_only:
        if destination_roots:
            return destination_roots[0]
    else:
        suffix = MODULES_ROOT_SUFFIX if resource_type == ResourceType.MODULE else SCRIPTS_ROOT_SUFFIX
        for root in destination_roots:
            if root.name.casefold().endswith(suffix):
                return root
    raise CommitError(
        f"No destination root available for {resource_type.value.lower()} packages",
        context={"destination_roots": [str(r) for r in destination_roots]},
    )


def _module_version_dir(name: str, module_version: str | None, fallback: str) -> str:
    """
    Directory name for a module version: the manifest's ModuleVersion, else fallback.

    Raises:
        ManifestParseError: If ModuleVersion is not a plain version
    """
    if not module_version:
        return fallback
    if "/" in module_version or "\\" in module_version or ".." in module_version:
        raise ManifestParseError(
            f"Module manifest for '{name}' has an invalid ModuleVersion '{module_version}'",
            context={"package_name": name},
        )
    try:
        parse_version(module_version)
    except VersionParseError as e:
        raise ManifestParseError(
            f"Module manifest for '{name}' has an invalid ModuleVersion '{module_version}': {e}",
            context={"package_name": name},
        ) from e
    return module_version


class InstallTransaction:
    """
    Install one candidate at a time for an operation.

    Holds the operation-scoped collaborators and the license gate; carries no
    per-package state between runs.
    """

    def __init__(
        self,
        request: InstallRequest,
        retriever: PackageRetrievalProtocol,
        manifest_parser: ManifestParserProtocol,
        metadata_writer: MetadataWriterProtocol,
        license_gate: LicenseGate,
        staging_root: Path | None = None,
        cancel_event: asyncio.Event | None = None,
    ):
        self.request = request
        self.retriever = retriever
        self.manifest_parser = manifest_parser
        self.metadata_writer = metadata_writer
        self.license_gate = license_gate
        self.staging_root = staging_root
        self.cancel_event = cancel_event

    async def run(self, candidate: CandidatePackage, repository: RepositoryDescriptor) -> InstallOutcome:
        """
        Install one package or leave the destination exactly as it was.

        Args:
            candidate: Package to install
            repository: Repository the candidate came from

        Returns:
            InstallOutcome (never raises for package-level errors)
        """
        logger.debug(f"Begin installing package: '{candidate.name}'")
        staging = StagingArea(self.staging_root)
        # Staging creation failures are package failures too
        try:
            with staging:
                outcome = await self._install_staged(candidate, repository, staging.path)
        except InstallCancelledError as e:
            logger.warning(f"Install of '{candidate.name}' cancelled")
            outcome = InstallOutcome(
                name=candidate.name,
                status=OutcomeStatus.CANCELLED,
                version=candidate.full_version,
                repository=repository.name,
                message=e.message,
                error=ErrorRecord.from_exception(e, candidate.name, repository.name),
            )
        except Exception as e:
            error = ErrorRecord.from_exception(e, candidate.name, repository.name)
            message = f"Unable to successfully install package '{candidate.name}': '{error.message}'"
            logger.error(message)
            outcome = InstallOutcome(
                name=candidate.name,
                status=OutcomeStatus.FAILED,
                version=candidate.full_version,
                repository=repository.name,
                message=message,
                error=error,
            )

        if staging.cleanup_error is not None:
            cleanup_error = ErrorRecord.from_exception(staging.cleanup_error, candidate.name, repository.name)
            outcome = outcome.model_copy(update={"cleanup_error": cleanup_error})
        return outcome

    async def _retrieve(
        self,
        candidate: CandidatePackage,
        version: str,
        repository: RepositoryDescriptor,
        staging_path: Path,
    ) -> RetrievedPackage:
        try:
            return await self.retriever.retrieve(
                name=candidate.name,
                version=version,
                repository=repository,
                target_dir=staging_path,
                credential=self.request.credential,
                cancel_event=self.cancel_event,
            )
        except (InstallCancelledError, RetrievalError):
            raise
        except Exception as e:
            raise RetrievalError(
                f"Error retrieving package '{candidate.name}' from '{repository.name}': {e}",
                context={"package_name": candidate.name, "repository": repository.name},
            ) from e

    async def _install_staged(
        self,
        candidate: CandidatePackage,
        repository: RepositoryDescriptor,
        staging_path: Path,
    ) -> InstallOutcome:
        # Step 1: resolve the precise version and retrieve into staging
        version = candidate.full_version
        parse_version(version)
        retrieved = await self._retrieve(candidate, version, repository, staging_path)
        content_dir = retrieved.content_dir
        logger.debug(f"Retrieved '{candidate.name}' into '{content_dir}'")

        # Step 2: archive only, no install
        if self.request.as_archive:
            return self._save_archive(candidate, version, repository, retrieved)

        # Step 3: module or script
        resource_type = detect_resource_type(content_dir)
        install_version = strip_prerelease(version)
        script_path: Path | None = None

        if resource_type == ResourceType.MODULE:
            # Step 4: manifest and license
            manifest_path = find_file_ignore_case(content_dir, f"{candidate.name}{MANIFEST_SUFFIX}")
            if manifest_path is None:
                raise ManifestMissingError(
                    f"Module manifest file: {content_dir / (candidate.name + MANIFEST_SUFFIX)} does not exist. "
                    f"This is not a valid module.",
                    context={"package_name": candidate.name},
                )
            manifest = self.manifest_parser.parse(manifest_path)
            install_version = _module_version_dir(candidate.name, manifest.get("ModuleVersion"), install_version)
            if not self.request.save_only:
                await self.license_gate.check(candidate.name, manifest_path, content_dir)
        else:
            script_path = find_file_ignore_case(content_dir, f"{candidate.name}{SCRIPT_SUFFIX}")
            if script_path is None:
                raise ManifestMissingError(
                    f"Package '{candidate.name}' contains neither a module manifest nor a script file",
                    context={"package_name": candidate.name},
                )

        # Step 5: strip packaging artifacts
        remove_packaging_artifacts(content_dir, candidate.name, version, retrieved.archive_path)

        install_root = select_install_root(self.request.destination_roots, resource_type, self.request.save_only)

        # Step 6: provenance sidecar
        if self.request.include_metadata:
            info = ResourceInfo(
                name=candidate.name,
                version=version,
                type=resource_type,
                description=candidate.description,
                repository=repository.name,
                repository_url=repository.url,
                installed_date=datetime.now().astimezone(),
                installed_location=str(install_root),
            )
            self.metadata_writer.write(info, content_dir / metadata_file_name(candidate.name, resource_type))

        # Step 7: commit
        if resource_type == ResourceType.MODULE:
            destination = self._commit_module(candidate.name, content_dir, install_root, install_version)
        else:
            destination = self._commit_script(candidate.name, content_dir, script_path, install_root)

        message = f"Successfully installed package '{candidate.name}' to location '{install_root}'"
        logger.info(message)
        return InstallOutcome(
            name=candidate.name,
            status=OutcomeStatus.INSTALLED,
            version=version,
            repository=repository.name,
            path=destination,
            message=message,
        )

    def _save_archive(
        self,
        candidate: CandidatePackage,
        version: str,
        repository: RepositoryDescriptor,
        retrieved: RetrievedPackage,
    ) -> InstallOutcome:
        if retrieved.archive_path is None or not retrieved.archive_path.is_file():
            raise RetrievalError(
                f"No package archive was retrieved for '{candidate.name}'",
                context={"package_name": candidate.name, "repository": repository.name},
            )
        if not self.request.destination_roots:
            raise CommitError("No destination root available for package archives")

        root = self.request.destination_roots[0]
        root.mkdir(parents=True, exist_ok=True)
        destination = root / archive_file_name(candidate.name, version)
        try:
            shutil.copyfile(retrieved.archive_path, destination)
        except OSError as e:
            raise CommitError(
                f"Could not save archive for '{candidate.name}' to {destination}: {e}",
                context={"package_name": candidate.name},
            ) from e

        message = f"Saved package archive '{candidate.name}' to '{destination}'"
        logger.info(message)
        return InstallOutcome(
            name=candidate.name,
            status=OutcomeStatus.INSTALLED,
            version=version,
            repository=repository.name,
            path=destination,
            message=message,
        )

    def _commit_module(self, name: str, content_dir: Path, install_root: Path, version: str) -> Path:
        """
        Move a staged module version directory into ``<root>/<name>/<version>``.

        First install: create the parent and move. Reinstall of an existing
        version: delete the old version directory with restore-on-failure,
        and only then move the staged content in.

        Raises:
            CommitError: If the old version cannot be removed (content restored) or the move fails
        """
        destination_parent = install_root / name
        destination_version_dir = destination_parent / version
        logger.debug(f"Installation source path is: '{content_dir}'")
        logger.debug(f"Installation destination path is: '{destination_version_dir}'")

        if destination_version_dir.resolve().parent != destination_parent.resolve():
            raise CommitError(
                f"Install path '{destination_version_dir}' is outside '{destination_parent}'",
                context={"package_name": name, "destination": str(destination_version_dir)},
            )

        try:
            if not destination_parent.exists():
                destination_parent.mkdir(parents=True)
                move_directory(content_dir, destination_version_dir)
                return destination_version_dir

            if destination_version_dir.exists():
                logger.debug(f"Attempting to delete with restore on failure '{destination_version_dir}'")
                delete_directory_with_restore(destination_version_dir)

            move_directory(content_dir, destination_version_dir)
        except OSError as e:
            raise CommitError(
                f"Could not install '{name}' to '{destination_version_dir}': {e}",
                context={"package_name": name, "destination": str(destination_version_dir)},
            ) from e
        return destination_version_dir

    def _commit_script(self, name: str, content_dir: Path, script_path: Path, install_root: Path) -> Path:
        """
        Replace a script (and its metadata sidecar) in the scripts root.

        Both old files are deleted before either new file is moved in, so a
        failed delete never leaves a new sidecar next to the old script.

        Raises:
            CommitError: If a file cannot be replaced
        """
        destination = install_root / f"{name}{SCRIPT_SUFFIX}"
        sidecar_name = metadata_file_name(name, ResourceType.SCRIPT)
        installed_sidecar = install_root / SCRIPT_INFO_DIR / sidecar_name
        staged_sidecar = content_dir / sidecar_name
        try:
            install_root.mkdir(parents=True, exist_ok=True)
            if not self.request.save_only and installed_sidecar.exists():
                logger.debug("Deleting script metadata")
                installed_sidecar.unlink()
            if destination.exists():
                logger.debug("Deleting script file")
                destination.unlink()

            if not self.request.save_only and staged_sidecar.exists():
                move_file(staged_sidecar, installed_sidecar)
            move_file(script_path, destination)
        except OSError as e:
            raise CommitError(
                f"Could not install script '{name}' to '{destination}': {e}",
                context={"package_name": name, "destination": str(destination)},
            ) from e
        return destination
