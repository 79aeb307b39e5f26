"""Resource installation - scan repositories by priority and install what is found.

The library doesn't know HOW to search feeds, download archives or ask the
user anything: apps inject those collaborators (see protocols.py) along with
the policy of WHERE to install (destination roots) and WHICH repositories
to use, in which order.

Flow for one operation:
1. Visit repositories in priority order until every requested name is satisfied
2. Apply the trust gate to untrusted repositories
3. Search, keep one candidate per name, drop what is already installed
4. Install remaining candidates one at a time (InstallTransaction)
5. Report an outcome per package name
"""

import asyncio
import logging
from pathlib import Path

from .consent import ConsentProtocol
from .consent import TrustGate
from .exceptions import ErrorRecord
from .exceptions import NoRepositoriesError
from .exceptions import RepositorySearchError
from .filters import filter_installed
from .filters import select_latest_per_name
from .inspector import DirectoryInstallInspector
from .license import LicenseGate
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
from .schema import CandidatePackage
from .schema import Credential
from .schema import InstallRequest
from .schema import RepositoryDescriptor
from .sources import FolderPackageSearch
from .sources import PackageRetriever
from .transaction import InstallTransaction
from .versioning import VersionRange

logger = logging.getLogger(__name__)


class ResourceInstaller:
    """
    Install orchestration core (with injected collaborators).

    Example:
        >>> installer = ResourceInstaller(
        ...     search=FolderPackageSearch(),
        ...     retriever=PackageRetriever(),
        ...     consent=StaticConsent(accepted=False),
        ... )
        >>> request = InstallRequest(names=["Foo"], version_range="[1.0,2.0)",
        ...                          destination_roots=[Path("~/Modules"), Path("~/Scripts")])
        >>> report = await installer.install(request, repositories)
        >>> report.get("Foo").status
        <OutcomeStatus.INSTALLED: 'installed'>
    """

    def __init__(
        self,
        search: PackageSearchProtocol,
        retriever: PackageRetrievalProtocol,
        inspector: InstallInspectorProtocol | None = None,
        consent: ConsentProtocol | None = None,
        manifest_parser: ManifestParserProtocol | None = None,
        metadata_writer: MetadataWriterProtocol | None = None,
        staging_root: Path | None = None,
    ):
        """Initialize installer with app-provided collaborators.

        Args:
            search: Finds candidates (and their dependencies) in a repository
            retriever: Delivers package content into a staging area
            inspector: Reports already installed packages (default: DirectoryInstallInspector)
            consent: Answers trust and license prompts (None declines every prompt)
            manifest_parser: Parses module manifests (default: ModuleManifestParser)
            metadata_writer: Writes metadata sidecars (default: JsonMetadataWriter)
            staging_root: Parent directory for staging areas (default: system temp dir)
        """
        self.search = search
        self.retriever = retriever
        self.inspector = inspector or DirectoryInstallInspector()
        self.consent = consent
        self.manifest_parser = manifest_parser or ModuleManifestParser()
        self.metadata_writer = metadata_writer or JsonMetadataWriter()
        self.staging_root = staging_root

    async def install(
        self,
        request: InstallRequest,
        repositories: list[RepositoryDescriptor],
        cancel_event: asyncio.Event | None = None,
    ) -> InstallReport:
        """
        Install requested packages from the first repositories that provide them.

        Args:
            request: Names, version range and flags for this operation
            repositories: Repositories in priority order (highest first)
            cancel_event: Cooperative cancellation signal shared by the whole operation

        Returns:
            InstallReport with an outcome per package name

        Raises:
            NoRepositoriesError: If repositories is empty
        """
        logger.debug(
            f"Parameters passed in >>> Name: '{','.join(request.names)}'; Version: '{request.version_range}'; "
            f"Prerelease: '{request.prerelease}'; Repository: '{','.join(r.name for r in repositories)}'; "
            f"AcceptLicense: '{request.accept_license}'; Reinstall: '{request.reinstall}'; "
            f"TrustRepository: '{request.trust_repository}';"
        )
        if not repositories:
            raise NoRepositoriesError("No repositories are configured for this install operation")

        report = InstallReport()
        trust_gate = TrustGate(self.consent, trust_repository=request.trust_repository, force=request.force)
        transaction = InstallTransaction(
            request=request,
            retriever=self.retriever,
            manifest_parser=self.manifest_parser,
            metadata_writer=self.metadata_writer,
            license_gate=LicenseGate(self.consent, accepted=request.accept_license),
            staging_root=self.staging_root,
            cancel_event=cancel_event,
        )

        # Pending set: casefolded name -> requested name; owned by this scan only
        pending = {name.casefold(): name for name in request.names}
        untrusted_declined = False
        cancelled = False

        for repository in repositories:
            if not pending:
                logger.debug("All requested packages satisfied, stopping repository scan")
                break
            if cancel_event is not None and cancel_event.is_set():
                cancelled = True
                break

            if not await trust_gate.allows(repository):
                logger.warning(f"Skipping untrusted repository '{repository.name}'")
                untrusted_declined = True
                continue

            installed_names, cancelled = await self._process_repository(
                request, repository, list(pending.values()), transaction, report, cancel_event
            )
            for name in installed_names:
                pending.pop(name.casefold(), None)
            if cancelled:
                break

        if cancelled:
            for name in pending.values():
                if report.get(name) is None:
                    report.record(
                        InstallOutcome(
                            name=name,
                            status=OutcomeStatus.CANCELLED,
                            message=f"Install of '{name}' was cancelled before it started",
                        )
                    )
        report.finalize(list(pending.values()), untrusted_declined)
        return report

    async def _search(
        self,
        request: InstallRequest,
        repository: RepositoryDescriptor,
        names: list[str],
    ) -> list[CandidatePackage]:
        try:
            return await self.search.find(
                names=names,
                version_range=request.version_range,
                prerelease=request.prerelease,
                repository=repository,
                credential=request.credential,
            )
        except RepositorySearchError:
            raise
        except Exception as e:
            raise RepositorySearchError(
                f"Error searching repository '{repository.name}': {e}",
                context={"repository": repository.name},
            ) from e

    async def _process_repository(
        self,
        request: InstallRequest,
        repository: RepositoryDescriptor,
        names: list[str],
        transaction: InstallTransaction,
        report: InstallReport,
        cancel_event: asyncio.Event | None,
    ) -> tuple[list[str], bool]:
        """Search one repository and install what it provides.

        Returns:
            Tuple of (names installed from this repository, whether the operation was cancelled)
        """
        logger.info(f"Attempting to search for packages in '{repository.name}'")
        # Only still-pending names: a name satisfied by a higher-priority repository is never reinstalled
        try:
            candidates = await self._search(request, repository, names)
        except RepositorySearchError as e:
            logger.error(e.message)
            report.record_repository_error(ErrorRecord.from_exception(e, repository=repository.name))
            return [], False

        if not candidates:
            logger.debug(f"None of the specified resources were found in the '{repository.name}' repository.")
            return [], False

        # At most one version per name per operation, dependencies included
        candidates = [
            c
            for c in select_latest_per_name(candidates)
            if not (report.get(c.name) is not None and report.get(c.name).succeeded)
        ]

        if not request.reinstall:
            try:
                candidates, already_installed = filter_installed(
                    candidates, request.destination_roots, request.version_range, self.inspector
                )
            except Exception as e:
                error = RepositorySearchError(
                    f"Error checking installed packages for '{repository.name}': {e}",
                    context={"repository": repository.name},
                )
                logger.error(error.message)
                report.record_repository_error(ErrorRecord.from_exception(error, repository=repository.name))
                return [], False
            for installed in already_installed:
                report.record(
                    InstallOutcome(
                        name=installed.name,
                        status=OutcomeStatus.SKIPPED_ALREADY_SATISFIED,
                        version=installed.version,
                        repository=repository.name,
                        path=installed.path,
                        message=(
                            f"Resource '{installed.name}' with version '{installed.version}' is already installed. "
                            f"If you would like to reinstall, please run again with reinstall enabled."
                        ),
                    )
                )

        installed_names: list[str] = []
        for candidate in candidates:
            if cancel_event is not None and cancel_event.is_set():
                return installed_names, True
            outcome = await transaction.run(candidate, repository)
            report.record(outcome)
            if outcome.status == OutcomeStatus.CANCELLED:
                return installed_names, True
            if outcome.succeeded:
                installed_names.append(candidate.name)

        return installed_names, False


async def install_resources(
    names: list[str],
    repositories: list[RepositoryDescriptor],
    destination_roots: list[Path],
    search: PackageSearchProtocol | None = None,
    retriever: PackageRetrievalProtocol | None = None,
    inspector: InstallInspectorProtocol | None = None,
    consent: ConsentProtocol | None = None,
    version_range: VersionRange | str | None = None,
    prerelease: bool = False,
    accept_license: bool = False,
    reinstall: bool = False,
    force: bool = False,
    trust_repository: bool = False,
    credential: Credential | None = None,
    save_only: bool = False,
    as_archive: bool = False,
    include_metadata: bool = True,
    staging_root: Path | None = None,
    cancel_event: asyncio.Event | None = None,
) -> InstallReport:
    """
    Install packages (flat entry point).

    Defaults to FolderPackageSearch and PackageRetriever, i.e. local folder
    repositories of package archives plus remote archive downloads.

    Args:
        names: Package names to install
        repositories: Repositories in priority order
        destination_roots: Install roots ranked by desirability (``*Modules``, ``*Scripts``)
        search: Package search collaborator
        retriever: Package retrieval collaborator
        inspector: Local install inspector
        consent: Consent callback for trust and license prompts
        version_range: Interval notation range, e.g. ``[1.0,2.0)``
        prerelease: Include prerelease versions
        accept_license: Accept licenses without prompting
        reinstall: Install even when a matching version is already installed
        force: Skip the untrusted repository prompt
        trust_repository: Treat every repository as trusted
        credential: Credential for remote repositories
        save_only: Materialize packages without registering them as installed
        as_archive: Save the package archive instead of installing its content
        include_metadata: Write the install metadata sidecar
        staging_root: Parent directory for staging areas
        cancel_event: Cooperative cancellation signal

    Returns:
        InstallReport

    Raises:
        NoRepositoriesError: If repositories is empty
        VersionParseError: If version_range is not valid interval notation
    """
    request = InstallRequest(
        names=names,
        version_range=VersionRange.parse(version_range),
        prerelease=prerelease,
        accept_license=accept_license,
        reinstall=reinstall,
        force=force,
        trust_repository=trust_repository,
        credential=credential,
        destination_roots=destination_roots,
        save_only=save_only,
        as_archive=as_archive,
        include_metadata=include_metadata,
    )
    installer = ResourceInstaller(
        search=search or FolderPackageSearch(),
        retriever=retriever or PackageRetriever(),
        inspector=inspector,
        consent=consent,
        staging_root=staging_root,
    )
    return await installer.install(request, repositories, cancel_event=cancel_event)
