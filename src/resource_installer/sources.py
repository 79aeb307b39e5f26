"""Default package search and retrieval.

Local repositories are folders of ``<Name>.<Version>.nupkg`` archives (zip
files), as produced by packing a module or script. Remote repositories serve
the same archives at ``<url>/package/<name>/<version>``.

Search here does not expand dependencies: it returns only the requested
names. Apps needing dependency discovery provide their own search.
"""

import asyncio
import logging
import shutil
import zipfile
from pathlib import Path

import httpx

from .exceptions import InstallCancelledError
from .exceptions import RepositorySearchError
from .exceptions import RetrievalError
from .exceptions import VersionParseError
from .schema import CandidatePackage
from .schema import Credential
from .schema import RepositoryDescriptor
from .schema import RetrievedPackage
from .versioning import NuGetVersion
from .versioning import VersionRange
from .versioning import parse_version

logger = logging.getLogger(__name__)

ARCHIVE_SUFFIX = ".nupkg"


def archive_file_name(name: str, version: str) -> str:
    return f"{name}.{version}{ARCHIVE_SUFFIX}"


def _split_version(text: str) -> tuple[str, str | None]:
    version, _, label = text.partition("-")
    return version, label or None


class FolderPackageSearch:
    """Search a local folder repository."""

    async def find(
        self,
        names: list[str],
        version_range: VersionRange,
        prerelease: bool,
        repository: RepositoryDescriptor,
        credential: Credential | None = None,
    ) -> list[CandidatePackage]:
        """
        Find archives for names in a local repository.

        Returns:
            Candidates grouped by requested name, each group version-descending

        Raises:
            RepositorySearchError: If the repository is remote or its folder is missing
        """
        if not repository.is_local:
            raise RepositorySearchError(
                f"Repository '{repository.name}' is not a local folder: {repository.url}",
                context={"repository": repository.name},
            )

        root = repository.local_path
        if not root.is_dir():
            raise RepositorySearchError(
                f"Repository folder for '{repository.name}' does not exist: {root}",
                context={"repository": repository.name},
            )

        archives = [p for p in root.iterdir() if p.is_file() and p.name.casefold().endswith(ARCHIVE_SUFFIX)]
        candidates: list[CandidatePackage] = []
        for name in names:
            prefix = f"{name}.".casefold()
            found: list[tuple[NuGetVersion, CandidatePackage]] = []
            for archive in archives:
                if not archive.name.casefold().startswith(prefix):
                    continue
                version_text = archive.name[len(prefix) : -len(ARCHIVE_SUFFIX)]
                try:
                    parsed = parse_version(version_text)
                except VersionParseError:
                    # Another package whose name extends this one (Foo vs Foo.Bar)
                    continue
                if parsed.is_prerelease and not prerelease:
                    continue
                if not version_range.contains(parsed):
                    continue
                version, label = _split_version(version_text)
                candidate = CandidatePackage(
                    name=archive.name[: len(name)],
                    version=version,
                    prerelease_label=label,
                    repository=repository.name,
                )
                found.append((parsed, candidate))
            found.sort(key=lambda item: item[0], reverse=True)
            candidates.extend(candidate for _, candidate in found)

        logger.debug(f"Found {len(candidates)} candidate(s) in '{repository.name}'")
        return candidates


def _extract_archive(archive_path: Path, content_dir: Path) -> None:
    root = content_dir.resolve()
    with zipfile.ZipFile(archive_path) as archive:
        for member in archive.infolist():
            target = (content_dir / member.filename).resolve()
            if target != root and root not in target.parents:
                raise RetrievalError(
                    f"Archive entry '{member.filename}' escapes the extraction directory",
                    context={"archive": str(archive_path)},
                )
        archive.extractall(content_dir)


class PackageRetriever:
    """Retrieve archives from local folders or remote feeds and extract them."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        chunk_size: int = 64 * 1024,
    ):
        """
        Args:
            client: Optional shared HTTP client (created per download otherwise)
            timeout: Timeout for remote downloads in seconds
            chunk_size: Download chunk size; cancellation is checked between chunks
        """
        self.client = client
        self.timeout = timeout
        self.chunk_size = chunk_size

    async def retrieve(
        self,
        name: str,
        version: str,
        repository: RepositoryDescriptor,
        target_dir: Path,
        credential: Credential | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> RetrievedPackage:
        """
        Retrieve one package into ``<target_dir>/<name lowercased>/<version>``.

        The archive is kept inside the content directory until packaging
        artifacts are removed.

        Raises:
            InstallCancelledError: If cancel_event is set before completion
            RetrievalError: If the archive cannot be found, downloaded or extracted
        """
        if cancel_event is not None and cancel_event.is_set():
            raise InstallCancelledError(f"Retrieval of '{name}' cancelled", context={"package_name": name})

        content_dir = target_dir / name.lower() / version
        content_dir.mkdir(parents=True, exist_ok=True)
        archive_path = content_dir / archive_file_name(name, version)

        if repository.is_local:
            source = repository.local_path / archive_file_name(name, version)
            if not source.is_file():
                raise RetrievalError(
                    f"Package '{name}' version '{version}' not found in '{repository.name}'",
                    context={"package_name": name, "repository": repository.name},
                )
            logger.debug(f"Copying '{source}' to '{archive_path}'")
            shutil.copy2(source, archive_path)
        else:
            await self._download(name, version, repository, archive_path, credential, cancel_event)

        try:
            _extract_archive(archive_path, content_dir)
        except zipfile.BadZipFile as e:
            raise RetrievalError(
                f"Package archive for '{name}' is not a valid archive: {e}",
                context={"package_name": name, "repository": repository.name},
            ) from e

        logger.debug(f"Successfully able to retrieve package from source to: '{content_dir}'")
        return RetrievedPackage(content_dir=content_dir, archive_path=archive_path)

    async def _download(
        self,
        name: str,
        version: str,
        repository: RepositoryDescriptor,
        archive_path: Path,
        credential: Credential | None,
        cancel_event: asyncio.Event | None,
    ) -> None:
        url = f"{repository.url.rstrip('/')}/package/{name}/{version}"
        auth = None
        if credential is not None:
            auth = httpx.BasicAuth(credential.username, credential.password.get_secret_value())

        client = self.client or httpx.AsyncClient(timeout=self.timeout, follow_redirects=True)
        try:
            logger.debug(f"Downloading {url}")
            async with client.stream("GET", url, auth=auth) as response:
                response.raise_for_status()
                with open(archive_path, "wb") as f:
                    async for chunk in response.aiter_bytes(self.chunk_size):
                        if cancel_event is not None and cancel_event.is_set():
                            raise InstallCancelledError(
                                f"Download of '{name}' cancelled", context={"package_name": name}
                            )
                        f.write(chunk)
        except httpx.HTTPError as e:
            raise RetrievalError(
                f"Error attempting download of '{name}' from '{repository.name}': {e}",
                context={"package_name": name, "repository": repository.name},
            ) from e
        finally:
            if self.client is None:
                await client.aclose()
