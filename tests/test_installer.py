"""Tests for the repository scan (ResourceInstaller)."""

import asyncio

import pytest
from resource_installer import DirectoryInstallInspector
from resource_installer import ErrorKind
from resource_installer import FolderPackageSearch
from resource_installer import InstallRequest
from resource_installer import NoRepositoriesError
from resource_installer import OutcomeStatus
from resource_installer import PackageRetriever
from resource_installer import RepositoryDescriptor
from resource_installer import ResourceInstaller
from resource_installer import StaticConsent
from resource_installer import VersionParseError
from resource_installer import install_resources


class SpySearch:
    """Folder search recording which repository was asked for which names."""

    def __init__(self, dependencies: dict[str, list[str]] | None = None):
        self.inner = FolderPackageSearch()
        self.dependencies = dependencies or {}
        self.calls: list[tuple[str, list[str]]] = []

    async def find(self, names, version_range, prerelease, repository, credential=None):
        self.calls.append((repository.name, list(names)))
        expanded = list(names)
        for name in names:
            expanded.extend(self.dependencies.get(name, []))
        return await self.inner.find(expanded, version_range, prerelease, repository, credential)


class FlakyInspector:
    """Fails its first lookup, then reads installed packages from disk."""

    def __init__(self):
        self.inner = DirectoryInstallInspector()
        self.calls = 0

    def get_installed(self, names, version_range, paths):
        self.calls += 1
        if self.calls == 1:
            raise PermissionError(13, "Permission denied", str(paths[0]))
        return self.inner.get_installed(names, version_range, paths)


class CancellingRetriever:
    """Retrieves normally, then signals cancellation."""

    def __init__(self, cancel_event: asyncio.Event):
        self.inner = PackageRetriever()
        self.cancel_event = cancel_event

    async def retrieve(self, name, version, repository, target_dir, credential=None, cancel_event=None):
        retrieved = await self.inner.retrieve(name, version, repository, target_dir, credential)
        self.cancel_event.set()
        return retrieved


@pytest.fixture
def make_repo(tmp_path):
    def _make(name: str, trusted: bool = True, url: str | None = None) -> RepositoryDescriptor:
        path = tmp_path / "repos" / name
        path.mkdir(parents=True, exist_ok=True)
        return RepositoryDescriptor(name=name, url=url or str(path), trusted=trusted)

    return _make


@pytest.fixture
def installer_for(staging_root):
    def _make(search=None, consent=None, retriever=None, inspector=None) -> ResourceInstaller:
        return ResourceInstaller(
            search=search or SpySearch(),
            retriever=retriever or PackageRetriever(),
            inspector=inspector,
            consent=consent,
            staging_root=staging_root,
        )

    return _make


@pytest.fixture
def request_for(destination_roots):
    def _make(*names: str, **fields) -> InstallRequest:
        return InstallRequest(names=list(names), destination_roots=destination_roots, **fields)

    return _make


@pytest.mark.asyncio
async def test_first_repository_wins_and_scan_stops(
    make_repo, make_module, installer_for, request_for, destination_roots
):
    """Foo 1.5 comes from R1; R2 (which has Foo 1.9) is never queried."""
    r1 = make_repo("R1")
    r2 = make_repo("R2")
    make_module(r1.local_path, "Foo", "1.5.0")
    make_module(r2.local_path, "Foo", "1.9.0")
    search = SpySearch()

    report = await installer_for(search).install(request_for("Foo", version_range="[1.0,2.0)"), [r1, r2])

    outcome = report.get("Foo")
    assert outcome.status == OutcomeStatus.INSTALLED
    assert outcome.version == "1.5.0"
    assert outcome.repository == "R1"
    assert search.calls == [("R1", ["Foo"])]
    assert (destination_roots[0] / "Foo" / "1.5.0").is_dir()


@pytest.mark.asyncio
async def test_names_split_across_repositories(make_repo, make_module, make_script, installer_for, request_for):
    r1 = make_repo("R1")
    r2 = make_repo("R2")
    make_module(r1.local_path, "Foo", "1.0.0")
    make_script(r2.local_path, "Deploy", "2.0.0")
    search = SpySearch()

    report = await installer_for(search).install(request_for("Foo", "Deploy", "Missing"), [r1, r2])

    assert report.get("Foo").repository == "R1"
    assert report.get("Deploy").repository == "R2"
    assert report.get("Missing").status == OutcomeStatus.SKIPPED_NOT_FOUND
    assert search.calls == [("R1", ["Foo", "Deploy", "Missing"]), ("R2", ["Deploy", "Missing"])]


@pytest.mark.asyncio
async def test_declined_untrusted_repository_falls_through(make_repo, make_module, installer_for, request_for):
    untrusted = make_repo("Untrusted", trusted=False)
    trusted = make_repo("Trusted")
    make_module(untrusted.local_path, "Foo", "1.0.0")
    make_module(trusted.local_path, "Foo", "1.1.0")
    consent = StaticConsent(accepted=False)
    search = SpySearch()

    report = await installer_for(search, consent).install(request_for("Foo"), [untrusted, trusted])

    assert report.get("Foo").repository == "Trusted"
    assert len(consent.prompts) == 1
    assert search.calls == [("Trusted", ["Foo"])]


@pytest.mark.asyncio
async def test_no_to_all_skips_untrusted_sources(make_repo, make_module, installer_for, request_for):
    r1 = make_repo("R1", trusted=False)
    r2 = make_repo("R2", trusted=False)
    make_module(r2.local_path, "Foo", "1.0.0")
    consent = StaticConsent(accepted=False, apply_to_all=True)

    report = await installer_for(consent=consent).install(request_for("Foo"), [r1, r2])

    assert report.get("Foo").status == OutcomeStatus.SKIPPED_UNTRUSTED_SOURCE
    assert len(consent.prompts) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("apply_to_all,expected_prompts", [(False, 2), (True, 1)])
async def test_yes_to_all_prompts_once(
    make_repo, make_module, installer_for, request_for, apply_to_all, expected_prompts
):
    r1 = make_repo("R1", trusted=False)
    r2 = make_repo("R2", trusted=False)
    make_module(r1.local_path, "Foo", "1.0.0")
    make_module(r2.local_path, "Bar", "1.0.0")
    consent = StaticConsent(accepted=True, apply_to_all=apply_to_all)

    report = await installer_for(consent=consent).install(request_for("Foo", "Bar"), [r1, r2])

    assert sorted(report.installed) == ["Bar", "Foo"]
    assert len(consent.prompts) == expected_prompts


@pytest.mark.asyncio
async def test_trust_repository_skips_prompt(make_repo, make_module, installer_for, request_for):
    r1 = make_repo("R1", trusted=False)
    make_module(r1.local_path, "Foo", "1.0.0")
    consent = StaticConsent(accepted=False)

    report = await installer_for(consent=consent).install(request_for("Foo", trust_repository=True), [r1])

    assert report.get("Foo").succeeded
    assert consent.prompts == []


@pytest.mark.asyncio
async def test_repository_error_does_not_stop_scan(make_repo, make_module, installer_for, request_for):
    remote = make_repo("Gallery", url="https://gallery.example.com/api")
    local = make_repo("Local")
    make_module(local.local_path, "Foo", "1.0.0")

    report = await installer_for().install(request_for("Foo"), [remote, local])

    assert report.get("Foo").repository == "Local"
    assert len(report.repository_errors) == 1
    assert report.repository_errors[0].kind == ErrorKind.REPOSITORY_FAILED
    assert report.repository_errors[0].repository == "Gallery"


@pytest.mark.asyncio
async def test_failure_in_one_repository_retried_in_next(make_repo, make_module, installer_for, request_for):
    r1 = make_repo("R1")
    r2 = make_repo("R2")
    make_module(r1.local_path, "Foo", "1.0.0", manifest="broken")
    make_module(r2.local_path, "Foo", "1.0.0")

    report = await installer_for().install(request_for("Foo"), [r1, r2])

    assert report.get("Foo").status == OutcomeStatus.INSTALLED
    assert report.get("Foo").repository == "R2"
    assert report.errors == []


@pytest.mark.asyncio
async def test_one_failure_does_not_abort_batch(make_repo, make_module, installer_for, request_for):
    r1 = make_repo("R1")
    make_module(r1.local_path, "Bad", "1.0.0", require_license=True)
    make_module(r1.local_path, "Foo", "1.0.0")

    report = await installer_for(consent=StaticConsent(accepted=True)).install(request_for("Bad", "Foo"), [r1])

    assert report.get("Bad").status == OutcomeStatus.FAILED
    assert report.get("Bad").error.kind == ErrorKind.LICENSE_TEXT_MISSING
    assert report.get("Foo").status == OutcomeStatus.INSTALLED
    assert report.failed == ["Bad"]


@pytest.mark.asyncio
async def test_second_run_is_idempotent(
    make_repo, make_module, installer_for, request_for, destination_roots, snapshot
):
    r1 = make_repo("R1")
    make_module(r1.local_path, "Foo", "1.0.0")
    installer = installer_for()
    await installer.install(request_for("Foo"), [r1])
    before = snapshot(destination_roots[0])

    report = await installer.install(request_for("Foo"), [r1])

    outcome = report.get("Foo")
    assert outcome.status == OutcomeStatus.SKIPPED_ALREADY_SATISFIED
    assert outcome.version == "1.0.0"
    assert "already installed" in outcome.message
    assert snapshot(destination_roots[0]) == before


@pytest.mark.asyncio
async def test_reinstall_installs_again(make_repo, make_module, installer_for, request_for, destination_roots):
    r1 = make_repo("R1")
    make_module(r1.local_path, "Foo", "1.0.0")
    installer = installer_for()
    await installer.install(request_for("Foo"), [r1])

    report = await installer.install(request_for("Foo", reinstall=True), [r1])

    assert report.get("Foo").status == OutcomeStatus.INSTALLED
    assert [p.name for p in (destination_roots[0] / "Foo").iterdir()] == ["1.0.0"]


@pytest.mark.asyncio
async def test_dependencies_installed_once(make_repo, make_module, installer_for, request_for, destination_roots):
    r1 = make_repo("R1")
    for name in ["Foo", "Bar", "Dep"]:
        make_module(r1.local_path, name, "1.0.0")
    make_module(r1.local_path, "Dep", "1.2.0")
    search = SpySearch(dependencies={"Foo": ["Dep"], "Bar": ["Dep"]})

    report = await installer_for(search).install(request_for("Foo", "Bar"), [r1])

    assert sorted(report.installed) == ["Bar", "Dep", "Foo"]
    assert report.get("Dep").version == "1.2.0"
    assert [p.name for p in (destination_roots[0] / "Dep").iterdir()] == ["1.2.0"]


@pytest.mark.asyncio
async def test_license_acceptance_carries_across_packages(make_repo, make_module, installer_for, request_for):
    r1 = make_repo("R1")
    make_module(r1.local_path, "Foo", "1.0.0", require_license=True, license_text="Foo terms")
    make_module(r1.local_path, "Bar", "1.0.0", require_license=True, license_text="Bar terms")
    consent = StaticConsent(accepted=True)

    report = await installer_for(consent=consent).install(request_for("Foo", "Bar"), [r1])

    assert sorted(report.installed) == ["Bar", "Foo"]
    assert len(consent.prompts) == 1


@pytest.mark.asyncio
async def test_cancelled_before_start(make_repo, make_module, installer_for, request_for):
    r1 = make_repo("R1")
    make_module(r1.local_path, "Foo", "1.0.0")
    search = SpySearch()
    cancel_event = asyncio.Event()
    cancel_event.set()

    report = await installer_for(search).install(request_for("Foo"), [r1], cancel_event=cancel_event)

    assert report.get("Foo").status == OutcomeStatus.CANCELLED
    assert search.calls == []


@pytest.mark.asyncio
async def test_cancelled_between_packages(make_repo, make_module, installer_for, request_for, destination_roots):
    r1 = make_repo("R1")
    make_module(r1.local_path, "Foo", "1.0.0")
    make_module(r1.local_path, "Bar", "1.0.0")
    cancel_event = asyncio.Event()
    installer = installer_for(retriever=CancellingRetriever(cancel_event))

    report = await installer.install(request_for("Foo", "Bar"), [r1], cancel_event=cancel_event)

    assert report.get("Foo").status == OutcomeStatus.INSTALLED
    assert report.get("Bar").status == OutcomeStatus.CANCELLED
    assert not (destination_roots[0] / "Bar").exists()


@pytest.mark.asyncio
async def test_no_repositories(installer_for, request_for):
    with pytest.raises(NoRepositoriesError):
        await installer_for().install(request_for("Foo"), [])


@pytest.mark.asyncio
@pytest.mark.integration
async def test_install_resources_entry_point(make_repo, make_module, destination_roots, staging_root):
    r1 = make_repo("R1")
    make_module(r1.local_path, "Foo", "1.0.0")
    make_module(r1.local_path, "Foo", "2.0.0")

    report = await install_resources(
        ["foo"], [r1], destination_roots, version_range="[1.0,2.0)", staging_root=staging_root
    )

    assert report.get("Foo").version == "1.0.0"
    assert (destination_roots[0] / "Foo" / "1.0.0" / "Foo.psd1").is_file()


@pytest.mark.asyncio
async def test_install_resources_rejects_bad_range(make_repo, destination_roots):
    with pytest.raises(VersionParseError):
        await install_resources(["Foo"], [make_repo("R1")], destination_roots, version_range="[2.0,1.0]")


@pytest.mark.asyncio
async def test_inspector_error_is_repository_error(
    make_repo, make_module, installer_for, request_for, destination_roots
):
    (destination_roots[0] / "Other" / "1.0.0").mkdir(parents=True)
    r1 = make_repo("R1")
    r2 = make_repo("R2")
    make_module(r1.local_path, "Foo", "1.0.0")
    make_module(r2.local_path, "Foo", "1.0.0")
    inspector = FlakyInspector()

    report = await installer_for(inspector=inspector).install(request_for("Foo"), [r1, r2])

    assert inspector.calls == 2
    assert report.get("Foo").status == OutcomeStatus.INSTALLED
    assert report.get("Foo").repository == "R2"
    assert len(report.repository_errors) == 1
    assert report.repository_errors[0].kind == ErrorKind.REPOSITORY_FAILED
    assert report.repository_errors[0].repository == "R1"
    assert "Permission denied" in report.repository_errors[0].message


@pytest.mark.asyncio
async def test_unusable_staging_root_fails_each_package(
    make_repo, make_module, installer_for, request_for, staging_root, destination_roots
):
    r1 = make_repo("R1")
    make_module(r1.local_path, "Foo", "1.0.0")
    make_module(r1.local_path, "Bar", "1.0.0")
    staging_root.parent.mkdir(parents=True, exist_ok=True)
    staging_root.write_text("not a directory")

    report = await installer_for().install(request_for("Foo", "Bar"), [r1])

    assert report.get("Foo").status == OutcomeStatus.FAILED
    assert report.get("Bar").status == OutcomeStatus.FAILED
    assert sorted(report.failed) == ["Bar", "Foo"]
    assert not destination_roots[0].exists()


@pytest.mark.asyncio
async def test_installs_semver_prerelease(make_repo, make_module, installer_for, request_for, destination_roots):
    r1 = make_repo("R1")
    make_module(r1.local_path, "Foo", "1.0.0-nightly")

    report = await installer_for().install(request_for("Foo", prerelease=True), [r1])

    assert report.get("Foo").status == OutcomeStatus.INSTALLED
    assert report.get("Foo").version == "1.0.0-nightly"
    assert (destination_roots[0] / "Foo" / "1.0.0").is_dir()
