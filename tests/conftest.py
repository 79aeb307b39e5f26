"""Shared helpers for building on-disk package repositories."""

import zipfile
from pathlib import Path

import pytest


def build_archive(repo_dir: Path, name: str, version: str, files: dict[str, str]) -> Path:
    """Write ``<name>.<version>.nupkg`` with the given content plus packaging artifacts."""
    repo_dir.mkdir(parents=True, exist_ok=True)
    archive_path = repo_dir / f"{name}.{version}.nupkg"
    with zipfile.ZipFile(archive_path, "w") as archive:
        for relative_path, content in files.items():
            archive.writestr(relative_path, content)
        archive.writestr("[Content_Types].xml", "<Types />")
        archive.writestr("_rels/.rels", "<Relationships />")
        archive.writestr(f"{name}.nuspec", f"<package><metadata><id>{name}</id></metadata></package>")
        archive.writestr("package/services/metadata/core-properties/1.psmdcp", "<coreProperties />")
    return archive_path


def module_manifest(version: str, require_license: bool = False, commented: bool = False) -> str:
    directive = ""
    if require_license:
        directive = "# RequireLicenseAcceptance = $true" if commented else "RequireLicenseAcceptance = $true"
    return f"""@{{
    RootModule = 'Module.psm1'
    ModuleVersion = '{version}'
    Author = 'Test Author'
    Description = 'Test module'
    FunctionsToExport = @('Get-Thing', 'Set-Thing')
    PrivateData = @{{
        PSData = @{{
            Tags = @('test')
            {directive}
        }}
    }}
}}
"""


@pytest.fixture
def make_module():
    """Factory: add a module archive to a repository folder."""

    def _make(
        repo_dir: Path,
        name: str,
        version: str,
        require_license: bool = False,
        license_text: str | None = None,
        manifest: str | None = None,
        extra_files: dict[str, str] | None = None,
    ) -> Path:
        module_version = version.split("-", 1)[0]
        files = {
            f"{name}.psd1": manifest if manifest is not None else module_manifest(module_version, require_license),
            f"{name}.psm1": f"function Get-Thing {{ '{name} {version}' }}",
        }
        if license_text is not None:
            files["License.txt"] = license_text
        files.update(extra_files or {})
        return build_archive(repo_dir, name, version, files)

    return _make


@pytest.fixture
def make_script():
    """Factory: add a script archive to a repository folder."""

    def _make(repo_dir: Path, name: str, version: str) -> Path:
        files = {f"{name}.ps1": f"<#PSScriptInfo\n.VERSION {version}\n#>\nWrite-Output '{name} {version}'\n"}
        return build_archive(repo_dir, name, version, files)

    return _make


@pytest.fixture
def destination_roots(tmp_path) -> list[Path]:
    return [tmp_path / "install" / "Modules", tmp_path / "install" / "Scripts"]


@pytest.fixture
def staging_root(tmp_path) -> Path:
    return tmp_path / "staging"


def snapshot_tree(root: Path) -> dict[str, bytes]:
    """Relative path -> bytes for every file under root."""
    return {str(p.relative_to(root)): p.read_bytes() for p in sorted(root.rglob("*")) if p.is_file()}


@pytest.fixture
def snapshot():
    return snapshot_tree
