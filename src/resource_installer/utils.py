"""Filesystem helpers for staging and committing installs.

Directory replacement is not transactional: atomicity is approximated by
deleting the old tree completely before the new one is moved in, with a
backup that restores the old tree if the delete is interrupted. A process
crash between delete and move is not covered.
"""

import logging
import os
import shutil
import stat
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


def get_subdirectories(path: Path) -> list[Path]:
    """Return immediate subdirectories of path (empty if path is missing)."""
    if not path.is_dir():
        return []
    return sorted(p for p in path.iterdir() if p.is_dir())


def _remove_file(path: Path) -> None:
    os.unlink(path)


def _clear_readonly(path: Path) -> None:
    mode = os.lstat(path).st_mode
    if not mode & stat.S_IWRITE and not stat.S_ISLNK(mode):
        os.chmod(path, mode | stat.S_IWRITE)


def delete_directory(dir_path: Path) -> None:
    """
    Delete a directory tree, clearing read-only attributes first.

    Files are removed bottom-up one at a time, so a failure (typically a
    file locked by another process) leaves the tree partially deleted.

    Raises:
        OSError: If any entry cannot be removed
    """
    for root, dirs, files in os.walk(dir_path, topdown=False):
        root_path = Path(root)
        for file_name in files:
            file_path = root_path / file_name
            _clear_readonly(file_path)
            _remove_file(file_path)
        for dir_name in dirs:
            sub_path = root_path / dir_name
            if sub_path.is_symlink():
                _remove_file(sub_path)
            else:
                os.rmdir(sub_path)
    os.rmdir(dir_path)


def _copy_if_missing(src: str, dst: str) -> str:
    if not os.path.lexists(dst):
        shutil.copy2(src, dst, follow_symlinks=False)
    return dst


def _restore_directory(backup_path: Path, dir_path: Path) -> None:
    # Only missing entries are copied back; files that survived the failed
    # delete (e.g. the locked one) are already original content
    shutil.copytree(backup_path, dir_path, symlinks=True, dirs_exist_ok=True, copy_function=_copy_if_missing)


def delete_directory_with_restore(dir_path: Path) -> None:
    """
    Delete a directory; on failure restore it to its pre-deletion state.

    A full backup copy is taken before deletion. If deletion fails partway,
    every removed entry is copied back from the backup before the original
    error is re-raised, so the directory content is unchanged.

    Args:
        dir_path: Directory to delete

    Raises:
        OSError: The original deletion error, after restore
    """
    backup_root = Path(tempfile.mkdtemp(prefix="restore-"))
    backup_path = backup_root / dir_path.name
    try:
        shutil.copytree(dir_path, backup_path, symlinks=True)
        try:
            delete_directory(dir_path)
        except OSError as e:
            logger.warning(f"Deleting '{dir_path}' failed ({e}), restoring from backup")
            _restore_directory(backup_path, dir_path)
            raise
    finally:
        try:
            shutil.rmtree(backup_root)
        except OSError as e:
            logger.warning(f"Could not remove restore backup '{backup_root}': {e}")


def move_directory(source: Path, destination: Path) -> None:
    """Move a directory to a destination path that must not exist yet."""
    if destination.exists():
        raise FileExistsError(f"Destination already exists: {destination}")
    logger.debug(f"Moving '{source}' to '{destination}'")
    shutil.move(str(source), str(destination))


def move_file(source: Path, destination: Path) -> None:
    """Move a file, replacing any existing file at destination."""
    destination.parent.mkdir(parents=True, exist_ok=True)
    if destination.exists():
        _remove_file(destination)
    logger.debug(f"Moving '{source}' to '{destination}'")
    shutil.move(str(source), str(destination))
