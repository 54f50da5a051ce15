"""Pytest configuration and fixtures for linkbackup tests."""

import filecmp
import os
import shutil
from pathlib import Path
from typing import List, Optional, Set, Tuple

import pytest
from hypothesis import settings, Phase

from linkbackup.config import Configuration, LockConfig, LoggingConfig
from linkbackup.logger import close_run_logging
from linkbackup.transport import SyncOptions, SyncResult, Transport


# Configure hypothesis to use fewer examples for faster test runs
# Disable shrinking phase to speed up tests further
settings.register_profile(
    "fast",
    max_examples=5,
    deadline=10000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate]
)
settings.register_profile("ci", max_examples=50, deadline=10000)

# Use the fast profile by default
settings.load_profile("fast")


class FakeTransport(Transport):
    """
    In-process stand-in for rsync on the local filesystem.

    Mirrors the parts of rsync the backup relies on: trailing-slash
    directory copies, --exclude on names, --link-dest relative to the
    destination, single-file copies, and non-zero status for missing
    sources. Every call is recorded.
    """

    FAILED = 23

    def __init__(self):
        self.probes: List[str] = []
        self.sync_calls: List[Tuple[str, str, SyncOptions]] = []
        self.fail_snapshot = False
        self.fail_pointer_commit = False
        self.unavailable = False

    @property
    def remote_writes(self) -> List[Tuple[str, str, SyncOptions]]:
        """Syncs that wrote into a target (anything not a scratch fetch)."""
        return [c for c in self.sync_calls if "linkbackup_" not in c[1]]

    def exists(self, location: str) -> bool:
        self.probes.append(location)
        return Path(location.rstrip("/") or "/").exists()

    def sync(self, source: str, destination: str, options: SyncOptions) -> SyncResult:
        self.sync_calls.append((source, destination, options))
        command = ["fake-rsync", source, destination]

        if self.unavailable:
            return SyncResult(returncode=127, command=command, stderr="not runnable", started=False)

        if source.endswith("/"):
            if self.fail_snapshot:
                # Leave a partial snapshot behind like an interrupted rsync
                partial = Path(destination)
                partial.mkdir(parents=True, exist_ok=True)
                (partial / ".partial").write_text("incomplete")
                return SyncResult(returncode=self.FAILED, command=command, stderr="rsync error: simulated")
            return self._copy_tree(Path(source), Path(destination), options, command)

        if self.fail_pointer_commit and "linkbackup_" in source:
            return SyncResult(returncode=self.FAILED, command=command, stderr="rsync error: simulated")

        src = Path(source)
        dst = Path(destination)
        if not src.is_file() or not dst.parent.is_dir():
            return SyncResult(
                returncode=self.FAILED,
                command=command,
                stderr=f'rsync: link_stat "{source}" failed: No such file or directory (2)',
            )
        shutil.copy2(src, dst)
        return SyncResult(returncode=0, command=command)

    @staticmethod
    def _excluded_names(options: SyncOptions) -> Set[str]:
        return {e.split("=", 1)[1] for e in options.excludes if e.startswith("--exclude=")}

    def _copy_tree(
        self,
        src_root: Path,
        dst_root: Path,
        options: SyncOptions,
        command: List[str],
    ) -> SyncResult:
        if not src_root.is_dir():
            return SyncResult(returncode=self.FAILED, command=command, stderr="source missing")
        if not dst_root.parent.is_dir():
            return SyncResult(returncode=self.FAILED, command=command, stderr="mkdir failed")

        excluded = self._excluded_names(options)
        basis: Optional[Path] = None
        if options.link_dest is not None:
            basis = Path(os.path.normpath(dst_root / options.link_dest))
            if not basis.is_dir():
                basis = None

        dst_root.mkdir(exist_ok=True)
        for dirpath, dirnames, filenames in os.walk(src_root):
            dirnames[:] = [d for d in dirnames if d not in excluded]
            rel = Path(dirpath).relative_to(src_root)
            (dst_root / rel).mkdir(parents=True, exist_ok=True)
            for name in filenames:
                if name in excluded:
                    continue
                src_file = Path(dirpath) / name
                dst_file = dst_root / rel / name
                basis_file = basis / rel / name if basis is not None else None
                if (
                    basis_file is not None
                    and basis_file.is_file()
                    and filecmp.cmp(src_file, basis_file, shallow=False)
                ):
                    os.link(basis_file, dst_file)
                else:
                    shutil.copy2(src_file, dst_file)
        return SyncResult(returncode=0, command=command)


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def source_dir(tmp_path):
    """A small source tree."""
    source = tmp_path / "source"
    (source / "docs").mkdir(parents=True)
    (source / "notes.txt").write_text("notes")
    (source / "docs" / "readme.md").write_text("readme")
    (source / "scratch.tmp").write_text("temporary")
    return source


@pytest.fixture
def target_dir(tmp_path):
    """A provisioned target root."""
    target = tmp_path / "target"
    (target / "hourly").mkdir(parents=True)
    (target / "backup_enabled").touch()
    return target


@pytest.fixture
def test_config(tmp_path):
    """Configuration that keeps logs, locks and the ignore file under tmp_path."""
    return Configuration(
        ignore_file=tmp_path / "ignore",
        lock=LockConfig(enabled=True, lock_dir=tmp_path / "locks", timeout_seconds=0),
        logging=LoggingConfig(level="DEBUG", log_dir=tmp_path / "logs", console=False),
    )


@pytest.fixture(autouse=True)
def cleanup_logger():
    """Detach run log handlers after each test."""
    yield
    close_run_logging()
