"""End-to-end tests against a real rsync binary.

These cover what the fake transport cannot: the literal rsync command
line, --link-dest resolution relative to the new snapshot, and the
pointer file fetch and commit over rsync itself.
"""

import os
import shutil
import subprocess
import sys
from datetime import datetime

import pytest

from linkbackup.backup import (
    run_backup,
    EXIT_SUCCESS,
    EXIT_PROVISIONING_ERROR,
    EXIT_USAGE_ERROR,
)


pytestmark = pytest.mark.skipif(shutil.which("rsync") is None, reason="rsync not installed")

RUN_1 = datetime(2025, 3, 1, 8, 0, 0)
RUN_2 = datetime(2025, 3, 1, 9, 0, 0)


def test_two_runs_share_unchanged_files(source_dir, target_dir, test_config):
    test_config.ignore_file.write_text("scratch.tmp\n")

    first = run_backup(str(source_dir), str(target_dir), config=test_config, now=RUN_1)
    assert first.exit_code == EXIT_SUCCESS, first.error_message
    assert first.previous_timestamp is None

    (source_dir / "notes.txt").write_text("notes, revised")
    second = run_backup(str(source_dir), str(target_dir), config=test_config, now=RUN_2)
    assert second.exit_code == EXIT_SUCCESS, second.error_message
    assert second.previous_timestamp == "2025-03-01T08-00-00"

    old = target_dir / "hourly" / "2025-03-01T08-00-00"
    new = target_dir / "hourly" / "2025-03-01T09-00-00"
    assert os.stat(old / "docs" / "readme.md").st_ino == os.stat(new / "docs" / "readme.md").st_ino
    assert os.stat(old / "notes.txt").st_ino != os.stat(new / "notes.txt").st_ino
    assert (new / "notes.txt").read_text() == "notes, revised"
    assert not (new / "scratch.tmp").exists()

    assert (target_dir / "last_successful_timestamp").read_text() == "2025-03-01T09-00-00\n"


def test_rsync_command_recorded_in_run_log(source_dir, target_dir, test_config):
    result = run_backup(str(source_dir), str(target_dir), config=test_config, now=RUN_1)
    assert result.success
    content = result.log_file.read_text()
    assert "===== creating snapshot =====" in content
    assert f"{source_dir}/" in content
    assert "rsync -a --partial" in content


def test_unprovisioned_target_left_untouched(source_dir, tmp_path, test_config):
    target = tmp_path / "bare"
    (target / "hourly").mkdir(parents=True)

    result = run_backup(str(source_dir), str(target), config=test_config, now=RUN_1)

    assert result.exit_code == EXIT_PROVISIONING_ERROR
    assert list((target / "hourly").iterdir()) == []
    assert not (target / "last_successful_timestamp").exists()


def test_cli_without_arguments():
    proc = subprocess.run(
        [sys.executable, "-m", "linkbackup.cli"],
        capture_output=True,
        text=True,
    )
    assert proc.returncode == EXIT_USAGE_ERROR
    assert "SOURCE and TARGET are required" in proc.stderr
