"""Tests for the run context."""

import dataclasses
from datetime import datetime
from pathlib import Path

import hypothesis.strategies as st
import pytest
from hypothesis import given

from linkbackup.context import (
    RunContext,
    generate_timestamp,
    join_location,
    parse_timestamp,
)


class TestTimestamp:

    def test_format(self):
        assert generate_timestamp(datetime(2025, 3, 4, 5, 6, 7)) == "2025-03-04T05-06-07"

    def test_filesystem_safe(self):
        stamp = generate_timestamp()
        assert ":" not in stamp
        assert "/" not in stamp
        assert parse_timestamp(stamp) is not None

    def test_parse_rejects_other_names(self):
        assert parse_timestamp("latest") is None
        assert parse_timestamp("2025-01-01-120000") is None

    @given(
        a=st.datetimes(min_value=datetime(2000, 1, 1), max_value=datetime(2999, 12, 31)),
        b=st.datetimes(min_value=datetime(2000, 1, 1), max_value=datetime(2999, 12, 31)),
    )
    def test_lexicographic_order_matches_time_order(self, a, b):
        a = a.replace(microsecond=0)
        b = b.replace(microsecond=0)
        assert (generate_timestamp(a) < generate_timestamp(b)) == (a < b)


class TestJoinLocation:

    def test_local_path(self):
        assert join_location("/srv/backup", "hourly", "x") == "/srv/backup/hourly/x"

    def test_trailing_slash(self):
        assert join_location("/srv/backup/", "hourly") == "/srv/backup/hourly"

    def test_remote_with_path(self):
        assert join_location("me@host:/srv", "backup_enabled") == "me@host:/srv/backup_enabled"

    def test_remote_home(self):
        assert join_location("host:", "hourly") == "host:hourly"


class TestRunContext:

    def test_derived_locations(self):
        context = RunContext.create(
            source="/home/me",
            target="host:/backups",
            ignore_file=Path("/tmp/ignore"),
            now=datetime(2025, 1, 1, 12, 0, 0),
        )
        assert context.timestamp == "2025-01-01T12-00-00"
        assert context.marker_location == "host:/backups/backup_enabled"
        assert context.pointer_location == "host:/backups/last_successful_timestamp"
        assert context.container == "host:/backups/hourly"
        assert context.snapshot_location == "host:/backups/hourly/2025-01-01T12-00-00"
        assert context.log_file is None

    def test_log_file_named_after_timestamp(self, tmp_path):
        context = RunContext.create(
            source="/src",
            target="/dst",
            ignore_file=tmp_path / "ignore",
            log_dir=tmp_path / "logs",
            now=datetime(2025, 1, 1, 12, 0, 0),
        )
        assert context.log_file == tmp_path / "logs" / "2025-01-01T12-00-00.log"

    def test_immutable(self, tmp_path):
        context = RunContext.create("/src", "/dst", tmp_path / "ignore")
        with pytest.raises(dataclasses.FrozenInstanceError):
            context.timestamp = "other"
