import re
from datetime import datetime, timedelta, timezone
from unittest import mock

import pytest

from cairn import paths
from cairn.snapshotid import new_snapshot_id

_PATTERN = re.compile(r"^\d{8}T\d{6}Z-[0-9a-f]{8}$")


def test_new_has_expected_shape():
    sid = new_snapshot_id()
    assert len(sid) >= 20
    assert _PATTERN.match(sid)


def test_fixed_time_prefix():
    sid = new_snapshot_id(datetime(2026, 2, 6, 12, 0, 0, tzinfo=timezone.utc))
    assert sid.startswith("20260206T120000Z-")
    assert len(sid) == 25


def test_naive_time_taken_as_utc():
    assert new_snapshot_id(datetime(2020, 1, 1, 0, 0, 0)).startswith("20200101T000000Z-")


def test_aware_time_converted_to_utc():
    tz = timezone(timedelta(hours=2))
    sid = new_snapshot_id(datetime(2026, 5, 10, 1, 2, 3, tzinfo=tz))
    assert sid.startswith("20260509T230203Z-")


def test_round_trips_through_parse_snapshot_time():
    when = datetime(2031, 7, 4, 8, 9, 10, tzinfo=timezone.utc)
    assert paths.parse_snapshot_time(new_snapshot_id(when)) == when


@mock.patch("secrets.token_bytes", return_value=b"\xde\xad\xbe\xef")
def test_suffix_is_big_endian_hex(_token_bytes):
    sid = new_snapshot_id(datetime(2020, 1, 1, tzinfo=timezone.utc))
    assert sid == "20200101T000000Z-deadbeef"


@mock.patch("secrets.token_bytes", side_effect=OSError("boom"))
def test_rand_failure(_token_bytes):
    with pytest.raises(OSError, match="snapshot id: boom"):
        new_snapshot_id()