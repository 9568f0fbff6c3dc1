from __future__ import annotations

import uuid
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from dietpanel.services.purchase_service import add_months, modules_for_item
from dietpanel.utils.cursor import decode_cursor, encode_cursor
from dietpanel.utils.edit_window import is_within_edit_window, warsaw_day_bounds
from dietpanel.utils.filenames import content_disposition, sanitize_filename
from dietpanel.utils.purchase_url import build_purchase_url, with_status

WARSAW = ZoneInfo("Europe/Warsaw")


def test_edit_window_boundaries_in_warsaw_time():
    measured = datetime(2025, 1, 10, 8, 0, tzinfo=WARSAW)

    assert is_within_edit_window(measured, datetime(2025, 1, 11, 23, 59, 59, tzinfo=WARSAW))
    assert not is_within_edit_window(measured, datetime(2025, 1, 12, 0, 0, 1, tzinfo=WARSAW))


def test_edit_window_uses_warsaw_day_not_utc_day():
    # 23:30 UTC on Jan 10 is already Jan 11 in Warsaw
    measured = datetime(2025, 1, 10, 23, 30, tzinfo=timezone.utc)
    now = datetime(2025, 1, 12, 20, 0, tzinfo=WARSAW)
    assert is_within_edit_window(measured, now)


def test_edit_window_accepts_naive_now_as_utc():
    measured = datetime(2025, 1, 10, 8, 0, tzinfo=WARSAW)
    assert is_within_edit_window(measured, datetime(2025, 1, 11, 22, 59))
    assert not is_within_edit_window(measured, datetime(2025, 1, 11, 23, 0, 1))


def test_edit_window_across_dst_change():
    measured = datetime(2025, 3, 29, 12, 0, tzinfo=WARSAW)
    assert is_within_edit_window(measured, datetime(2025, 3, 30, 23, 59, 59, tzinfo=WARSAW))
    assert not is_within_edit_window(measured, datetime(2025, 3, 31, 0, 0, 1, tzinfo=WARSAW))


def test_warsaw_day_bounds():
    start, end = warsaw_day_bounds(datetime(2025, 7, 1, 12, 0, tzinfo=timezone.utc))
    assert start == datetime(2025, 6, 30, 22, 0, tzinfo=timezone.utc)
    assert end == datetime(2025, 7, 1, 22, 0, tzinfo=timezone.utc)


def test_cursor_encode_decode():
    ts = datetime(2025, 5, 1, 10, 0, tzinfo=timezone.utc)
    row_id = uuid.uuid4()
    cursor = encode_cursor(ts, row_id)
    assert "=" not in cursor
    assert decode_cursor(cursor) == (ts, row_id)


@pytest.mark.parametrize("bad", ["", "not-base64!!", "e30", "eyJ0aW1lc3RhbXAiOiJ4In0"])
def test_cursor_garbage_decodes_to_none(bad):
    assert decode_cursor(bad) is None


def test_sanitize_filename():
    assert sanitize_filename('../etc/"passwd"\n.pdf') == "..-etc-passwd.pdf"
    assert sanitize_filename("a\\b.pdf") == "a-b.pdf"
    assert sanitize_filename(None) == "material.pdf"
    assert sanitize_filename('""') == "material.pdf"
    assert len(sanitize_filename("x" * 400 + ".pdf")) == 255
    assert sanitize_filename("Dieta – tydzień 1.pdf") == "Dieta – tydzień 1.pdf"


def test_content_disposition_is_quoted_attachment():
    assert content_disposition('plan "A".pdf') == 'attachment; filename="plan A.pdf"'


def test_build_purchase_url():
    assert build_purchase_url(2, "https://shop.test/pzk") == "https://shop.test/pzk?module=2"
    assert build_purchase_url(3, "https://shop.test/pzk?module=1&utm=x") == (
        "https://shop.test/pzk?utm=x&module=3"
    )


def test_with_status():
    assert with_status("https://a.test/ok", "success") == "https://a.test/ok?status=success"
    assert with_status("https://a.test/ok?transaction=1", "error") == (
        "https://a.test/ok?transaction=1&status=error"
    )


def test_add_months_clamps_day():
    assert add_months(datetime(2025, 1, 31, tzinfo=timezone.utc), 1) == datetime(
        2025, 2, 28, tzinfo=timezone.utc
    )
    assert add_months(datetime(2024, 2, 29, tzinfo=timezone.utc), 12) == datetime(
        2025, 2, 28, tzinfo=timezone.utc
    )
    assert add_months(datetime(2025, 6, 15, tzinfo=timezone.utc), 12) == datetime(
        2026, 6, 15, tzinfo=timezone.utc
    )


def test_modules_for_item():
    assert modules_for_item("PZK_MODULE_2") == [2]
    assert modules_for_item("PZK_BUNDLE_ALL") == [1, 2, 3]
    with pytest.raises(ValueError):
        modules_for_item("PZK_MODULE_4")
