"""Tests for newest-first page arithmetic."""

import pytest

from webmail.imap.pagination import page_range, sequence_set


def test_first_page_covers_newest_messages():
    assert page_range(55, 1, 20) == (36, 55)


def test_short_final_page():
    assert page_range(55, 3, 20) == (1, 15)


def test_page_past_the_end_yields_degenerate_range():
    assert page_range(55, 4, 20) == (1, 1)
    assert page_range(5, 2, 20) == (1, 1)


def test_empty_folder_has_nothing_to_fetch():
    assert page_range(0, 1, 20) is None


def test_small_folder_fits_on_first_page():
    assert page_range(5, 1, 20) == (1, 5)


@pytest.mark.parametrize("page, limit", [(0, 20), (1, 0), (-1, 5)])
def test_non_positive_arguments_are_rejected(page, limit):
    with pytest.raises(ValueError):
        page_range(10, page, limit)


def test_range_never_exceeds_limit_and_page_one_is_newest():
    for total in range(1, 60):
        for limit in range(1, 12):
            first = page_range(total, 1, limit)
            assert first == (max(1, total - limit + 1), total)
            for page in range(1, 8):
                start, end = page_range(total, page, limit)
                assert start <= end
                assert end - start + 1 <= limit


def test_sequence_set_rendering():
    assert sequence_set((36, 55)) == "36:55"
