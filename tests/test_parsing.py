from rec_watch.models import PageData
from rec_watch.parsing import extract_page_data, is_available, parse_openings


def test_parse_openings_reads_count():
    assert parse_openings("Adult Basketball\n3 openings remaining\nEnroll Now") == 3


def test_parse_openings_singular_and_case_insensitive():
    assert parse_openings("1 Opening Remaining") == 1


def test_parse_openings_missing_pattern_is_none():
    assert parse_openings("Waitlist available") is None
    assert parse_openings("") is None


def test_extract_page_data_open_activity():
    page = extract_page_data(
        "Drop-in Basketball\nEnroll Now\n12 openings remaining", " Drop-in Basketball ", "ACTIVE Net"
    )
    assert page.has_enroll_indicator is True
    assert page.is_full is False
    assert page.openings_count == 12
    assert page.activity_title == "Drop-in Basketball"


def test_extract_page_data_full_activity_falls_back_to_page_title():
    page = extract_page_data("This activity is currently full. Join the waitlist.", "", "Adult Volleyball")
    assert page.is_full is True
    assert page.has_enroll_indicator is False
    assert page.activity_title == "Adult Volleyball"


def test_full_matches_as_plain_substring():
    page = extract_page_data("Adult Basketball\nEnroll Now\nFully booked", "Adult Basketball", "")
    assert page.is_full is True
    assert is_available(page) is False


def test_waitlist_detected_in_either_case():
    assert extract_page_data("Join the waitlist", "", "").has_waitlist is True
    assert extract_page_data("Waitlist open", "", "").has_waitlist is True
    assert extract_page_data("Enroll Now\n3 openings remaining", "", "").has_waitlist is False


def test_available_requires_enroll_and_not_full():
    assert is_available(PageData(True, False, None, "x")) is True
    assert is_available(PageData(True, True, 2, "x")) is False
    assert is_available(PageData(False, True, None, "x")) is False
    assert is_available(PageData(False, False, None, "x")) is False
