import pytest

from dnp.utils.text import normalize_categories_input, sanitize_zone_label, truncate


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, None),
        ([" вода ", "ток"], ["вода", "ток"]),
        (("вода",), ["вода"]),
        ('["вода", " ремонт "]', ["вода", "ремонт"]),
        ("вода, ремонт , ток", ["вода", "ремонт", "ток"]),
        ("  вода  ", ["вода"]),
        ("   ", []),
        ("[not json", ["[not json"]),
        (42, 42),
    ],
)
def test_normalize_categories_input(value, expected):
    assert normalize_categories_input(value) == expected


def test_sanitize_zone_label():
    assert sanitize_zone_label("  Дом  \n  и   работа ") == "Дом и работа"
    assert sanitize_zone_label("") is None
    assert sanitize_zone_label(None) is None
    assert sanitize_zone_label(12) is None
    assert sanitize_zone_label("a" * 41) == "a" * 40


def test_truncate():
    assert truncate("  кратък   текст ", 50) == "кратък текст"
    clipped = truncate("дълъг текст за известие", 10)
    assert len(clipped) == 10
    assert clipped.endswith("…")
