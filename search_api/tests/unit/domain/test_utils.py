import pytest
from datetime import datetime, timedelta, timezone

from search_api.app.domain import utils


@pytest.mark.parametrize("question,expected", [
    ("Recipe bug", ["Recipe", "bug"]),
    ("a b c", []),
    ("", []),
    (None, []),
    ("x yy zzz", ["yy", "zzz"]),
    ("one two three four five six seven", ["one", "two", "three", "four", "five"]),
    ("레시피 버그 a", ["레시피", "버그"]),
    ("issue#42: crash!", ["issue", "42", "crash"]),
])
def test_tokenize(question, expected):
    assert utils.tokenize(question) == expected


@pytest.mark.parametrize("question", [
    "a " * 50,
    "ab cd ef gh ij kl mn op",
    "supercalifragilistic " * 10,
    "x1 y2 z3 4 5 6",
])
def test_tokenize_bounds(question):
    """
    토큰은 최대 5개, 각 길이 2 이상
    """
    tokens = utils.tokenize(question)
    assert len(tokens) <= 5
    assert all(len(t) >= 2 for t in tokens)


def test_is_blank():
    assert utils.is_blank(None)
    assert utils.is_blank("")
    assert utils.is_blank("  \n")
    assert utils.is_blank([])
    assert not utils.is_blank("x")
    assert not utils.is_blank(0)
    assert not utils.is_blank(["", ""])


def test_to_utc():
    kst = timezone(timedelta(hours=9))
    assert utils.to_utc(datetime(2024, 1, 1, 9, 0, tzinfo=kst)) == datetime(2024, 1, 1, 0, 0, tzinfo=timezone.utc)
    assert utils.to_utc(datetime(2024, 1, 1, 9, 0)).tzinfo is timezone.utc
    assert utils.to_utc(None) is None


def test_truncate_text():
    assert utils.truncate_text("abcdef", 3) == "abc..."
    assert utils.truncate_text("abc", 3) == "abc"
    assert utils.truncate_text("  ", 3) is None


@pytest.mark.parametrize("limit,expected", [
    (10, 10), (0, 25), (-5, 25), (None, 25), ("abc", 25), ("7", 7), (1000, 100),
])
def test_clamp_limit(limit, expected):
    assert utils.clamp_limit(limit, 25, 100) == expected


def test_clamp_offset():
    assert utils.clamp_offset(-1) == 0
    assert utils.clamp_offset("3") == 3
    assert utils.clamp_offset(None) == 0
