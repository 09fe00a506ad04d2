import pytest

from portagestyle.errors import MalformedConstraint
from portagestyle.versions import Operator, Version, vercmp, version_matches


def v(text):
    return Version.parse(text)


@pytest.mark.parametrize(
    "lower, higher",
    [
        ("1.0", "1.1"),
        ("1.9", "1.10"),
        ("1.0", "1.0a"),
        ("1.0_alpha", "1.0_beta"),
        ("1.0_beta", "1.0_pre"),
        ("1.0_pre", "1.0_rc"),
        ("1.0_rc", "1.0"),
        ("1.0", "1.0_p1"),
        ("1.0_rc1", "1.0_rc2"),
        ("1.0", "1.0-r1"),
        ("1.0-r1", "1.0-r10"),
        ("1.01", "1.1"),
        ("1.0", "1.0.0"),
        ("2", "10"),
    ],
)
def test_vercmp_ordering(lower, higher):
    assert vercmp(v(lower), v(higher)) == -1
    assert vercmp(v(higher), v(lower)) == 1
    assert v(lower) < v(higher)


def test_trailing_zeros_compare_equal_but_stay_distinct():
    """1.0 and 1.00 sort together, yet are different versions."""
    assert vercmp(v("1.0"), v("1.00")) == 0
    assert v("1.0") != v("1.00")


def test_str_keeps_input_text():
    assert str(v("1.2.3_rc1-r2")) == "1.2.3_rc1-r2"


@pytest.mark.parametrize("text", ["", "abc", "1..2", "1.2-r", "1.2_gamma", "-1"])
def test_parse_rejects_garbage(text):
    with pytest.raises(MalformedConstraint):
        Version.parse(text)


def test_approximate_ignores_revision():
    assert version_matches(v("1.2.3-r5"), Operator.APPROXIMATE, v("1.2.3"))
    assert version_matches(v("1.2.3"), Operator.APPROXIMATE, v("1.2.3"))
    assert not version_matches(v("1.3.0"), Operator.APPROXIMATE, v("1.2.3"))


def test_glob_is_a_component_prefix():
    assert version_matches(v("1.2.0"), Operator.EQUAL_GLOB, v("1.2"))
    assert version_matches(v("1.2.9"), Operator.EQUAL_GLOB, v("1.2"))
    assert version_matches(v("1.2"), Operator.EQUAL_GLOB, v("1.2"))
    assert not version_matches(v("1.3.0"), Operator.EQUAL_GLOB, v("1.2"))
    assert not version_matches(v("1.20"), Operator.EQUAL_GLOB, v("1.2"))
    assert not version_matches(v("1"), Operator.EQUAL_GLOB, v("1.2"))


@pytest.mark.parametrize(
    "op, expected",
    [
        (Operator.LESS, [True, False, False]),
        (Operator.LESS_OR_EQUAL, [True, True, False]),
        (Operator.EQUAL, [False, True, False]),
        (Operator.GREATER_OR_EQUAL, [False, True, True]),
        (Operator.GREATER, [False, False, True]),
    ],
)
def test_plain_operators(op, expected):
    constraint = v("2.0")
    got = [version_matches(v(c), op, constraint) for c in ("1.9", "2.0", "2.0-r1")]
    assert got == expected


def test_equal_compares_revision():
    assert not version_matches(v("2.0-r1"), Operator.EQUAL, v("2.0"))
    assert version_matches(v("2.00"), Operator.EQUAL, v("2.0"))
