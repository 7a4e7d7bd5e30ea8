import pytest

from arthagent.utils.formatting import percent, rupees


@pytest.mark.parametrize(
    "amount, expected",
    [
        (0, "Rs.0"),
        (999, "Rs.999"),
        (1_000, "Rs.1,000"),
        (120_000, "Rs.1,20,000"),
        (25_845_710.4, "Rs.2,58,45,710"),
        (-5, "-Rs.5"),
    ],
)
def test_rupees_uses_indian_grouping(amount, expected):
    assert rupees(amount) == expected


def test_percent():
    assert percent(62.456) == "62.5%"
