import pytest

from kfdtopo.condition import Condition


def test_hardware_encoding():
    assert [c.value for c in Condition] == [1, 2, 3, 4, 5, 6]
    assert Condition(3) is Condition.EQ


@pytest.mark.parametrize(
    "cond, value, reference, expected",
    [
        (Condition.LT, 1, 2, True),
        (Condition.LT, 2, 2, False),
        (Condition.LTE, 2, 2, True),
        (Condition.LTE, 3, 2, False),
        (Condition.EQ, 0, 0, True),
        (Condition.EQ, 1, 0, False),
        (Condition.NE, 1, 0, True),
        (Condition.NE, 0, 0, False),
        (Condition.GTE, 2, 2, True),
        (Condition.GTE, 1, 2, False),
        (Condition.GT, 3, 2, True),
        (Condition.GT, 2, 2, False),
    ],
)
def test_evaluate(cond, value, reference, expected):
    assert cond.evaluate(value, reference) is expected


@pytest.mark.parametrize("value", [0, 1, 5, 100])
def test_complementary_conditions(value):
    ref = 5
    assert Condition.LT.evaluate(value, ref) != Condition.GTE.evaluate(value, ref)
    assert Condition.GT.evaluate(value, ref) != Condition.LTE.evaluate(value, ref)
    assert Condition.EQ.evaluate(value, ref) != Condition.NE.evaluate(value, ref)