import pytest

from dams.workers.arq_worker import reconcile_minutes


@pytest.mark.parametrize(
    "interval, expected",
    [
        (60, {0}),
        (15, {0, 15, 30, 45}),
        (45, {0, 30}),
        (7, {0, 6, 12, 18, 24, 30, 36, 42, 48, 54}),
        (None, {0}),
        (0, {0}),
        (500, {0}),
    ],
)
def test_reconcile_minutes_keep_an_even_cadence(interval, expected) -> None:
    assert reconcile_minutes(interval) == expected
