"""Tests for the single annual transition.

Properties:
  - Ageing: N[a+1, y+1] = N[a, y] · exp(−Z[a, y])
  - Mortality monotonicity without a plus group
  - Plus group increases the oldest class for Z > 0, no change at Z = 0
  - Movement inside the step conserves numbers at age
  - Recruitment dispatches on the relationship type
"""

import numpy as np
import pytest

from fishpopdyn.errors import DegenerateRecruitment, InvalidMovementField, OutOfRangeMortality
from fishpopdyn.movement import resident_movement, uniform_movement
from fishpopdyn.recruitment import BevertonHolt, Ricker
from fishpopdyn.transition import advance_one_year, survive_and_age


def _step(numbers, z, ssb=None, sr=None, mov=None, plusgroup=False, dev=1.0, h=0.7):
    maxage, nareas = numbers.shape
    if ssb is None:
        ssb = np.zeros(nareas)
    if sr is None:
        sr = BevertonHolt(r0=np.full(nareas, 100.0), ssbpr=np.ones(nareas))
    if mov is None:
        mov = resident_movement(maxage, nareas)
    return advance_one_year(ssb, numbers, z, dev, sr, h, mov, plusgroup=plusgroup)


# ═══════════════════════════════════════════════════════════════════════
# SURVIVAL AND AGEING
# ═══════════════════════════════════════════════════════════════════════

class TestSurvival:
    def test_two_age_scenario(self):
        """One area, two ages, M = 0.2, no fishing, starting [100, 50]."""
        numbers = np.array([[100.0], [50.0]])
        z = np.full((2, 1), 0.2)
        nxt = _step(numbers, z)
        assert nxt[1, 0] == pytest.approx(100.0 * np.exp(-0.2), rel=1e-14)
        assert nxt[0, 0] == 0.0  # zero SSB, no recruits

    def test_ageing_shifts_each_class(self):
        numbers = np.array([[10.0, 20.0], [30.0, 40.0], [50.0, 60.0]])
        z = np.array([[0.1, 0.2], [0.3, 0.4], [0.5, 0.6]])
        nxt = survive_and_age(numbers, z, np.array([1.0, 2.0]))
        np.testing.assert_allclose(nxt[0], [1.0, 2.0])
        np.testing.assert_allclose(nxt[1:], numbers[:-1] * np.exp(-z[:-1]))

    @pytest.mark.parametrize("seed", range(5))
    def test_mortality_monotonicity(self, seed):
        rng = np.random.default_rng(seed)
        numbers = rng.uniform(0, 1000, size=(6, 3))
        z = rng.uniform(0, 2, size=(6, 3))
        nxt = _step(numbers, z)
        assert np.all(nxt[1:] <= numbers[:-1])

    def test_zero_mortality_keeps_numbers(self):
        numbers = np.array([[5.0], [7.0], [9.0]])
        nxt = _step(numbers, np.zeros((3, 1)))
        np.testing.assert_array_equal(nxt[1:, 0], [5.0, 7.0])


class TestPlusGroup:
    @pytest.mark.parametrize("z_last", [0.05, 0.3, 1.5])
    def test_plus_group_increases_oldest(self, z_last):
        numbers = np.array([[100.0], [80.0], [60.0]])
        z = np.array([[0.2], [0.2], [z_last]])
        without = _step(numbers, z)
        with_pg = _step(numbers, z, plusgroup=True)
        assert with_pg[-1, 0] > without[-1, 0]
        assert with_pg[-1, 0] == pytest.approx(without[-1, 0] / (1 - np.exp(-z_last)))
        np.testing.assert_array_equal(with_pg[:-1], without[:-1])

    def test_zero_terminal_mortality_left_unpooled(self):
        numbers = np.array([[100.0, 100.0], [80.0, 80.0]])
        z = np.array([[0.2, 0.2], [0.0, 0.4]])
        without = _step(numbers, z)
        with_pg = _step(numbers, z, plusgroup=True)
        assert with_pg[-1, 0] == without[-1, 0]
        assert with_pg[-1, 1] > without[-1, 1]
        assert np.all(np.isfinite(with_pg))


# ═══════════════════════════════════════════════════════════════════════
# RECRUITMENT AND MOVEMENT IN THE STEP
# ═══════════════════════════════════════════════════════════════════════

class TestRecruitmentInStep:
    def test_beverton_holt_recruits(self):
        sr = BevertonHolt(r0=[200.0, 50.0], ssbpr=[2.0, 1.0])
        ssb = np.array([400.0, 50.0])  # unfished in both areas
        nxt = _step(np.zeros((2, 2)), np.zeros((2, 2)), ssb=ssb, sr=sr, dev=1.5)
        np.testing.assert_allclose(nxt[0], [300.0, 75.0])

    def test_ricker_recruits(self):
        sr = Ricker(alpha=[2.0], beta=[0.01])
        nxt = _step(np.zeros((2, 1)), np.zeros((2, 1)), ssb=np.array([100.0]), sr=sr)
        assert nxt[0, 0] == pytest.approx(2.0 * 100.0 * np.exp(-1.0))

    def test_degenerate_recruitment_propagates(self):
        with pytest.raises(DegenerateRecruitment):
            _step(np.zeros((2, 1)), np.zeros((2, 1)), ssb=np.array([-1.0]))

    def test_area_count_mismatch(self):
        sr = BevertonHolt(r0=[1.0, 1.0, 1.0], ssbpr=[1.0, 1.0, 1.0])
        with pytest.raises(ValueError):
            _step(np.zeros((2, 2)), np.zeros((2, 2)), sr=sr)


class TestMovementInStep:
    @pytest.mark.parametrize("seed", range(3))
    def test_conservation(self, seed):
        rng = np.random.default_rng(seed)
        numbers = rng.uniform(0, 100, size=(4, 3))
        z = rng.uniform(0, 1, size=(4, 3))
        mov = rng.dirichlet(np.ones(3), size=(4, 3))
        moved = _step(numbers, z, mov=mov)
        still = _step(numbers, z)
        np.testing.assert_allclose(moved.sum(axis=1), still.sum(axis=1), rtol=1e-12)

    def test_invalid_movement_rejected(self):
        mov = uniform_movement(2, 2)
        mov[0, 0, 0] = 0.9
        with pytest.raises(InvalidMovementField):
            _step(np.ones((2, 2)), np.zeros((2, 2)), mov=mov)


class TestMortalityChecks:
    def test_negative_z(self):
        with pytest.raises(OutOfRangeMortality):
            _step(np.ones((2, 1)), np.array([[0.1], [-0.1]]))

    def test_nan_z(self):
        with pytest.raises(OutOfRangeMortality):
            _step(np.ones((2, 1)), np.array([[np.nan], [0.1]]))

    def test_shape_mismatch(self):
        with pytest.raises(ValueError):
            _step(np.ones((2, 1)), np.zeros((3, 1)))
