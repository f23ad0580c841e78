"""Tests for fishpopdyn.fishing — effort allocation, closures, F-at-age."""

import numpy as np
import pytest

from fishpopdyn.errors import DegenerateEffortAllocation, OutOfRangeMortality
from fishpopdyn.fishing import (
    ClosureSchedule,
    EffortControl,
    clamp_fishing_mortality,
    effort_distribution,
    fishing_mortality_at_age,
    reallocate_closed_effort,
)
from fishpopdyn.types import ControlMode


# ── effort distribution ───────────────────────────────────────────────

class TestEffortDistribution:
    def test_proportional_at_exponent_one(self):
        dist = effort_distribution(np.array([1.0, 3.0]), 1.0)
        np.testing.assert_allclose(dist, [0.25, 0.75])

    def test_exponent_sharpens_targeting(self):
        vb = np.array([1.0, 3.0])
        assert effort_distribution(vb, 2.0)[1] > effort_distribution(vb, 1.0)[1]

    def test_exponent_zero_is_uniform(self):
        np.testing.assert_allclose(effort_distribution(np.array([5.0, 1.0, 9.0]), 0.0),
                                   [1 / 3, 1 / 3, 1 / 3])

    def test_sums_to_one(self):
        vb = np.random.default_rng(0).uniform(0, 100, size=6)
        assert effort_distribution(vb, 1.7).sum() == pytest.approx(1.0)

    def test_no_biomass_gives_zeros(self):
        np.testing.assert_array_equal(effort_distribution(np.zeros(3), 1.0), np.zeros(3))


# ── closures ──────────────────────────────────────────────────────────

class TestClosureSchedule:
    def test_open_fraction(self):
        sched = ClosureSchedule([[0.0, 0.25], [1.0, 0.0]])
        np.testing.assert_allclose(sched.open_fraction(0), [1.0, 0.75])
        np.testing.assert_allclose(sched.open_fraction(1), [0.0, 1.0])

    def test_all_open(self):
        sched = ClosureSchedule.all_open(3, 2)
        assert (sched.nyears, sched.nareas) == (3, 2)
        np.testing.assert_array_equal(sched.open_fraction(2), [1.0, 1.0])

    @pytest.mark.parametrize("bad", [[[1.2, 0.0]], [[-0.1, 0.0]], [[np.nan, 0.0]]])
    def test_out_of_range_rejected(self, bad):
        with pytest.raises(ValueError):
            ClosureSchedule(bad)

    def test_year_out_of_range(self):
        with pytest.raises(IndexError):
            ClosureSchedule.all_open(2, 2).open_fraction(2)


class TestReallocation:
    def test_all_open_unchanged(self):
        dist = np.array([0.2, 0.3, 0.5])
        share, frac_e = reallocate_closed_effort(dist, np.ones(3), year=1)
        assert frac_e == pytest.approx(1.0)
        np.testing.assert_allclose(share, dist)

    def test_closed_effort_moves_to_open_areas(self):
        dist = np.array([0.5, 0.25, 0.25])
        share, frac_e = reallocate_closed_effort(dist, np.array([0.0, 1.0, 1.0]), year=1)
        assert frac_e == pytest.approx(0.5)
        np.testing.assert_allclose(share, [0.0, 0.5, 0.5])

    def test_partial_closure_keeps_total(self):
        dist = np.array([0.4, 0.6])
        share, frac_e = reallocate_closed_effort(dist, np.array([0.5, 1.0]), year=1)
        assert frac_e == pytest.approx(0.8)
        assert share.sum() == pytest.approx(1.0)
        np.testing.assert_allclose(share, [0.25, 0.75])

    def test_everything_closed_raises(self):
        with pytest.raises(DegenerateEffortAllocation) as exc:
            reallocate_closed_effort(np.array([0.5, 0.5]), np.zeros(2), year=4)
        assert exc.value.year == 4

    def test_no_effort_raises(self):
        with pytest.raises(DegenerateEffortAllocation):
            reallocate_closed_effort(np.zeros(2), np.ones(2), year=1)


# ── fishing mortality ─────────────────────────────────────────────────

class TestFishingMortality:
    def setup_method(self):
        self.vuln = np.array([0.0, 0.5, 1.0])
        self.share = np.array([0.25, 0.75])
        self.size = np.array([1.0, 2.0])

    def test_effort_mode(self):
        ctl = EffortControl(effort=[2.0, 4.0], q=0.1)
        f = fishing_mortality_at_age(ControlMode.EFFORT, self.share, self.vuln,
                                     self.size, ctl, year=1)
        expected = np.outer(self.vuln, 4.0 * 0.1 * self.share / self.size)
        np.testing.assert_allclose(f, expected)
        assert f.shape == (3, 2)

    def test_apical_mode(self):
        ctl = EffortControl(f_apical=0.3)
        f = fishing_mortality_at_age(ControlMode.APICAL_F, self.share, self.vuln,
                                     self.size, ctl, year=0)
        np.testing.assert_allclose(f[2], [0.3 * 0.25, 0.3 * 0.75 / 2.0])
        np.testing.assert_array_equal(f[0], [0.0, 0.0])

    def test_unfished_mode_is_zero(self):
        ctl = EffortControl(f_apical=0.3, effort=[1.0], q=1.0)
        f = fishing_mortality_at_age(ControlMode.UNFISHED, self.share, self.vuln,
                                     self.size, ctl, year=0)
        np.testing.assert_array_equal(f, np.zeros((3, 2)))

    def test_modes_equivalent_when_effort_times_q_is_apical(self):
        share = np.array([1.0])
        size = np.array([1.0])
        f1 = fishing_mortality_at_age(ControlMode.EFFORT, share, self.vuln, size,
                                      EffortControl(effort=[2.0], q=0.25), year=0)
        f2 = fishing_mortality_at_age(ControlMode.APICAL_F, share, self.vuln, size,
                                      EffortControl(f_apical=0.5), year=0)
        np.testing.assert_array_equal(f1, f2)

    def test_missing_effort_year(self):
        ctl = EffortControl(effort=[1.0], q=1.0)
        with pytest.raises(IndexError):
            fishing_mortality_at_age(ControlMode.EFFORT, self.share, self.vuln,
                                     self.size, ctl, year=1)


class TestClamp:
    def test_hard_ceiling(self):
        f = np.array([[0.1, 2.0], [5.0, 0.0]])
        np.testing.assert_array_equal(clamp_fishing_mortality(f, 1.5),
                                      [[0.1, 1.5], [1.5, 0.0]])

    def test_negative_raises(self):
        with pytest.raises(OutOfRangeMortality):
            clamp_fishing_mortality(np.array([-0.1]), 1.0)

    def test_non_finite_raises(self):
        with pytest.raises(OutOfRangeMortality) as exc:
            clamp_fishing_mortality(np.array([np.inf]), 1.0, year=3)
        assert exc.value.year == 3

    def test_negative_max_f_rejected(self):
        with pytest.raises(ValueError):
            EffortControl(max_f=-1.0)
