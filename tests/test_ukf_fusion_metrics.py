"""Tests for UKF-Fusion metrics and configuration.
pytest tests/test_ukf_fusion_metrics.py -v
"""

import dataclasses
import numpy as np
import pytest
from numpy.testing import assert_allclose
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from ukf_fusion.ukf_fusion_config import UKFConfig
from ukf_fusion.ukf_fusion_metrics import (
    NIS_95, NISMonitor, chi2_threshold, compute_nis, compute_rmse, state_to_cartesian,
)
from ukf_fusion.ukf_fusion_models import SensorType


# ============================================================
# NIS
# ============================================================

class TestNIS:

    def test_compute_nis(self):
        assert_allclose(compute_nis(np.array([1.0, 2.0]), np.diag([1.0, 4.0])), 2.0)

    def test_compute_nis_correlated(self):
        S = np.array([[2.0, 1.0], [1.0, 2.0]])
        y = np.array([1.0, -1.0])
        assert_allclose(compute_nis(y, S), y @ np.linalg.inv(S) @ y)

    def test_singular_is_inf(self):
        assert compute_nis(np.array([1.0, 1.0]), np.zeros((2, 2))) == float('inf')

    def test_chi2_thresholds(self):
        assert_allclose(chi2_threshold(2), 5.991, atol=1e-3)
        assert_allclose(chi2_threshold(3), 7.815, atol=1e-3)
        assert_allclose(NIS_95[SensorType.LASER], 5.991, atol=1e-3)
        assert_allclose(NIS_95[SensorType.RADAR], 7.815, atol=1e-3)


class TestNISMonitor:

    def test_fraction_above(self):
        m = NISMonitor()
        for nis in (1.0, 2.0, 3.0, 10.0):
            m.record(SensorType.LASER, nis)
        m.record(SensorType.RADAR, 7.0)
        assert m.fraction_above(SensorType.LASER) == 0.25
        assert m.fraction_above(SensorType.RADAR) == 0.0
        assert_allclose(m.stats[SensorType.LASER].mean, 4.0)

    def test_empty(self):
        m = NISMonitor()
        assert m.fraction_above(SensorType.RADAR) == 0.0
        assert np.isnan(m.stats[SensorType.RADAR].mean)

    def test_custom_confidence(self):
        m = NISMonitor(confidence=0.99)
        assert_allclose(m.threshold(SensorType.LASER), 9.210, atol=1e-3)

    def test_summary_and_reset(self):
        m = NISMonitor()
        m.record(SensorType.RADAR, 9.0)
        summary = m.summary()
        assert summary["radar"]["count"] == 1
        assert summary["radar"]["fraction_above"] == 1.0
        assert summary["laser"]["count"] == 0
        m.reset()
        assert m.stats[SensorType.RADAR].count == 0


# ============================================================
# RMSE
# ============================================================

class TestRMSE:

    def test_rmse(self):
        est = [np.array([1.0, 2.0]), np.array([3.0, 4.0])]
        gt = [np.array([1.0, 0.0]), np.array([1.0, 4.0])]
        assert_allclose(compute_rmse(est, gt), [np.sqrt(2.0), np.sqrt(2.0)])

    def test_rmse_exact(self):
        est = [np.ones(4) * 2.0] * 5
        assert_allclose(compute_rmse(est, est), np.zeros(4))

    def test_empty_raises(self):
        with pytest.raises(ValueError):
            compute_rmse([], [])

    def test_mismatch_raises(self):
        with pytest.raises(ValueError):
            compute_rmse([np.zeros(4)], [np.zeros(4), np.zeros(4)])

    def test_state_to_cartesian(self):
        out = state_to_cartesian(np.array([1.0, 2.0, 2.0, np.pi / 2, 0.3]))
        assert_allclose(out, [1.0, 2.0, 0.0, 2.0], atol=1e-12)


# ============================================================
# CONFIG
# ============================================================

class TestConfig:

    def test_defaults(self):
        c = UKFConfig()
        assert c.use_laser and c.use_radar
        assert (c.std_a, c.std_yawdd) == (3.0, 1.0)
        assert (c.std_laspx, c.std_laspy) == (0.15, 0.15)
        assert (c.std_radr, c.std_radphi, c.std_radrd) == (0.3, 0.03, 0.3)
        assert c.lambda_ == -4.0
        assert c.n_sigma == 15
        assert c.max_fault_streak == 5

    @pytest.mark.parametrize("name", UKFConfig.noise_fields())
    def test_non_positive_noise_rejected(self, name):
        with pytest.raises(ValueError):
            UKFConfig(**{name: 0.0})
        with pytest.raises(ValueError):
            UKFConfig(**{name: -1.0})

    @pytest.mark.parametrize("value", [0, -3, 2.5, True])
    def test_bad_fault_streak_rejected(self, value):
        with pytest.raises(ValueError):
            UKFConfig(max_fault_streak=value)

    def test_non_finite_noise_rejected(self):
        with pytest.raises(ValueError):
            UKFConfig(std_a=float('inf'))

    def test_dimension_mismatch_rejected(self):
        with pytest.raises(ValueError):
            UKFConfig(n_aug=6)

    def test_frozen(self):
        c = UKFConfig()
        with pytest.raises(dataclasses.FrozenInstanceError):
            c.std_a = 1.0

    def test_from_dict(self):
        c = UKFConfig.from_dict({"std_a": 1.5, "use_radar": False})
        assert c.std_a == 1.5
        assert not c.use_radar

    def test_from_dict_unknown_key(self):
        with pytest.raises(ValueError, match="std_accel"):
            UKFConfig.from_dict({"std_accel": 1.5})
