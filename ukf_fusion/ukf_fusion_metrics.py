"""UKF-Fusion consistency and accuracy metrics
=============================================

- NIS (Normalized Innovation Squared) per update
- Chi-square acceptance thresholds per measurement dimension
- NISMonitor: running fraction of updates above the 95% threshold
- RMSE against ground truth

For a consistent filter NIS follows chi2(dim_z): about 5% of lidar NIS
values exceed 5.99 and about 5% of radar NIS values exceed 7.81.
"""

from __future__ import annotations

import numpy as np
from dataclasses import dataclass, field
from typing import Dict, Sequence
from scipy.stats import chi2

from .ukf_fusion_models import SensorType


def compute_nis(innovation: np.ndarray, S: np.ndarray) -> float:
    """Normalized Innovation Squared, y^T S^{-1} y.

    Returns inf when S is singular.
    """
    innovation = np.asarray(innovation, dtype=np.float64)
    try:
        return float(innovation @ np.linalg.solve(S, innovation))
    except np.linalg.LinAlgError:
        return float('inf')


def chi2_threshold(dof: int, confidence: float = 0.95) -> float:
    """Upper chi-square quantile for a NIS consistency check."""
    return float(chi2.ppf(confidence, dof))


NIS_95 = {
    SensorType.LASER: chi2_threshold(SensorType.LASER.dim_z),
    SensorType.RADAR: chi2_threshold(SensorType.RADAR.dim_z),
}


@dataclass
class SensorNISStats:
    """Running NIS statistics of one sensor."""
    count: int = 0
    above: int = 0
    total: float = 0.0

    @property
    def mean(self) -> float:
        return self.total / self.count if self.count else float('nan')

    @property
    def fraction_above(self) -> float:
        return self.above / self.count if self.count else 0.0


@dataclass
class NISMonitor:
    """Counts how often NIS exceeds the chi-square threshold per sensor.

    Diagnostic only: the filter records into it but never reads it back.
    """
    confidence: float = 0.95
    stats: Dict[SensorType, SensorNISStats] = field(
        default_factory=lambda: {s: SensorNISStats() for s in SensorType})

    def threshold(self, sensor_type: SensorType) -> float:
        if self.confidence == 0.95:
            return NIS_95[sensor_type]
        return chi2_threshold(sensor_type.dim_z, self.confidence)

    def record(self, sensor_type: SensorType, nis: float) -> None:
        s = self.stats[sensor_type]
        s.count += 1
        s.total += nis
        if nis > self.threshold(sensor_type):
            s.above += 1

    def fraction_above(self, sensor_type: SensorType) -> float:
        return self.stats[sensor_type].fraction_above

    def reset(self) -> None:
        for s in self.stats.values():
            s.count = s.above = 0
            s.total = 0.0

    def summary(self) -> Dict[str, Dict[str, float]]:
        return {
            sensor.value: {
                "count": s.count,
                "mean_nis": s.mean,
                "threshold": self.threshold(sensor),
                "fraction_above": s.fraction_above,
            }
            for sensor, s in self.stats.items()
        }


def state_to_cartesian(x: np.ndarray) -> np.ndarray:
    """CTRV state [px, py, v, yaw, yawd] -> [px, py, vx, vy]."""
    return np.array([x[0], x[1], x[2] * np.cos(x[3]), x[2] * np.sin(x[3])])


def compute_rmse(estimations: Sequence[np.ndarray],
                 ground_truth: Sequence[np.ndarray]) -> np.ndarray:
    """Component-wise root mean squared error.

    Args:
        estimations: Estimated vectors, one per time step
        ground_truth: Truth vectors of the same length and dimension
    """
    est = np.asarray(estimations, dtype=np.float64)
    gt = np.asarray(ground_truth, dtype=np.float64)
    if est.size == 0:
        raise ValueError("No estimations to evaluate")
    if est.shape != gt.shape:
        raise ValueError(
            f"Estimation and ground truth shapes differ: {est.shape} vs {gt.shape}")
    return np.sqrt(np.mean((est - gt) ** 2, axis=0))
