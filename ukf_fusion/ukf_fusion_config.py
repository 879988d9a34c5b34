"""UKF-Fusion configuration
==========================

Filter configuration for the CTRV unscented Kalman filter.  All values are
fixed at construction; the filter never reconfigures itself at runtime.

Noise defaults are the sensor-manufacturer figures for the lidar/radar pair
the filter was tuned against.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, fields
from typing import Any, Mapping


# ═══════════════════════════════════════════════════════════════════════════════
# NUMERICAL CONSTANTS
# ═══════════════════════════════════════════════════════════════════════════════
YAW_RATE_EPS = 1e-3               # below this |yaw_rate| the CTRV model drives straight
LASER_INIT_SPEED_VAR = 5.0        # speed variance seeded from a laser-only first fix
MICROSECONDS_PER_SECOND = 1e6
CONDITION_LIMIT = 1e12            # innovation covariance condition number ceiling
JITTER_LADDER = (1e-9, 1e-6, 1e-4, 1e-2)   # diagonal loading tried when Cholesky fails


@dataclass(frozen=True)
class UKFConfig:
    """Noise parameters, sensor switches and dimensions of the filter.

    Attributes:
        use_laser: Process laser measurements (ignored entirely when False)
        use_radar: Process radar measurements (ignored entirely when False)
        std_a: Process noise std-dev, longitudinal acceleration (m/s^2)
        std_yawdd: Process noise std-dev, yaw acceleration (rad/s^2)
        std_laspx: Laser noise std-dev, x position (m)
        std_laspy: Laser noise std-dev, y position (m)
        std_radr: Radar noise std-dev, range (m)
        std_radphi: Radar noise std-dev, bearing (rad)
        std_radrd: Radar noise std-dev, range rate (m/s)
        n_x: State dimension
        n_aug: Augmented state dimension (state + 2 noise terms)
        max_fault_streak: Consecutive rolled-back cycles tolerated before the
            belief is dropped and re-seeded from the next measurement
    """
    use_laser: bool = True
    use_radar: bool = True

    std_a: float = 3.0
    std_yawdd: float = 1.0

    std_laspx: float = 0.15
    std_laspy: float = 0.15

    std_radr: float = 0.3
    std_radphi: float = 0.03
    std_radrd: float = 0.3

    n_x: int = 5
    n_aug: int = 7

    max_fault_streak: int = 5

    def __post_init__(self):
        for name in self.noise_fields():
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or isinstance(value, bool):
                raise ValueError(f"{name} must be a real number, got {value!r}")
            if not math.isfinite(value) or value <= 0.0:
                raise ValueError(f"{name} must be positive and finite, got {value!r}")
        if self.n_x != 5:
            raise ValueError(f"CTRV state has 5 components, got n_x={self.n_x}")
        if self.n_aug != self.n_x + 2:
            raise ValueError(
                f"n_aug must be n_x + 2 = {self.n_x + 2}, got {self.n_aug}")
        if (not isinstance(self.max_fault_streak, int) or isinstance(self.max_fault_streak, bool)
                or self.max_fault_streak < 1):
            raise ValueError(
                f"max_fault_streak must be a positive integer, got {self.max_fault_streak!r}")

    @staticmethod
    def noise_fields():
        return ("std_a", "std_yawdd", "std_laspx", "std_laspy",
                "std_radr", "std_radphi", "std_radrd")

    @property
    def lambda_(self) -> float:
        """Sigma point spreading parameter."""
        return 3.0 - self.n_aug

    @property
    def n_sigma(self) -> int:
        return 2 * self.n_aug + 1

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> "UKFConfig":
        """Build a config from a plain mapping (e.g. parsed YAML/JSON).

        Unknown keys are rejected so that a typo in a noise name does not
        silently fall back to the default.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ValueError(f"Unknown UKFConfig keys: {', '.join(unknown)}")
        return cls(**dict(values))
