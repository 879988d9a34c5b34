"""UKF-Fusion motion and measurement models
==========================================

Numerical building blocks of the CTRV unscented Kalman filter:

- Angle normalization into (-pi, pi]
- Sigma point weights and augmented sigma point generation
- CTRV (constant turn rate and velocity) process model
- Radar (range, bearing, range rate) measurement model
- Lidar selection matrix and sensor noise matrices

State vector convention::

    x = [px, py, v, yaw, yaw_rate]

Augmented state appends the longitudinal and yaw acceleration noise::

    x_aug = [px, py, v, yaw, yaw_rate, nu_a, nu_yawdd]
"""

from __future__ import annotations

import numpy as np
from scipy.linalg import block_diag, cholesky
from dataclasses import dataclass
from enum import Enum
from typing import Union

from .ukf_fusion_config import UKFConfig, JITTER_LADDER, YAW_RATE_EPS


TWO_PI = 2.0 * np.pi

# Range floor for the range-rate division
MIN_RANGE = 1e-6

# Lidar observes [px, py] directly
LIDAR_H = np.array([
    [1.0, 0.0, 0.0, 0.0, 0.0],
    [0.0, 1.0, 0.0, 0.0, 0.0],
])
LIDAR_H.setflags(write=False)


# =============================================================================
# ANGLES
# =============================================================================

def normalize_angle(angle: Union[float, np.ndarray]) -> Union[float, np.ndarray]:
    """Map an angle (or array of angles) into (-pi, pi].

    Angles already inside the interval are returned untouched, so the
    operation is exactly idempotent.
    """
    a = np.asarray(angle, dtype=np.float64)
    inside = (a > -np.pi) & (a <= np.pi)

    wrapped = a - TWO_PI * np.floor((a + np.pi) / TWO_PI)
    # floor() can land a rounding step outside the half-open interval
    wrapped = np.where(wrapped > np.pi, wrapped - TWO_PI, wrapped)
    wrapped = np.where(wrapped <= -np.pi, wrapped + TWO_PI, wrapped)

    out = np.where(inside, a, wrapped)
    if out.ndim == 0:
        return float(out)
    return out


# =============================================================================
# SIGMA POINTS
# =============================================================================

def sigma_point_weights(n_aug: int, lambda_: float) -> np.ndarray:
    """Weights for 2*n_aug + 1 sigma points.

    One center weight lambda/(lambda + n_aug) and 2*n_aug equal outer
    weights 0.5/(lambda + n_aug); they sum to 1 for any lambda.
    """
    n_sigma = 2 * n_aug + 1
    weights = np.full(n_sigma, 0.5 / (lambda_ + n_aug))
    weights[0] = lambda_ / (lambda_ + n_aug)
    return weights


def process_noise(config: UKFConfig) -> np.ndarray:
    """Covariance of [nu_a, nu_yawdd]."""
    return np.diag([config.std_a ** 2, config.std_yawdd ** 2])


def is_positive_definite(P: np.ndarray) -> bool:
    """True if P is finite and admits a Cholesky factorization."""
    if not np.all(np.isfinite(P)):
        return False
    try:
        cholesky(P, lower=True, check_finite=False)
    except np.linalg.LinAlgError:
        return False
    return True


def augmented_sigma_points(
    x: np.ndarray,
    P: np.ndarray,
    Q: np.ndarray,
    lambda_: float,
) -> np.ndarray:
    """Generate augmented sigma points as columns of an (n_aug, 2*n_aug+1) matrix.

    A covariance that is only positive semi-definite up to rounding is
    factored after loading its diagonal with the smallest step of
    JITTER_LADDER that succeeds.

    Args:
        x: State mean (n_x,)
        P: State covariance (n_x, n_x)
        Q: Process noise covariance (2, 2)
        lambda_: Spreading parameter

    Raises:
        numpy.linalg.LinAlgError: augmented covariance is not finite or not
            positive definite even after diagonal loading.
    """
    x_aug = np.concatenate([x, np.zeros(Q.shape[0])])
    P_aug = block_diag(P, Q)
    n_aug = len(x_aug)

    if not (np.all(np.isfinite(x_aug)) and np.all(np.isfinite(P_aug))):
        raise np.linalg.LinAlgError("augmented state contains non-finite values")

    try:
        L = cholesky(P_aug, lower=True, check_finite=False)
    except np.linalg.LinAlgError as exc:
        scale = max(1.0, float(np.max(np.abs(np.diag(P_aug)))))
        for eps in JITTER_LADDER:
            try:
                L = cholesky(P_aug + np.eye(n_aug) * eps * scale,
                             lower=True, check_finite=False)
                break
            except np.linalg.LinAlgError:
                continue
        else:
            raise np.linalg.LinAlgError(
                f"augmented covariance is not positive definite after diagonal loading ({exc})"
            ) from exc

    spread = np.sqrt(lambda_ + n_aug) * L
    Xsig_aug = np.zeros((n_aug, 2 * n_aug + 1))
    Xsig_aug[:, 0] = x_aug
    for i in range(n_aug):
        Xsig_aug[:, i + 1] = x_aug + spread[:, i]
        Xsig_aug[:, i + 1 + n_aug] = x_aug - spread[:, i]
    return Xsig_aug


# =============================================================================
# PROCESS MODEL
# =============================================================================

def ctrv_transition(point: np.ndarray, dt: float) -> np.ndarray:
    """Propagate one augmented sigma point through the CTRV model.

    Args:
        point: [px, py, v, yaw, yawd, nu_a, nu_yawdd]
        dt: Elapsed time in seconds

    Returns:
        Predicted state [px, py, v, yaw, yawd]
    """
    p_x, p_y, v, yaw, yawd, nu_a, nu_yawdd = point

    # Straight-line branch avoids dividing by a near-zero yaw rate
    if abs(yawd) > YAW_RATE_EPS:
        px_p = p_x + v / yawd * (np.sin(yaw + yawd * dt) - np.sin(yaw))
        py_p = p_y + v / yawd * (np.cos(yaw) - np.cos(yaw + yawd * dt))
    else:
        px_p = p_x + v * dt * np.cos(yaw)
        py_p = p_y + v * dt * np.sin(yaw)

    v_p = v
    yaw_p = yaw + yawd * dt
    yawd_p = yawd

    # Process noise
    px_p += 0.5 * nu_a * dt * dt * np.cos(yaw)
    py_p += 0.5 * nu_a * dt * dt * np.sin(yaw)
    v_p += nu_a * dt
    yaw_p += 0.5 * nu_yawdd * dt * dt
    yawd_p += nu_yawdd * dt

    return np.array([px_p, py_p, v_p, yaw_p, yawd_p])


# =============================================================================
# MEASUREMENT MODELS
# =============================================================================

def radar_measurement(state: np.ndarray) -> np.ndarray:
    """Map a CTRV state to radar space [rho, phi, rho_dot]."""
    p_x, p_y, v, yaw = state[0], state[1], state[2], state[3]

    rho = np.sqrt(p_x * p_x + p_y * p_y)
    phi = np.arctan2(p_y, p_x)
    rho_dot = (p_x * v * np.cos(yaw) + p_y * v * np.sin(yaw)) / max(rho, MIN_RANGE)
    return np.array([rho, phi, rho_dot])


def lidar_noise(config: UKFConfig) -> np.ndarray:
    return np.diag([config.std_laspx ** 2, config.std_laspy ** 2])


def radar_noise(config: UKFConfig) -> np.ndarray:
    return np.diag([config.std_radr ** 2,
                    config.std_radphi ** 2,
                    config.std_radrd ** 2])


# =============================================================================
# MEASUREMENT RECORDS
# =============================================================================

class SensorType(Enum):
    """Sensor modalities feeding the filter."""
    LASER = "laser"     # [px, py] Cartesian
    RADAR = "radar"     # [rho, phi, rho_dot] polar

    @property
    def dim_z(self) -> int:
        return 2 if self is SensorType.LASER else 3


@dataclass
class MeasurementPackage:
    """A single timestamped sensor measurement.

    Attributes:
        sensor_type: Which modality produced the measurement
        raw_measurements: [px, py] for laser, [rho, phi, rho_dot] for radar
        timestamp: Microseconds, non-decreasing along the stream
    """
    sensor_type: SensorType
    raw_measurements: np.ndarray
    timestamp: int

    def __post_init__(self):
        if not isinstance(self.sensor_type, SensorType):
            raise ValueError(f"Unknown sensor type: {self.sensor_type!r}")
        self.raw_measurements = np.asarray(self.raw_measurements, dtype=np.float64).ravel()
        if len(self.raw_measurements) != self.sensor_type.dim_z:
            raise ValueError(
                f"{self.sensor_type.value} measurement needs {self.sensor_type.dim_z} "
                f"values, got {len(self.raw_measurements)}")
        self.timestamp = int(self.timestamp)
