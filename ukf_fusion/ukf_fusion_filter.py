"""UKF-Fusion: CTRV Unscented Kalman Filter for lidar/radar fusion
=================================================================

Tracks a single object with state x = [px, py, v, yaw, yaw_rate] from an
asynchronous stream of laser [px, py] and radar [rho, phi, rho_dot]
measurements.

Processing cycle per measurement:
  1. Uninitialized: seed (x, P) from the measurement and stop
  2. dt = elapsed time since the previous accepted measurement
  3. Predict: augmented sigma points propagated through CTRV
  4. Update: linear Kalman update (laser) or unscented update (radar)
  5. Emit (x, P, NIS)

Numerical faults (non positive definite covariance, ill-conditioned
innovation covariance, non-finite results) roll the filter back to its
pre-cycle belief instead of propagating NaNs. After more than
``max_fault_streak`` consecutive faults the belief is dropped and re-seeded
from the incoming measurement.

Usage::

    ukf = CTRVUnscentedKalmanFilter(UKFConfig(std_a=2.0))
    for meas in measurements:
        out = ukf.process_measurement(meas)
        if out is not None and out.nis is not None:
            print(out.sensor_type, out.nis)
"""

from __future__ import annotations

import logging
import numpy as np
from dataclasses import dataclass
from typing import Optional

from .ukf_fusion_config import (
    UKFConfig, CONDITION_LIMIT, LASER_INIT_SPEED_VAR, MICROSECONDS_PER_SECOND,
)
from .ukf_fusion_models import (
    LIDAR_H, MeasurementPackage, SensorType,
    augmented_sigma_points, ctrv_transition, is_positive_definite, lidar_noise,
    normalize_angle, process_noise, radar_measurement, radar_noise,
    sigma_point_weights,
)
from .ukf_fusion_metrics import NISMonitor

logger = logging.getLogger(__name__)

# Index of yaw in the state and of bearing in the radar measurement
YAW_IDX = 3
PHI_IDX = 1


class FilterComputationError(RuntimeError):
    """A predict or update step hit a numerical fault."""


@dataclass
class FilterOutput:
    """Belief after one processed measurement.

    Attributes:
        timestamp: Measurement time (microseconds)
        sensor_type: Modality of the measurement
        x: State estimate (5,)
        P: State covariance (5, 5)
        nis: NIS of the update, None for the seeding measurement or a fault
        fault: True if the cycle was rolled back
    """
    timestamp: int
    sensor_type: SensorType
    x: np.ndarray
    P: np.ndarray
    nis: Optional[float] = None
    fault: bool = False


class CTRVUnscentedKalmanFilter:
    """Unscented Kalman filter with CTRV motion and lidar/radar updates.

    One instance tracks one object; instances share no state.

    Attributes:
        config: Noise parameters and sensor switches
        x: State estimate [px, py, v, yaw, yaw_rate]
        P: State covariance
        Xsig_pred: Predicted sigma points (n_x, 2*n_aug+1) of the last predict
        weights: Sigma point weights
        is_initialized: True once the first measurement seeded the state
        previous_timestamp: Time of the last accepted measurement (microseconds)
        nis_lidar / nis_radar: NIS of the most recent update of that kind
        fault_streak: Consecutive rolled-back cycles since the last good one
        monitor: NIS consistency counters
    """

    def __init__(self, config: Optional[UKFConfig] = None):
        self.config = config or UKFConfig()

        self.n_x = self.config.n_x
        self.n_aug = self.config.n_aug
        self.lambda_ = self.config.lambda_
        self.n_sigma = self.config.n_sigma
        self.weights = sigma_point_weights(self.n_aug, self.lambda_)

        self.Q = process_noise(self.config)
        self.R_lidar = lidar_noise(self.config)
        self.R_radar = radar_noise(self.config)

        self.monitor = NISMonitor()
        self.reset()

    def reset(self) -> None:
        """Drop the belief and the NIS counters; the next enabled measurement
        re-seeds the filter."""
        self.x = np.zeros(self.n_x)
        self.P = np.eye(self.n_x)
        self.Xsig_pred = np.zeros((self.n_x, self.n_sigma))
        self.is_initialized = False
        self.previous_timestamp: Optional[int] = None
        self.nis_lidar: Optional[float] = None
        self.nis_radar: Optional[float] = None
        self.fault_streak = 0
        self.monitor.reset()

    def sensor_enabled(self, sensor_type: SensorType) -> bool:
        if sensor_type is SensorType.LASER:
            return self.config.use_laser
        return self.config.use_radar

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------
    def process_measurement(self, meas: MeasurementPackage) -> Optional[FilterOutput]:
        """Run one full cycle for a measurement.

        Returns None when the measurement's sensor is disabled, otherwise
        the belief after the cycle.

        Raises:
            ValueError: timestamp earlier than the previous measurement
        """
        if not self.sensor_enabled(meas.sensor_type):
            return None

        if not self.is_initialized:
            self.initialize(meas)
            return self._output(meas)

        if meas.timestamp < self.previous_timestamp:
            raise ValueError(
                f"Measurement timestamp {meas.timestamp} precedes "
                f"previous timestamp {self.previous_timestamp}")

        dt = (meas.timestamp - self.previous_timestamp) / MICROSECONDS_PER_SECOND
        saved = (self.x.copy(), self.P.copy(), self.Xsig_pred.copy())

        try:
            self.predict(dt)
            if meas.sensor_type is SensorType.LASER:
                nis = self.update_lidar(meas.raw_measurements)
            else:
                nis = self.update_radar(meas.raw_measurements)
        except FilterComputationError as exc:
            self.x, self.P, self.Xsig_pred = saved
            self.fault_streak += 1
            if self.fault_streak > self.config.max_fault_streak:
                logger.warning("Re-seeding from %s measurement at t=%d us after %d "
                               "consecutive faults: %s", meas.sensor_type.value,
                               meas.timestamp, self.fault_streak, exc)
                self.initialize(meas)
                return self._output(meas)
            logger.warning("Dropped %s measurement at t=%d us, belief held: %s",
                           meas.sensor_type.value, meas.timestamp, exc)
            return self._output(meas, fault=True)

        self.fault_streak = 0
        self.previous_timestamp = meas.timestamp
        logger.debug("t=%d us dt=%.6f s %s NIS=%.3f",
                     meas.timestamp, dt, meas.sensor_type.value, nis)
        return self._output(meas, nis=nis)

    def _output(self, meas: MeasurementPackage, nis: Optional[float] = None,
                fault: bool = False) -> FilterOutput:
        return FilterOutput(
            timestamp=meas.timestamp,
            sensor_type=meas.sensor_type,
            x=self.x.copy(),
            P=self.P.copy(),
            nis=nis,
            fault=fault,
        )

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------
    def initialize(self, meas: MeasurementPackage) -> None:
        """Seed (x, P) from a measurement.

        Radar speed is seeded as |rho_dot|: range rate only observes the
        radial component, so this is a magnitude proxy for the true speed.
        """
        z = meas.raw_measurements
        if meas.sensor_type is SensorType.RADAR:
            rho, phi, rho_dot = z
            self.x = np.array([rho * np.cos(phi), rho * np.sin(phi), abs(rho_dot), 0.0, 0.0])
            self.P = np.eye(self.n_x)
        else:
            self.x = np.array([z[0], z[1], 0.0, 0.0, 0.0])
            self.P = np.diag([
                self.config.std_laspx ** 2,
                self.config.std_laspy ** 2,
                LASER_INIT_SPEED_VAR,
                1.0,
                1.0,
            ])

        self.previous_timestamp = meas.timestamp
        self.is_initialized = True
        self.fault_streak = 0
        logger.debug("Initialized from %s at t=%d us: x=%s",
                     meas.sensor_type.value, meas.timestamp, self.x)

    # ------------------------------------------------------------------
    # Prediction
    # ------------------------------------------------------------------
    def predict(self, dt: float) -> None:
        """Propagate (x, P) forward by dt seconds with the CTRV model.

        Stores the predicted sigma points for the update that follows.

        Raises:
            FilterComputationError: augmented covariance not positive definite,
                non-finite prediction or a predicted covariance that is not
                positive definite. The belief is left unchanged.
        """
        try:
            Xsig_aug = augmented_sigma_points(self.x, self.P, self.Q, self.lambda_)
        except np.linalg.LinAlgError as exc:
            raise FilterComputationError(
                f"augmented covariance is not positive definite ({exc})") from exc

        Xsig_pred = np.zeros((self.n_x, self.n_sigma))
        for i in range(self.n_sigma):
            Xsig_pred[:, i] = ctrv_transition(Xsig_aug[:, i], dt)

        x_pred = Xsig_pred @ self.weights

        x_diff = Xsig_pred - x_pred[:, np.newaxis]
        x_diff[YAW_IDX] = normalize_angle(x_diff[YAW_IDX])
        P_pred = (self.weights * x_diff) @ x_diff.T
        P_pred = 0.5 * (P_pred + P_pred.T)

        if not (np.all(np.isfinite(x_pred)) and np.all(np.isfinite(P_pred))):
            raise FilterComputationError("prediction produced non-finite values")
        if not is_positive_definite(P_pred):
            raise FilterComputationError("predicted covariance is not positive definite")

        self.x = x_pred
        self.P = P_pred
        self.Xsig_pred = Xsig_pred

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------
    def _invert_innovation_covariance(self, S: np.ndarray) -> np.ndarray:
        if not np.all(np.isfinite(S)):
            raise FilterComputationError("innovation covariance is not finite")
        cond = np.linalg.cond(S)
        if not np.isfinite(cond) or cond > CONDITION_LIMIT:
            raise FilterComputationError(
                f"innovation covariance is ill-conditioned (cond={cond:.3g})")
        try:
            return np.linalg.inv(S)
        except np.linalg.LinAlgError as exc:
            raise FilterComputationError(f"innovation covariance is singular ({exc})") from exc

    def _commit(self, x_new: np.ndarray, P_new: np.ndarray) -> None:
        P_new = 0.5 * (P_new + P_new.T)
        if not (np.all(np.isfinite(x_new)) and np.all(np.isfinite(P_new))):
            raise FilterComputationError("update produced non-finite values")
        if not is_positive_definite(P_new):
            raise FilterComputationError("updated covariance is not positive definite")
        self.x = x_new
        self.P = P_new

    def update_lidar(self, z: np.ndarray) -> float:
        """Linear Kalman update with a laser [px, py] measurement.

        Returns:
            NIS of the measurement against the predicted belief.
        """
        z = np.asarray(z, dtype=np.float64)
        H = LIDAR_H

        z_pred = H @ self.x
        y = z - z_pred
        PHt = self.P @ H.T
        S = H @ PHt + self.R_lidar
        S_inv = self._invert_innovation_covariance(S)
        K = PHt @ S_inv

        x_new = self.x + K @ y
        P_new = (np.eye(self.n_x) - K @ H) @ self.P
        self._commit(x_new, P_new)

        nis = float(y @ S_inv @ y)
        self.nis_lidar = nis
        self.monitor.record(SensorType.LASER, nis)
        return nis

    def update_radar(self, z: np.ndarray) -> float:
        """Unscented update with a radar [rho, phi, rho_dot] measurement.

        Uses the sigma points of the preceding predict(); bearing and yaw
        differences are normalized into (-pi, pi] everywhere.

        Returns:
            NIS of the measurement against the predicted belief.
        """
        z = np.asarray(z, dtype=np.float64)
        w = self.weights

        Zsig = np.column_stack([radar_measurement(self.Xsig_pred[:, i])
                                for i in range(self.n_sigma)])

        z_pred = Zsig @ w
        # Circular mean for the bearing so points straddling +-pi average correctly
        z_pred[PHI_IDX] = np.arctan2(np.sin(Zsig[PHI_IDX]) @ w, np.cos(Zsig[PHI_IDX]) @ w)

        z_diff = Zsig - z_pred[:, np.newaxis]
        z_diff[PHI_IDX] = normalize_angle(z_diff[PHI_IDX])
        S = (w * z_diff) @ z_diff.T + self.R_radar

        x_diff = self.Xsig_pred - self.x[:, np.newaxis]
        x_diff[YAW_IDX] = normalize_angle(x_diff[YAW_IDX])
        Tc = (w * x_diff) @ z_diff.T

        S_inv = self._invert_innovation_covariance(S)
        K = Tc @ S_inv

        y = z - z_pred
        y[PHI_IDX] = normalize_angle(y[PHI_IDX])

        x_new = self.x + K @ y
        P_new = self.P - K @ S @ K.T
        self._commit(x_new, P_new)

        nis = float(y @ S_inv @ y)
        self.nis_radar = nis
        self.monitor.record(SensorType.RADAR, nis)
        return nis
