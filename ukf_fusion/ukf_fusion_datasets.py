"""UKF-Fusion synthetic scenarios
================================

Reproducible ground truth and interleaved lidar/radar measurement streams
for validating the filter.  Ground truth is propagated with the same
discrete CTRV model (and the same acceleration noise statistics) the filter
assumes, so NIS statistics of a correctly tuned filter should be
chi-square distributed.

Usage::

    gen = SyntheticScenarioGenerator(seed=7)
    measurements, truth = gen.alternating(n_steps=200)
    for meas in measurements:
        ukf.process_measurement(meas)
"""

from __future__ import annotations

import numpy as np
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from .ukf_fusion_config import UKFConfig, MICROSECONDS_PER_SECOND
from .ukf_fusion_models import (
    MeasurementPackage, SensorType, ctrv_transition, normalize_angle, radar_measurement,
)


DEFAULT_X0 = np.array([5.0, 3.0, 1.5, 0.4, 0.1])


@dataclass
class GroundTruthSample:
    """True CTRV state at one timestamp (microseconds)."""
    timestamp: int
    state: np.ndarray


class SyntheticScenarioGenerator:
    """Generate CTRV trajectories and noisy sensor measurements.

    Args:
        config: Noise parameters for both the process and the sensors
        seed: Seed of the internal RandomState
    """

    def __init__(self, config: Optional[UKFConfig] = None, seed: int = 42):
        self.config = config or UKFConfig()
        self.rng = np.random.RandomState(seed)

    def ctrv_trajectory(self, x0: Sequence[float], n_steps: int, dt_us: int,
                        yaw_acc_fn: Optional[Callable[[float], float]] = None,
                        start_time: int = 0,
                        process_noise: bool = True) -> List[GroundTruthSample]:
        """Ground truth of n_steps samples spaced dt_us microseconds apart.

        With process_noise, a fresh (nu_a, nu_yawdd) pair is drawn for every
        step and held constant across it.

        Args:
            yaw_acc_fn: Deterministic yaw acceleration (rad/s^2) as a function
                of the step start time in seconds since start_time, added to
                nu_yawdd. Scripts manoeuvres such as a lane change.
        """
        dt = dt_us / MICROSECONDS_PER_SECOND
        state = np.asarray(x0, dtype=np.float64).copy()
        samples = [GroundTruthSample(timestamp=start_time, state=state.copy())]

        for k in range(1, n_steps):
            if process_noise:
                nu_a = self.rng.randn() * self.config.std_a
                nu_yawdd = self.rng.randn() * self.config.std_yawdd
            else:
                nu_a = nu_yawdd = 0.0
            if yaw_acc_fn is not None:
                nu_yawdd += yaw_acc_fn((k - 1) * dt)
            state = ctrv_transition(np.concatenate([state, [nu_a, nu_yawdd]]), dt)
            samples.append(GroundTruthSample(timestamp=start_time + k * dt_us,
                                             state=state.copy()))
        return samples

    def measure(self, sample: GroundTruthSample,
                sensor_type: SensorType) -> MeasurementPackage:
        """Noisy measurement of a ground-truth sample."""
        c = self.config
        if sensor_type is SensorType.LASER:
            z = sample.state[:2] + self.rng.randn(2) * np.array([c.std_laspx, c.std_laspy])
        else:
            z = radar_measurement(sample.state)
            z = z + self.rng.randn(3) * np.array([c.std_radr, c.std_radphi, c.std_radrd])
            z[1] = normalize_angle(z[1])
        return MeasurementPackage(sensor_type=sensor_type,
                                  raw_measurements=z,
                                  timestamp=sample.timestamp)

    def alternating(self, n_steps: int, dt_us: int = 50000,
                    x0: Optional[Sequence[float]] = None,
                    start_time: int = 0,
                    ) -> Tuple[List[MeasurementPackage], List[GroundTruthSample]]:
        """Laser and radar alternating every step, laser first."""
        x0 = DEFAULT_X0 if x0 is None else x0
        truth = self.ctrv_trajectory(x0, n_steps, dt_us, start_time=start_time)
        sensors = (SensorType.LASER, SensorType.RADAR)
        measurements = [self.measure(sample, sensors[k % 2])
                        for k, sample in enumerate(truth)]
        return measurements, truth
