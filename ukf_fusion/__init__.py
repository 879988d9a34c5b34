"""UKF-Fusion v1.0.0: CTRV Unscented Kalman Filter for lidar/radar fusion.

Single-object state estimation [px, py, v, yaw, yaw_rate] from asynchronous
laser (Cartesian) and radar (range, bearing, range rate) measurements.

Quick Start::

    from ukf_fusion import CTRVUnscentedKalmanFilter, MeasurementPackage, SensorType
    ukf = CTRVUnscentedKalmanFilter()
    out = ukf.process_measurement(
        MeasurementPackage(SensorType.LASER, [0.3, 0.6], timestamp=0))
"""

__version__ = "1.0.0"
__license__ = "AGPL-3.0-or-later"

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------
from .ukf_fusion_config import (
    UKFConfig,
    YAW_RATE_EPS,
    LASER_INIT_SPEED_VAR,
    MICROSECONDS_PER_SECOND,
    CONDITION_LIMIT,
    JITTER_LADDER,
)

# ---------------------------------------------------------------------------
# Models — angles, sigma points, CTRV, measurement functions
# ---------------------------------------------------------------------------
from .ukf_fusion_models import (
    SensorType,
    MeasurementPackage,
    LIDAR_H,
    normalize_angle,
    sigma_point_weights,
    augmented_sigma_points,
    is_positive_definite,
    ctrv_transition,
    radar_measurement,
    process_noise,
    lidar_noise,
    radar_noise,
)

# ---------------------------------------------------------------------------
# Filter
# ---------------------------------------------------------------------------
from .ukf_fusion_filter import (
    CTRVUnscentedKalmanFilter,
    FilterOutput,
    FilterComputationError,
)

# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------
from .ukf_fusion_metrics import (
    compute_nis,
    compute_rmse,
    chi2_threshold,
    state_to_cartesian,
    NIS_95,
    NISMonitor,
    SensorNISStats,
)

# ---------------------------------------------------------------------------
# Synthetic data
# ---------------------------------------------------------------------------
from .ukf_fusion_datasets import (
    GroundTruthSample,
    SyntheticScenarioGenerator,
)

__all__ = [
    "__version__",
    # Config
    "UKFConfig", "YAW_RATE_EPS", "LASER_INIT_SPEED_VAR",
    "MICROSECONDS_PER_SECOND", "CONDITION_LIMIT", "JITTER_LADDER",
    # Models
    "SensorType", "MeasurementPackage", "LIDAR_H", "normalize_angle",
    "sigma_point_weights", "augmented_sigma_points", "is_positive_definite",
    "ctrv_transition",
    "radar_measurement", "process_noise", "lidar_noise", "radar_noise",
    # Filter
    "CTRVUnscentedKalmanFilter", "FilterOutput", "FilterComputationError",
    # Metrics
    "compute_nis", "compute_rmse", "chi2_threshold", "state_to_cartesian",
    "NIS_95", "NISMonitor", "SensorNISStats",
    # Datasets
    "GroundTruthSample", "SyntheticScenarioGenerator",
]
