from dataclasses import dataclass

import numpy as np


@dataclass
class LineMatchingConfig:
    """Configuration data class for the line matching engine."""

    # correspondence acceptance
    likelihood_threshold: float = 0.01
    display_warnings: bool = False

    # spherical measurement noise (rad)
    vertical_angle_std: float = 0.03
    horizontal_angle_std: float = 0.05

    # uncertainty of candidate poses without their own covariance
    pose_translation_std: float = 150.0  # mm
    pose_rotation_std: float = 0.1  # rad

    # hypothesis generation
    parallel_angle_tolerance: float = np.deg2rad(5.0)
    interval_segment_tolerance: float = 200.0  # mm an observation may overhang its map line
    field_border: float = 700.0  # mm of carpet around the outer lines
    fit_loss_scale: float = 100.0  # mm, soft_l1 scale of the pose fit
    fit_max_evaluations: int = 200
    max_fit_residual: float = 150.0  # mm an observed endpoint may stay off its matched line after a fit

    # duplicate suppression across candidate poses
    duplicate_distance: float = 100.0  # mm
    duplicate_angle: float = 0.05  # rad

    @property
    def measurement_covariance(self) -> np.ndarray:
        return np.diag([self.vertical_angle_std**2, self.horizontal_angle_std**2])

    @property
    def measurement_precision(self) -> np.ndarray:
        """Inverse of the spherical measurement covariance."""
        return np.linalg.inv(self.measurement_covariance)

    @property
    def pose_covariance(self) -> np.ndarray:
        return np.diag(
            [
                self.pose_translation_std**2,
                self.pose_translation_std**2,
                self.pose_rotation_std**2,
            ]
        )


def get_config(preset: str = "default") -> LineMatchingConfig:
    """
    Return the configuration for a named preset.

    Args:
        preset: Name of the preset (default, noisy, strict).

    Returns:
        The configuration object with preset-specific overrides.

    Raises:
        ValueError: If the preset is unknown.

    """
    cfg = LineMatchingConfig()

    if preset == "default":
        pass

    elif preset == "noisy":
        # blurry images, camera height drifting while walking
        cfg.vertical_angle_std = 0.06
        cfg.horizontal_angle_std = 0.08
        cfg.pose_translation_std = 300.0
        cfg.pose_rotation_std = 0.2
        cfg.likelihood_threshold = 0.005
        cfg.interval_segment_tolerance = 400.0
        cfg.fit_loss_scale = 200.0
        cfg.max_fit_residual = 300.0

    elif preset == "strict":
        cfg.vertical_angle_std = 0.02
        cfg.horizontal_angle_std = 0.03
        cfg.pose_translation_std = 100.0
        cfg.pose_rotation_std = 0.05
        cfg.likelihood_threshold = 0.05
        cfg.interval_segment_tolerance = 100.0
        cfg.max_fit_residual = 100.0
        cfg.display_warnings = True

    else:
        msg = f"Unknown config preset: {preset}"
        raise ValueError(msg)

    return cfg
