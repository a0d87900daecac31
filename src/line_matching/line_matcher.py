"""Line Matching Orchestrator."""

import logging

import numpy as np

from line_matching.config.config import LineMatchingConfig
from line_matching.datatypes import FieldLine, Pose2D
from line_matching.geometry import field_boundary
from line_matching.modules.hypothesis_generation import (
    generate_pose_hypotheses,
    mark_single_line_observation,
    rank_pose_hypotheses,
)
from line_matching.state.line_matching_result import LineMatchingResult

logger = logging.getLogger(__name__)


class LineMatcher:
    """Runs the line matching engine once per frame and owns the result."""

    def __init__(
        self,
        field_lines: list[FieldLine],
        config: LineMatchingConfig,
        boundary: tuple[float, float, float, float] | None = None,
    ) -> None:
        """
        Initialize the line matcher.

        Args:
            field_lines: Field line map in absolute coordinates.
            config: Thresholds and covariances.
            boundary: (x_min, x_max, y_min, y_max) the robot can be in.
                Defaults to the map's bounding box grown by the field border.

        """
        self.cfg = config
        self.result = LineMatchingResult(field_lines=list(field_lines))
        if boundary is None:
            boundary = field_boundary(self.result.field_lines, config.field_border)
        self.boundary = boundary
        self.frame_id = 0

    def process(
        self,
        observations: list[FieldLine],
        candidates: list[Pose2D | tuple[Pose2D, np.ndarray]],
    ) -> LineMatchingResult:
        """
        Process the line observations of a single frame.

        Args:
            observations: Observed lines in relative coordinates.
            candidates: Candidate poses, optionally paired with their (3, 3)
                covariance. Poses without one use the configured covariance.

        Returns:
            The filled result. It stays valid until the next call.

        """
        result = self.result
        result.reset()
        result.observations = observations
        result.calculate_observations_spherical_coords()

        if mark_single_line_observation(result):
            logger.debug(f"Frame {self.frame_id}: only one field line observed")
        else:
            self._match_candidates(candidates)

        logger.debug(
            f"Frame {self.frame_id}: {len(result.observations)} observations, "
            f"{len(result.pose_hypotheses)} hypotheses, "
            f"{len(result.pose_hypothesis_intervals)} intervals"
        )
        self.frame_id += 1
        return result

    def _match_candidates(self, candidates: list[Pose2D | tuple[Pose2D, np.ndarray]]) -> None:
        result = self.result
        precision = self.cfg.measurement_precision
        for candidate in candidates:
            pose, covariance = self._unpack(candidate)
            success, correspondences = result.get_correspondences_for_localization_hypothesis(
                pose,
                covariance,
                self.cfg.likelihood_threshold,
                precision,
                display_warning=self.cfg.display_warnings,
                requested_by_localization=False,
            )
            if not success:
                continue
            generate_pose_hypotheses(result, pose, correspondences, self.cfg, self.boundary)

        rank_pose_hypotheses(result, precision)

    def _unpack(self, candidate: Pose2D | tuple[Pose2D, np.ndarray]) -> tuple[Pose2D, np.ndarray]:
        if isinstance(candidate, Pose2D):
            return candidate, self.cfg.pose_covariance
        pose, covariance = candidate
        return pose, np.asarray(covariance, dtype=np.float64)
