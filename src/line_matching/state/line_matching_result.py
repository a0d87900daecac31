import logging
from dataclasses import dataclass, field

import numpy as np

from line_matching import visualization
from line_matching.datatypes import (
    MAX_NUMBER_OF_LINE_OBSERVATIONS,
    NO_CORRESPONDENCE,
    FieldLine,
    LineCorrespondence,
    Pose2D,
    PoseHypothesis,
    PoseHypothesisInterval,
    SphericalFieldLine,
)
from line_matching.geometry import project_line
from line_matching.geometry import project_point_to_field_line as _project_point_to_field_line
from line_matching.modules.correspondence_search import (
    best_correspondence_likelihood,
    find_correspondences,
)

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class LineMatchingResult:
    """
    Per-frame line matching result handed to the pose tracker.

    Attributes:
        field_lines: Field line map in absolute coordinates. Kept across frames.
        pose_hypotheses: Unique poses (at least one crossing was matched).
        pose_hypothesis_intervals: Pose intervals (only parallel lines matched).
        only_observed_one_field_line: The frame contained exactly one observed line.

    """

    field_lines: list[FieldLine] = field(default_factory=list)
    pose_hypotheses: list[PoseHypothesis] = field(default_factory=list)
    pose_hypothesis_intervals: list[PoseHypothesisInterval] = field(default_factory=list)
    only_observed_one_field_line: bool = False

    # observations in relative coordinates and their cached spherical projection
    _observations: tuple[FieldLine, ...] = field(default=(), init=False, repr=False)
    _observations_spherical_coords: tuple[SphericalFieldLine, ...] | None = field(
        default=None, init=False, repr=False
    )

    def reset(self) -> None:
        """Clear everything but the field line map before a new frame."""
        self._observations = ()
        self._observations_spherical_coords = None
        self.pose_hypotheses.clear()
        self.pose_hypothesis_intervals.clear()
        self.only_observed_one_field_line = False

    @property
    def observations(self) -> tuple[FieldLine, ...]:
        return self._observations

    @observations.setter
    def observations(self, observations: list[FieldLine]) -> None:
        self._observations = tuple(observations)
        self._observations_spherical_coords = None

    def add_observation(self, observation: FieldLine) -> None:
        self.observations = (*self._observations, observation)

    @property
    def observations_spherical_coords(self) -> tuple[SphericalFieldLine, ...]:
        """Spherical projections of the usable observations (computed on demand)."""
        if self._observations_spherical_coords is None:
            self.calculate_observations_spherical_coords()
        return self._observations_spherical_coords

    @property
    def usable_observations(self) -> tuple[FieldLine, ...]:
        """Observations that fit into the correspondence array."""
        return self._observations[:MAX_NUMBER_OF_LINE_OBSERVATIONS]

    def calculate_observations_spherical_coords(self) -> None:
        """Project the observations once, after the vision filled them in."""
        if len(self._observations) > MAX_NUMBER_OF_LINE_OBSERVATIONS:
            logger.debug(
                f"Ignoring {len(self._observations) - MAX_NUMBER_OF_LINE_OBSERVATIONS} "
                f"observations beyond capacity {MAX_NUMBER_OF_LINE_OBSERVATIONS}"
            )
        self._observations_spherical_coords = tuple(
            project_line(observation) for observation in self.usable_observations
        )

    def get_correspondences_for_localization_hypothesis(
        self,
        localization_hypothesis: Pose2D,
        pose_covariance: np.ndarray,
        likelihood_threshold: float,
        spherical_point_measurement_covariance_inv: np.ndarray,
        display_warning: bool = False,
        requested_by_localization: bool = True,
    ) -> tuple[bool, list[LineCorrespondence]]:
        """
        Match the frame's observations against the map for one candidate pose.

        Args:
            localization_hypothesis: Candidate pose in absolute coordinates.
            pose_covariance: (3, 3) covariance of the candidate pose.
            likelihood_threshold: Minimum likelihood for a correspondence.
            spherical_point_measurement_covariance_inv: (2, 2) measurement precision.
            display_warning: Log a warning for observations with tied candidates.
            requested_by_localization: Who asked; only used in diagnostics.

        Returns:
            Tuple containing:
            - success: True if at least one correspondence was accepted.
            - correspondences: Accepted (observation, map line) pairs in matched order.

        """
        correspondences = find_correspondences(
            localization_hypothesis,
            pose_covariance,
            self.usable_observations,
            self.observations_spherical_coords,
            self.field_lines,
            likelihood_threshold,
            spherical_point_measurement_covariance_inv,
            display_warning=display_warning,
            requested_by_localization=requested_by_localization,
        )
        return len(correspondences) > 0, correspondences

    def calculate_measurement_likelihood_spherical_coordinates(
        self, pose_hypothesis: PoseHypothesis, measurement_covariance_inv: np.ndarray
    ) -> float:
        """
        Likelihood of the observations given a hypothesis and its correspondences.

        Only measurement noise is considered; slots without a correspondence
        do not contribute.

        """
        measurement_covariance = np.linalg.inv(measurement_covariance_inv)
        no_pose_uncertainty = np.zeros((3, 3))
        spherical = self.observations_spherical_coords

        likelihood = 1.0
        for i, line_index in enumerate(pose_hypothesis.line_correspondences):
            if line_index == NO_CORRESPONDENCE or i >= len(spherical):
                continue
            line_likelihood, _ = best_correspondence_likelihood(
                pose_hypothesis.pose,
                no_pose_uncertainty,
                self.usable_observations[i],
                spherical[i],
                self.field_lines[line_index],
                measurement_covariance,
            )
            likelihood *= line_likelihood
        return likelihood

    def project_point_to_field_line(
        self, point: np.ndarray, line: FieldLine, pose: Pose2D | None = None
    ) -> np.ndarray:
        """Project a relative (with pose) or absolute point onto a field line."""
        return _project_point_to_field_line(point, line, pose)

    def contains_matches(self) -> bool:
        return len(self.pose_hypotheses) > 0 or len(self.pose_hypothesis_intervals) > 0

    def contains_unique_matches(self) -> bool:
        return len(self.pose_hypotheses) > 0

    def contains_non_unique_matches(self) -> bool:
        return len(self.pose_hypothesis_intervals) > 0

    def draw(self) -> None:
        """Log the map, the hypotheses and the intervals to the viewer."""
        visualization.log_line_matching_result(
            self.field_lines,
            self.usable_observations,
            self.pose_hypotheses,
            self.pose_hypothesis_intervals,
        )

    def draw_correspondences(self, pose: Pose2D) -> None:
        """Log the observations seen from `pose` with their matched map lines."""
        hypothesis = self._hypothesis_at(pose)
        correspondences = []
        if hypothesis is not None:
            correspondences = [
                (i, int(j))
                for i, j in enumerate(hypothesis.line_correspondences)
                if j != NO_CORRESPONDENCE and i < len(self.usable_observations)
            ]
        visualization.log_correspondences(
            pose, self.usable_observations, self.field_lines, correspondences
        )

    def draw_requested_correspondences(
        self,
        pose: Pose2D,
        cov: np.ndarray,
        likelihood_threshold: float,
        measurement_cov: np.ndarray,
    ) -> None:
        """Run the correspondence search for `pose` and log its outcome."""
        _, correspondences = self.get_correspondences_for_localization_hypothesis(
            pose,
            cov,
            likelihood_threshold,
            np.linalg.inv(measurement_cov),
            requested_by_localization=False,
        )
        visualization.log_correspondences(
            pose,
            self.usable_observations,
            self.field_lines,
            [(c.observation_index, c.field_line_index) for c in correspondences],
        )

    def _hypothesis_at(self, pose: Pose2D) -> PoseHypothesis | None:
        for hypothesis in self.pose_hypotheses:
            if np.allclose(hypothesis.pose.to_array(), pose.to_array()):
                return hypothesis
        return None
