import logging

import numpy as np
from scipy.optimize import least_squares

from line_matching.config.config import LineMatchingConfig
from line_matching.datatypes import (
    LineCorrespondence,
    Pose2D,
    PoseHypothesis,
    PoseHypothesisInterval,
)
from line_matching.geometry import (
    are_parallel,
    field_boundary,
    project_line,
    project_point_to_field_line,
    to_absolute,
    wrap_angle,
)
from line_matching.modules.correspondence_search import (
    best_correspondence_likelihood,
    to_line_correspondences,
)
from line_matching.state.line_matching_result import LineMatchingResult

logger = logging.getLogger(__name__)


def contains_crossing(correspondences: list[LineCorrespondence], angle_tolerance: float) -> bool:
    """True if at least two matched map lines are not parallel."""
    lines = [c.field_line for c in correspondences]
    return any(
        not are_parallel(first, second, angle_tolerance)
        for idx, first in enumerate(lines)
        for second in lines[idx + 1 :]
    )


def point_to_line_residuals(
    pose: Pose2D, correspondences: list[LineCorrespondence]
) -> np.ndarray:
    """
    Signed distances of the observed endpoints to their matched map lines.

    Args:
        pose: Pose used to move the observations to absolute coordinates.
        correspondences: Accepted matches.

    Returns:
        (2 * N,) residuals in mm.

    """
    residuals = []
    for correspondence in correspondences:
        line = correspondence.field_line
        u = line.direction
        normal = np.array([-u[1], u[0]])
        for endpoint in (correspondence.observation.start, correspondence.observation.end):
            point = to_absolute(pose, endpoint)
            residuals.append(normal @ (point - project_point_to_field_line(point, line)))
    return np.array(residuals)


def correspondences_hold(
    pose: Pose2D,
    correspondences: list[LineCorrespondence],
    config: LineMatchingConfig,
) -> bool:
    """
    Check that every correspondence still holds at a fitted pose.

    Every observed endpoint has to lie within `max_fit_residual` of its matched
    line, and every pair has to pass the likelihood threshold. The pose is taken
    as exact, so only measurement noise is allowed for.

    Args:
        pose: Fitted pose.
        correspondences: Matches the pose was fitted to.
        config: Residual bound, likelihood threshold and measurement noise.

    Returns:
        True if all pairs hold.

    """
    residual = float(np.max(np.abs(point_to_line_residuals(pose, correspondences))))
    if residual > config.max_fit_residual:
        logger.debug(f"Fit at {pose} leaves an endpoint {residual:.1f} mm off its line")
        return False

    no_pose_uncertainty = np.zeros((3, 3))
    measurement_covariance = config.measurement_covariance
    for correspondence in correspondences:
        likelihood, _ = best_correspondence_likelihood(
            pose,
            no_pose_uncertainty,
            correspondence.observation,
            project_line(correspondence.observation),
            correspondence.field_line,
            measurement_covariance,
        )
        if likelihood <= config.likelihood_threshold:
            logger.debug(
                f"Observation {correspondence.observation_index} no longer matches field line "
                f"{correspondence.field_line_index} at {pose} (likelihood {likelihood:.2e})"
            )
            return False
    return True


def fit_pose(
    candidate_pose: Pose2D,
    correspondences: list[LineCorrespondence],
    config: LineMatchingConfig,
) -> Pose2D | None:
    """
    Refine a pose from crossing correspondences by robust least squares.

    Args:
        candidate_pose: Initial guess.
        correspondences: Accepted matches containing at least one crossing.
        config: Fit settings.

    Returns:
        The fitted pose, None if the optimizer failed.

    """

    def residuals(x: np.ndarray) -> np.ndarray:
        return point_to_line_residuals(Pose2D.from_array(x), correspondences)

    res = least_squares(
        residuals,
        candidate_pose.to_array(),
        loss="soft_l1",
        f_scale=config.fit_loss_scale,
        x_scale="jac",
        max_nfev=config.fit_max_evaluations,
        xtol=1e-10,
        ftol=1e-10,
        gtol=1e-10,
    )

    if res.status < 0 or not np.all(np.isfinite(res.x)):
        logger.debug(f"Pose fit failed: {res.message}")
        return None

    return Pose2D(res.x[:2], wrap_angle(res.x[2]))


def fit_pose_across_lines(
    candidate_pose: Pose2D,
    correspondences: list[LineCorrespondence],
    config: LineMatchingConfig,
) -> Pose2D | None:
    """
    Refine heading and offset across parallel lines, keeping the position along them.

    Returns:
        The fitted pose, None if the optimizer failed.

    """
    u = correspondences[0].field_line.direction
    normal = np.array([-u[1], u[0]])

    def pose_from(x: np.ndarray) -> Pose2D:
        return Pose2D(candidate_pose.translation + x[0] * normal, x[1])

    def residuals(x: np.ndarray) -> np.ndarray:
        return point_to_line_residuals(pose_from(x), correspondences)

    res = least_squares(
        residuals,
        np.array([0.0, candidate_pose.rotation]),
        loss="soft_l1",
        f_scale=config.fit_loss_scale,
        x_scale="jac",
        max_nfev=config.fit_max_evaluations,
        xtol=1e-10,
        ftol=1e-10,
        gtol=1e-10,
    )

    if res.status < 0 or not np.all(np.isfinite(res.x)):
        logger.debug(f"Pose fit across parallel lines failed: {res.message}")
        return None

    pose = pose_from(res.x)
    return Pose2D(pose.translation, wrap_angle(pose.rotation))


def interval_bounds(
    pose: Pose2D,
    correspondences: list[LineCorrespondence],
    boundary: tuple[float, float, float, float],
    segment_tolerance: float,
) -> tuple[float, float] | None:
    """
    Range of shifts along the matched line direction that keep the pose plausible.

    Every observed segment has to stay within its map segment (plus the
    tolerance) and the robot has to stay inside the field boundary.

    Args:
        pose: Fitted pose the shifts are relative to.
        correspondences: Parallel-only matches.
        boundary: (x_min, x_max, y_min, y_max) the robot position must stay in.
        segment_tolerance: Allowed overhang of an observation over its map line (mm).

    Returns:
        (lowest, highest) shift in mm along the first matched line's direction,
        None if no shift is plausible.

    """
    u = correspondences[0].field_line.direction
    lowest, highest = -np.inf, np.inf

    for correspondence in correspondences:
        line = correspondence.field_line
        map_min, map_max = sorted((float(line.start @ u), float(line.end @ u)))
        observed = (
            float(to_absolute(pose, correspondence.observation.start) @ u),
            float(to_absolute(pose, correspondence.observation.end) @ u),
        )
        lowest = max(lowest, map_min - segment_tolerance - min(observed))
        highest = min(highest, map_max + segment_tolerance - max(observed))

    x_min, x_max, y_min, y_max = boundary
    for k, (low, high) in enumerate(((x_min, x_max), (y_min, y_max))):
        position = pose.translation[k]
        if abs(u[k]) < 1e-9:
            if not low <= position <= high:
                return None
            continue
        first, second = sorted(((low - position) / u[k], (high - position) / u[k]))
        lowest = max(lowest, first)
        highest = min(highest, second)

    if lowest > highest:
        return None
    return float(lowest), float(highest)


def create_pose_hypothesis_interval(
    candidate_pose: Pose2D,
    correspondences: list[LineCorrespondence],
    boundary: tuple[float, float, float, float],
    config: LineMatchingConfig,
) -> PoseHypothesisInterval | None:
    """
    Build the family of poses explained by parallel-only correspondences.

    Returns:
        The interval, None if the fit failed, no position is plausible or the
        correspondences do not hold inside the interval.

    """
    pose = fit_pose_across_lines(candidate_pose, correspondences, config)
    if pose is None:
        return None

    bounds = interval_bounds(pose, correspondences, boundary, config.interval_segment_tolerance)
    if bounds is None:
        logger.debug(f"No plausible position along the matched lines for {pose}")
        return None

    u = correspondences[0].field_line.direction
    lowest, highest = bounds
    # checked at the interval pose closest to the fit
    shift = min(max(0.0, lowest), highest)
    check_pose = Pose2D(pose.translation + shift * u, pose.rotation)
    if not correspondences_hold(check_pose, correspondences, config):
        return None

    return PoseHypothesisInterval(
        start=Pose2D(pose.translation + lowest * u, pose.rotation),
        end=Pose2D(pose.translation + highest * u, pose.rotation),
        line_correspondences=to_line_correspondences(correspondences),
    )


def mark_single_line_observation(result: LineMatchingResult) -> bool:
    """Flag frames with exactly one observed line; they only carry weak evidence."""
    result.only_observed_one_field_line = len(result.usable_observations) == 1
    return result.only_observed_one_field_line


def _same_pose(first: Pose2D, second: Pose2D, config: LineMatchingConfig) -> bool:
    distance = np.linalg.norm(first.translation - second.translation)
    angle = abs(wrap_angle(first.rotation - second.rotation))
    return distance <= config.duplicate_distance and angle <= config.duplicate_angle


def _is_known_hypothesis(
    result: LineMatchingResult, hypothesis: PoseHypothesis, config: LineMatchingConfig
) -> bool:
    return any(
        np.array_equal(known.line_correspondences, hypothesis.line_correspondences)
        and _same_pose(known.pose, hypothesis.pose, config)
        for known in result.pose_hypotheses
    )


def _is_known_interval(
    result: LineMatchingResult, interval: PoseHypothesisInterval, config: LineMatchingConfig
) -> bool:
    return any(
        np.array_equal(known.line_correspondences, interval.line_correspondences)
        and _same_pose(known.start, interval.start, config)
        and _same_pose(known.end, interval.end, config)
        for known in result.pose_hypothesis_intervals
    )


def generate_pose_hypotheses(
    result: LineMatchingResult,
    candidate_pose: Pose2D,
    correspondences: list[LineCorrespondence],
    config: LineMatchingConfig,
    boundary: tuple[float, float, float, float] | None = None,
) -> None:
    """
    Turn the correspondences found for one candidate pose into pose evidence.

    A crossing yields a unique PoseHypothesis, parallel-only matches yield a
    PoseHypothesisInterval. Both are dropped if a correspondence no longer holds
    at the fitted pose. Frames with a single observed line only set
    `only_observed_one_field_line`. Results are appended to `result`.

    Args:
        result: Aggregate of the current frame.
        candidate_pose: Pose the correspondences were searched for.
        correspondences: Accepted matches.
        config: Generator settings.
        boundary: Field boundary; derived from the map if not given.

    """
    if mark_single_line_observation(result) or not correspondences:
        return

    if contains_crossing(correspondences, config.parallel_angle_tolerance):
        pose = fit_pose(candidate_pose, correspondences, config)
        if pose is None or not correspondences_hold(pose, correspondences, config):
            return
        hypothesis = PoseHypothesis(pose, to_line_correspondences(correspondences))
        if not _is_known_hypothesis(result, hypothesis, config):
            result.pose_hypotheses.append(hypothesis)
        return

    if boundary is None:
        boundary = field_boundary(result.field_lines, config.field_border)
    interval = create_pose_hypothesis_interval(candidate_pose, correspondences, boundary, config)
    if interval is not None and not _is_known_interval(result, interval, config):
        result.pose_hypothesis_intervals.append(interval)


def rank_pose_hypotheses(result: LineMatchingResult, measurement_precision: np.ndarray) -> None:
    """Order the unique hypotheses by measurement likelihood, best first."""
    result.pose_hypotheses.sort(
        key=lambda hypothesis: -result.calculate_measurement_likelihood_spherical_coordinates(
            hypothesis, measurement_precision
        )
    )
