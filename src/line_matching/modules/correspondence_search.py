import logging

import numpy as np

from line_matching.datatypes import (
    MAX_NUMBER_OF_LINE_OBSERVATIONS,
    FieldLine,
    LineCorrespondence,
    Pose2D,
    SphericalFieldLine,
    empty_line_correspondences,
)
from line_matching.geometry import (
    spherical_coordinates,
    spherical_jacobian,
    to_absolute,
    to_relative,
    wrap_angle,
)
from line_matching.utils.enums import EndpointOrder, oriented_endpoints

logger = logging.getLogger(__name__)


def expected_endpoints(
    pose: Pose2D,
    observation: FieldLine,
    field_line: FieldLine,
    order: EndpointOrder,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Find the part of a map line that an observed line should have produced.

    The observed endpoints are moved to absolute coordinates and projected onto
    the map line, oriented according to `order`. The parameters along the line
    are then restricted to 0 <= start <= end <= length, so a partially visible
    line matches the piece it covers, while an observation running against the
    orientation collapses to a single point.

    Args:
        pose: Candidate pose.
        observation: Observed line (relative coordinates).
        field_line: Map line (absolute coordinates).
        order: Endpoint pairing.

    Returns:
        Expected absolute positions of the observed start and end point.

    """
    a, b = oriented_endpoints(field_line.start, field_line.end, order)
    length = float(np.linalg.norm(b - a))
    if length == 0.0:
        return a.copy(), a.copy()
    u = (b - a) / length

    s = float((to_absolute(pose, observation.start) - a) @ u)
    e = float((to_absolute(pose, observation.end) - a) @ u)
    if s > e:
        s = e = 0.5 * (s + e)
    s = min(max(s, 0.0), length)
    e = min(max(e, 0.0), length)

    return a + s * u, a + e * u


def correspondence_likelihood(
    pose: Pose2D,
    pose_covariance: np.ndarray,
    observation: FieldLine,
    observation_spherical: SphericalFieldLine,
    field_line: FieldLine,
    measurement_covariance: np.ndarray,
    order: EndpointOrder,
) -> float:
    """
    Gaussian likelihood that a map line produced an observation.

    The residual stacks the spherical differences of both endpoints (4,).
    The pose covariance is propagated into spherical space with the Jacobian
    of the expected endpoints and added to the measurement covariance of each
    endpoint. The result is exp(-0.5 * r^T S^-1 r), i.e. in (0, 1].

    Args:
        pose: Candidate pose.
        pose_covariance: (3, 3) covariance of [x, y, rotation].
        observation: Observed line (relative coordinates).
        observation_spherical: Cached spherical projection of the observation.
        field_line: Map line (absolute coordinates).
        measurement_covariance: (2, 2) covariance of one spherical point.
        order: Endpoint pairing.

    Returns:
        The likelihood.

    """
    height = observation.camera_height
    expected = expected_endpoints(pose, observation, field_line, order)
    observed = (observation_spherical.start, observation_spherical.end)

    residual = np.empty(4)
    jacobian = np.empty((4, 3))
    for k in range(2):
        predicted = spherical_coordinates(to_relative(pose, expected[k]), height)
        diff = observed[k] - predicted
        diff[1] = wrap_angle(diff[1])
        residual[2 * k : 2 * k + 2] = diff
        jacobian[2 * k : 2 * k + 2] = spherical_jacobian(pose, expected[k], height)

    innovation_covariance = jacobian @ pose_covariance @ jacobian.T
    innovation_covariance[:2, :2] += measurement_covariance
    innovation_covariance[2:, 2:] += measurement_covariance

    squared_distance = float(residual @ np.linalg.solve(innovation_covariance, residual))
    return float(np.exp(-0.5 * squared_distance))


def best_correspondence_likelihood(
    pose: Pose2D,
    pose_covariance: np.ndarray,
    observation: FieldLine,
    observation_spherical: SphericalFieldLine,
    field_line: FieldLine,
    measurement_covariance: np.ndarray,
) -> tuple[float, EndpointOrder]:
    """Score both endpoint pairings and keep the better one (direct wins ties)."""
    best_likelihood, best_order = -1.0, EndpointOrder.DIRECT
    for order in EndpointOrder:
        likelihood = correspondence_likelihood(
            pose,
            pose_covariance,
            observation,
            observation_spherical,
            field_line,
            measurement_covariance,
            order,
        )
        if likelihood > best_likelihood:
            best_likelihood, best_order = likelihood, order
    return best_likelihood, best_order


def compute_likelihood_matrix(
    pose: Pose2D,
    pose_covariance: np.ndarray,
    observations: list[FieldLine],
    observations_spherical: list[SphericalFieldLine],
    field_lines: list[FieldLine],
    measurement_covariance: np.ndarray,
) -> tuple[np.ndarray, list[list[EndpointOrder]]]:
    """
    Score every (observation, map line) pair.

    Returns:
        likelihoods: (N_obs, N_map) best likelihood per pair
        orders: N_obs x N_map endpoint pairing that produced it

    """
    likelihoods = np.zeros((len(observations), len(field_lines)))
    orders = [[EndpointOrder.DIRECT] * len(field_lines) for _ in observations]

    for i, (observation, spherical) in enumerate(zip(observations, observations_spherical)):
        for j, field_line in enumerate(field_lines):
            likelihoods[i, j], orders[i][j] = best_correspondence_likelihood(
                pose,
                pose_covariance,
                observation,
                spherical,
                field_line,
                measurement_covariance,
            )

    return likelihoods, orders


def greedy_assign(likelihoods: np.ndarray, threshold: float) -> list[tuple[int, int]]:
    """
    One-to-one assignment of observations to map lines.

    Pairs above the threshold are taken in order of decreasing likelihood;
    ties go to the lower observation index, then the lower map line index.

    Args:
        likelihoods: (N_obs, N_map) likelihood matrix.
        threshold: Pairs must score strictly above this value.

    Returns:
        List of (observation index, map line index) in assignment order.

    """
    candidates = [
        (-likelihoods[i, j], i, j)
        for i in range(likelihoods.shape[0])
        for j in range(likelihoods.shape[1])
        if likelihoods[i, j] > threshold
    ]
    candidates.sort()

    used_observations, used_lines, pairs = set(), set(), []
    for _, i, j in candidates:
        if i in used_observations or j in used_lines:
            continue
        pairs.append((i, j))
        used_observations.add(i)
        used_lines.add(j)

    return pairs


def _warn_about_ties(
    likelihoods: np.ndarray, threshold: float, requested_by_localization: bool
) -> None:
    requester = "localization" if requested_by_localization else "line matcher"
    for i, row in enumerate(likelihoods):
        accepted = np.sort(row[row > threshold])[::-1]
        if len(accepted) > 1 and np.isclose(accepted[0], accepted[1], rtol=1e-9, atol=0.0):
            tied = np.flatnonzero(np.isclose(row, accepted[0], rtol=1e-9, atol=0.0))
            logger.warning(
                f"Observation {i} matches field lines {tied.tolist()} equally well "
                f"(likelihood {accepted[0]:.4f}, requested by {requester})"
            )


def find_correspondences(
    pose: Pose2D,
    pose_covariance: np.ndarray,
    observations: list[FieldLine],
    observations_spherical: list[SphericalFieldLine],
    field_lines: list[FieldLine],
    likelihood_threshold: float,
    measurement_precision: np.ndarray,
    display_warning: bool = False,
    requested_by_localization: bool = True,
) -> list[LineCorrespondence]:
    """
    Match observed lines to map lines under one candidate pose.

    Args:
        pose: Candidate pose.
        pose_covariance: (3, 3) covariance of the candidate pose.
        observations: Observed lines (relative coordinates).
        observations_spherical: Spherical projections of the observations.
        field_lines: Field line map.
        likelihood_threshold: Minimum likelihood for a correspondence.
        measurement_precision: (2, 2) inverse spherical measurement covariance.
        display_warning: Log a warning for observations with tied candidates.
        requested_by_localization: Who asked; only used in diagnostics.

    Returns:
        Accepted correspondences in assignment order (empty if none).

    """
    # observations past the correspondence array capacity are never matched
    observations = list(observations[:MAX_NUMBER_OF_LINE_OBSERVATIONS])
    observations_spherical = list(observations_spherical[: len(observations)])

    if not observations or not field_lines:
        return []

    measurement_covariance = np.linalg.inv(measurement_precision)
    likelihoods, orders = compute_likelihood_matrix(
        pose,
        np.asarray(pose_covariance, dtype=np.float64),
        observations,
        observations_spherical,
        field_lines,
        measurement_covariance,
    )

    if display_warning:
        _warn_about_ties(likelihoods, likelihood_threshold, requested_by_localization)

    return [
        LineCorrespondence(
            observation_index=i,
            field_line_index=j,
            observation=observations[i],
            field_line=field_lines[j],
            likelihood=float(likelihoods[i, j]),
            order=orders[i][j],
        )
        for i, j in greedy_assign(likelihoods, likelihood_threshold)
    ]


def to_line_correspondences(correspondences: list[LineCorrespondence]) -> np.ndarray:
    """
    Build the fixed-size correspondence array from accepted matches.

    Returns:
        (8,) array holding the map line index per observation slot.

    """
    line_correspondences = empty_line_correspondences()
    for correspondence in correspondences:
        if correspondence.observation_index < MAX_NUMBER_OF_LINE_OBSERVATIONS:
            line_correspondences[correspondence.observation_index] = correspondence.field_line_index
    return line_correspondences
