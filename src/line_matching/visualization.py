"""Debug drawing of line matching results with rerun."""

import numpy as np
import rerun as rr

from line_matching.datatypes import (
    FieldLine,
    Pose2D,
    PoseHypothesis,
    PoseHypothesisInterval,
)
from line_matching.geometry import line_to_absolute, project_point_to_field_line

FIELD_COLOR = [255, 255, 255]
OBSERVATION_COLOR = [255, 0, 0]
HYPOTHESIS_COLOR = [0, 255, 0]
INTERVAL_COLOR = [255, 255, 0]
CORRESPONDENCE_COLOR = [0, 255, 255]

POSE_ARROW_LENGTH = 300.0  # mm


def line_strips(lines: list[FieldLine]) -> np.ndarray:
    """(N, 2, 2) strips of the line endpoints."""
    if not lines:
        return np.empty((0, 2, 2))
    return np.array([[line.start, line.end] for line in lines])


def observation_strips(pose: Pose2D, observations: list[FieldLine]) -> np.ndarray:
    """Observations moved to absolute coordinates as seen from `pose`."""
    return line_strips([line_to_absolute(pose, observation) for observation in observations])


def pose_arrows(poses: list[Pose2D], length: float = POSE_ARROW_LENGTH) -> tuple[np.ndarray, np.ndarray]:
    """
    Arrows showing position and heading of poses.

    Returns:
        origins: (N, 2) positions
        vectors: (N, 2) heading vectors of the given length

    """
    if not poses:
        return np.empty((0, 2)), np.empty((0, 2))
    origins = np.array([pose.translation for pose in poses])
    vectors = length * np.array([[np.cos(p.rotation), np.sin(p.rotation)] for p in poses])
    return origins, vectors


def correspondence_links(
    pose: Pose2D,
    observations: list[FieldLine],
    field_lines: list[FieldLine],
    correspondences: list[tuple[int, int]],
) -> np.ndarray:
    """
    Strips from each matched observation's midpoint to its map line.

    Args:
        pose: Pose the observations are seen from.
        observations: Observed lines (relative coordinates).
        field_lines: Field line map.
        correspondences: (observation index, map line index) pairs.

    Returns:
        (M, 2, 2) strips in absolute coordinates.

    """
    links = []
    for i, j in correspondences:
        observation = line_to_absolute(pose, observations[i])
        midpoint = 0.5 * (observation.start + observation.end)
        links.append([midpoint, project_point_to_field_line(midpoint, field_lines[j])])
    if not links:
        return np.empty((0, 2, 2))
    return np.array(links)


def init_rerun(spawn: bool = True) -> None:
    """Initialize Rerun logging for the field view."""
    rr.init("Line Matching", spawn=spawn)


def log_field_lines(field_lines: list[FieldLine]) -> None:
    rr.log(
        "field/lines",
        rr.LineStrips2D(line_strips(field_lines), colors=FIELD_COLOR, radii=25.0),
        static=True,
    )


def log_line_matching_result(
    field_lines: list[FieldLine],
    observations: list[FieldLine],
    pose_hypotheses: list[PoseHypothesis],
    pose_hypothesis_intervals: list[PoseHypothesisInterval],
) -> None:
    log_field_lines(field_lines)

    # unique hypotheses with the observations they explain
    origins, vectors = pose_arrows([h.pose for h in pose_hypotheses])
    rr.log(
        "field/hypotheses",
        rr.Arrows2D(origins=origins, vectors=vectors, colors=HYPOTHESIS_COLOR),
    )
    for k, hypothesis in enumerate(pose_hypotheses):
        rr.log(
            f"field/hypotheses/observations/{k}",
            rr.LineStrips2D(
                observation_strips(hypothesis.pose, observations),
                colors=OBSERVATION_COLOR,
                radii=15.0,
            ),
        )

    # intervals as the segment swept by the robot position
    rr.log(
        "field/intervals",
        rr.LineStrips2D(
            np.array(
                [[i.start.translation, i.end.translation] for i in pose_hypothesis_intervals]
            ).reshape(-1, 2, 2),
            colors=INTERVAL_COLOR,
            radii=20.0,
        ),
    )
    origins, vectors = pose_arrows(
        [p for i in pose_hypothesis_intervals for p in (i.start, i.end)]
    )
    rr.log(
        "field/intervals/bounds",
        rr.Arrows2D(origins=origins, vectors=vectors, colors=INTERVAL_COLOR),
    )


def log_correspondences(
    pose: Pose2D,
    observations: list[FieldLine],
    field_lines: list[FieldLine],
    correspondences: list[tuple[int, int]],
) -> None:
    log_field_lines(field_lines)

    origins, vectors = pose_arrows([pose])
    rr.log("field/pose", rr.Arrows2D(origins=origins, vectors=vectors, colors=HYPOTHESIS_COLOR))
    rr.log(
        "field/pose/observations",
        rr.LineStrips2D(observation_strips(pose, observations), colors=OBSERVATION_COLOR, radii=15.0),
    )
    rr.log(
        "field/pose/correspondences",
        rr.LineStrips2D(
            correspondence_links(pose, observations, field_lines, correspondences),
            colors=CORRESPONDENCE_COLOR,
            radii=10.0,
        ),
    )
