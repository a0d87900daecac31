import numpy as np

from line_matching.datatypes import MAX_NUMBER_OF_LINE_OBSERVATIONS, FieldLine, Pose2D
from line_matching.geometry import line_to_relative


def clip_segment(
    start: np.ndarray, end: np.ndarray, box: tuple[float, float, float, float]
) -> tuple[np.ndarray, np.ndarray] | None:
    """
    Clip a segment to an axis aligned box (Liang-Barsky).

    Args:
        start: First endpoint.
        end: Second endpoint.
        box: (x_min, x_max, y_min, y_max).

    Returns:
        The clipped endpoints, None if the segment misses the box.

    """
    x_min, x_max, y_min, y_max = box
    d = end - start
    t0, t1 = 0.0, 1.0

    for p, q in (
        (-d[0], start[0] - x_min),
        (d[0], x_max - start[0]),
        (-d[1], start[1] - y_min),
        (d[1], y_max - start[1]),
    ):
        if p == 0.0:
            # parallel to this edge and outside
            if q < 0.0:
                return None
            continue
        t = q / p
        if p < 0.0:
            t0 = max(t0, t)
        else:
            t1 = min(t1, t)
        if t0 > t1:
            return None

    return start + t0 * d, start + t1 * d


def simulate_observations(
    field_lines: list[FieldLine],
    pose: Pose2D,
    camera_height: float = 500.0,
    view_depth: float = 4000.0,
    view_half_width: float = 2500.0,
    min_length: float = 300.0,
    noise_std: float = 0.0,
    rng: np.random.Generator | None = None,
    max_observations: int = MAX_NUMBER_OF_LINE_OBSERVATIONS,
) -> list[FieldLine]:
    """
    Generate the line observations a robot at `pose` would report.

    Map lines are moved into the robot frame and clipped to a box in front of
    the robot. Longer lines come first, as the vision reports them.

    Args:
        field_lines: Field line map.
        pose: True robot pose.
        camera_height: Camera height stored with every observation (mm).
        view_depth: How far the camera sees ahead (mm).
        view_half_width: How far the camera sees to each side (mm).
        min_length: Shorter clipped pieces are dropped (mm).
        noise_std: Std of the Gaussian noise added to the endpoints (mm).
        rng: Random generator for the noise.
        max_observations: Maximum number of returned observations.

    Returns:
        Observed lines in relative coordinates.

    """
    if rng is None:
        rng = np.random.default_rng()

    box = (0.0, view_depth, -view_half_width, view_half_width)
    observations = []
    for line in field_lines:
        relative = line_to_relative(pose, line)
        clipped = clip_segment(relative.start, relative.end, box)
        if clipped is None:
            continue
        start, end = clipped
        if np.linalg.norm(end - start) < min_length:
            continue
        if noise_std > 0.0:
            start = start + rng.normal(0.0, noise_std, 2)
            end = end + rng.normal(0.0, noise_std, 2)
        observations.append(FieldLine(start, end, camera_height))

    observations.sort(key=lambda line: -line.length)
    return observations[:max_observations]
