"""Geometric calculations: pose transforms and the spherical observation model."""

import numpy as np

from line_matching.datatypes import FieldLine, Pose2D, SphericalFieldLine

# avoid division by zero for points at the observer
MIN_PLANAR_DISTANCE = 1e-6


def wrap_angle(angle: float | np.ndarray) -> float | np.ndarray:
    """Normalize an angle to [-pi, pi)."""
    return (angle + np.pi) % (2.0 * np.pi) - np.pi


def rotate(point: np.ndarray, angle: float) -> np.ndarray:
    c, s = np.cos(angle), np.sin(angle)
    return np.array([c * point[0] - s * point[1], s * point[0] + c * point[1]])


def to_relative(pose: Pose2D, point_in_absolute_coords: np.ndarray) -> np.ndarray:
    """
    Express an absolute field point relative to a pose.

    Args:
        pose: Observer pose in absolute coordinates.
        point_in_absolute_coords: [x, y] point on the field.

    Returns:
        [x, y] of the point in the observer's frame.

    """
    return rotate(np.asarray(point_in_absolute_coords) - pose.translation, -pose.rotation)


def to_absolute(pose: Pose2D, point_in_relative_coords: np.ndarray) -> np.ndarray:
    """Inverse of to_relative."""
    return pose.translation + rotate(np.asarray(point_in_relative_coords), pose.rotation)


def line_to_relative(pose: Pose2D, line: FieldLine) -> FieldLine:
    return FieldLine(
        to_relative(pose, line.start), to_relative(pose, line.end), line.camera_height
    )


def line_to_absolute(pose: Pose2D, line: FieldLine) -> FieldLine:
    return FieldLine(
        to_absolute(pose, line.start), to_absolute(pose, line.end), line.camera_height
    )


def spherical_coordinates(
    point_in_relative_coords: np.ndarray, camera_height: float
) -> np.ndarray:
    """
    Project a relative ground point into the camera-height normalized angular space.

    Args:
        point_in_relative_coords: [x, y] in the observer's frame (mm).
        camera_height: Height of the camera above ground (mm).

    Returns:
        [vertical angle, horizontal angle] in radians.

    """
    x, y = point_in_relative_coords
    vertical = np.arctan2(camera_height, np.hypot(x, y))
    horizontal = np.arctan2(y, x)
    return np.array([vertical, horizontal])


def spherical_coordinates_from_absolute(
    pose: Pose2D, point_in_absolute_coords: np.ndarray, camera_height: float
) -> np.ndarray:
    return spherical_coordinates(to_relative(pose, point_in_absolute_coords), camera_height)


def project_line(field_line_in_relative_coords: FieldLine) -> SphericalFieldLine:
    """Spherical projection of both endpoints of a relative line."""
    height = field_line_in_relative_coords.camera_height
    return SphericalFieldLine(
        spherical_coordinates(field_line_in_relative_coords.start, height),
        spherical_coordinates(field_line_in_relative_coords.end, height),
        height,
    )


def project_absolute_line(
    pose: Pose2D, field_line_in_absolute_coords: FieldLine, camera_height: float | None = None
) -> SphericalFieldLine:
    """
    Spherical projection of an absolute line as seen from a pose.

    Args:
        pose: Observer pose.
        field_line_in_absolute_coords: Map line.
        camera_height: Height to project with. Defaults to the line's own
            height, which is 0 for map lines.

    Returns:
        The projected line.

    """
    if camera_height is None:
        camera_height = field_line_in_absolute_coords.camera_height
    relative = line_to_relative(pose, field_line_in_absolute_coords)
    return project_line(FieldLine(relative.start, relative.end, camera_height))


def spherical_jacobian(
    pose: Pose2D, point_in_absolute_coords: np.ndarray, camera_height: float
) -> np.ndarray:
    """
    Derivative of the spherical coordinates of a fixed field point w.r.t. the pose.

    Args:
        pose: Observer pose the derivative is taken at.
        point_in_absolute_coords: Fixed [x, y] field point.
        camera_height: Camera height (mm).

    Returns:
        (2, 3) Jacobian d[vertical, horizontal] / d[x, y, rotation].

    """
    q = to_relative(pose, point_in_absolute_coords)
    r2 = max(float(q @ q), MIN_PLANAR_DISTANCE**2)
    r = np.sqrt(r2)

    # ds/dq
    d_vertical = -camera_height * q / (r * (camera_height**2 + r2))
    d_horizontal = np.array([-q[1], q[0]]) / r2
    ds_dq = np.vstack((d_vertical, d_horizontal))

    # dq/d(x, y, rotation)
    c, s = np.cos(pose.rotation), np.sin(pose.rotation)
    dq_dpose = np.array([[-c, -s, q[1]], [s, -c, -q[0]]])

    return ds_dq @ dq_dpose


def project_point_to_field_line(
    point: np.ndarray, line: FieldLine, pose: Pose2D | None = None
) -> np.ndarray:
    """
    Orthogonal projection of a point onto the infinite extension of a field line.

    Args:
        point: [x, y] point. Absolute coordinates, or relative to `pose` if given.
        line: Field line in absolute coordinates.
        pose: Optional pose the point is expressed relative to.

    Returns:
        The projected point in absolute coordinates.

    """
    point_in_absolute_coords = np.asarray(point, dtype=np.float64)
    if pose is not None:
        point_in_absolute_coords = to_absolute(pose, point_in_absolute_coords)

    direction = line.direction
    if not np.any(direction):
        return line.start.copy()
    t = (point_in_absolute_coords - line.start) @ direction
    return line.start + t * direction


def are_parallel(first: FieldLine, second: FieldLine, angle_tolerance: float) -> bool:
    """True if the undirected lines differ in direction by at most the tolerance."""
    a, b = first.direction, second.direction
    cross = abs(float(a[0] * b[1] - a[1] * b[0]))
    return cross <= np.sin(angle_tolerance)


def field_boundary(
    field_lines: list[FieldLine], border: float = 0.0
) -> tuple[float, float, float, float]:
    """
    Bounding rectangle of a set of field lines grown by a border strip.

    Returns:
        (x_min, x_max, y_min, y_max). All zero for an empty map.

    """
    if not field_lines:
        return 0.0, 0.0, 0.0, 0.0
    points = np.array([p for line in field_lines for p in (line.start, line.end)])
    x_min, y_min = points.min(axis=0) - border
    x_max, y_max = points.max(axis=0) + border
    return float(x_min), float(x_max), float(y_min), float(y_max)
