"""Passive data structures for the line matching engine."""

from dataclasses import dataclass, field

import numpy as np

from line_matching.utils.enums import EndpointOrder

# fixed size of the correspondence array
MAX_NUMBER_OF_LINE_OBSERVATIONS = 8
NO_CORRESPONDENCE = -1


def _as_point(value: np.ndarray | tuple[float, float]) -> np.ndarray:
    point = np.array(value, dtype=np.float64).reshape(-1)
    if point.shape != (2,):
        msg = f"Expected a 2D point, got shape {point.shape}"
        raise ValueError(msg)
    point.setflags(write=False)
    return point


def empty_line_correspondences() -> np.ndarray:
    """Return a correspondence array with every slot set to the sentinel."""
    return np.full(MAX_NUMBER_OF_LINE_OBSERVATIONS, NO_CORRESPONDENCE, dtype=int)


def _as_line_correspondences(values: np.ndarray) -> np.ndarray:
    line_correspondences = np.array(values, dtype=int).reshape(-1)
    if line_correspondences.shape != (MAX_NUMBER_OF_LINE_OBSERVATIONS,):
        msg = (
            f"Expected {MAX_NUMBER_OF_LINE_OBSERVATIONS} correspondence slots, "
            f"got {line_correspondences.shape[0]}"
        )
        raise ValueError(msg)
    return line_correspondences


@dataclass(frozen=True, eq=False)
class Pose2D:
    """
    A robot pose on the field.

    Attributes:
        translation: Position [x, y] in mm.
        rotation: Heading in radians, counter clockwise from the field x axis.

    """

    translation: np.ndarray = field(default_factory=lambda: np.zeros(2))
    rotation: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "translation", _as_point(self.translation))
        object.__setattr__(self, "rotation", float(self.rotation))

    @classmethod
    def from_xyt(cls, x: float, y: float, rotation: float) -> "Pose2D":
        return cls(np.array([x, y]), rotation)

    @classmethod
    def from_array(cls, values: np.ndarray) -> "Pose2D":
        """Build a pose from a [x, y, rotation] vector."""
        return cls(values[:2], values[2])

    def to_array(self) -> np.ndarray:
        return np.array([self.translation[0], self.translation[1], self.rotation])

    @property
    def rotation_matrix(self) -> np.ndarray:
        c, s = np.cos(self.rotation), np.sin(self.rotation)
        return np.array([[c, -s], [s, c]])

    def inverse(self) -> "Pose2D":
        """Pose of the field origin as seen from this pose."""
        return Pose2D(-(self.rotation_matrix.T @ self.translation), -self.rotation)

    def __repr__(self) -> str:
        x, y = self.translation
        return f"Pose2D(x={x:.1f}, y={y:.1f}, rotation={self.rotation:.4f})"


@dataclass(frozen=True, eq=False)
class FieldLine:
    """
    A directed line segment on the field.

    Attributes:
        start: First endpoint [x, y] (mm).
        end: Second endpoint [x, y] (mm).
        camera_height: Height of the camera that observed the line (mm).
            0 for map lines, where the observation's height is used instead.

    """

    start: np.ndarray
    end: np.ndarray
    camera_height: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", _as_point(self.start))
        object.__setattr__(self, "end", _as_point(self.end))
        object.__setattr__(self, "camera_height", float(self.camera_height))

    @property
    def length(self) -> float:
        return float(np.linalg.norm(self.end - self.start))

    @property
    def direction(self) -> np.ndarray:
        """Unit vector from start to end (zero for degenerate lines)."""
        length = self.length
        if length == 0.0:
            return np.zeros(2)
        return (self.end - self.start) / length

    def reversed(self) -> "FieldLine":
        return FieldLine(self.end, self.start, self.camera_height)

    def __repr__(self) -> str:
        return (
            f"FieldLine(start=({self.start[0]:.1f}, {self.start[1]:.1f}), "
            f"end=({self.end[0]:.1f}, {self.end[1]:.1f}), "
            f"camera_height={self.camera_height:.1f})"
        )


@dataclass(frozen=True, eq=False)
class SphericalFieldLine:
    """
    Spherical projection of a field line.

    Attributes:
        start: [vertical angle, horizontal angle] of the first endpoint (rad).
        end: [vertical angle, horizontal angle] of the second endpoint (rad).
        camera_height: Camera height used for the projection (mm).

    """

    start: np.ndarray
    end: np.ndarray
    camera_height: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", _as_point(self.start))
        object.__setattr__(self, "end", _as_point(self.end))
        object.__setattr__(self, "camera_height", float(self.camera_height))


@dataclass(eq=False)
class PoseHypothesis:
    """
    A fully determined pose explaining the observations.

    Attributes:
        pose: Pose in absolute field coordinates.
        line_correspondences: (8,) map line index per observation slot,
            NO_CORRESPONDENCE where the observation is unmatched.

    """

    pose: Pose2D = field(default_factory=Pose2D)
    line_correspondences: np.ndarray = field(default_factory=empty_line_correspondences)

    def __post_init__(self) -> None:
        self.line_correspondences = _as_line_correspondences(self.line_correspondences)

    def set_line_correspondences(self, other_line_correspondences: np.ndarray) -> None:
        self.line_correspondences = _as_line_correspondences(other_line_correspondences)


@dataclass(eq=False)
class PoseHypothesisInterval:
    """
    A one-parameter family of poses explaining the observations.

    Only produced if all matched lines are parallel, so the position along the
    line direction is not observable. Both boundary poses share the heading.

    Attributes:
        start: First boundary pose.
        end: Second boundary pose.
        line_correspondences: (8,) correspondence array shared by the family.

    """

    start: Pose2D = field(default_factory=Pose2D)
    end: Pose2D = field(default_factory=Pose2D)
    line_correspondences: np.ndarray = field(default_factory=empty_line_correspondences)

    def __post_init__(self) -> None:
        self.line_correspondences = _as_line_correspondences(self.line_correspondences)

    def pose_at(self, fraction: float) -> Pose2D:
        """Interpolate between start (0.0) and end (1.0)."""
        translation = (1.0 - fraction) * self.start.translation + fraction * self.end.translation
        return Pose2D(translation, self.start.rotation)

    @property
    def length(self) -> float:
        return float(np.linalg.norm(self.end.translation - self.start.translation))


@dataclass(frozen=True, eq=False)
class LineCorrespondence:
    """
    An accepted match between an observed line and a map line.

    Attributes:
        observation_index: Index into the frame's observations.
        field_line_index: Index into the field line map.
        observation: The observed line (relative coordinates).
        field_line: The map line (absolute coordinates).
        likelihood: Gaussian likelihood of the match.
        order: Endpoint pairing under which the match scored best.

    """

    observation_index: int
    field_line_index: int
    observation: FieldLine
    field_line: FieldLine
    likelihood: float
    order: EndpointOrder = EndpointOrder.DIRECT
