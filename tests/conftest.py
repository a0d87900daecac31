import numpy as np
import pytest

from line_matching.config.config import LineMatchingConfig
from line_matching.datatypes import FieldLine, Pose2D
from line_matching.geometry import line_to_relative
from line_matching.modules.field_dimensions import FieldDimensions, build_field_lines

CAMERA_HEIGHT = 500.0


# =============================================================================
# Maps
# =============================================================================


@pytest.fixture
def crossing_lines():
    """Two perpendicular map lines: along x at y=0 and along y at x=0."""
    return [
        FieldLine(np.array([-3000.0, 0.0]), np.array([3000.0, 0.0])),
        FieldLine(np.array([0.0, -2000.0]), np.array([0.0, 2000.0])),
    ]


@pytest.fixture
def parallel_lines():
    """Two parallel map lines along x at y=0 and y=4000."""
    return [
        FieldLine(np.array([-4500.0, 0.0]), np.array([4500.0, 0.0])),
        FieldLine(np.array([-4500.0, 4000.0]), np.array([4500.0, 4000.0])),
    ]


@pytest.fixture
def spl_field_lines():
    return build_field_lines(FieldDimensions())


# =============================================================================
# Poses and observations
# =============================================================================


@pytest.fixture
def config():
    return LineMatchingConfig()


@pytest.fixture
def true_pose():
    return Pose2D.from_xyt(-1200.0, -900.0, 0.3)


@pytest.fixture
def observe():
    """Return a function turning absolute lines into noise free observations."""

    def _observe(pose, lines, camera_height=CAMERA_HEIGHT):
        observations = []
        for line in lines:
            relative = line_to_relative(pose, line)
            observations.append(FieldLine(relative.start, relative.end, camera_height))
        return observations

    return _observe


@pytest.fixture
def offset_pose():
    """Return a function shifting a pose by a small, fixed amount."""

    def _offset(pose, dx=50.0, dy=-40.0, drot=0.02):
        return Pose2D(pose.translation + np.array([dx, dy]), pose.rotation + drot)

    return _offset
