"""Field line maps for standard soccer fields."""

from dataclasses import dataclass

import numpy as np

from line_matching.datatypes import FieldLine


@dataclass
class FieldDimensions:
    """
    Dimensions of a soccer field, all in mm.

    Attributes:
        length: Distance between the goal lines.
        width: Distance between the side lines.
        penalty_area_length: Depth of the penalty area from the goal line.
        penalty_area_width: Width of the penalty area.
        goal_area_length: Depth of the goal area from the goal line.
        goal_area_width: Width of the goal area.
        border_strip_width: Carpet outside the outer lines.

    """

    length: float = 9000.0
    width: float = 6000.0
    penalty_area_length: float = 1650.0
    penalty_area_width: float = 4000.0
    goal_area_length: float = 600.0
    goal_area_width: float = 2200.0
    border_strip_width: float = 700.0

    @property
    def boundary(self) -> tuple[float, float, float, float]:
        """(x_min, x_max, y_min, y_max) including the border strip."""
        half_x = 0.5 * self.length + self.border_strip_width
        half_y = 0.5 * self.width + self.border_strip_width
        return -half_x, half_x, -half_y, half_y


def get_field_dimensions(name: str = "spl") -> FieldDimensions:
    """
    Return the dimensions of a named field.

    Args:
        name: Field name (spl, spl_challenge_shield).

    Returns:
        The field dimensions.

    Raises:
        ValueError: If the field is unknown.

    """
    if name == "spl":
        return FieldDimensions()
    if name == "spl_challenge_shield":
        return FieldDimensions(
            length=7500.0,
            width=5000.0,
            penalty_area_length=600.0,
            penalty_area_width=2200.0,
            goal_area_length=0.0,
            goal_area_width=0.0,
        )
    msg = f"Unknown field: {name}"
    raise ValueError(msg)


def _area_lines(half_length: float, depth: float, width: float) -> list[FieldLine]:
    lines = []
    for side in (-1.0, 1.0):
        goal_x = side * half_length
        front_x = side * (half_length - depth)
        half_width = 0.5 * width
        lines.append(FieldLine(np.array([front_x, -half_width]), np.array([front_x, half_width])))
        lines.append(FieldLine(np.array([goal_x, half_width]), np.array([front_x, half_width])))
        lines.append(FieldLine(np.array([goal_x, -half_width]), np.array([front_x, -half_width])))
    return lines


def build_field_lines(dimensions: FieldDimensions) -> list[FieldLine]:
    """
    Straight field lines of a field in absolute coordinates.

    The origin is the center of the field, x points to the opponent goal.

    Args:
        dimensions: Field dimensions.

    Returns:
        List of field lines: outer lines, halfway line, penalty and goal areas.

    """
    half_x = 0.5 * dimensions.length
    half_y = 0.5 * dimensions.width

    lines = [
        # side lines
        FieldLine(np.array([-half_x, half_y]), np.array([half_x, half_y])),
        FieldLine(np.array([-half_x, -half_y]), np.array([half_x, -half_y])),
        # goal lines
        FieldLine(np.array([-half_x, -half_y]), np.array([-half_x, half_y])),
        FieldLine(np.array([half_x, -half_y]), np.array([half_x, half_y])),
        # halfway line
        FieldLine(np.array([0.0, -half_y]), np.array([0.0, half_y])),
    ]

    if dimensions.penalty_area_length > 0.0:
        lines += _area_lines(half_x, dimensions.penalty_area_length, dimensions.penalty_area_width)
    if dimensions.goal_area_length > 0.0:
        lines += _area_lines(half_x, dimensions.goal_area_length, dimensions.goal_area_width)

    return lines
