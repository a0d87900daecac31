"""
Tests for turning correspondences into pose hypotheses and intervals.
"""

import numpy as np
import pytest

from line_matching.datatypes import (
    NO_CORRESPONDENCE,
    FieldLine,
    LineCorrespondence,
    Pose2D,
    PoseHypothesis,
)
from line_matching.geometry import wrap_angle
from line_matching.modules.hypothesis_generation import (
    contains_crossing,
    correspondences_hold,
    generate_pose_hypotheses,
    interval_bounds,
    mark_single_line_observation,
    point_to_line_residuals,
    rank_pose_hypotheses,
)
from line_matching.state.line_matching_result import LineMatchingResult


def _prepare(field_lines, observations):
    result = LineMatchingResult(field_lines=list(field_lines))
    result.observations = observations
    result.calculate_observations_spherical_coords()
    return result


def _correspondences(result, pose, config):
    _, correspondences = result.get_correspondences_for_localization_hypothesis(
        pose,
        config.pose_covariance,
        config.likelihood_threshold,
        config.measurement_precision,
    )
    return correspondences


class TestCrossing:
    """Crossing lines determine the pose."""

    def test_unique_hypothesis(self, config, crossing_lines, true_pose, observe, offset_pose):
        result = _prepare(crossing_lines, observe(true_pose, crossing_lines))
        candidate = offset_pose(true_pose)
        correspondences = _correspondences(result, candidate, config)
        assert contains_crossing(correspondences, config.parallel_angle_tolerance)

        generate_pose_hypotheses(result, candidate, correspondences, config)

        assert len(result.pose_hypotheses) == 1
        assert result.pose_hypothesis_intervals == []
        hypothesis = result.pose_hypotheses[0]
        assert np.linalg.norm(hypothesis.pose.translation - true_pose.translation) < 1.0
        assert abs(wrap_angle(hypothesis.pose.rotation - true_pose.rotation)) < 0.01
        assert hypothesis.line_correspondences.tolist()[:2] == [0, 1]
        assert all(j == NO_CORRESPONDENCE for j in hypothesis.line_correspondences[2:])

    def test_residuals_vanish_at_true_pose(self, config, crossing_lines, true_pose, observe):
        result = _prepare(crossing_lines, observe(true_pose, crossing_lines))
        correspondences = _correspondences(result, true_pose, config)
        assert np.allclose(point_to_line_residuals(true_pose, correspondences), 0.0, atol=1e-6)

    def test_duplicates_are_collapsed(self, config, crossing_lines, true_pose, observe, offset_pose):
        """Nearby candidates converging to the same pose add a single hypothesis."""
        result = _prepare(crossing_lines, observe(true_pose, crossing_lines))
        for candidate in (offset_pose(true_pose), offset_pose(true_pose, -30.0, 20.0, -0.01)):
            generate_pose_hypotheses(
                result, candidate, _correspondences(result, candidate, config), config
            )
        assert len(result.pose_hypotheses) == 1


class TestParallel:
    """Parallel-only matches leave the position along the lines open."""

    def _observations(self, pose, observe):
        pieces = [
            FieldLine(np.array([-500.0, 0.0]), np.array([1500.0, 0.0])),
            FieldLine(np.array([-500.0, 4000.0]), np.array([1500.0, 4000.0])),
        ]
        return observe(pose, pieces)

    def test_interval(self, config, parallel_lines, observe):
        true_pose = Pose2D.from_xyt(500.0, 1500.0, 0.1)
        result = _prepare(parallel_lines, self._observations(true_pose, observe))
        candidate = Pose2D.from_xyt(560.0, 1450.0, 0.12)
        correspondences = _correspondences(result, candidate, config)
        assert len(correspondences) == 2
        assert not contains_crossing(correspondences, config.parallel_angle_tolerance)

        generate_pose_hypotheses(result, candidate, correspondences, config)

        assert result.pose_hypotheses == []
        assert len(result.pose_hypothesis_intervals) == 1
        interval = result.pose_hypothesis_intervals[0]
        assert interval.start.rotation == pytest.approx(0.1, abs=1e-6)
        assert interval.end.rotation == pytest.approx(interval.start.rotation)
        assert interval.start.translation[1] == pytest.approx(1500.0, abs=1.0)
        assert interval.end.translation[1] == pytest.approx(1500.0, abs=1.0)
        # the observed pieces may slide until they leave their map lines plus tolerance
        assert interval.start.translation[0] == pytest.approx(-3700.0, abs=1.0)
        assert interval.end.translation[0] == pytest.approx(3700.0, abs=1.0)
        assert interval.line_correspondences.tolist()[:2] == [0, 1]

    def test_true_pose_inside_interval(self, config, parallel_lines, observe):
        true_pose = Pose2D.from_xyt(-2000.0, 2500.0, -0.05)
        result = _prepare(parallel_lines, self._observations(true_pose, observe))
        candidate = Pose2D.from_xyt(-1900.0, 2550.0, -0.07)
        generate_pose_hypotheses(result, candidate, _correspondences(result, candidate, config), config)

        interval = result.pose_hypothesis_intervals[0]
        assert interval.start.translation[0] <= true_pose.translation[0] <= interval.end.translation[0]
        assert interval.pose_at(0.5).rotation == pytest.approx(-0.05, abs=1e-6)


class TestSingleLine:
    def test_flag_without_hypotheses(self, config, crossing_lines, true_pose, observe):
        result = _prepare(crossing_lines, observe(true_pose, crossing_lines[:1]))
        correspondences = _correspondences(result, true_pose, config)
        assert len(correspondences) == 1

        generate_pose_hypotheses(result, true_pose, correspondences, config)

        assert result.only_observed_one_field_line
        assert not result.contains_matches()

    def test_mark_single_line_observation(self, crossing_lines, true_pose, observe):
        result = _prepare(crossing_lines, observe(true_pose, crossing_lines))
        assert not mark_single_line_observation(result)
        result.observations = result.observations[:1]
        assert mark_single_line_observation(result)
        assert result.only_observed_one_field_line


class TestIntervalBounds:
    """Tests for the plausible shift range along parallel lines."""

    line = FieldLine(np.array([-1000.0, 0.0]), np.array([1000.0, 0.0]))
    pose = Pose2D.from_xyt(0.0, 500.0, 0.0)

    def _correspondence(self, start_x, end_x):
        observation = FieldLine(np.array([start_x, -500.0]), np.array([end_x, -500.0]), 500.0)
        return [LineCorrespondence(0, 0, observation, self.line, 1.0)]

    def test_limited_by_map_segment(self):
        bounds = interval_bounds(
            self.pose, self._correspondence(-200.0, 300.0), (-5000.0, 5000.0, -5000.0, 5000.0), 100.0
        )
        assert bounds == pytest.approx((-900.0, 800.0))

    def test_limited_by_boundary(self):
        bounds = interval_bounds(
            self.pose, self._correspondence(-200.0, 300.0), (-500.0, 500.0, -5000.0, 5000.0), 100.0
        )
        assert bounds == pytest.approx((-500.0, 500.0))

    def test_outside_boundary_across_lines(self):
        bounds = interval_bounds(
            self.pose, self._correspondence(-200.0, 300.0), (-5000.0, 5000.0, -100.0, 100.0), 100.0
        )
        assert bounds is None

    def test_observation_longer_than_line(self):
        bounds = interval_bounds(
            self.pose, self._correspondence(-1500.0, 1500.0), (-5000.0, 5000.0, -5000.0, 5000.0), 100.0
        )
        assert bounds is None


class TestRanking:
    def test_best_hypothesis_first(self, config, crossing_lines, true_pose, observe):
        result = _prepare(crossing_lines, observe(true_pose, crossing_lines))
        correspondences = np.array([0, 1] + [NO_CORRESPONDENCE] * 6)
        shifted = Pose2D(true_pose.translation + np.array([0.0, 150.0]), true_pose.rotation)
        result.pose_hypotheses.extend(
            [PoseHypothesis(shifted, correspondences.copy()), PoseHypothesis(true_pose, correspondences.copy())]
        )

        rank_pose_hypotheses(result, config.measurement_precision)

        assert result.pose_hypotheses[0].pose is true_pose


class TestPostFitCheck:
    """Fitted poses must keep every correspondence."""

    def test_correct_pairs_hold(self, config, crossing_lines, true_pose, observe):
        result = _prepare(crossing_lines, observe(true_pose, crossing_lines))
        correspondences = _correspondences(result, true_pose, config)
        assert correspondences_hold(true_pose, correspondences, config)

    def test_endpoint_off_its_line(self, config, crossing_lines, true_pose, observe):
        """A pose leaving an observed endpoint far from its line does not hold."""
        result = _prepare(crossing_lines, observe(true_pose, crossing_lines))
        correspondences = _correspondences(result, true_pose, config)
        shifted = Pose2D(true_pose.translation + np.array([0.0, 400.0]), true_pose.rotation)
        assert not correspondences_hold(shifted, correspondences, config)

    def test_wrong_crossing_pair_is_dropped(self, config, crossing_lines, true_pose, observe):
        """A wrong pair the fit satisfies by moving off the other line's segment is rejected."""
        shifted_line = FieldLine(np.array([-3000.0, 1500.0]), np.array([3000.0, 1500.0]))
        observations = observe(true_pose, crossing_lines)
        result = _prepare(crossing_lines + [shifted_line], observations)
        correspondences = [
            LineCorrespondence(0, 2, observations[0], shifted_line, 0.5),
            LineCorrespondence(1, 1, observations[1], crossing_lines[1], 0.5),
        ]

        generate_pose_hypotheses(result, true_pose, correspondences, config)

        assert result.pose_hypotheses == []
        assert result.pose_hypothesis_intervals == []

    def test_wrong_parallel_pair_is_dropped(self, config, parallel_lines, observe):
        """Parallel pairs the fit can only reconcile by compromise yield no interval."""
        true_pose = Pose2D.from_xyt(500.0, 1500.0, 0.1)
        far_line = FieldLine(np.array([-4500.0, 5000.0]), np.array([4500.0, 5000.0]))
        pieces = [
            FieldLine(np.array([-500.0, 0.0]), np.array([1500.0, 0.0])),
            FieldLine(np.array([-500.0, 4000.0]), np.array([1500.0, 4000.0])),
        ]
        observations = observe(true_pose, pieces)
        result = _prepare(parallel_lines + [far_line], observations)
        correspondences = [
            LineCorrespondence(0, 0, observations[0], parallel_lines[0], 0.5),
            LineCorrespondence(1, 2, observations[1], far_line, 0.5),
        ]

        generate_pose_hypotheses(result, true_pose, correspondences, config)

        assert result.pose_hypothesis_intervals == []
        assert result.pose_hypotheses == []
