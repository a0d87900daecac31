import logging
from dataclasses import dataclass
from typing import Literal

import numpy as np
import tyro

from line_matching.config.config import get_config
from line_matching.datatypes import Pose2D
from line_matching.line_matcher import LineMatcher
from line_matching.modules.field_dimensions import build_field_lines, get_field_dimensions
from line_matching.modules.simulation import simulate_observations
from line_matching.visualization import init_rerun


@dataclass
class Args:
    field: Literal["spl", "spl_challenge_shield"] = "spl"
    preset: Literal["default", "noisy", "strict"] = "default"
    # true robot pose (mm, rad)
    x: float = -2000.0
    y: float = -1000.0
    rotation: float = 0.4
    camera_height: float = 500.0
    noise_std: float = 0.0
    num_candidates: int = 10
    candidate_spread: float = 300.0  # mm, std of candidate positions around the true pose
    candidate_rotation_spread: float = 0.1  # rad
    seed: int = 0
    headless: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING"] = "INFO"


def sample_candidates(
    pose: Pose2D,
    count: int,
    translation_std: float,
    rotation_std: float,
    rng: np.random.Generator,
) -> list[Pose2D]:
    """Scatter candidate poses around a pose, like the particles of a pose tracker."""
    return [
        Pose2D(
            pose.translation + rng.normal(0.0, translation_std, 2),
            pose.rotation + rng.normal(0.0, rotation_std),
        )
        for _ in range(count)
    ]


def main(args: Args) -> None:
    logging.basicConfig(
        level=args.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # setup
    print(f"Initializing {args.field} field with {args.preset} config...")
    cfg = get_config(args.preset)
    dimensions = get_field_dimensions(args.field)
    field_lines = build_field_lines(dimensions)
    matcher = LineMatcher(field_lines, cfg, boundary=dimensions.boundary)
    rng = np.random.default_rng(args.seed)

    true_pose = Pose2D.from_xyt(args.x, args.y, args.rotation)
    observations = simulate_observations(
        field_lines,
        true_pose,
        camera_height=args.camera_height,
        noise_std=args.noise_std,
        rng=rng,
    )
    if not observations:
        print("Error: No field lines visible from this pose.")
        return

    candidates = sample_candidates(
        true_pose,
        args.num_candidates,
        args.candidate_spread,
        args.candidate_rotation_spread,
        rng,
    )

    result = matcher.process(observations, candidates)

    print(f"True pose: {true_pose} | Observations: {len(result.observations)}")
    if result.only_observed_one_field_line:
        print("Only one field line observed, no hypotheses.")
    for hypothesis in result.pose_hypotheses:
        error = np.linalg.norm(hypothesis.pose.translation - true_pose.translation)
        print(
            f"Hypothesis {hypothesis.pose} | "
            f"Correspondences: {hypothesis.line_correspondences.tolist()} | "
            f"Error: {error:.1f} mm"
        )
    for interval in result.pose_hypothesis_intervals:
        print(
            f"Interval {interval.start} -> {interval.end} | "
            f"Length: {interval.length:.1f} mm | "
            f"Correspondences: {interval.line_correspondences.tolist()}"
        )
    if not result.contains_matches():
        print("No candidate pose explains the observations.")

    if not args.headless:
        init_rerun()
        result.draw()
        result.draw_requested_correspondences(
            true_pose,
            cfg.pose_covariance,
            cfg.likelihood_threshold,
            cfg.measurement_covariance,
        )

    print("Done.")


def run() -> None:
    main(tyro.cli(Args))


if __name__ == "__main__":
    run()
