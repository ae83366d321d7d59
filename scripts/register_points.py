"""Register a moving point file onto a fixed point file."""

from __future__ import annotations

import argparse
from pathlib import Path

import numpy as np
from loguru import logger

from cpdreg.config import AppConfig, load_config
from cpdreg.runner import Runner
from cpdreg.transform import AffineResult, RigidResult
from cpdreg.utils.log import configure_logging
from cpdreg.utils.matrix_io import matrix_from_path, save_matrix


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Coherent point drift registration of two text files")
    parser.add_argument("fixed", type=Path, help="Whitespace-delimited file of fixed points")
    parser.add_argument("moving", type=Path, help="Whitespace-delimited file of moving points")
    parser.add_argument("--config", type=Path, help="Path to registration YAML configuration")
    parser.add_argument("--transform", choices=["rigid", "affine", "nonrigid"], help="Transform model")
    parser.add_argument("--outfile", type=Path, help="File to write the aligned points to")
    parser.add_argument("--sigma2", type=float, help="Initial sigma2 (0 computes a default)")
    parser.add_argument("--comparer", help="Probability engine name, e.g. direct or kdtree")
    parser.add_argument("--correspondence", action="store_true", help="Report hard correspondences")
    return parser.parse_args()


def build_config(args: argparse.Namespace) -> AppConfig:
    cfg = load_config(args.config) if args.config else AppConfig()
    raw = cfg.model_dump(by_alias=True)
    registration = raw["registration"]
    if args.transform:
        registration["transform"]["kind"] = args.transform
    if args.sigma2 is not None:
        registration["sigma2"] = args.sigma2
    if args.comparer:
        registration["comparer"]["name"] = args.comparer
    if args.correspondence:
        registration["correspondence"] = True
    return AppConfig.model_validate(raw)


def main() -> None:
    args = parse_args()
    cfg = build_config(args)
    configure_logging(cfg.logging)

    fixed = matrix_from_path(args.fixed)
    moving = matrix_from_path(args.moving)
    runner = Runner.from_config(cfg.registration)
    result = runner.run(fixed, moving)

    print(f"iterations: {result.iterations}")
    print(f"sigma2: {result.sigma2}")
    print(f"runtime: {result.runtime:.3f}s")
    if isinstance(result, (RigidResult, AffineResult)):
        print("transform:")
        print(result.matrix())
    print(f"Average translation: {np.mean(result.points - moving, axis=0)}")
    if result.correspondence is not None:
        print(f"correspondence: {result.correspondence}")

    if args.outfile:
        save_matrix(args.outfile, result.points)
        logger.info(f"Wrote aligned points to {args.outfile}")


if __name__ == "__main__":
    main()
