"""
Run a particle placement from a YAML preset and write the positions as JSON.

Output layout:
    {"metadata": ..., "box": {...}, "length_conversion_factor": ...,
     "particles": [{"index", "molecule_index", "molecule", "particle",
                    "position", "in_bulk"}, ...]}
"""

from __future__ import annotations

import argparse
import json
import logging
import pathlib
import sys
from dataclasses import replace
from typing import Any, Dict

from molplace.config_loader import load_placement_from_yaml
from molplace.task import PlacementResult
from molplace.utils import setup_logging


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Place particles for a molecular composition.")
    parser.add_argument(
        "--config",
        type=pathlib.Path,
        required=True,
        help="Path to a placement preset (YAML).",
    )
    parser.add_argument(
        "--out",
        type=pathlib.Path,
        default=pathlib.Path("output/positions.json"),
        help="Destination for the placed positions.",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Override the random seed from the preset.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Run the placement and print a summary without writing the output file.",
    )
    return parser.parse_args()


def result_to_dict(result: PlacementResult, metadata: Dict[str, Any]) -> Dict[str, Any]:
    box = result.box_size_info
    return {
        "metadata": metadata,
        "box": {
            "x": [box.x_min, box.x_max],
            "y": [box.y_min, box.y_max],
            "z": [box.z_min, box.z_max],
        },
        "length_conversion_factor": result.length_conversion_factor,
        "particles": [
            {
                "index": position.particle_index,
                "molecule_index": position.molecule_index,
                "molecule": position.kind.molecule,
                "particle": position.kind.particle,
                "position": [position.x, position.y, position.z],
                "in_bulk": position.in_bulk,
            }
            for position in result.positions
        ],
    }


def summarize(result: PlacementResult) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for position in result.positions:
        counts[position.kind.molecule] = counts.get(position.kind.molecule, 0) + 1
    return counts


def main() -> int:
    args = parse_args()

    bundle = load_placement_from_yaml(args.config)
    setup_logging(bundle.logging_config)
    if args.seed is not None:
        bundle.settings = replace(bundle.settings, seed=args.seed)

    last_reported = {"value": -1}

    def report(percent: int) -> None:
        if percent // 10 != last_reported["value"] // 10:
            logging.info(f"Placement progress: {percent}%")
        last_reported["value"] = percent

    task = bundle.create_task(on_progress=report)
    if not task.run():
        logging.error(f"Placement finished in state {task.state.value}.")
        return 1

    result = task.result
    assert result is not None
    if args.dry_run:
        print(json.dumps(summarize(result), indent=2))  # noqa: T201 (informational)
        return 0

    args.out.parent.mkdir(parents=True, exist_ok=True)
    with args.out.open("w", encoding="utf-8") as handle:
        json.dump(result_to_dict(result, bundle.metadata), handle, indent=2)
        handle.write("\n")
    logging.info(f"Wrote {len(result)} positions to {args.out}.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
