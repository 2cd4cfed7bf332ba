from __future__ import annotations

import argparse
import json
from pathlib import Path

from iac_rollup.datasets import ReferenceScanGenerator, scans_to_payload


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate synthetic multi-repository IaC scans")
    parser.add_argument("--repositories", type=int, default=5)
    parser.add_argument("--resources", type=int, default=200)
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--shared-rate", type=float, default=0.3)
    parser.add_argument("--output", type=Path, default=Path("data/reference_scans.json"))
    args = parser.parse_args()

    scans = ReferenceScanGenerator(seed=args.seed).generate(
        repository_count=args.repositories,
        resources_per_repository=args.resources,
        shared_rate=args.shared_rate,
    )

    args.output.parent.mkdir(parents=True, exist_ok=True)
    with args.output.open("w", encoding="utf-8") as handle:
        json.dump(scans_to_payload(scans), handle, indent=2)


if __name__ == "__main__":
    main()
