from __future__ import annotations

import argparse
import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any

from iac_rollup.blast_radius import DEFAULT_MAX_DEPTH, BlastRadiusAnalyzer, BlastRadiusResult
from iac_rollup.config import RollupSettings
from iac_rollup.datasets import ReferenceScanGenerator, default_rollup_config, scans_from_payload, scans_to_payload
from iac_rollup.errors import RollupError
from iac_rollup.graph import (
    CycleDetected,
    calculate_average_degree,
    calculate_density,
    find_articulation_points,
    find_cycles,
    topological_sort,
)
from iac_rollup.models import RepositoryScan, UnifiedGraph
from iac_rollup.rollup import RollupExecutionResult, RollupExecutor

logger = logging.getLogger(__name__)


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()
    if args.command is None:
        parser.print_help()
        return

    settings = RollupSettings() if args.concurrency is None else RollupSettings(concurrency=args.concurrency)
    logging.basicConfig(
        level=(args.log_level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.command == "run-test":
            run_test(
                repositories=args.repositories,
                resources=args.resources,
                shared_rate=args.shared_rate,
                seed=args.seed,
                output_dir=args.output_dir,
                input_json=args.input_json,
                config_json=args.config_json,
                blast_seeds=args.blast_seed,
                blast_direction=args.blast_direction,
                max_depth=args.max_depth,
                include_cross_repository=not args.no_cross_repository,
                include_indirect=not args.direct_only,
                settings=settings,
            )
        elif args.command == "graph-report":
            graph_report(
                repositories=args.repositories,
                resources=args.resources,
                seed=args.seed,
                output_dir=args.output_dir,
                input_json=args.input_json,
                config_json=args.config_json,
                settings=settings,
            )
    except RollupError as exc:
        logger.error("%s: %s", exc.code, exc.message)
        raise SystemExit(1) from exc


def run_test(
    *,
    repositories: int,
    resources: int,
    shared_rate: float,
    seed: int,
    output_dir: Path,
    input_json: Path | None,
    config_json: Path | None,
    blast_seeds: list[str],
    blast_direction: str,
    max_depth: int | None,
    settings: RollupSettings,
    include_cross_repository: bool = True,
    include_indirect: bool = True,
) -> None:
    output_dir.mkdir(parents=True, exist_ok=True)
    scans, dataset_path = _load_or_generate(
        input_json=input_json,
        output_dir=output_dir,
        repositories=repositories,
        resources=resources,
        shared_rate=shared_rate,
        seed=seed,
    )

    result = RollupExecutor(settings=settings).execute(scans, _rollup_config(config_json))

    graph_path = output_dir / "unified_graph.json"
    matches_path = output_dir / "matches.json"
    summary_path = output_dir / "summary.json"
    _write_json(graph_path, _graph_payload(result.graph))
    _write_json(
        matches_path,
        {
            "accepted": [asdict(match) for match in result.matches],
            "rejected": [asdict(rejected) for rejected in result.rejected_matches],
        },
    )
    summary = _build_summary(result, dataset_path=dataset_path, graph_path=graph_path)
    _write_json(summary_path, summary)

    print(f"Dataset: {dataset_path}")
    print(f"Unified graph: {graph_path}")
    print(f"Matches: {matches_path}")
    print(f"Summary: {summary_path}")

    if blast_seeds:
        blast = BlastRadiusAnalyzer(result.graph).analyze(
            blast_seeds,
            direction=blast_direction,
            max_depth=max_depth,
            include_cross_repository=include_cross_repository,
            include_indirect=include_indirect,
        )
        blast_path = output_dir / "blast_radius.json"
        _write_json(blast_path, _blast_payload(blast))
        print(f"Blast radius: {blast_path}")

    print("---")
    print(f"repositories={summary['repository_count']}")
    print(f"nodes={summary['node_count']}")
    print(f"unified_nodes={summary['unified_node_count']}")
    print(f"merged_nodes={summary['merged_node_count']}")
    print(f"accepted_matches={summary['accepted_match_count']}")
    print(f"rejected_matches={summary['rejected_match_count']}")
    print(f"cross_repository_edges={summary['cross_repository_edges']}")
    print(f"warnings={summary['warning_count']}")
    print(f"duration_ms={summary['duration_ms']}")


def graph_report(
    *,
    repositories: int,
    resources: int,
    seed: int,
    output_dir: Path,
    input_json: Path | None,
    config_json: Path | None,
    settings: RollupSettings,
) -> None:
    output_dir.mkdir(parents=True, exist_ok=True)
    scans, _ = _load_or_generate(
        input_json=input_json,
        output_dir=output_dir,
        repositories=repositories,
        resources=resources,
        shared_rate=0.3,
        seed=seed,
    )
    result = RollupExecutor(settings=settings).execute(scans, _rollup_config(config_json))
    graph = result.graph.to_directed_graph()

    order = topological_sort(graph)
    cycles = find_cycles(graph)
    degree = calculate_average_degree(graph)
    report = {
        "node_count": len(graph),
        "edge_count": len(graph.edges),
        "density": round(calculate_density(graph), 6),
        "average_degree": asdict(degree),
        "cycles": [list(cycle.nodes) for cycle in cycles],
        "topological_order": None if isinstance(order, CycleDetected) else order,
        "unordered_nodes": list(order.residual) if isinstance(order, CycleDetected) else [],
        "articulation_points": find_articulation_points(graph),
    }
    report_path = output_dir / "graph_report.json"
    _write_json(report_path, report)

    print(f"Graph report: {report_path}")
    print("---")
    print(f"nodes={report['node_count']}")
    print(f"edges={report['edge_count']}")
    print(f"cycles={len(cycles)}")
    print(f"articulation_points={len(report['articulation_points'])}")


def _load_or_generate(
    *,
    input_json: Path | None,
    output_dir: Path,
    repositories: int,
    resources: int,
    shared_rate: float,
    seed: int,
) -> tuple[list[RepositoryScan], Path]:
    if input_json is not None:
        with input_json.open("r", encoding="utf-8") as handle:
            return scans_from_payload(json.load(handle)), input_json

    scans = ReferenceScanGenerator(seed=seed).generate(
        repository_count=repositories,
        resources_per_repository=resources,
        shared_rate=shared_rate,
    )
    dataset_path = output_dir / "test_scans.json"
    _write_json(dataset_path, scans_to_payload(scans))
    return scans, dataset_path


def _rollup_config(config_json: Path | None) -> dict[str, Any]:
    if config_json is None:
        return default_rollup_config()
    with config_json.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def _build_summary(
    result: RollupExecutionResult,
    *,
    dataset_path: Path,
    graph_path: Path,
) -> dict[str, object]:
    stats = result.stats
    class_sizes = [len(node.members) for node in result.graph.merged_nodes()]
    return {
        "rollup_id": result.rollup_id,
        "repository_count": stats.repository_count,
        "node_count": stats.node_count,
        "candidate_count": stats.candidate_count,
        "comparison_count": stats.comparison_count,
        "raw_match_count": stats.raw_match_count,
        "accepted_match_count": stats.accepted_match_count,
        "rejected_match_count": stats.rejected_match_count,
        "merged_node_count": stats.merged_node_count,
        "unified_node_count": stats.unified_node_count,
        "unified_edge_count": stats.unified_edge_count,
        "cross_repository_edges": stats.cross_repository_edges,
        "warning_count": stats.warning_count,
        "avg_merged_size": round(sum(class_sizes) / len(class_sizes), 3) if class_sizes else 0.0,
        "max_merged_size": max(class_sizes) if class_sizes else 0,
        "duration_ms": stats.duration_ms,
        "matchers": [asdict(matcher_stats) for matcher_stats in stats.matchers],
        "excluded_matchers": [asdict(excluded) for excluded in result.excluded_matchers],
        "dataset_path": str(dataset_path),
        "graph_path": str(graph_path),
    }


def _graph_payload(graph: UnifiedGraph) -> dict[str, Any]:
    return {
        "nodes": [asdict(node) for node in graph.nodes.values()],
        "edges": [asdict(edge) for edge in graph.edges],
        "warnings": [{**asdict(warning), "message": warning.message} for warning in graph.warnings],
        "stats": asdict(graph.stats),
    }


def _blast_payload(result: BlastRadiusResult) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "seeds": result.seeds,
        "direction": str(result.direction),
        "max_depth": result.max_depth,
        "include_cross_repository": result.include_cross_repository,
        "include_indirect": result.include_indirect,
        "summary": asdict(result.summary),
    }
    for name, impact_set in (("forward", result.forward), ("reverse", result.reverse)):
        if impact_set is not None:
            payload[name] = [asdict(node) for node in impact_set.nodes]
    return payload


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="iac-rollup", description="Cross-repository IaC graph rollup CLI")
    parser.add_argument("--log-level", type=str, default=None)
    parser.add_argument("--concurrency", type=int, default=None)
    subparsers = parser.add_subparsers(dest="command")

    run_test_parser = subparsers.add_parser(
        "run-test",
        help="Generate or load repository scans, run the rollup, and output the unified graph + summary",
    )
    _add_input_arguments(run_test_parser)
    run_test_parser.add_argument("--shared-rate", type=float, default=0.3)
    run_test_parser.add_argument("--output-dir", type=Path, default=Path("data/cli_output"))
    run_test_parser.add_argument("--blast-seed", action="append", default=[])
    run_test_parser.add_argument("--blast-direction", choices=["forward", "reverse", "both"], default="forward")
    run_test_parser.add_argument("--max-depth", type=int, default=DEFAULT_MAX_DEPTH)
    run_test_parser.add_argument("--no-cross-repository", action="store_true")
    run_test_parser.add_argument("--direct-only", action="store_true")

    report_parser = subparsers.add_parser(
        "graph-report",
        help="Run the rollup and report cycles, topological order and articulation points",
    )
    _add_input_arguments(report_parser)
    report_parser.add_argument("--output-dir", type=Path, default=Path("data/cli_output"))

    return parser


def _add_input_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--repositories", type=int, default=3)
    parser.add_argument("--resources", type=int, default=40)
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--input-json", type=Path, default=None)
    parser.add_argument("--config-json", type=Path, default=None)


def _write_json(path: Path, payload: object) -> None:
    with path.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=2, default=str)


if __name__ == "__main__":
    main()
