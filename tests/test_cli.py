import json
import sys
from pathlib import Path

import pytest

from iac_rollup import cli
from iac_rollup.config import RollupSettings
from iac_rollup.datasets import ReferenceScanGenerator, scans_to_payload


def _run_test(output_dir: Path, **overrides) -> None:
    options = {
        "repositories": 2,
        "resources": 12,
        "shared_rate": 0.5,
        "seed": 3,
        "output_dir": output_dir,
        "input_json": None,
        "config_json": None,
        "blast_seeds": [],
        "blast_direction": "forward",
        "max_depth": None,
        "settings": RollupSettings(concurrency=1),
    }
    options.update(overrides)
    cli.run_test(**options)


def test_run_test_writes_graph_matches_and_summary(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    _run_test(tmp_path)

    for name in ("test_scans.json", "unified_graph.json", "matches.json", "summary.json"):
        assert (tmp_path / name).exists()
    summary = json.loads((tmp_path / "summary.json").read_text(encoding="utf-8"))
    assert summary["repository_count"] == 2
    assert summary["node_count"] == 24
    assert summary["unified_node_count"] <= 24

    output = capsys.readouterr().out
    assert "---" in output
    assert "nodes=24" in output
    assert not (tmp_path / "blast_radius.json").exists()


def test_run_test_reuses_scans_and_reports_blast_radius(tmp_path: Path) -> None:
    _run_test(tmp_path)
    graph = json.loads((tmp_path / "unified_graph.json").read_text(encoding="utf-8"))
    seed = graph["nodes"][0]["merged_id"]

    rerun_dir = tmp_path / "rerun"
    _run_test(
        rerun_dir,
        input_json=tmp_path / "test_scans.json",
        blast_seeds=[seed],
        blast_direction="both",
        max_depth=2,
    )

    assert not (rerun_dir / "test_scans.json").exists()
    blast = json.loads((rerun_dir / "blast_radius.json").read_text(encoding="utf-8"))
    assert blast["seeds"] == [seed]
    assert blast["direction"] == "both"
    assert blast["include_cross_repository"] is True
    assert set(blast) >= {"forward", "reverse", "summary"}
    assert all(node["depth"] <= 2 for node in blast["forward"] + blast["reverse"])


def test_graph_report(tmp_path: Path) -> None:
    cli.graph_report(
        repositories=2,
        resources=12,
        seed=3,
        output_dir=tmp_path,
        input_json=None,
        config_json=None,
        settings=RollupSettings(concurrency=1),
    )

    report = json.loads((tmp_path / "graph_report.json").read_text(encoding="utf-8"))
    assert report["node_count"] > 0
    if report["topological_order"] is None:
        assert report["cycles"]
        assert report["unordered_nodes"]
    else:
        assert len(report["topological_order"]) == report["node_count"]
    assert isinstance(report["articulation_points"], list)


def test_rollup_errors_exit_with_status_one(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    scans = ReferenceScanGenerator(seed=1).generate(repository_count=1, resources_per_repository=5)
    input_json = tmp_path / "one_repo.json"
    input_json.write_text(json.dumps(scans_to_payload(scans)), encoding="utf-8")
    monkeypatch.setattr(
        sys,
        "argv",
        ["iac-rollup", "run-test", "--input-json", str(input_json), "--output-dir", str(tmp_path / "out")],
    )

    with pytest.raises(SystemExit) as exc_info:
        cli.main()

    assert exc_info.value.code == 1
