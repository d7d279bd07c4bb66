"""Tests for the control risk command line."""

import json
import logging

import pytest

from controlrisk.cli.assess_risk import main


@pytest.fixture(autouse=True)
def isolated_logging(tmp_path, monkeypatch):
    """Send log files to a temporary directory and drop handlers afterwards."""
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    yield
    logger = logging.getLogger("controlrisk")
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


@pytest.fixture
def graph_file(tmp_path, chain_graph):
    nodes, edges = chain_graph
    path = tmp_path / "graph.json"
    path.write_text(json.dumps({"nodes": nodes, "edges": edges}))
    return str(path)


def run(capsys, *argv):
    main(list(argv))
    return json.loads(capsys.readouterr().out)


class TestAssessRiskCLI:
    """Test cases for controlrisk-assess sub-commands."""

    def test_posterior(self, capsys):
        """Test posterior from an industry prior."""
        result = run(
            capsys, "posterior", "--passes", "94", "--failures", "6",
            "--industry", "financial_services",
        )

        assert result["posterior"]["mean"] == pytest.approx(0.06)
        assert result["prior"]["alpha"] == 3
        assert result["evidence_strength"] == "strong"

    def test_posterior_time_series(self, capsys, tmp_path):
        """Test an evidence file adds a time series."""
        evidence = tmp_path / "evidence.json"
        evidence.write_text(json.dumps([
            {"timestamp": "2024-01-02T00:00:00", "passes": 10, "failures": 1},
            {"timestamp": "2024-01-01T00:00:00", "passes": 5, "failures": 0},
        ]))

        result = run(capsys, "posterior", "--evidence-file", str(evidence))

        assert [p["timestamp"] for p in result["time_series"]] == [
            "2024-01-01T00:00:00",
            "2024-01-02T00:00:00",
        ]
        assert result["momentum"]["velocity_history"][0]["velocity"] == 0.0
        assert result["momentum"]["trend"] in {
            "improving_fast", "improving", "stable", "worsening", "worsening_fast"
        }

    def test_posterior_momentum_scaled_by_exposure(self, capsys, tmp_path):
        """Test --exposure-factor converts the posterior history to currency."""
        evidence = tmp_path / "evidence.json"
        evidence.write_text(json.dumps([
            {"timestamp": "2024-01-01T00:00:00", "passes": 10, "failures": 0},
            {"timestamp": "2024-01-08T00:00:00", "passes": 0, "failures": 10},
        ]))

        result = run(
            capsys, "posterior", "--alpha", "1", "--beta", "1",
            "--evidence-file", str(evidence), "--exposure-factor", "1000000",
        )

        history = result["momentum"]["velocity_history"]
        assert history[0]["risk_exposure"] == pytest.approx(1_000_000 / 12)
        assert result["momentum"]["current_velocity"] > 0
        assert result["momentum"]["trend"] == "worsening_fast"

    def test_fair_with_explicit_prior(self, capsys):
        """Test FAIR with --alpha/--beta."""
        result = run(
            capsys, "fair", "--alpha", "1", "--beta", "1",
            "--tef", "2", "--loss-magnitude", "1000",
        )

        assert result["annual_loss_exposure"] == pytest.approx(1000.0)
        assert result["prior_influence"] == 1.0

    def test_cascade(self, capsys, graph_file):
        """Test cascade risk from a graph file."""
        result = run(capsys, "cascade", "--graph", graph_file)

        assert [n["cascade_risk"] for n in result["nodes"]] == pytest.approx([0.5, 0.5, 0.5])
        assert result["critical_paths"] == [["A", "B", "C"]]

    def test_what_if(self, capsys, graph_file):
        """Test what-if analysis from a graph file."""
        result = run(capsys, "what-if", "--graph", graph_file, "--control", "A")

        assert result["failed_control_name"] == "Identity provider"
        assert result["total_impact"] == pytest.approx(1.0)

    def test_correlate(self, capsys, tmp_path):
        """Test correlation, regression and hypothesis test output."""
        data = tmp_path / "data.json"
        data.write_text(json.dumps({
            "x": [1, 2, 3, 4, 5],
            "y": [2, 1, 4, 3, 5],
            "outcomes": [0, 0, 1, 1, 1],
        }))

        result = run(capsys, "correlate", "--data", str(data), "--test-name", "Maturity")

        assert result["correlation"]["pearson_r"] == pytest.approx(0.8)
        assert result["regression"]["slope"] == pytest.approx(0.8)
        assert result["hypothesis_test"]["test_name"] == "Maturity"
        assert result["hypothesis_test"]["is_significant"] is False
        low, high = result["bootstrap_r"]["confidence_interval"]
        assert -1.0 <= low <= high <= 1.0
        assert result["logistic"]["auc"] == 1.0
        assert len(result["logistic"]["predictions"]) == 5

    def test_perfect_correlation_output_is_strict_json(self, capsys, tmp_path):
        """Test r == 1 output parses without non-standard constants."""
        data = tmp_path / "data.json"
        data.write_text(json.dumps({"x": [1, 2, 3, 4], "y": [1, 2, 3, 4]}))

        main(["correlate", "--data", str(data)])
        out = capsys.readouterr().out

        def reject_constant(name):
            raise ValueError(f"non-standard JSON constant {name}")

        result = json.loads(out, parse_constant=reject_constant)
        assert result["correlation"]["pearson_r"] == 1.0
        assert result["correlation"]["t_statistic"] is None
        assert result["regression"]["status"] == "ok"

    def test_entropy(self, capsys, tmp_path):
        """Test the compliance entropy index with groups and history."""
        data = tmp_path / "states.json"
        data.write_text(json.dumps({
            "states": ["pass", "pass", "fail", "not_tested"],
            "groups": ["SOC2", "SOC2", "ISO", "ISO"],
            "history": [0.2, 0.3],
        }))

        result = run(capsys, "entropy", "--data", str(data))

        assert result["entropy"]["cei"] == pytest.approx(0.75)
        assert result["entropy"]["dominant_state"] == "pass"
        assert result["by_group"]["SOC2"]["cei"] == 0.0
        assert result["by_group"]["ISO"]["cei"] == pytest.approx(0.5)
        assert result["velocity"]["previous_cei"] == 0.3
        assert result["velocity"]["trend"] == "destabilizing"

    def test_entropy_unknown_state_exits_non_zero(self, tmp_path):
        """Test an unknown control state is reported as a failure."""
        data = tmp_path / "states.json"
        data.write_text(json.dumps(["pass", "skipped"]))

        with pytest.raises(SystemExit) as excinfo:
            main(["entropy", "--data", str(data)])
        assert excinfo.value.code == 1

    def test_simulate_is_reproducible_with_seed(self, capsys):
        """Test the seed makes simulation output repeatable."""
        argv = ("simulate", "--base-risk", "100000", "--iterations", "500", "--seed", "4")

        assert run(capsys, *argv) == run(capsys, *argv)

    def test_simulate_posterior_ale(self, capsys):
        """Test posterior ALE simulation mode."""
        result = run(
            capsys, "simulate", "--passes", "3", "--failures", "1", "--alpha", "1", "--beta", "1",
            "--tef", "3", "--loss-magnitude", "5000", "--iterations", "300", "--seed", "1",
        )

        assert result["iterations"] == 300
        assert 0 <= result["percentiles"]["p5"] <= result["percentiles"]["p95"] <= 15000

    def test_zero_iterations_rejected(self, capsys):
        """Test an explicit zero draw count fails instead of using the default."""
        with pytest.raises(SystemExit) as excinfo:
            main(["simulate", "--base-risk", "1000", "--iterations", "0"])
        assert excinfo.value.code == 1
        assert capsys.readouterr().out == ""

    def test_unknown_control_exits_non_zero(self, capsys, graph_file):
        """Test domain errors become exit status 1."""
        with pytest.raises(SystemExit) as excinfo:
            main(["what-if", "--graph", graph_file, "--control", "missing"])
        assert excinfo.value.code == 1

    def test_invalid_node_exits_non_zero(self, tmp_path):
        """Test validation errors in the graph file become exit status 1."""
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"nodes": [{"id": "a", "failure_probability": 2}], "edges": []}))

        with pytest.raises(SystemExit) as excinfo:
            main(["cascade", "--graph", str(path)])
        assert excinfo.value.code == 1

    def test_missing_file_exits_non_zero(self, tmp_path):
        """Test a missing input file is reported as a failure."""
        with pytest.raises(SystemExit) as excinfo:
            main(["cascade", "--graph", str(tmp_path / "absent.json")])
        assert excinfo.value.code == 1

    def test_half_prior_rejected(self):
        """Test --alpha without --beta fails."""
        with pytest.raises(SystemExit) as excinfo:
            main(["posterior", "--alpha", "2"])
        assert excinfo.value.code == 1

    def test_unknown_log_level_exits_non_zero(self, monkeypatch):
        """Test a misconfigured log level is reported as a configuration error."""
        monkeypatch.setenv("LOG_LEVEL", "verbose")

        with pytest.raises(SystemExit) as excinfo:
            main(["posterior", "--passes", "1"])
        assert excinfo.value.code == 1

    def test_no_arguments_prints_help(self, capsys):
        """Test running without arguments prints usage and fails."""
        with pytest.raises(SystemExit) as excinfo:
            main([])
        assert excinfo.value.code == 1
        assert "usage" in capsys.readouterr().err
