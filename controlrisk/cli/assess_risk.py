#!/usr/bin/env python3
"""Assess control risk from the command line.

Sub-commands:
    posterior   Beta-Bernoulli posterior breach probability from pass/fail counts,
                with risk momentum when an evidence history is given
    fair        Bayesian FAIR annualized loss exposure
    cascade     Cascade risk over a control dependency graph (JSON file)
    what-if     Forced failure of one control in a dependency graph
    correlate   Correlation, regression and significance for paired data (JSON file)
    entropy     Compliance entropy index over control states (JSON file)
    simulate    Monte Carlo loss distribution

Results are printed as indented JSON.
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from controlrisk.analysis.statistics import (
    DataPoint,
    bootstrap_ci,
    calculate_correlation,
    format_hypothesis_test,
    linear_regression,
    logistic_regression,
)
from controlrisk.analysis.trends import (
    calculate_compliance_entropy,
    calculate_conditional_entropy,
    calculate_entropy_velocity,
    calculate_risk_momentum,
    snapshots_from_posterior_series,
)
from controlrisk.core.beta_bernoulli import (
    Prior,
    calculate_posterior,
    classify_evidence_strength,
    generate_posterior_time_series,
    get_industry_prior,
)
from controlrisk.core.dependency_graph import (
    calculate_cascade_risk,
    simulate_control_failure,
)
from controlrisk.core.evidence import EvidencePoint
from controlrisk.core.fair import bayesian_fair
from controlrisk.core.random_source import make_rng
from controlrisk.simulation.monte_carlo import (
    run_loss_simulation,
    simulate_posterior_ale,
)
from controlrisk.utils.config import AppConfig, initialize_config
from controlrisk.utils.error_handling import (
    ConfigurationError,
    ControlRiskError,
    DataValidationError,
    error_handler,
)
from controlrisk.utils.logging_config import (
    configure_logging,
    current_log_file,
    get_logger,
)

logger = get_logger(__name__)


def load_json(path: str) -> Any:
    """Read a JSON input file."""
    try:
        with open(path) as f:
            return json.load(f)
    except FileNotFoundError as e:
        raise DataValidationError(f"Input file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise DataValidationError(f"Invalid JSON in {path}: {e}") from e


def resolve_prior(args: argparse.Namespace, cfg: AppConfig) -> Prior:
    """Explicit --alpha/--beta win over the industry benchmark."""
    if args.alpha is not None or args.beta is not None:
        if args.alpha is None or args.beta is None:
            raise DataValidationError("--alpha and --beta must be given together")
        return Prior(args.alpha, args.beta, "command line")
    return get_industry_prior(args.industry or cfg.default_industry)


def load_graph(path: str) -> tuple[list[Any], list[Any]]:
    graph = load_json(path)
    if not isinstance(graph, dict) or "nodes" not in graph:
        raise DataValidationError(f"{path} must contain an object with 'nodes' and 'edges'")
    return graph["nodes"], graph.get("edges", [])


@error_handler(raise_on_error=True)
def cmd_posterior(args: argparse.Namespace, cfg: AppConfig) -> dict[str, Any]:
    prior = resolve_prior(args, cfg)
    posterior = calculate_posterior(prior, args.passes, args.failures)

    result = {
        "prior": {"alpha": prior.alpha, "beta": prior.beta, "source": prior.source},
        "posterior": posterior.to_dict(),
        "evidence_strength": classify_evidence_strength(posterior.total_evidence).value,
    }

    if args.evidence_file:
        points = [EvidencePoint.model_validate(p) for p in load_json(args.evidence_file)]
        series = generate_posterior_time_series(prior, points)
        result["time_series"] = [point.to_dict() for point in series]
        result["momentum"] = calculate_risk_momentum(
            snapshots_from_posterior_series(series, args.exposure_factor)
        ).to_dict()

    return result


@error_handler(raise_on_error=True)
def cmd_fair(args: argparse.Namespace, cfg: AppConfig) -> dict[str, Any]:
    prior = resolve_prior(args, cfg)
    return bayesian_fair(
        prior, args.passes, args.failures, args.tef, args.loss_magnitude
    ).to_dict()


@error_handler(raise_on_error=True)
def cmd_cascade(args: argparse.Namespace, cfg: AppConfig) -> dict[str, Any]:
    nodes, edges = load_graph(args.graph)
    return calculate_cascade_risk(nodes, edges).to_dict()


@error_handler(raise_on_error=True)
def cmd_what_if(args: argparse.Namespace, cfg: AppConfig) -> dict[str, Any]:
    nodes, edges = load_graph(args.graph)
    threshold = (
        args.threshold if args.threshold is not None else cfg.whatif_noise_threshold
    )
    return simulate_control_failure(
        nodes, edges, args.control, noise_threshold=threshold
    ).to_dict()


@error_handler(raise_on_error=True)
def cmd_correlate(args: argparse.Namespace, cfg: AppConfig) -> dict[str, Any]:
    data = load_json(args.data)
    if not isinstance(data, dict) or "x" not in data or "y" not in data:
        raise DataValidationError(f"{args.data} must contain an object with 'x' and 'y'")

    x = [float(v) for v in data["x"]]
    y = [float(v) for v in data["y"]]
    correlation = calculate_correlation(x, y)

    result = {
        "correlation": correlation.to_dict(),
        "regression": linear_regression(
            [DataPoint(xi, yi) for xi, yi in zip(x, y)]
        ).to_dict(),
        "hypothesis_test": format_hypothesis_test(
            args.test_name, correlation, args.significance
        ).to_dict(),
    }

    if correlation.is_available:
        # Resample observation indices so x and y stay paired
        result["bootstrap_r"] = bootstrap_ci(
            list(range(len(x))),
            lambda idx: calculate_correlation(
                [x[int(i)] for i in idx], [y[int(i)] for i in idx]
            ).pearson_r,
            iterations=cfg.bootstrap_iterations,
            confidence_level=cfg.bootstrap_confidence_level,
            rng=make_rng(cfg.random_seed),
        ).to_dict()

    if "outcomes" in data:
        result["logistic"] = logistic_regression(
            [[xi] for xi in x],
            [bool(o) for o in data["outcomes"]],
            learning_rate=cfg.logistic_learning_rate,
            iterations=cfg.logistic_iterations,
        ).to_dict()

    return result


@error_handler(raise_on_error=True)
def cmd_entropy(args: argparse.Namespace, cfg: AppConfig) -> dict[str, Any]:
    data = load_json(args.data)
    if isinstance(data, list):
        data = {"states": data}
    if not isinstance(data, dict) or "states" not in data:
        raise DataValidationError(f"{args.data} must contain a 'states' list")

    try:
        result = {"entropy": calculate_compliance_entropy(data["states"]).to_dict()}
        if "groups" in data:
            result["by_group"] = {
                label: entropy.to_dict()
                for label, entropy in calculate_conditional_entropy(
                    data["states"], data["groups"]
                ).items()
            }
    except ValueError as e:
        raise DataValidationError(f"Invalid control state in {args.data}: {e}") from e

    if "history" in data:
        history = [float(v) for v in data["history"]] + [result["entropy"]["cei"]]
        result["velocity"] = calculate_entropy_velocity(history).to_dict()

    return result


@error_handler(raise_on_error=True)
def cmd_simulate(args: argparse.Namespace, cfg: AppConfig) -> dict[str, Any]:
    seed = args.seed if args.seed is not None else cfg.random_seed
    rng = make_rng(seed)
    iterations = (
        args.iterations if args.iterations is not None else cfg.monte_carlo_iterations
    )

    if args.base_risk is not None:
        volatility = (
            args.volatility if args.volatility is not None else cfg.monte_carlo_volatility
        )
        result = run_loss_simulation(args.base_risk, volatility, iterations, rng=rng)
    else:
        if args.tef is None or args.loss_magnitude is None:
            raise DataValidationError(
                "simulate needs --base-risk, or --tef and --loss-magnitude"
            )
        result = simulate_posterior_ale(
            resolve_prior(args, cfg),
            args.passes,
            args.failures,
            args.tef,
            args.loss_magnitude,
            iterations=iterations,
            rng=rng,
            max_attempts=cfg.max_rejection_attempts,
        )

    return result.to_dict()


def add_prior_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--passes", type=int, default=0, help="Passed control tests")
    parser.add_argument("--failures", type=int, default=0, help="Failed control tests")
    parser.add_argument(
        "--industry", type=str, help="Industry benchmark prior (default from config)"
    )
    parser.add_argument("--alpha", type=float, help="Explicit prior alpha")
    parser.add_argument("--beta", type=float, help="Explicit prior beta")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="controlrisk-assess",
        description="Quantify security control risk",
    )
    parser.add_argument("--config", type=Path, help="YAML configuration file")
    subparsers = parser.add_subparsers(dest="command", required=True)

    posterior = subparsers.add_parser("posterior", help="Posterior breach probability")
    add_prior_arguments(posterior)
    posterior.add_argument(
        "--evidence-file",
        type=str,
        help="JSON list of {timestamp, passes, failures} for a posterior time series",
    )
    posterior.add_argument(
        "--exposure-factor",
        type=float,
        default=1.0,
        help="Scale posterior means for risk momentum (threat frequency x loss magnitude)",
    )
    posterior.set_defaults(handler=cmd_posterior)

    fair = subparsers.add_parser("fair", help="Bayesian FAIR loss exposure")
    add_prior_arguments(fair)
    fair.add_argument("--tef", type=float, required=True, help="Threat events per year")
    fair.add_argument(
        "--loss-magnitude", type=float, required=True, help="Loss per breach"
    )
    fair.set_defaults(handler=cmd_fair)

    cascade = subparsers.add_parser("cascade", help="Cascade risk propagation")
    cascade.add_argument(
        "--graph", type=str, required=True, help="JSON file with nodes and edges"
    )
    cascade.set_defaults(handler=cmd_cascade)

    what_if = subparsers.add_parser("what-if", help="Simulate one control failing")
    what_if.add_argument(
        "--graph", type=str, required=True, help="JSON file with nodes and edges"
    )
    what_if.add_argument("--control", type=str, required=True, help="Failed control id")
    what_if.add_argument(
        "--threshold", type=float, help="Minimum risk increase to report"
    )
    what_if.set_defaults(handler=cmd_what_if)

    correlate = subparsers.add_parser("correlate", help="Correlate paired observations")
    correlate.add_argument(
        "--data", type=str, required=True, help="JSON file with 'x' and 'y' arrays"
    )
    correlate.add_argument(
        "--test-name", type=str, default="Pearson correlation", help="Report label"
    )
    correlate.add_argument(
        "--significance", type=float, default=0.05, help="Significance level"
    )
    correlate.set_defaults(handler=cmd_correlate)

    entropy = subparsers.add_parser("entropy", help="Compliance entropy of control states")
    entropy.add_argument(
        "--data",
        type=str,
        required=True,
        help="JSON list of states, or an object with 'states', 'groups' and 'history'",
    )
    entropy.set_defaults(handler=cmd_entropy)

    simulate = subparsers.add_parser("simulate", help="Monte Carlo loss distribution")
    add_prior_arguments(simulate)
    simulate.add_argument("--base-risk", type=float, help="Base annual loss to perturb")
    simulate.add_argument("--volatility", type=float, help="Relative volatility")
    simulate.add_argument("--tef", type=float, help="Threat events per year")
    simulate.add_argument("--loss-magnitude", type=float, help="Loss per breach")
    simulate.add_argument("--iterations", type=int, help="Number of draws")
    simulate.add_argument("--seed", type=int, help="Random seed")
    simulate.set_defaults(handler=cmd_simulate)

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for control risk assessment."""
    parser = build_parser()
    argv = sys.argv[1:] if argv is None else argv

    # Enforce help message if no arguments provided
    if not argv:
        parser.print_help(sys.stderr)
        sys.exit(1)

    args = parser.parse_args(argv)
    try:
        cfg = initialize_config(args.config)
        configure_logging(cfg)
    except (ConfigurationError, ValidationError) as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    logger.info(f"Running '{args.command}' assessment, log file {current_log_file()}")
    try:
        result = args.handler(args, cfg)
    except (ControlRiskError, ValidationError) as e:
        logger.error(f"Assessment failed: {e}")
        sys.exit(1)

    print(json.dumps(result, indent=4))
    logger.info("Assessment complete")


if __name__ == "__main__":
    main()
