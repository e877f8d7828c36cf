#!/usr/bin/env python3
"""
Clustering Engine CLI

Command-line interface for running the clustering engine on local data.

Usage:
    python cli.py cluster data.npy -a kmeans -p k=3        # Cluster a .npy matrix
    python cli.py cluster data.npy -a dbscan -p epsilon=0.5 -p min_points=4
    python cli.py cluster data.npy --json                  # Full result as JSON
    python cli.py algorithms                               # List algorithms
    python cli.py validate -a agglomerative -p linkage=ward
    python cli.py config                                   # Show effective settings
"""

import sys
import json
import argparse
from typing import Any, Dict, List, Optional

import numpy as np

from cluster_core.config.settings_loader import ConfigManager
from cluster_core.core.clustering_engine import ClusteringEngine
from cluster_core.utils.advanced_logging import configure_logging
from cluster_core.utils.error_handling import ClusteringEngineError


def parse_params(pairs: List[str]) -> Dict[str, Any]:
    """
    Parse ``key=value`` pairs. Values are read as JSON when possible
    (numbers, booleans, objects), otherwise kept as strings.
    """
    params: Dict[str, Any] = {}
    for pair in pairs:
        if "=" not in pair:
            raise ValueError(f"Invalid parameter '{pair}', expected key=value")
        key, raw = pair.split("=", 1)
        try:
            value = json.loads(raw)
        except json.JSONDecodeError:
            value = raw
        params[key.strip()] = value
    return params


def load_data(path: str) -> np.ndarray:
    """Load a 2-D matrix from a .npy file."""
    if not path.endswith(".npy"):
        raise ValueError(f"Unsupported input format: {path} (expected .npy)")
    return np.load(path, allow_pickle=False)


def print_json(data: dict, indent: int = 2):
    """Pretty print JSON."""
    print(json.dumps(data, indent=indent, default=str))


def print_result(algorithm: str, result) -> None:
    """Print a clustering summary."""
    print(f"✅ {algorithm} finished")
    print(f"   Examples: {len(result.labels)}")
    print(f"   Clusters: {result.n_clusters}")
    print(f"   Outliers: {result.outlier_count}")

    sizes: Dict[int, int] = {}
    for label in result.labels:
        sizes[int(label)] = sizes.get(int(label), 0) + 1
    print("\nCluster sizes:")
    for label in sorted(sizes):
        print(f"  {label}: {sizes[label]}")

    if result.quality_metrics:
        print("\nQuality metrics:")
        for name, value in result.quality_metrics.items():
            if isinstance(value, float):
                print(f"  {name}: {value:.4f}")
            else:
                print(f"  {name}: {value}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Clustering Engine CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "command",
        help="Command to execute",
        choices=["cluster", "algorithms", "validate", "config"],
    )

    parser.add_argument("args", nargs="*", help="Command arguments")
    parser.add_argument("--algorithm", "-a", default=None, help="Algorithm name (see 'algorithms')")
    parser.add_argument(
        "--param", "-p", action="append", default=[], metavar="KEY=VALUE",
        help="Algorithm parameter, repeatable",
    )
    parser.add_argument("--config", "-c", default=None, help="Settings YAML file")
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    parser.add_argument("--json", action="store_true", help="Print the full result as JSON")
    parser.add_argument("--output", "-o", default=None, help="Write the result JSON to a file")
    parser.add_argument("--log-level", default=None, help="Override the configured log level")
    parser.add_argument("--log-format", choices=["json", "console"], default=None, help="Log format")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = ConfigManager.load_config(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"❌ Failed to load settings: {e}", file=sys.stderr)
        return 1

    configure_logging(
        log_level=args.log_level or settings.logging.level,
        log_format=args.log_format or settings.logging.format,
        log_file=settings.logging.file.path if settings.logging.file.enabled else None,
        service_name=settings.service.name,
        max_size_mb=settings.logging.file.max_size_mb,
        backup_count=settings.logging.file.backup_count,
    )

    engine = ClusteringEngine(settings)

    # Execute command
    if args.command == "algorithms":
        print("📋 Available algorithms\n")
        for name, description in engine.available_algorithms().items():
            print(f"  {name:<15} {description}")
        return 0

    if args.command == "config":
        print_json(settings.model_dump())
        return 0

    try:
        params = parse_params(args.param)
    except ValueError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1

    algorithm = (args.algorithm or settings.clustering.default_algorithm).lower()

    if args.command == "validate":
        errors = engine.validate_clustering_config(algorithm, params)
        if errors:
            print(f"❌ Invalid configuration for {algorithm}:", file=sys.stderr)
            for field, message in errors.items():
                print(f"   {field}: {message}", file=sys.stderr)
            return 1
        print(f"✅ Configuration for {algorithm} is valid")
        return 0

    # cluster
    if not args.args:
        print("❌ Input file required", file=sys.stderr)
        return 1

    try:
        data = load_data(args.args[0])
    except (OSError, ValueError) as e:
        print(f"❌ Failed to read input: {e}", file=sys.stderr)
        return 1

    try:
        result = engine.cluster(data, algorithm, params, random_seed=args.seed)
    except ClusteringEngineError as e:
        print(f"❌ {e.error_code}: {e.message}", file=sys.stderr)
        return 1

    payload = {"algorithm": algorithm, **result.to_dict()}
    if args.output:
        with open(args.output, "w") as f:
            json.dump(payload, f, indent=2, default=str)

    if args.json:
        print_json(payload)
    else:
        print_result(algorithm, result)

    return 0


if __name__ == "__main__":
    sys.exit(main())
