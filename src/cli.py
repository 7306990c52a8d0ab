"""Console entry point for the GKE legacy network converter CLI."""

from __future__ import annotations

import argparse
import logging
import signal
from typing import List

from google.auth.exceptions import DefaultCredentialsError, GoogleAuthError

from cancellation import RunContext
from config import MigrationConfig
from converter import LegacyNetworkConverter
from errors import ApiError, ConfigError, MigrationError
from log_utils import setup_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build and return the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="gkeconvert",
        description=(
            "Convert a GCE legacy network to a VPC network (by switching the network "
            "to custom subnet mode), then upgrade the GKE clusters on it so they are "
            "compatible with a VPC network."
        ),
    )

    required = parser.add_argument_group("required arguments")
    required.add_argument("-p", "--project", required=True, help="GCP project ID")
    required.add_argument(
        "-n", "--network", required=True, help="GCE legacy network to process"
    )
    required.add_argument(
        "--node-version",
        required=True,
        help=(
            "Desired GKE version for all cluster nodes: a version, a version prefix "
            "(e.g. 1.20), 'latest' or '-' (the control plane version). Must be newer "
            "than the node pool versions on the network, as node pools cannot be "
            "upgraded in-place."
        ),
    )

    versions = parser.add_argument_group("control plane version")
    versions.add_argument(
        "--control-plane-version",
        help=(
            "Desired GKE version for all cluster control planes: a version, a version "
            "prefix, 'latest' or '-' (the default version)."
        ),
    )
    versions.add_argument(
        "--in-place-control-plane",
        action="store_true",
        help="Perform an in-place control plane upgrade for all clusters.",
    )

    concurrency = parser.add_argument_group("concurrency")
    concurrency.add_argument(
        "-C",
        "--concurrent-clusters",
        type=int,
        default=1,
        metavar="N",
        help="Number of clusters per network to upgrade concurrently (default: 1).",
    )
    concurrency.add_argument(
        "--concurrent-node-pools",
        type=int,
        default=1,
        metavar="N",
        help="Number of node pools per cluster to upgrade concurrently (default: 1).",
    )

    polling = parser.add_argument_group("polling")
    polling.add_argument(
        "--polling-interval",
        type=int,
        default=15,
        metavar="SECONDS",
        help="Period between polling attempts (default: 15, minimum: 10).",
    )
    polling.add_argument(
        "--polling-deadline",
        type=int,
        default=24 * 60 * 60,
        metavar="SECONDS",
        help=(
            "Deadline for a long running operation to complete, e.g. a node pool "
            "upgrade (default: 86400, minimum: 300)."
        ),
    )

    mode = parser.add_argument_group("operation mode")
    mode.add_argument(
        "--validate-only",
        action=argparse.BooleanOptionalAction,
        default=True,
        help=(
            "Only run validation on the network and cluster resources; do not perform "
            "the conversion (default: on; pass --no-validate-only to convert)."
        ),
    )
    mode.add_argument(
        "--wait-for-node-upgrade",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Wait for each node pool upgrade to finish and confirm it (default: on).",
    )

    logging_group = parser.add_argument_group("logging and output")
    logging_group.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    logging_group.add_argument("--log-file", help="Also write logs to this file.")

    # Custom container API endpoint, for testing.
    parser.add_argument("--container-base-url", help=argparse.SUPPRESS)
    return parser


def install_signal_handlers(ctx: RunContext) -> None:
    """Cancel the run when the user hits ctrl-c or the process is terminated."""

    def _handler(signum, frame):
        logger.warning(
            f"Received signal {signum}; cancelling. "
            "Operations already started continue server-side."
        )
        ctx.cancel()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


def main(argv: List[str] | None = None) -> int:
    """CLI main for console_scripts entry point."""
    parser = build_parser()
    args = parser.parse_args(args=argv)

    setup_logging(verbose=args.verbose, log_file=args.log_file)

    config = MigrationConfig.from_args(args)
    try:
        config.validate()
    except ConfigError as e:
        parser.error(str(e))

    ctx = RunContext()
    install_signal_handlers(ctx)

    try:
        converter = LegacyNetworkConverter(config)
        converter.run(ctx)
    except DefaultCredentialsError as e:
        logger.error(f"Unable to obtain credentials: {e}")
        return 1
    except GoogleAuthError as e:
        logger.error(f"Authentication failed: {e}")
        return 1
    except (MigrationError, ApiError) as e:
        logger.error(f"Conversion failed: {e}")
        return 1
    return 0
