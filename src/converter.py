"""
Root driver: converts a legacy network to VPC and upgrades its GKE clusters.
"""

import logging
import time
from datetime import datetime
from typing import List, Optional

import runner
from cancellation import RunContext
from clients import Clients, build_clients
from clusters import ClusterOptions
from config import MigrationConfig
from errors import ApiError, NetworkNotFoundError, wrap
from networks import NetworkMigrator
from operations import OperationHandler
from runner import Migrator

logger = logging.getLogger(__name__)

# Exactly one network is selected per run.
CONCURRENT_NETWORKS = 1


class LegacyNetworkConverter:
    """Runs Complete, Validate and Migrate over the network/cluster/node pool tree."""

    def __init__(
        self,
        config: MigrationConfig,
        clients: Optional[Clients] = None,
        handler: Optional[OperationHandler] = None,
    ):
        """
        Initialize the converter.

        Args:
            config: Run configuration
            clients: Compute and Container clients; built from credentials if None
            handler: Operation poller; built from the polling settings if None
        """
        self.config = config
        self.clients = clients if clients is not None else build_clients(
            container_base_url=config.container_base_url
        )
        self.handler = handler or OperationHandler(
            interval=config.polling_interval, deadline=config.polling_deadline
        )
        self.options = ClusterOptions(
            concurrent_node_pools=config.concurrent_node_pools,
            desired_control_plane_version=config.desired_control_plane_version,
            desired_node_version=config.desired_node_version,
            in_place_control_plane_upgrade=config.in_place_control_plane,
            wait_for_node_upgrade=config.wait_for_node_upgrade,
        )
        self.migrators: List[Migrator] = []

        self.run_start_time: Optional[float] = None
        self.run_end_time: Optional[float] = None

    def complete(self, ctx: RunContext) -> None:
        """Find the selected network and build the migrator tree root."""
        project = self.config.project_id
        logger.info(f"Fetching network {self.config.network} for project {project!r}")
        try:
            networks = self.clients.compute.list_networks(project)
        except ApiError as e:
            raise wrap(e, "error listing networks")

        self.migrators = [
            NetworkMigrator(
                project_id=project,
                network=n,
                handler=self.handler,
                clients=self.clients,
                concurrent_clusters=self.config.concurrent_clusters,
                options=self.options,
            )
            for n in networks
            if n.name == self.config.network
        ]
        if not self.migrators:
            raise NetworkNotFoundError(f"unable to find network {self.config.network}")

    def run(self, ctx: RunContext) -> None:
        """
        Convert the selected network.

        Raises:
            MigrationError: if any phase fails (aggregating sibling failures)
        """
        self.run_start_time = time.time()
        self._print_banner()
        succeeded = False
        try:
            self.complete(ctx)

            logger.info("Initialize objects for conversion.")
            runner.complete(ctx, CONCURRENT_NETWORKS, self.migrators)

            logger.info("Validate resources for conversion.")
            runner.validate(ctx, CONCURRENT_NETWORKS, self.migrators)

            if self.config.validate_only:
                logger.info("--validate-only is set; skipping conversion.")
            else:
                logger.info("Initiate resource conversion.")
                runner.migrate(ctx, CONCURRENT_NETWORKS, self.migrators)
            succeeded = True
        finally:
            self.run_end_time = time.time()
            self._print_report(succeeded)

    def _print_banner(self) -> None:
        cfg = self.config
        control_plane = (
            "in-place" if cfg.in_place_control_plane else cfg.desired_control_plane_version
        )
        logger.info("=" * 70)
        logger.info("GKE Legacy Network to VPC Conversion")
        logger.info("=" * 70)
        logger.info(f"Project: {cfg.project_id}")
        logger.info(f"Network: {cfg.network}")
        logger.info(f"Control plane version: {control_plane}")
        logger.info(f"Node version: {cfg.desired_node_version}")
        logger.info(f"Concurrent clusters: {cfg.concurrent_clusters}")
        logger.info(f"Concurrent node pools: {cfg.concurrent_node_pools}")
        logger.info(f"Polling interval: {cfg.polling_interval}s")
        logger.info(f"Polling deadline: {cfg.polling_deadline}s")
        logger.info(f"Wait for node upgrade: {cfg.wait_for_node_upgrade}")
        logger.info(f"Validate only: {cfg.validate_only}")
        logger.info(f"Start time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        logger.info("=" * 70)

    def _format_duration(self, seconds: float) -> str:
        """Format duration in human-readable format."""
        if seconds < 60:
            return f"{seconds:.1f}s"
        elif seconds < 3600:
            mins = int(seconds // 60)
            secs = seconds % 60
            return f"{mins}m {secs:.0f}s"
        else:
            hours = int(seconds // 3600)
            mins = int((seconds % 3600) // 60)
            secs = seconds % 60
            return f"{hours}h {mins}m {secs:.0f}s"

    def _print_report(self, succeeded: bool) -> None:
        total_duration = self.run_end_time - self.run_start_time
        if not succeeded:
            outcome = "FAILED"
        elif self.config.validate_only:
            outcome = "VALIDATED"
        else:
            outcome = "CONVERTED"

        logger.info("")
        logger.info("=" * 70)
        logger.info(f"CONVERSION REPORT: {outcome}")
        logger.info("-" * 40)
        logger.info(
            f"Start time:      {datetime.fromtimestamp(self.run_start_time).strftime('%Y-%m-%d %H:%M:%S')}"
        )
        logger.info(
            f"End time:        {datetime.fromtimestamp(self.run_end_time).strftime('%Y-%m-%d %H:%M:%S')}"
        )
        logger.info(f"Total duration:  {self._format_duration(total_duration)}")
        logger.info("=" * 70)
