"""
Network migrator: switches a legacy network to custom mode, then upgrades clusters.
"""

import logging
from typing import Callable, List, Optional

import runner
from cancellation import RunContext
from clients import Clients
from clusters import ClusterMigrator, ClusterOptions
from errors import ApiError, ConversionNotConfirmedError, MigrationError, wrap
from models import Cluster, Network
from operations import ComputeOperation, OperationHandler, in_flight_operation_id
from paths import ANY_LOCATION, location_path, network_path
from runner import Migrator

logger = logging.getLogger(__name__)


class NetworkMigrator(Migrator):
    """Converts one legacy network and every cluster attached to it."""

    def __init__(
        self,
        project_id: str,
        network: Network,
        handler: OperationHandler,
        clients: Clients,
        concurrent_clusters: int,
        options: ClusterOptions,
        cluster_factory: Optional[Callable[[Cluster], Migrator]] = None,
    ):
        self.project_id = project_id
        self.network = network
        self.handler = handler
        self.clients = clients
        self.concurrent_clusters = concurrent_clusters
        self.options = options
        self.cluster_factory = cluster_factory or self._new_cluster_migrator

        # Populated during complete.
        self.children: List[Migrator] = []

    def _new_cluster_migrator(self, cluster: Cluster) -> Migrator:
        return ClusterMigrator(
            self.project_id, cluster, self.handler, self.clients, self.options
        )

    def resource_path(self) -> str:
        return network_path(self.project_id, self.network.name)

    def complete(self, ctx: RunContext) -> None:
        """Discover the clusters on this network and complete them."""
        parent = location_path(self.project_id, ANY_LOCATION)
        try:
            clusters, missing_zones = self.clients.container.list_clusters(parent)
        except ApiError as e:
            raise wrap(e, f"error listing Clusters for Network {self.resource_path()}")

        if missing_zones:
            logger.warning(f"Clusters.List response is missing zones: {missing_zones}")

        selected = [c for c in clusters if c.network == self.network.name]
        self.children = [self.cluster_factory(c) for c in selected]

        logger.info(
            f"Initialize {len(self.children)} Cluster object(s) for Network {self.network.name!r}"
        )
        runner.complete(ctx, self.concurrent_clusters, self.children)

    def validate(self, ctx: RunContext) -> None:
        if not self.children:
            logger.warning(f"Network {self.network.name!r} contains no clusters.")
            return
        logger.info(f"Validate Cluster upgrade(s) for Network {self.network.name!r}")
        runner.validate(ctx, self.concurrent_clusters, self.children)

    def migrate(self, ctx: RunContext) -> None:
        self._migrate_network(ctx)
        logger.info(f"Initiate upgrades for cluster(s) on network {self.network.name!r}")
        runner.migrate(ctx, self.concurrent_clusters, self.children)

    def _migrate_network(self, ctx: RunContext) -> None:
        name = self.network.name
        if not self.network.is_legacy:
            logger.info(f"Network {name!r} is already a VPC network.")
            return

        compute = self.clients.compute
        logger.info(f"Switching legacy network {name!r} to custom mode VPC network")
        try:
            op = compute.switch_to_custom_mode(self.project_id, name)
        except ApiError as err:
            op_id = in_flight_operation_id(err)
            if not op_id:
                raise wrap(
                    err, f"error switching legacy network {name!r} to custom mode VPC network"
                )
            logger.info(f"Switch for network {name!r} already in progress (operation {op_id})")
            try:
                op = compute.get_global_operation(self.project_id, op_id)
            except ApiError:
                raise wrap(
                    err, f"error switching legacy network {name!r} to custom mode VPC network"
                )

        w = ComputeOperation(project_id=self.project_id, operation=op, client=compute)
        try:
            self.handler.wait(ctx, w)
        except (MigrationError, ApiError) as e:
            raise wrap(e, f"error waiting on Operation {w}")

        try:
            network = compute.get_network(self.project_id, name)
        except ApiError as e:
            raise wrap(e, f"unable to confirm mode of network {name!r}")
        if network.is_legacy:
            raise ConversionNotConfirmedError(
                f"network {name!r} still has legacy range {network.ipv4_range} after switching"
            )
        self.network = network

        logger.info(f"Network {name!r} switched to custom mode VPC network")
