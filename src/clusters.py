"""
Cluster migrator: control plane upgrade followed by node pool upgrades.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

import runner
from cancellation import RunContext
from clients import Clients
from errors import ApiError, MigrationError, PatchNotConfirmedError, VersionError, wrap
from models import Cluster, NodePool, ServerConfig
from nodepools import NodePoolMigrator
from operations import OperationHandler, container_operation, in_flight_operation_id
from paths import UNSPECIFIED, cluster_path, location_path, operations_path
from runner import Migrator
from versions import Resource, check_upgrade, get_versions, resolve_version

logger = logging.getLogger(__name__)


@dataclass
class ClusterOptions:
    """Options shared by every cluster and node pool migrator of a run."""

    concurrent_node_pools: int = 1
    desired_control_plane_version: str = ""
    desired_node_version: str = ""
    in_place_control_plane_upgrade: bool = False
    wait_for_node_upgrade: bool = True


class ClusterMigrator(Migrator):
    """Upgrades a cluster's control plane and then its node pools."""

    def __init__(
        self,
        project_id: str,
        cluster: Cluster,
        handler: OperationHandler,
        clients: Clients,
        options: ClusterOptions,
        node_pool_factory: Optional[Callable[["ClusterMigrator", NodePool], Migrator]] = None,
    ):
        self.project_id = project_id
        self.cluster = cluster
        self.handler = handler
        self.clients = clients
        self.options = options
        self.node_pool_factory = node_pool_factory or NodePoolMigrator

        # Populated during complete.
        self.server_config: Optional[ServerConfig] = None
        self.release_channel = UNSPECIFIED
        self.resolved_control_plane_version = ""
        self.children: List[Migrator] = []

    def resource_path(self) -> str:
        return cluster_path(self.project_id, self.cluster.location, self.cluster.name)

    def complete(self, ctx: RunContext) -> None:
        """Fetch node pools and server config, resolve the control plane version."""
        path = self.resource_path()
        container = self.clients.container
        try:
            node_pools = container.list_node_pools(path)
        except ApiError as e:
            raise wrap(e, f"error retrieving NodePools for Cluster {path}")
        try:
            self.server_config = container.get_server_config(
                location_path(self.project_id, self.cluster.location)
            )
        except ApiError as e:
            raise wrap(e, f"error retrieving ServerConfig for Cluster {path}")

        self.release_channel = self.cluster.release_channel
        default, valid = get_versions(
            self.server_config, self.release_channel, Resource.CONTROL_PLANE
        )
        if self.options.in_place_control_plane_upgrade:
            self.resolved_control_plane_version = self.cluster.current_master_version
        else:
            try:
                self.resolved_control_plane_version = resolve_version(
                    self.options.desired_control_plane_version, default, valid
                )
            except VersionError as e:
                raise wrap(e, f"Cluster {path} error during Complete")

        self.children = [self.node_pool_factory(self, np) for np in node_pools]

        logger.info(f"Initialize NodePool objects for Cluster {path}")
        runner.complete(ctx, self.options.concurrent_node_pools, self.children)

    def validate(self, ctx: RunContext) -> None:
        """Confirm the control plane upgrade is valid, then validate node pools."""
        path = self.resource_path()
        _, valid = get_versions(
            self.server_config, self.release_channel, Resource.CONTROL_PLANE
        )
        try:
            check_upgrade(
                self.resolved_control_plane_version,
                self.cluster.current_master_version,
                valid,
                allow_in_place=True,
            )
        except VersionError as e:
            raise wrap(e, f"validation error for Cluster {path}")

        logger.info(
            f"Upgrade for Cluster {path} is valid; desired: "
            f"{self.options.desired_control_plane_version!r} "
            f"({self.resolved_control_plane_version}), current: "
            f"{self.cluster.current_master_version}"
        )
        logger.info(f"Validate NodePool upgrade(s) for Cluster {path}")
        runner.validate(ctx, self.options.concurrent_node_pools, self.children)

    def migrate(self, ctx: RunContext) -> None:
        self._upgrade_control_plane(ctx)
        self._upgrade_node_pools(ctx)

    def _upgrade_control_plane(self, ctx: RunContext) -> None:
        path = self.resource_path()
        if self.cluster.subnetwork:
            logger.info(f"Cluster {path} does not require control plane upgrade.")
            return

        version = self.resolved_control_plane_version
        container = self.clients.container
        logger.info(f"Upgrading control plane for Cluster {path} to version {version!r}")

        try:
            op = container.update_master(path, version)
        except ApiError as err:
            op_id = in_flight_operation_id(err)
            if not op_id:
                raise wrap(err, f"error upgrading control plane for Cluster {path}")
            logger.info(
                f"Control plane upgrade for Cluster {path} is already in progress "
                f"(operation {op_id}); waiting on it"
            )
            op_path = operations_path(self.project_id, self.cluster.location, op_id)
            try:
                op = container.get_operation(op_path)
            except ApiError:
                raise wrap(err, f"error upgrading control plane for Cluster {path}")

        w = container_operation(
            op,
            container,
            operations_path(self.project_id, self.cluster.location, op.get("name", "")),
        )
        try:
            self.handler.wait(ctx, w)
        except (MigrationError, ApiError) as e:
            raise wrap(e, f"error waiting on Operation {w}")

        logger.info(f"Upgraded control plane for Cluster {path} to version {version!r}")

        try:
            cluster = container.get_cluster(path)
        except ApiError as e:
            raise wrap(e, f"unable to confirm subnetwork value for Cluster {path}")
        if not cluster.subnetwork:
            raise PatchNotConfirmedError(f"subnetwork field is empty for Cluster {path}")
        self.cluster.subnetwork = cluster.subnetwork

    def _upgrade_node_pools(self, ctx: RunContext) -> None:
        logger.info(f"Initiate NodePool upgrades for Cluster {self.resource_path()}")
        runner.migrate(ctx, self.options.concurrent_node_pools, self.children)
