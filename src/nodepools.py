"""
Node pool migrator.

A node pool needs an upgrade while any of its instance templates still has a
network interface without a subnetwork; the upgrade recreates the templates
on the cluster's (now VPC) subnetwork.
"""

import logging
import re
from typing import List

from cancellation import RunContext
from errors import (
    ApiError,
    MigrationError,
    PostUpgradeStateMismatchError,
    VersionError,
    combine,
    wrap,
)
from models import NodePool
from operations import (
    ContainerOperation,
    container_operation,
    wait_for_operation_in_progress,
)
from paths import get_name, node_pool_path, operations_path
from runner import Migrator
from versions import (
    DEFAULT_VERSION,
    MAX_VERSION_SKEW,
    Resource,
    check_upgrade,
    check_version_skew,
    get_versions,
    resolve_version,
)

logger = logging.getLogger(__name__)

# Location and name from an instance group manager path or URL.
INSTANCE_GROUP_MANAGER_REGEX = re.compile(
    r"projects/[^/]+/(?:zones|regions)/([^/]+)/instanceGroupManagers/([^/]+)$"
)


class NodePoolMigrator(Migrator):
    """Upgrades a node pool of the cluster owned by cluster_migrator."""

    def __init__(self, cluster_migrator, node_pool: NodePool):
        self.cluster_migrator = cluster_migrator
        self.node_pool = node_pool

        # Populated during complete.
        self.upgrade_required = False
        self.resolved_node_version = ""

    def resource_path(self) -> str:
        cluster = self.cluster_migrator.cluster
        return node_pool_path(
            self.cluster_migrator.project_id,
            cluster.location,
            cluster.name,
            self.node_pool.name,
        )

    def _wrap(self, err: BaseException, stage: str) -> BaseException:
        return wrap(err, f"NodePool {self.resource_path()} error during {stage}")

    def complete(self, ctx: RunContext) -> None:
        cm = self.cluster_migrator
        try:
            self.upgrade_required = self.is_upgrade_required(ctx)
        except (MigrationError, ApiError) as e:
            raise wrap(e, f"unable to verify state for NodePool {self.resource_path()}")

        default, valid = get_versions(cm.server_config, cm.release_channel, Resource.NODE)
        desired = cm.options.desired_node_version
        if desired == DEFAULT_VERSION:
            # The default alias for node pools selects the control plane version.
            default = cm.resolved_control_plane_version

        try:
            self.resolved_node_version = resolve_version(desired, default, valid)
        except VersionError as e:
            raise self._wrap(e, "Complete")

    def validate(self, ctx: RunContext) -> None:
        """Ensure the node pool upgrade is an allowed upgrade path."""
        path = self.resource_path()
        if not self.upgrade_required:
            logger.info(f"State of NodePool {path} is valid; does not require an upgrade.")
            return

        cm = self.cluster_migrator
        resolved = self.resolved_node_version
        current = self.node_pool.version
        _, valid = get_versions(cm.server_config, cm.release_channel, Resource.NODE)
        try:
            check_upgrade(resolved, current, valid, allow_in_place=False)
            check_version_skew(
                resolved, cm.resolved_control_plane_version, MAX_VERSION_SKEW
            )
        except VersionError as e:
            raise self._wrap(e, "Validation")

        logger.info(
            f"Upgrade for NodePool {path} is valid; desired: "
            f"{cm.options.desired_node_version!r} ({resolved}), current: {current}"
        )

    def migrate(self, ctx: RunContext) -> None:
        path = self.resource_path()
        if not self.upgrade_required:
            logger.info(f"Upgrade not required for NodePool {path}; skipping upgrade.")
            return

        wait_for_operation_in_progress(ctx, self._upgrade, self._wait_for_operation)

    def _upgrade(self, ctx: RunContext) -> None:
        cm = self.cluster_migrator
        path = self.resource_path()
        container = cm.clients.container

        if not self.upgrade_required:
            # The operation blocking a previous attempt already patched the node pool.
            logger.info(f"NodePool {path} no longer requires an upgrade; skipping retry.")
            return

        logger.info(f"Upgrading NodePool {path} to version {self.resolved_node_version!r}")
        try:
            op = container.update_node_pool(path, self.resolved_node_version)
        except ApiError as e:
            raise wrap(e, f"error upgrading NodePool {path}")

        w = container_operation(
            op,
            container,
            operations_path(cm.project_id, cm.cluster.location, op.get("name", "")),
        )
        logger.info(f"Upgrade in progress for NodePool {path}; operation: {w}")

        if not cm.options.wait_for_node_upgrade:
            logger.info(f"Not waiting for NodePool {path} upgrade to complete.")
            return

        self._wait(ctx, w)
        logger.info(f"NodePool {path} upgraded.")

        try:
            required = self.is_upgrade_required(ctx)
        except (MigrationError, ApiError) as e:
            raise wrap(e, f"unable to verify post-upgrade state for NodePool {path}")
        if required:
            # The cluster must already be on a subnetwork, so this should not happen.
            raise PostUpgradeStateMismatchError(f"state was not patched for NodePool {path}")

    def _wait(self, ctx: RunContext, op: ContainerOperation) -> None:
        try:
            self.cluster_migrator.handler.wait(ctx, op)
        except (MigrationError, ApiError) as e:
            raise wrap(e, f"error waiting on Operation {op}")

    def _wait_for_operation(self, ctx: RunContext, op_id: str) -> None:
        cm = self.cluster_migrator
        op = ContainerOperation(
            path=operations_path(cm.project_id, cm.cluster.location, op_id),
            client=cm.clients.container,
        )
        self._wait(ctx, op)

        try:
            self.upgrade_required = self.is_upgrade_required(ctx)
        except (MigrationError, ApiError) as e:
            raise wrap(
                e, f"unable to verify state for NodePool {self.resource_path()} after Operation {op}"
            )

    def is_upgrade_required(self, ctx: RunContext) -> bool:
        """
        Return whether any instance template of the node pool lacks a subnetwork.

        Lookup errors are collected; they are raised only if no instance group
        was found to require an upgrade.
        """
        cm = self.cluster_migrator
        compute = cm.clients.compute
        path = self.resource_path()
        errors: List[BaseException] = []
        required = False

        for url in self.node_pool.instance_group_urls:
            match = INSTANCE_GROUP_MANAGER_REGEX.search(url)
            if match is None:
                errors.append(
                    MigrationError(
                        f"unable to parse location and name information from "
                        f"InstanceGroup URL ({url}) for NodePool {path}"
                    )
                )
                continue
            location, name = match.group(1), match.group(2)

            try:
                igm = compute.get_instance_group_manager(cm.project_id, location, name)
            except ApiError as e:
                errors.append(
                    wrap(e, f"error retrieving InstanceGroupManager ({url}) for NodePool {path}")
                )
                continue

            template_url = igm.get("instanceTemplate", "")
            try:
                template = compute.get_instance_template(
                    cm.project_id, get_name(template_url)
                )
            except ApiError as e:
                errors.append(
                    wrap(e, f"error retrieving InstanceTemplate {template_url} for NodePool {path}")
                )
                continue

            interfaces = template.get("properties", {}).get("networkInterfaces", [])
            if not any(ni.get("subnetwork") for ni in interfaces):
                required = True
                break

        err = combine(errors)
        if err is not None and not required:
            raise MigrationError(
                f"error(s) encountered obtaining an InstanceTemplate for NodePool {path}: {err}"
            ) from err
        if err is not None:
            logger.info(f"Error(s) retrieving InstanceTemplate(s) for NodePool {path}: {err}")

        return required
