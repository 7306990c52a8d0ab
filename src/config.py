"""
Configuration management for the legacy network converter.
"""

from dataclasses import dataclass
from typing import Optional

from errors import ConfigError, MigrationError
from versions import MAX_VERSION_SKEW, check_version_skew, is_alias, validate_format

MIN_POLLING_INTERVAL = 10
MIN_POLLING_DEADLINE = 5 * 60


@dataclass
class MigrationConfig:
    """Configuration for a network conversion run."""

    project_id: str
    network: str
    desired_node_version: str
    desired_control_plane_version: str = ""
    in_place_control_plane: bool = False
    concurrent_clusters: int = 1
    concurrent_node_pools: int = 1
    polling_interval: int = 15
    polling_deadline: int = 24 * 60 * 60
    validate_only: bool = True
    wait_for_node_upgrade: bool = True
    container_base_url: Optional[str] = None
    verbose: bool = False
    log_file: Optional[str] = None

    @classmethod
    def from_args(cls, args) -> "MigrationConfig":
        """
        Create configuration from command-line arguments.

        Args:
            args: Parsed argparse arguments

        Returns:
            MigrationConfig instance
        """
        return cls(
            project_id=args.project,
            network=args.network,
            desired_node_version=args.node_version,
            desired_control_plane_version=args.control_plane_version or "",
            in_place_control_plane=args.in_place_control_plane,
            concurrent_clusters=args.concurrent_clusters,
            concurrent_node_pools=args.concurrent_node_pools,
            polling_interval=args.polling_interval,
            polling_deadline=args.polling_deadline,
            validate_only=args.validate_only,
            wait_for_node_upgrade=args.wait_for_node_upgrade,
            container_base_url=args.container_base_url,
            verbose=args.verbose,
            log_file=args.log_file,
        )

    def validate(self) -> None:
        """
        Ensure values are valid for execution.

        Raises:
            ConfigError: describing the first invalid value
        """
        if not self.project_id:
            raise ConfigError("--project not provided or empty")
        if not self.network:
            raise ConfigError("--network not provided or empty")

        if self.concurrent_clusters < 1:
            raise ConfigError("--concurrent-clusters must be an integer greater than 0")
        if self.concurrent_node_pools < 1:
            raise ConfigError("--concurrent-node-pools must be an integer greater than 0")

        if self.polling_interval < MIN_POLLING_INTERVAL:
            raise ConfigError(
                f"--polling-interval must be greater than or equal to {MIN_POLLING_INTERVAL} "
                "seconds. Note: upgrade operation times are O(minutes)"
            )
        if self.polling_deadline < MIN_POLLING_DEADLINE:
            raise ConfigError(
                f"--polling-deadline must be greater than or equal to {MIN_POLLING_DEADLINE} "
                "seconds. Note: upgrade operation times are O(minutes)"
            )
        if self.polling_interval > self.polling_deadline:
            raise ConfigError(
                f"--polling-deadline={self.polling_deadline} must be greater than "
                f"--polling-interval={self.polling_interval}"
            )

        if bool(self.desired_control_plane_version) == self.in_place_control_plane:
            raise ConfigError(
                "specify --in-place-control-plane or provide a version for "
                "--control-plane-version, but not both"
            )
        if self.desired_control_plane_version:
            self._check_format("--control-plane-version", self.desired_control_plane_version)
        self._check_format("--node-version", self.desired_node_version)

        # Aliases are resolved, and skew checked, per cluster and node pool.
        if (
            not self.in_place_control_plane
            and not is_alias(self.desired_control_plane_version)
            and not is_alias(self.desired_node_version)
        ):
            try:
                check_version_skew(
                    self.desired_node_version,
                    self.desired_control_plane_version,
                    MAX_VERSION_SKEW,
                )
            except MigrationError as e:
                raise ConfigError(str(e)) from e

    @staticmethod
    def _check_format(flag: str, version: str) -> None:
        try:
            validate_format(version)
        except MigrationError as e:
            raise ConfigError(f"{flag}={version!r} is not valid: {e}") from e
