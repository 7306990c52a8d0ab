"""
GKE version parsing, alias resolution and upgrade validation.

Valid version lists come from the GKE server config and are sorted in
descending order (newest first); list order is the sole ground truth for
"is this an upgrade".
"""

from enum import Enum
from typing import List, Tuple

from errors import (
    EmptyVersionListError,
    MalformedVersionError,
    MissingDefaultVersionError,
    NodeNewerThanControlPlaneError,
    NotNewerError,
    SkewExceededError,
    VersionNotFoundError,
)
from models import ServerConfig

DEFAULT_VERSION = "-"
LATEST_VERSION = "latest"

# Maximum skew allowed for auto-upgrade (release channel) clusters, used
# rather than the Kubernetes skew policy (2).
MAX_VERSION_SKEW = 1


class Resource(Enum):
    NODE = "node"
    CONTROL_PLANE = "control-plane"


def _is_number(s: str) -> bool:
    return s.isascii() and s.isdigit()


def is_alias(version: str) -> bool:
    return version in (DEFAULT_VERSION, LATEST_VERSION)


def validate_format(version: str) -> None:
    """
    Ensure the version is a valid GKE version or version alias.

    Accepts "-", "latest" and MAJOR.MINOR[.PATCH][-gke.N] with MAJOR == 1.
    See https://cloud.google.com/kubernetes-engine/versioning

    Raises:
        MalformedVersionError: naming the offending component
    """
    if not version:
        raise MalformedVersionError("malformed version: version must not be empty")
    if is_alias(version):
        return

    split = version.split("-")
    if len(split) > 2:
        raise MalformedVersionError(f"malformed version: {version}")

    ksplit = split[0].split(".")
    if len(ksplit) < 2 or len(ksplit) > 3:
        raise MalformedVersionError(f"malformed version: {version}")
    if not _is_number(ksplit[0]):
        raise MalformedVersionError(f"malformed major version: {version}")
    if int(ksplit[0]) != 1:
        raise MalformedVersionError(
            f"not compatible with major versions other than 1: version {version}"
        )
    if not _is_number(ksplit[1]):
        raise MalformedVersionError(f"malformed minor version: {version}")
    if len(ksplit) == 3 and not _is_number(ksplit[2]):
        raise MalformedVersionError(f"malformed patch version: {version}")

    if len(split) == 1:
        return
    if len(ksplit) != 3:
        raise MalformedVersionError(
            f"malformed patch version: {version} (a GKE suffix requires a patch version)"
        )
    suffix = split[1]
    if not suffix.startswith("gke.") or not _is_number(suffix[len("gke.") :]):
        raise MalformedVersionError(f"malformed GKE version suffix: {version}")


def get_minor_version(version: str) -> int:
    """
    Return the Kubernetes minor version as an int.

    The version must already have passed validate_format.
    """
    return int(version.split(".")[1])


def get_versions(
    server_config: ServerConfig, channel: str, resource: Resource
) -> Tuple[str, List[str]]:
    """Return the default and valid versions for a release channel."""
    if resource == Resource.NODE:
        valid = server_config.valid_node_versions
    else:
        valid = server_config.valid_master_versions
    channel_config = server_config.channels.get(channel) if channel else None
    if channel_config is None:
        return server_config.default_cluster_version, valid
    return channel_config.default_version, channel_config.valid_versions


def resolve_version(desired: str, default: str, valid: List[str]) -> str:
    """
    Convert a desired version (or alias) to a concrete GKE version.

    e.g. "1.21" -> "1.21.x-gke.y", "-" -> default, "latest" -> valid[0]
    """
    if not valid:
        raise EmptyVersionListError(f"list of valid versions is empty: {valid}")
    if not default:
        raise MissingDefaultVersionError(
            f"default version is missing: desired version {desired}"
        )

    if desired == DEFAULT_VERSION:
        return default
    if desired == LATEST_VERSION:
        return valid[0]

    # Descending order, so the first prefix match is the highest.
    for v in valid:
        if v.startswith(desired):
            return v

    raise VersionNotFoundError(
        f"desired version {desired!r} could not be resolved; valid versions: {valid}"
    )


def check_upgrade(
    desired: str, current: str, valid: List[str], allow_in_place: bool
) -> None:
    """
    Ensure desired is a valid version and not a downgrade of current.

    Raises:
        EmptyVersionListError, VersionNotFoundError, NotNewerError
    """
    if not valid:
        raise EmptyVersionListError(f"list of valid versions is empty: {valid}")

    desired_index = valid.index(desired) if desired in valid else -1
    current_index = valid.index(current) if current in valid else -1

    if desired_index == -1:
        raise VersionNotFoundError(
            f"desired version {desired} was not found; valid versions: {valid}"
        )
    if current_index == -1:
        # Current version has aged out of the list, e.g. node pools with
        # auto-upgrade disabled.
        return
    if allow_in_place and current_index == desired_index:
        return
    if current_index <= desired_index:
        raise NotNewerError(
            f"desired version {desired} must be newer than current version "
            f"{current}; valid versions: {valid}"
        )


def check_version_skew(node_version: str, control_plane_version: str, max_skew: int) -> None:
    """
    Ensure node and control plane versions are within the allowed minor skew.

    Avoids API errors like `node version "x" must be within one minor version
    of master version "y"`. Both versions must be in the form "1.x[...]".
    """
    np_minor = get_minor_version(node_version)
    cp_minor = get_minor_version(control_plane_version)

    diff = cp_minor - np_minor
    if diff < 0:
        raise NodeNewerThanControlPlaneError(
            f"desired node version {node_version} minor version ({np_minor}) cannot "
            f"be greater than desired control plane version {control_plane_version} "
            f"minor version ({cp_minor})"
        )
    if diff > max_skew:
        raise SkewExceededError(
            f"desired node version {node_version} must be within {max_skew} minor "
            f"version(s) of the desired control plane version {control_plane_version}"
        )
