"""
Resource path helpers for the Compute and Container APIs.

A path identifies a resource, or the parent of zero or more resources, e.g.
"projects/p/locations/l/clusters/c". The APIs call it "parent" for list calls
and "name" for calls on a single resource.
"""

import re

PROJECT_PATH = "projects/{project}"
LOCATION_PATH = PROJECT_PATH + "/locations/{location}"
CLUSTER_PATH = LOCATION_PATH + "/clusters/{cluster}"
NODE_POOL_PATH = CLUSTER_PATH + "/nodePools/{node_pool}"
OPERATION_PATH = LOCATION_PATH + "/operations/{operation}"
NETWORK_PATH = PROJECT_PATH + "/global/networks/{network}"

ANY_LOCATION = "-"
UNSPECIFIED = "UNSPECIFIED"

ZONE_REGEX = re.compile(r"\w+-\w+-\w")
PATH_REGEX = re.compile(r"projects/.*$")


def location_path(project: str, location: str) -> str:
    """Location may be a region or zone."""
    return LOCATION_PATH.format(project=project, location=location)


def cluster_path(project: str, location: str, cluster: str) -> str:
    return CLUSTER_PATH.format(project=project, location=location, cluster=cluster)


def node_pool_path(project: str, location: str, cluster: str, node_pool: str) -> str:
    return NODE_POOL_PATH.format(
        project=project, location=location, cluster=cluster, node_pool=node_pool
    )


def operations_path(project: str, location: str, operation: str) -> str:
    return OPERATION_PATH.format(
        project=project, location=location, operation=operation
    )


def network_path(project: str, network: str) -> str:
    return NETWORK_PATH.format(project=project, network=network)


def is_zonal(location: str) -> bool:
    """Return True for zones (us-central1-a) and False for regions."""
    return ZONE_REGEX.search(location) is not None


def trim_self_link(self_link: str) -> str:
    """Reduce a selfLink URL to its "projects/..." path."""
    match = PATH_REGEX.search(self_link or "")
    return match.group(0) if match else ""


def get_name(path: str) -> str:
    """
    Extract the last segment of a resource path or URL.

    e.g. get_name("projects/x/locations/y/resources/z") -> "z"
    """
    return path.split("/")[-1]
