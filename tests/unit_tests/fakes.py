"""
In-memory fakes of the Compute and Container REST clients.
"""

import copy
import threading

from clients import Clients
from errors import ApiError
from models import Cluster, Network, NodePool, ServerConfig

PROJECT = "test-project"
NETWORK = "network-0"
CLUSTER = "cluster-c"
NODE_POOL = "default-pool"
REGION_A = "region-a"
ZONE_A0 = "region-a-0"
ZONE_A1 = "region-a-1"
INSTANCE_GROUP_MANAGER = "default-pool-m"
INSTANCE_TEMPLATE = "default-pool-t"
SUBNETWORK = f"projects/{PROJECT}/regions/{REGION_A}/subnetworks/{NETWORK}"

COMPUTE_API = "https://compute.googleapis.com/compute/v1"
CONTAINER_API = "https://container.googleapis.com/v1"

SWITCH_OPERATION = "operation-switch-mode"
UPDATE_MASTER_OPERATION = "operation-update-master"
UPDATE_NODE_POOL_OPERATION = "operation-update-nodepool"


def igm_url(location, name=INSTANCE_GROUP_MANAGER, kind="zones"):
    return f"{COMPUTE_API}/projects/{PROJECT}/{kind}/{location}/instanceGroupManagers/{name}"


def container_op(name, status="DONE", error=None):
    op = {
        "name": name,
        "status": status,
        "selfLink": f"{CONTAINER_API}/projects/{PROJECT}/locations/{REGION_A}/operations/{name}",
    }
    if error:
        op["error"] = {"message": error}
    return op


def compute_op(name, status="DONE", errors=None):
    op = {
        "name": name,
        "status": status,
        "selfLink": f"{COMPUTE_API}/projects/{PROJECT}/global/operations/{name}",
    }
    if errors:
        op["error"] = {"errors": [{"message": m} for m in errors]}
    return op


def in_flight_error(op_name):
    return ApiError(
        f"Update master failed (400): Operation {op_name} is currently upgrading "
        f"cluster {CLUSTER}. Please wait and try again once it is done.",
        status_code=400,
    )


class FakeCompute:
    """Fake Compute client; records every call in calls."""

    MUTATING = {"switch_to_custom_mode"}

    def __init__(self, networks=None):
        self.networks = {n.name: n for n in (networks or [])}
        self.instance_group_managers = {}
        self.instance_templates = {}
        self.switch_error = None
        self.switch_confirms = True
        self.global_operations = {}
        self.wait_status = "DONE"
        self.wait_errors = None
        self.errors = {}
        self.calls = []
        self._lock = threading.Lock()

    def _record(self, method, *args):
        with self._lock:
            self.calls.append((method,) + args)
        if method in self.errors:
            raise self.errors[method]

    def mutating_calls(self):
        return [c for c in self.calls if c[0] in self.MUTATING]

    def add_instance_group(self, location, subnetwork="", name=INSTANCE_GROUP_MANAGER,
                           template=INSTANCE_TEMPLATE):
        self.instance_group_managers[(location, name)] = {
            "name": name,
            "instanceTemplate": f"{COMPUTE_API}/projects/{PROJECT}/global/instanceTemplates/{template}",
        }
        self.instance_templates[template] = {
            "name": template,
            "properties": {"networkInterfaces": [{"network": NETWORK, "subnetwork": subnetwork}]},
        }

    def patch_templates(self):
        for template in self.instance_templates.values():
            for ni in template["properties"]["networkInterfaces"]:
                ni["subnetwork"] = SUBNETWORK

    def list_networks(self, project):
        self._record("list_networks", project)
        return list(self.networks.values())

    def get_network(self, project, name):
        self._record("get_network", project, name)
        return copy.deepcopy(self.networks[name])

    def switch_to_custom_mode(self, project, name):
        self._record("switch_to_custom_mode", project, name)
        if self.switch_error is not None:
            raise self.switch_error
        if self.switch_confirms:
            self.networks[name].ipv4_range = ""
        return compute_op(SWITCH_OPERATION)

    def get_global_operation(self, project, name):
        self._record("get_global_operation", project, name)
        if name not in self.global_operations:
            raise ApiError(f"Get global operation failed (404): {name} not found", 404)
        return self.global_operations[name]

    def wait_operation(self, project, operation):
        self._record("wait_operation", project, operation["name"])
        return compute_op(operation["name"], self.wait_status, self.wait_errors)

    def get_instance_group_manager(self, project, location, name):
        self._record("get_instance_group_manager", project, location, name)
        if (location, name) not in self.instance_group_managers:
            raise ApiError(f"Get instance group manager failed (404): {name}", 404)
        return self.instance_group_managers[(location, name)]

    def get_instance_template(self, project, name):
        self._record("get_instance_template", project, name)
        if name not in self.instance_templates:
            raise ApiError(f"Get instance template failed (404): {name}", 404)
        return copy.deepcopy(self.instance_templates[name])


class FakeContainer:
    """Fake Container client; upgrades patch cluster and template state."""

    MUTATING = {"update_master", "update_node_pool"}

    def __init__(self, compute, clusters=None, node_pools=None, server_config=None):
        self.compute = compute
        self.clusters = {c.name: c for c in (clusters or [])}
        self.node_pools = node_pools or {}
        self.server_config = server_config or ServerConfig()
        self.missing_zones = []
        self.update_master_errors = []
        self.update_node_pool_errors = []
        self.patch_on_update = True
        self.operations = {}
        # Called with the operation name on every get_operation.
        self.on_get_operation = None
        self.errors = {}
        self.calls = []
        self._lock = threading.Lock()

    def _record(self, method, *args):
        with self._lock:
            self.calls.append((method,) + args)
        if method in self.errors:
            raise self.errors[method]

    def mutating_calls(self):
        return [c for c in self.calls if c[0] in self.MUTATING]

    def list_clusters(self, parent):
        self._record("list_clusters", parent)
        return [copy.deepcopy(c) for c in self.clusters.values()], list(self.missing_zones)

    def get_cluster(self, name):
        self._record("get_cluster", name)
        return copy.deepcopy(self.clusters[name.split("/")[-1]])

    def list_node_pools(self, cluster):
        self._record("list_node_pools", cluster)
        return list(self.node_pools.get(cluster.split("/")[-1], []))

    def update_master(self, name, master_version):
        self._record("update_master", name, master_version)
        if self.update_master_errors:
            raise self.update_master_errors.pop(0)
        cluster = self.clusters[name.split("/")[-1]]
        cluster.current_master_version = master_version
        if self.patch_on_update:
            cluster.subnetwork = SUBNETWORK
        return container_op(UPDATE_MASTER_OPERATION)

    def update_node_pool(self, name, node_version):
        self._record("update_node_pool", name, node_version)
        if self.update_node_pool_errors:
            raise self.update_node_pool_errors.pop(0)
        if self.patch_on_update:
            self.compute.patch_templates()
        return container_op(UPDATE_NODE_POOL_OPERATION)

    def get_operation(self, name):
        self._record("get_operation", name)
        op_name = name.split("/")[-1]
        if self.on_get_operation is not None:
            self.on_get_operation(op_name)
        return self.operations.get(op_name, container_op(op_name))

    def get_server_config(self, location):
        self._record("get_server_config", location)
        return self.server_config


VALID_VERSIONS = [
    "1.20.7-gke.1800",
    "1.20.6-gke.1000",
    "1.19.10-gke.1700",
    "1.19.10-gke.1600",
    "1.18.17-gke.1900",
]


def default_server_config(default="1.19.10-gke.1600", valid=None, channels=None):
    valid = list(VALID_VERSIONS if valid is None else valid)
    return ServerConfig(
        default_cluster_version=default,
        valid_master_versions=valid,
        valid_node_versions=list(valid),
        channels=channels or {},
    )


def legacy_network(name=NETWORK, ipv4_range="10.0.0.0/16"):
    return Network(name=name, ipv4_range=ipv4_range)


def pre_patch_cluster(name=CLUSTER, master_version="1.19.10-gke.1700", subnetwork=""):
    return Cluster(
        name=name,
        location=REGION_A,
        network=NETWORK,
        subnetwork=subnetwork,
        current_master_version=master_version,
    )


def node_pool(name=NODE_POOL, version="1.19.10-gke.1700", urls=None):
    return NodePool(
        name=name,
        version=version,
        instance_group_urls=[igm_url(ZONE_A0)] if urls is None else urls,
    )


def fake_clients(networks=None, clusters=None, node_pools=None, server_config=None):
    compute = FakeCompute(networks)
    if server_config is None:
        server_config = default_server_config()
    container = FakeContainer(compute, clusters, node_pools, server_config)
    return Clients(compute=compute, container=container)
