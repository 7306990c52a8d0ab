"""
Data models for the legacy network converter.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from paths import UNSPECIFIED


@dataclass
class Network:
    """GCE network, legacy when ipv4_range is set."""

    name: str
    ipv4_range: str = ""
    self_link: str = ""

    @classmethod
    def from_api(cls, data: Dict) -> "Network":
        return cls(
            name=data["name"],
            ipv4_range=data.get("IPv4Range", ""),
            self_link=data.get("selfLink", ""),
        )

    @property
    def is_legacy(self) -> bool:
        return bool(self.ipv4_range)


@dataclass
class Cluster:
    """GKE cluster as returned by clusters.list / clusters.get."""

    name: str
    location: str
    network: str = ""
    subnetwork: str = ""
    current_master_version: str = ""
    release_channel: str = UNSPECIFIED
    self_link: str = ""

    @classmethod
    def from_api(cls, data: Dict) -> "Cluster":
        channel = (data.get("releaseChannel") or {}).get("channel") or UNSPECIFIED
        return cls(
            name=data["name"],
            location=data.get("location", ""),
            network=data.get("network", ""),
            subnetwork=data.get("subnetwork", ""),
            current_master_version=data.get("currentMasterVersion", ""),
            release_channel=channel,
            self_link=data.get("selfLink", ""),
        )


@dataclass
class NodePool:
    """GKE node pool and the instance group managers backing it."""

    name: str
    version: str = ""
    instance_group_urls: List[str] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: Dict) -> "NodePool":
        return cls(
            name=data["name"],
            version=data.get("version", ""),
            instance_group_urls=list(data.get("instanceGroupUrls", [])),
        )


@dataclass
class ReleaseChannelConfig:
    """Default and valid versions of a single release channel."""

    channel: str
    default_version: str = ""
    valid_versions: List[str] = field(default_factory=list)


@dataclass
class ServerConfig:
    """GKE server configuration for a location (versions sorted newest first)."""

    default_cluster_version: str = ""
    valid_master_versions: List[str] = field(default_factory=list)
    valid_node_versions: List[str] = field(default_factory=list)
    channels: Dict[str, ReleaseChannelConfig] = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: Dict) -> "ServerConfig":
        channels = {}
        for c in data.get("channels", []):
            channels[c["channel"]] = ReleaseChannelConfig(
                channel=c["channel"],
                default_version=c.get("defaultVersion", ""),
                valid_versions=list(c.get("validVersions", [])),
            )
        return cls(
            default_cluster_version=data.get("defaultClusterVersion", ""),
            valid_master_versions=list(data.get("validMasterVersions", [])),
            valid_node_versions=list(data.get("validNodeVersions", [])),
            channels=channels,
        )


@dataclass
class OperationStatus:
    """Distillation of a Compute or Container operation status."""

    status: str
    error: Optional[str] = None
