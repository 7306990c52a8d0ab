"""
REST API clients for the Compute Engine (v1) and Kubernetes Engine (v1) APIs.
"""

import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import google.auth
import google.auth.exceptions
import requests
from google.auth.transport.requests import AuthorizedSession

from errors import ApiError
from models import Cluster, Network, NodePool, ServerConfig
from paths import is_zonal

logger = logging.getLogger(__name__)

COMPUTE_API_BASE = "https://compute.googleapis.com/compute/v1"
CONTAINER_API_BASE = "https://container.googleapis.com/v1"

CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"

# GCE reports rate limiting as 403 with one of these reasons.
RATE_LIMIT_REASONS = {"rateLimitExceeded", "userRateLimitExceeded"}


def default_session() -> AuthorizedSession:
    """Build an authorized session from Application Default Credentials."""
    creds, _ = google.auth.default(scopes=[CLOUD_PLATFORM_SCOPE])
    return AuthorizedSession(creds)


class RestClient:
    """Shared request, retry and error handling for Google REST APIs."""

    API_BASE = ""
    RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}

    def __init__(
        self,
        session: Optional[AuthorizedSession] = None,
        base_url: Optional[str] = None,
        timeout_s: int = 60,
        max_retries: int = 3,
        base_delay: float = 5.0,
        max_delay: float = 30.0,
    ):
        """
        Initialize the REST client.

        Args:
            session: Authorized session; Application Default Credentials if None
            base_url: Override for the API endpoint (e.g. a test server)
            timeout_s: Request timeout in seconds
            max_retries: Maximum number of retries for transient errors
            base_delay: Base delay for exponential backoff
            max_delay: Ceiling for a single backoff delay
        """
        self.base_url = (base_url or self.API_BASE).rstrip("/")
        self.timeout_s = timeout_s
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.session = session if session is not None else default_session()

    def _url(self, path: str) -> str:
        """Construct full API URL from path."""
        return f"{self.base_url}/{path.lstrip('/')}"

    @staticmethod
    def _error_details(resp) -> Tuple[str, List[str]]:
        """Extract the error message and reasons from a Google API error body."""
        try:
            error = resp.json().get("error", {})
        except ValueError:
            return "", []
        if not isinstance(error, dict):
            return str(error), []
        reasons = [e.get("reason", "") for e in error.get("errors", [])]
        return error.get("message", ""), reasons

    def _is_retryable(self, resp) -> bool:
        if resp.status_code in self.RETRYABLE_STATUS_CODES:
            return True
        if resp.status_code == 403:
            _, reasons = self._error_details(resp)
            return any(r in RATE_LIMIT_REASONS for r in reasons)
        return False

    def _request_with_retry(self, method: str, url: str, **kwargs):
        """
        Execute HTTP request with exponential backoff retry for transient errors.

        Args:
            method: HTTP method (GET, POST, PUT)
            url: Request URL
            **kwargs: Additional request parameters

        Returns:
            The final response (which may still be an error response)

        Raises:
            ApiError: If max retries exceeded
        """
        last_error = None

        for attempt in range(self.max_retries + 1):
            try:
                resp = self.session.request(
                    method.upper(), url, timeout=self.timeout_s, **kwargs
                )
            except (
                requests.exceptions.RequestException,
                google.auth.exceptions.TransportError,
                google.auth.exceptions.RefreshError,
            ) as e:
                delay = self._calculate_delay(attempt)
                logger.warning(
                    f"Request error: {e}, attempt {attempt + 1}/{self.max_retries + 1}, waiting {delay:.1f}s..."
                )
                last_error = str(e)
                time.sleep(delay)
                continue
            except google.auth.exceptions.GoogleAuthError as e:
                raise ApiError(f"Authentication failed for {method} {url}: {e}") from e

            if not self._is_retryable(resp):
                return resp

            delay = self._calculate_delay(attempt, resp)
            error_info, _ = self._error_details(resp)
            logger.warning(
                f"Retryable error {resp.status_code} ({error_info}), attempt {attempt + 1}/{self.max_retries + 1}, waiting {delay:.1f}s..."
            )
            last_error = f"HTTP {resp.status_code}: {error_info or resp.text[:200]}"
            time.sleep(delay)

        raise ApiError(f"Max retries exceeded for {method} {url}. Last error: {last_error}")

    def _calculate_delay(self, attempt: int, resp=None) -> float:
        """
        Calculate delay with exponential backoff and jitter.

        Args:
            attempt: Current attempt number
            resp: Optional response object (to check Retry-After header)

        Returns:
            Delay in seconds
        """
        if resp is not None and "Retry-After" in resp.headers:
            try:
                return float(resp.headers["Retry-After"])
            except ValueError:
                pass

        delay = self.base_delay * (2**attempt)
        jitter = delay * 0.2 * (0.5 - time.time() % 1)
        return min(delay + jitter, self.max_delay)

    def _call(self, what: str, method: str, path: str, **kwargs) -> Dict:
        """Issue a request and return its JSON body, raising ApiError on failure."""
        resp = self._request_with_retry(method, self._url(path), **kwargs)
        if resp.status_code not in (200, 202):
            message, _ = self._error_details(resp)
            raise ApiError(
                f"{what} failed ({resp.status_code}): {message or resp.text}",
                status_code=resp.status_code,
            )
        return resp.json()


class ComputeRestClient(RestClient):
    """REST client for the Compute Engine v1 API."""

    API_BASE = COMPUTE_API_BASE

    def list_networks(self, project: str) -> List[Network]:
        """List every network in a project, following pagination."""
        networks: List[Network] = []
        page_token: Optional[str] = None

        while True:
            params = {}
            if page_token:
                params["pageToken"] = page_token
            data = self._call(
                "List networks", "GET", f"projects/{project}/global/networks", params=params
            )
            networks.extend(Network.from_api(item) for item in data.get("items", []))
            page_token = data.get("nextPageToken")
            if not page_token:
                break

        return networks

    def get_network(self, project: str, name: str) -> Network:
        data = self._call(
            "Get network", "GET", f"projects/{project}/global/networks/{name}"
        )
        return Network.from_api(data)

    def switch_to_custom_mode(self, project: str, name: str) -> Dict:
        """
        Switch a legacy network to a custom subnet mode VPC network.

        Returns:
            The global operation for the switch
        """
        return self._call(
            "Switch to custom mode",
            "POST",
            f"projects/{project}/global/networks/{name}/switchToCustomMode",
            json={},
        )

    def get_global_operation(self, project: str, name: str) -> Dict:
        return self._call(
            "Get global operation", "GET", f"projects/{project}/global/operations/{name}"
        )

    def wait_operation(self, project: str, operation: Dict) -> Dict:
        """
        Wait (server-side, bounded by the API) for a zonal, regional or global operation.

        Returns:
            The operation, which may still be RUNNING when the API wait elapses
        """
        name = operation["name"]
        if operation.get("zone"):
            zone = operation["zone"].split("/")[-1]
            path = f"projects/{project}/zones/{zone}/operations/{name}/wait"
        elif operation.get("region"):
            region = operation["region"].split("/")[-1]
            path = f"projects/{project}/regions/{region}/operations/{name}/wait"
        else:
            path = f"projects/{project}/global/operations/{name}/wait"
        return self._call("Wait operation", "POST", path, json={})

    def get_instance_group_manager(self, project: str, location: str, name: str) -> Dict:
        if is_zonal(location):
            path = f"projects/{project}/zones/{location}/instanceGroupManagers/{name}"
        else:
            path = f"projects/{project}/regions/{location}/instanceGroupManagers/{name}"
        return self._call("Get instance group manager", "GET", path)

    def get_instance_template(self, project: str, name: str) -> Dict:
        return self._call(
            "Get instance template",
            "GET",
            f"projects/{project}/global/instanceTemplates/{name}",
        )


class ContainerRestClient(RestClient):
    """REST client for the Kubernetes Engine v1 API."""

    API_BASE = CONTAINER_API_BASE

    def list_clusters(self, parent: str) -> Tuple[List[Cluster], List[str]]:
        """
        List clusters under a location path (location may be "-").

        Returns:
            Tuple of (clusters, missing_zones)
        """
        data = self._call("List clusters", "GET", f"{parent}/clusters")
        clusters = [Cluster.from_api(c) for c in data.get("clusters", [])]
        return clusters, list(data.get("missingZones", []))

    def get_cluster(self, name: str) -> Cluster:
        return Cluster.from_api(self._call("Get cluster", "GET", name))

    def list_node_pools(self, cluster: str) -> List[NodePool]:
        data = self._call("List node pools", "GET", f"{cluster}/nodePools")
        return [NodePool.from_api(np) for np in data.get("nodePools", [])]

    def update_master(self, name: str, master_version: str) -> Dict:
        return self._call(
            "Update master",
            "POST",
            f"{name}:updateMaster",
            json={"name": name, "masterVersion": master_version},
        )

    def update_node_pool(self, name: str, node_version: str) -> Dict:
        return self._call(
            "Update node pool",
            "PUT",
            name,
            json={"name": name, "nodeVersion": node_version},
        )

    def get_operation(self, name: str) -> Dict:
        return self._call("Get operation", "GET", name)

    def get_server_config(self, location: str) -> ServerConfig:
        data = self._call("Get server config", "GET", f"{location}/serverConfig")
        return ServerConfig.from_api(data)


@dataclass
class Clients:
    compute: ComputeRestClient
    container: ContainerRestClient


def build_clients(
    container_base_url: Optional[str] = None,
    session: Optional[AuthorizedSession] = None,
) -> Clients:
    """Build Compute and Container clients sharing one authorized session."""
    session = session if session is not None else default_session()
    return Clients(
        # Retry Compute calls for up to ~5 minutes.
        compute=ComputeRestClient(session=session, max_retries=5, max_delay=160.0),
        container=ContainerRestClient(session=session, base_url=container_base_url),
    )
