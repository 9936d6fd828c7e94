"""Cluster session: connection setup and API server metadata."""

import logging
from dataclasses import dataclass
from typing import Optional

from kubernetes import client, config as kube_config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException
from urllib3.exceptions import HTTPError

from cluster.errors import translate
from cluster.handle import ResourceHandle

logger = logging.getLogger(__name__)


class SessionError(Exception):
    """Could not build a client configuration (no kubeconfig, bad context)."""


@dataclass
class ServerVersion:
    """API server version as reported by /version."""
    major: str
    minor: str
    git_version: str
    platform: str = ''

    def __str__(self) -> str:
        return self.git_version or f"{self.major}.{self.minor}"


class ClusterSession:
    """Connection to one cluster.

    Owns the kubernetes ApiClient; hands out ResourceHandles that share it.
    """

    def __init__(self, api_client: client.ApiClient, request_timeout: float = 10.0):
        self.api_client = api_client
        self.request_timeout = request_timeout
        self.core_api = client.CoreV1Api(api_client)

    def apiserver_version(self) -> ServerVersion:
        """Fetch the API server version.

        Raises:
            ApiError: If the server cannot be reached or rejects the call
        """
        try:
            info = client.VersionApi(self.api_client).get_code(_request_timeout=self.request_timeout)
        except (ApiException, HTTPError) as e:
            raise translate(e) from e
        return ServerVersion(
            major=info.major,
            minor=info.minor,
            git_version=info.git_version,
            platform=info.platform or '',
        )

    def handle(self, namespace: str, kind: str = 'pod') -> ResourceHandle:
        return ResourceHandle(self.core_api, namespace, kind=kind, request_timeout=self.request_timeout)

    def close(self) -> None:
        self.api_client.close()

    def __enter__(self) -> 'ClusterSession':
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def connect(
    kubeconfig: Optional[str] = None,
    context: Optional[str] = None,
    in_cluster: bool = False,
    request_timeout: float = 10.0,
) -> ClusterSession:
    """Open a session against the cluster.

    Resolution order:
    1. in_cluster=True: service account mounted in the pod
    2. kubeconfig file (explicit path, else $KUBECONFIG, else ~/.kube/config)

    Raises:
        SessionError: If no usable client configuration is found
    """
    configuration = client.Configuration()
    try:
        if in_cluster:
            kube_config.load_incluster_config(client_configuration=configuration)
            logger.debug("Loaded in-cluster configuration")
        else:
            kube_config.load_kube_config(
                config_file=kubeconfig,
                context=context,
                client_configuration=configuration,
            )
            logger.debug(f"Loaded kubeconfig {kubeconfig or '(default)'} context={context or '(current)'}")
    except (ConfigException, FileNotFoundError) as e:
        raise SessionError(f"Cannot load cluster configuration: {e}") from e

    return ClusterSession(client.ApiClient(configuration), request_timeout=request_timeout)
