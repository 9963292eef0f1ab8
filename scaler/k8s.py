from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Sequence

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException

from .config import ScalerError
from .manifests import ManifestObject, Resource, ResourceKind, load_resources

LOGGER = logging.getLogger("prombench_scaler.k8s")


class ClusterClientError(ScalerError):
    """Raised when the cluster cannot be reached or rejects an apply."""


class ClusterClient:
    """Apply manifest objects to a Kubernetes cluster through the API."""

    def __init__(self, api_client: client.ApiClient) -> None:
        self._api_client = api_client
        self._apps = client.AppsV1Api(api_client)
        self._resources: List[Resource] = []
        self._handlers: Dict[ResourceKind, Callable[[ManifestObject], None]] = {
            ResourceKind.DEPLOYMENT: self._apply_deployment,
        }

    @classmethod
    def from_config(
        cls,
        kubeconfig: str | None = None,
        context: str | None = None,
    ) -> "ClusterClient":
        """Build a client from a kubeconfig or the in-cluster service account.

        Without an explicit kubeconfig or context the in-cluster
        configuration is tried first, then the default kubeconfig.
        """
        configuration = client.Configuration()
        try:
            if kubeconfig or context:
                config.load_kube_config(
                    config_file=kubeconfig,
                    context=context,
                    client_configuration=configuration,
                )
            else:
                try:
                    config.load_incluster_config(client_configuration=configuration)
                    LOGGER.debug("Using in-cluster configuration")
                except ConfigException:
                    config.load_kube_config(client_configuration=configuration)
                    LOGGER.debug("Using default kubeconfig")
        except (ConfigException, OSError) as exc:
            raise ClusterClientError(
                f"error creating k8s client: {exc}"
            ) from exc
        return cls(client.ApiClient(configuration))

    def load_descriptors(
        self,
        paths: Sequence[str | Path],
        substitutions: Mapping[str, str] | None = None,
    ) -> List[Resource]:
        self._resources = load_resources(paths, substitutions)
        LOGGER.info(
            "Loaded %d manifest file(s) with %d object(s)",
            len(self._resources),
            sum(len(resource.objects) for resource in self._resources),
        )
        return self._resources

    def list_resources(self) -> List[Resource]:
        return list(self._resources)

    def apply(self, resources: Sequence[Resource]) -> None:
        for resource in resources:
            for obj in resource.objects:
                handler = self._handlers.get(obj.kind)
                if handler is None:
                    raise ClusterClientError(
                        f"{resource.file_name}: applying {obj.kind.value} is not supported"
                    )
                try:
                    handler(obj)
                except ApiException as exc:
                    raise ClusterClientError(
                        f"{resource.file_name}: error applying {obj.kind.value} "
                        f"{obj.namespace}/{obj.name}: {exc.status} {exc.reason}"
                    ) from exc

    def close(self) -> None:
        self._api_client.close()

    def _apply_deployment(self, obj: ManifestObject) -> None:
        body: Dict[str, Any] = obj.body
        try:
            self._apps.read_namespaced_deployment(name=obj.name, namespace=obj.namespace)
        except ApiException as exc:
            if exc.status != 404:
                raise
            self._apps.create_namespaced_deployment(namespace=obj.namespace, body=body)
            LOGGER.info("resource created - kind: %s, name: %s", obj.kind.value, obj.name)
            return
        self._apps.replace_namespaced_deployment(
            name=obj.name, namespace=obj.namespace, body=body
        )
        LOGGER.info("resource updated - kind: %s, name: %s", obj.kind.value, obj.name)


__all__ = ["ClusterClient", "ClusterClientError"]
