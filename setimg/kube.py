from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from kubernetes import client, config
from kubernetes.client.exceptions import ApiException
from kubernetes.config.config_exception import ConfigException
from urllib3.exceptions import HTTPError


class WorkloadError(RuntimeError):
    pass


# Transport failures (refused connections, exhausted retries) surface as raw
# urllib3 or socket errors rather than ApiException.
_API_ERRORS = (ApiException, HTTPError, OSError)


def _reason(e: Exception) -> str:
    if isinstance(e, ApiException):
        return f"{e.status} {e.reason}"
    return f"{type(e).__name__}: {e}"


@dataclass(frozen=True)
class ContainerInfo:
    name: str
    image: str
    index: int


@dataclass(frozen=True)
class WorkloadStatus:
    desired_replicas: int
    ready_replicas: int
    updated_replicas: int
    selector: str


@dataclass(frozen=True)
class ContainerState:
    name: str
    restart_count: int = 0
    waiting_reason: str | None = None


@dataclass(frozen=True)
class PodStatus:
    name: str
    phase: str
    containers: list[ContainerState] = field(default_factory=list)


def _label_selector(match_labels: dict[str, str] | None, fallback_app: str) -> str:
    if not match_labels:
        return f"app={fallback_app}"
    return ",".join(f"{k}={v}" for k, v in sorted(match_labels.items()))


def _current_namespace(context: str | None) -> str:
    try:
        contexts, active = config.list_kube_config_contexts()
    except (ConfigException, OSError):
        return "default"
    chosen = active
    if context:
        chosen = next((c for c in contexts if c.get("name") == context), active)
    return ((chosen or {}).get("context") or {}).get("namespace") or "default"


class KubeClient:
    """Deployment operations needed to change and watch a container image."""

    def __init__(self, apps: Any, core: Any, namespace: str = "default"):
        self.apps = apps
        self.core = core
        self.namespace = namespace

    @classmethod
    def from_config(
        cls,
        kubeconfig: str | None = None,
        context: str | None = None,
        namespace: str | None = None,
    ) -> "KubeClient":
        try:
            if kubeconfig or context:
                config.load_kube_config(config_file=kubeconfig, context=context)
                ns = namespace or _current_namespace(context)
            else:
                try:
                    config.load_kube_config()
                    ns = namespace or _current_namespace(None)
                except (ConfigException, OSError):
                    config.load_incluster_config()
                    ns = namespace or _incluster_namespace()
        except (ConfigException, OSError) as e:
            raise WorkloadError(f"failed to load Kubernetes configuration: {e}") from e
        return cls(client.AppsV1Api(), client.CoreV1Api(), ns)

    def _read_deployment(self, name: str) -> Any:
        try:
            return self.apps.read_namespaced_deployment(name, self.namespace)
        except _API_ERRORS as e:
            raise WorkloadError(f"failed to get deployment {name}: {_reason(e)}") from e

    def list_deployments(self) -> list[str]:
        try:
            items = self.apps.list_namespaced_deployment(self.namespace).items
        except _API_ERRORS as e:
            raise WorkloadError(f"failed to list deployments in {self.namespace}: {_reason(e)}") from e
        return sorted(d.metadata.name for d in items)

    def get_containers(self, name: str) -> list[ContainerInfo]:
        dep = self._read_deployment(name)
        return [
            ContainerInfo(name=c.name, image=c.image, index=i)
            for i, c in enumerate(dep.spec.template.spec.containers or [])
        ]

    def get_current_image(self, name: str, container: str) -> str:
        for c in self.get_containers(name):
            if c.name == container:
                return c.image
        raise WorkloadError(f"container {container} not found in deployment {name}")

    def patch_container_image(self, name: str, container: str, image: str) -> None:
        """Strategic merge patch of one container's image."""
        body = {"spec": {"template": {"spec": {"containers": [{"name": container, "image": image}]}}}}
        try:
            self.apps.patch_namespaced_deployment(name, self.namespace, body)
        except _API_ERRORS as e:
            raise WorkloadError(f"failed to patch deployment {name}: {_reason(e)}") from e

    def get_workload(self, name: str) -> WorkloadStatus:
        dep = self._read_deployment(name)
        desired = dep.spec.replicas if dep.spec.replicas is not None else 1
        status = dep.status
        selector = dep.spec.selector.match_labels if dep.spec.selector else None
        return WorkloadStatus(
            desired_replicas=desired,
            ready_replicas=(status.ready_replicas or 0) if status else 0,
            updated_replicas=(status.updated_replicas or 0) if status else 0,
            selector=_label_selector(selector, name),
        )

    def list_pods(self, selector: str) -> list[PodStatus]:
        try:
            pods = self.core.list_namespaced_pod(self.namespace, label_selector=selector).items
        except _API_ERRORS as e:
            raise WorkloadError(f"failed to list pods ({selector}): {_reason(e)}") from e

        out: list[PodStatus] = []
        for pod in pods:
            states: list[ContainerState] = []
            for cs in (pod.status.container_statuses or []) if pod.status else []:
                waiting = cs.state.waiting if cs.state else None
                states.append(
                    ContainerState(
                        name=cs.name,
                        restart_count=cs.restart_count or 0,
                        waiting_reason=waiting.reason if waiting else None,
                    )
                )
            out.append(
                PodStatus(
                    name=pod.metadata.name,
                    phase=(pod.status.phase if pod.status else None) or "Unknown",
                    containers=states,
                )
            )
        return out


def _incluster_namespace() -> str:
    try:
        with open("/var/run/secrets/kubernetes.io/serviceaccount/namespace", encoding="utf-8") as fh:
            return fh.read().strip() or "default"
    except OSError:
        return "default"
