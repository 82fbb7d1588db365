from __future__ import annotations

from typing import Iterable

from .kube import PodStatus, WorkloadStatus


BAD_WAITING_REASONS = frozenset({"ImagePullBackOff", "CrashLoopBackOff", "ErrImagePull"})
MAX_RESTARTS = 3


def is_ready(status: WorkloadStatus) -> bool:
    """All desired replicas are both ready and running the updated template.

    A ready count alone can still describe old replicas mid-rollout.
    """
    desired = status.desired_replicas
    return status.ready_replicas == desired and status.updated_replicas == desired


def pod_failure(pods: Iterable[PodStatus]) -> str | None:
    """Describe the first pod-level failure signal, or None."""
    for pod in pods:
        if pod.phase == "Failed":
            return f"pod {pod.name} failed"
        for c in pod.containers:
            if c.restart_count > MAX_RESTARTS:
                return f"container {c.name} in pod {pod.name} is restarting too frequently ({c.restart_count} restarts)"
            if c.waiting_reason in BAD_WAITING_REASONS:
                return f"container {c.name} in pod {pod.name} has problem: {c.waiting_reason}"
    return None


def check_readiness(runtime, workload: str) -> tuple[bool, str | None]:
    """Poll once: (ready, failure cause).

    Readiness wins over pod signals; ``(False, None)`` means keep waiting.
    """
    status = runtime.get_workload(workload)
    if is_ready(status):
        return True, None
    return False, pod_failure(runtime.list_pods(status.selector))
