import pytest

from setimg.health import check_readiness, is_ready, pod_failure
from setimg.kube import ContainerState, PodStatus, WorkloadStatus


def _status(desired, ready, updated):
    return WorkloadStatus(desired_replicas=desired, ready_replicas=ready, updated_replicas=updated, selector="app=web")


@pytest.mark.parametrize(
    "desired,ready,updated,expected",
    [
        (3, 3, 3, True),
        (3, 3, 2, False),
        (3, 2, 3, False),
        (1, 0, 0, False),
        (0, 0, 0, True),
    ],
)
def test_is_ready_requires_ready_and_updated(desired, ready, updated, expected):
    assert is_ready(_status(desired, ready, updated)) is expected


@pytest.mark.parametrize("reason", ["ImagePullBackOff", "CrashLoopBackOff", "ErrImagePull"])
def test_bad_waiting_reasons_fail(reason):
    pods = [PodStatus("web-1", "Pending", [ContainerState("web", waiting_reason=reason)])]
    cause = pod_failure(pods)
    assert cause is not None
    assert reason in cause


def test_restart_threshold():
    three = [PodStatus("web-1", "Running", [ContainerState("web", restart_count=3)])]
    four = [PodStatus("web-1", "Running", [ContainerState("web", restart_count=4)])]
    assert pod_failure(three) is None
    assert "restarting too frequently" in pod_failure(four)


def test_failed_pod_phase():
    assert pod_failure([PodStatus("web-1", "Failed")]) == "pod web-1 failed"


def test_benign_waiting_is_not_a_failure():
    pods = [PodStatus("web-1", "Pending", [ContainerState("web", waiting_reason="ContainerCreating")])]
    assert pod_failure(pods) is None


class _Runtime:
    def __init__(self, status, pods):
        self.status = status
        self.pods = pods
        self.selectors = []

    def get_workload(self, name):
        return self.status

    def list_pods(self, selector):
        self.selectors.append(selector)
        return self.pods


def test_readiness_checked_before_pods():
    bad = [PodStatus("web-1", "Failed")]
    rt = _Runtime(_status(2, 2, 2), bad)
    assert check_readiness(rt, "web") == (True, None)
    assert rt.selectors == []


def test_not_ready_reports_pod_cause():
    rt = _Runtime(_status(2, 1, 2), [PodStatus("web-1", "Failed")])
    assert check_readiness(rt, "web") == (False, "pod web-1 failed")
    assert rt.selectors == ["app=web"]
