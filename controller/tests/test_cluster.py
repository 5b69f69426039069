"""Tests for build cluster helpers against a mocked Kubernetes API."""

import asyncio
from datetime import datetime
from unittest import mock

import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException

from controller.src.errors import ConfigurationError
from controller.src.k8s import client as k8s_client
from controller.src.services import log_collector

def pod(name, created):
    return client.V1Pod(metadata=client.V1ObjectMeta(name=name, creation_timestamp=created))

def test_collect_logs_joins_pods_in_creation_order():
    core = mock.Mock()
    core.list_namespaced_pod.return_value = client.V1PodList(items=[
        pod("job-b", datetime(2024, 5, 1, 12, 1)),
        pod("job-a", datetime(2024, 5, 1, 12, 0)),
    ])
    core.read_namespaced_pod_log.side_effect = lambda name, namespace, tail_lines: f"log of {name}"

    with mock.patch.object(log_collector, "get_core_api", return_value=core):
        logs = asyncio.run(log_collector.collect_logs("job", namespace="builds"))

    assert logs.index("log of job-a") < logs.index("log of job-b")
    assert "--- job-a ---" in logs
    core.list_namespaced_pod.assert_called_once_with(namespace="builds", label_selector="job-name=job")

def test_collect_logs_reports_failures_inline():
    core = mock.Mock()
    core.list_namespaced_pod.return_value = client.V1PodList(items=[pod("job-a", None)])
    core.read_namespaced_pod_log.side_effect = ApiException(status=500, reason="Internal Server Error")

    with mock.patch.object(log_collector, "get_core_api", return_value=core):
        logs = asyncio.run(log_collector.collect_logs("job", namespace="builds"))

    assert logs == "[log collection failed: Internal Server Error]"

def test_collect_logs_without_pods():
    core = mock.Mock()
    core.list_namespaced_pod.return_value = client.V1PodList(items=[])

    with mock.patch.object(log_collector, "get_core_api", return_value=core):
        assert "no pods" in asyncio.run(log_collector.collect_logs("job", namespace="builds"))

def test_ensure_namespace_requires_workspace_claim():
    core = mock.Mock()

    with mock.patch.object(k8s_client, "get_core_api", return_value=core), \
            mock.patch.object(k8s_client.settings, "k8s_workspace_claim", None):
        with pytest.raises(ConfigurationError, match="k8s_workspace_claim"):
            k8s_client.ensure_namespace("builds")

def test_ensure_namespace_creates_missing_namespace():
    core = mock.Mock()
    core.read_namespace.side_effect = ApiException(status=404)

    with mock.patch.object(k8s_client, "get_core_api", return_value=core), \
            mock.patch.object(k8s_client.settings, "k8s_workspace_claim", "workspaces"):
        k8s_client.ensure_namespace("builds")

    assert core.create_namespace.call_args.kwargs["body"].metadata.name == "builds"
    core.read_namespaced_persistent_volume_claim.assert_called_once_with(name="workspaces", namespace="builds")
