"""End-to-end tests of reconciliation passes over in-memory collaborators."""

import pytest

from models import EventSeverity, IdentityType, SnapshotError, TriggerType


def _setup_single(pods, nodes, crd, pod_ns="default", id_ns="default", binding_ns="default"):
    nodes.add_node("test-node")
    crd.create_id("test-id", id_ns)
    crd.create_binding("testbinding", binding_ns, "test-id", "test-select")
    pods.add_pod("test-pod", pod_ns, "test-node", "test-select")


class TestReconcile:
    """Tests for Reconciler.reconcile."""

    def test_simple_assignment(self, reconciler, pods, nodes, crd, cloud, events):
        _setup_single(pods, nodes, crd)

        result = reconciler.reconcile(TriggerType.POD_CREATED)

        assert result.success
        assert result.sync.applied == ["test-pod-default-test-id"]
        assert list(crd.assigned) == ["test-pod-default-test-id"]
        assert cloud.attached["test-node"] == {"test-id"}
        assert events.last_event.severity is EventSeverity.NORMAL
        assert events.last_event.reason == "binding applied"
        assert events.last_event.message == (
            "Binding testbinding applied on node test-node for pod test-pod-default-test-id"
        )

    def test_pod_deleted(self, reconciler, pods, nodes, crd, cloud, events):
        _setup_single(pods, nodes, crd)
        reconciler.reconcile()

        pods.delete_pod("test-pod", "default")
        result = reconciler.reconcile(TriggerType.POD_DELETED)

        assert result.sync.removed == ["test-pod-default-test-id"]
        assert crd.assigned == {}
        assert cloud.attached["test-node"] == set()
        assert events.last_event.reason == "binding removed"
        assert events.last_event.message == (
            "Binding testbinding removed from node test-node for pod test-pod"
        )

    def test_cloud_error_then_recovery(self, reconciler, pods, nodes, crd, cloud, events):
        _setup_single(pods, nodes, crd)
        cloud.set_error(RuntimeError("error returned from cloud provider"))

        result = reconciler.reconcile()

        assert not result.success
        assert crd.assigned == {}
        assert events.last_event.severity is EventSeverity.WARNING
        assert events.last_event.reason == "binding apply error"
        assert events.last_event.message == (
            "Applying binding testbinding node test-node for pod test-pod-default-test-id "
            "resulted in error error returned from cloud provider"
        )

        cloud.unset_error()
        result = reconciler.reconcile()

        assert result.success
        assert list(crd.assigned) == ["test-pod-default-test-id"]
        assert events.last_event.reason == "binding applied"

    def test_partial_failure_across_pods(self, reconciler, pods, nodes, crd, cloud, events):
        nodes.add_node("test-node")
        for i in range(4):
            crd.create_id(f"test-id-{i}", "default")
            crd.create_binding(f"testbinding-{i}", "default", f"test-id-{i}", f"select-{i}")
            pods.add_pod(f"test-pod-{i}", "default", "test-node", f"select-{i}")
        cloud.fail_identities.add("test-id-2")

        result = reconciler.reconcile()

        assert sorted(result.sync.applied) == [
            "test-pod-0-default-test-id-0",
            "test-pod-1-default-test-id-1",
            "test-pod-3-default-test-id-3",
        ]
        assert list(result.sync.apply_errors) == ["test-pod-2-default-test-id-2"]
        assert len(crd.assigned) == 3
        assert events.reasons().count("binding applied") == 3
        assert events.reasons().count("binding apply error") == 1

    def test_bulk_create_and_delete(self, reconciler, pods, nodes, crd, cloud):
        nodes.add_node("test-node")
        crd.create_id("test-id", "default")
        crd.create_binding("testbinding", "default", "test-id", "test-select")
        for i in range(20):
            pods.add_pod(f"test-pod-{i}", "default", "test-node", "test-select")

        reconciler.reconcile()
        assert len(crd.assigned) == 20

        for i in range(20):
            pods.delete_pod(f"test-pod-{i}", "default")
        result = reconciler.reconcile(TriggerType.POD_DELETED)

        assert len(result.sync.removed) == 20
        assert crd.assigned == {}
        assert cloud.attached["test-node"] == set()

    def test_idempotent(self, reconciler, pods, nodes, crd, cloud, events):
        _setup_single(pods, nodes, crd)
        reconciler.reconcile()
        writes = crd.writes
        calls = len(cloud.calls)
        event_count = len(events.events)

        result = reconciler.reconcile()

        assert result.success
        assert result.unchanged == 1
        assert crd.writes == writes
        assert len(cloud.calls) == calls
        assert len(events.events) == event_count

    def test_identity_removed(self, reconciler, pods, nodes, crd, cloud):
        _setup_single(pods, nodes, crd)
        reconciler.reconcile()

        crd.identities.clear()
        result = reconciler.reconcile(TriggerType.IDENTITY_CHANGED)

        assert result.sync.removed == ["test-pod-default-test-id"]
        assert cloud.attached["test-node"] == set()

    def test_system_assigned_identity(self, reconciler, pods, nodes, crd, cloud):
        nodes.add_node("test-node")
        crd.create_id("sys-id", "default", type=IdentityType.SYSTEM_ASSIGNED, resource_id="")
        crd.create_binding("testbinding", "default", "sys-id", "test-select")
        pods.add_pod("test-pod", "default", "test-node", "test-select")

        result = reconciler.reconcile()

        assert result.success
        assert cloud.attached["test-node"] == {"sys-id"}

    def test_unscheduled_pod_waits_for_node(self, reconciler, pods, nodes, crd):
        nodes.add_node("test-node")
        crd.create_id("test-id", "default")
        crd.create_binding("testbinding", "default", "test-id", "test-select")
        pods.add_pod("test-pod", "default", None, "test-select")

        assert reconciler.reconcile().desired == 0

        pods.add_pod("test-pod", "default", "test-node", "test-select")
        reconciler.reconcile(TriggerType.POD_UPDATED)

        assert list(crd.assigned) == ["test-pod-default-test-id"]

    def test_duplicate_identity_names_use_last(self, reconciler, pods, nodes, crd, cloud):
        nodes.add_node("test-node")
        crd.create_id("test-id", "default", resource_id="/msi/first")
        crd.create_id("test-id", "default", resource_id="/msi/second")
        crd.create_binding("testbinding", "default", "test-id", "test-select")
        pods.add_pod("test-pod", "default", "test-node", "test-select")

        result = reconciler.reconcile()

        assert len(result.duplicates) == 1
        assert result.duplicates[0].name == "test-id"
        assert crd.assigned["test-pod-default-test-id"].identity.resource_id == "/msi/second"

    def test_snapshot_failure_changes_nothing(self, reconciler, pods, nodes, crd, cloud, events):
        _setup_single(pods, nodes, crd)
        pods.error = RuntimeError("apiserver unavailable")

        with pytest.raises(SnapshotError, match="apiserver unavailable"):
            reconciler.reconcile()

        assert crd.assigned == {}
        assert cloud.calls == []
        assert events.events == []

    def test_shared_identity_survives_one_pod_leaving(self, reconciler, pods, nodes, crd, cloud):
        nodes.add_node("test-node")
        crd.create_id("test-id", "default")
        crd.create_binding("testbinding", "default", "test-id", "test-select")
        pods.add_pod("pod-a", "default", "test-node", "test-select")
        pods.add_pod("pod-b", "default", "test-node", "test-select")
        reconciler.reconcile()

        pods.delete_pod("pod-a", "default")
        reconciler.reconcile(TriggerType.POD_DELETED)

        assert list(crd.assigned) == ["pod-b-default-test-id"]
        assert cloud.attached["test-node"] == {"test-id"}

    def test_node_deleted(self, reconciler, pods, nodes, crd, cloud):
        _setup_single(pods, nodes, crd)
        reconciler.reconcile()

        nodes.delete_node("test-node")
        result = reconciler.reconcile()

        assert result.sync.removed == ["test-pod-default-test-id"]
        assert crd.assigned == {}
        assert ("detach", "test-id", "test-node") not in cloud.calls


class TestNamespaceScoping:
    """Which pod, identity and binding namespace combinations assign."""

    @pytest.mark.parametrize(
        "pod_ns,id_ns,binding_ns",
        [
            ("custom-app-ns", "custom-app-ns", "custom-app-ns"),
            ("custom-app-ns", "default", "custom-app-ns"),
            ("custom-app-ns", "default", "default"),
            ("default", "default", "default"),
        ],
    )
    def test_assigned(self, reconciler, pods, nodes, crd, pod_ns, id_ns, binding_ns):
        _setup_single(pods, nodes, crd, pod_ns=pod_ns, id_ns=id_ns, binding_ns=binding_ns)

        reconciler.reconcile()

        assert list(crd.assigned) == [f"test-pod-{pod_ns}-test-id"]

    @pytest.mark.parametrize(
        "pod_ns,id_ns,binding_ns",
        [
            ("custom-app1-ns", "custom-app2-ns", "custom-app2-ns"),
            ("custom-app1-ns", "custom-app2-ns", "custom-app3-ns"),
            ("custom-app1-ns", "default", "custom-app2-ns"),
            ("custom-app1-ns", "custom-app2-ns", "default"),
            ("default", "custom-app1-ns", "custom-app1-ns"),
            ("default", "default", "custom-app1-ns"),
            ("default", "custom-app1-ns", "default"),
        ],
    )
    def test_not_assigned(self, reconciler, pods, nodes, crd, cloud, pod_ns, id_ns, binding_ns):
        _setup_single(pods, nodes, crd, pod_ns=pod_ns, id_ns=id_ns, binding_ns=binding_ns)

        result = reconciler.reconcile()

        assert result.desired == 0
        assert crd.assigned == {}
        assert cloud.calls == []
