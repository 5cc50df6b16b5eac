"""Tests for data models."""

import pytest

from models import (
    AssignedIdentity,
    Binding,
    Identity,
    IdentityType,
    LabelSelector,
    SelectorOperator,
    Snapshot,
    Node,
)


class TestIdentityType:
    """Tests for IdentityType.parse."""

    def test_legacy_integer_is_user_assigned(self):
        assert IdentityType.parse(0) is IdentityType.USER_ASSIGNED

    def test_names(self):
        assert IdentityType.parse("UserAssigned") is IdentityType.USER_ASSIGNED
        assert IdentityType.parse("SystemAssigned") is IdentityType.SYSTEM_ASSIGNED

    def test_missing_defaults_to_user_assigned(self):
        assert IdentityType.parse(None) is IdentityType.USER_ASSIGNED

    def test_unknown_raises(self):
        with pytest.raises(ValueError):
            IdentityType.parse(1)


class TestIdentity:
    """Tests for Identity dataclass."""

    def test_from_dict(self):
        body = {
            "metadata": {"name": "test-id", "namespace": "custom-app-ns"},
            "spec": {"type": 0, "resourceID": "/sub/rg/id", "clientID": "client-123"},
        }
        identity = Identity.from_dict(body)

        assert identity.name == "test-id"
        assert identity.namespace == "custom-app-ns"
        assert identity.type is IdentityType.USER_ASSIGNED
        assert identity.resource_id == "/sub/rg/id"
        assert identity.client_id == "client-123"

    def test_to_dict(self):
        identity = Identity("test-id", "default", IdentityType.SYSTEM_ASSIGNED)
        result = identity.to_dict()

        assert result["metadata"] == {"name": "test-id", "namespace": "default"}
        assert result["spec"]["type"] == "SystemAssigned"


class TestLabelSelector:
    """Tests for LabelSelector parsing."""

    def test_string_selector_uses_binding_label(self):
        selector = LabelSelector.from_spec("test-select")

        assert selector.match_labels == {"aadpodidbinding": "test-select"}
        assert selector.match_expressions == ()
        assert selector.to_spec() == "test-select"

    def test_structured_selector(self):
        selector = LabelSelector.from_spec(
            {
                "matchLabels": {"app": "web"},
                "matchExpressions": [
                    {"key": "tier", "operator": "In", "values": ["a", "b"]},
                    {"key": "canary", "operator": "DoesNotExist"},
                ],
            }
        )

        assert selector.match_labels == {"app": "web"}
        assert selector.match_expressions[0].operator is SelectorOperator.IN
        assert selector.match_expressions[0].values == ("a", "b")
        assert selector.match_expressions[1].operator is SelectorOperator.DOES_NOT_EXIST
        assert selector.to_spec() == {
            "matchLabels": {"app": "web"},
            "matchExpressions": [
                {"key": "tier", "operator": "In", "values": ["a", "b"]},
                {"key": "canary", "operator": "DoesNotExist"},
            ],
        }

    def test_empty_selector(self):
        assert LabelSelector.from_spec("").is_empty
        assert LabelSelector.from_spec(None).is_empty

    def test_unknown_operator_raises(self):
        with pytest.raises(ValueError):
            LabelSelector.from_spec(
                {"matchExpressions": [{"key": "a", "operator": "Gt", "values": ["1"]}]}
            )


class TestBinding:
    """Tests for Binding dataclass."""

    def test_from_dict(self):
        body = {
            "metadata": {"name": "testbinding", "namespace": "default"},
            "spec": {"azureIdentity": "test-id", "selector": "test-select"},
        }
        binding = Binding.from_dict(body)

        assert binding.name == "testbinding"
        assert binding.namespace == "default"
        assert binding.identity_name == "test-id"
        assert binding.selector.match_labels == {"aadpodidbinding": "test-select"}


class TestAssignedIdentity:
    """Tests for AssignedIdentity dataclass."""

    def _record(self) -> AssignedIdentity:
        return AssignedIdentity(
            key="test-pod-default-test-id",
            pod_name="test-pod",
            pod_namespace="default",
            node_name="test-node",
            binding=Binding("testbinding", "default", "test-id", LabelSelector.from_spec("sel")),
            identity=Identity("test-id", "default", resource_id="/sub/rg/id"),
        )

    def test_to_dict(self):
        result = self._record().to_dict()

        assert result["apiVersion"] == "aadpodidentity.k8s.io/v1"
        assert result["kind"] == "AzureAssignedIdentity"
        assert result["metadata"] == {"name": "test-pod-default-test-id"}
        assert result["spec"]["pod"] == "test-pod"
        assert result["spec"]["podNamespace"] == "default"
        assert result["spec"]["nodeName"] == "test-node"
        assert result["spec"]["azureBindingRef"]["metadata"]["name"] == "testbinding"
        assert result["spec"]["azureIdentityRef"]["spec"]["resourceID"] == "/sub/rg/id"

    def test_from_dict(self):
        record = AssignedIdentity.from_dict(self._record().to_dict())

        assert record == self._record()


class TestSnapshot:
    """Tests for Snapshot dataclass."""

    def test_default_values(self):
        snapshot = Snapshot()

        assert snapshot.pods == ()
        assert snapshot.node_names == frozenset()

    def test_node_names(self):
        snapshot = Snapshot(nodes=(Node("a"), Node("b")))

        assert snapshot.node_names == {"a", "b"}
