"""Namespace scoping and label selection between pods, bindings and identities.

Two independent rules decide whether a pod may use an identity, with the
"default" namespace acting as a cluster-wide wildcard at each level:

1. A binding is visible to a pod if it lives in the pod's namespace or in
   "default".
2. An identity is usable by a binding if it lives in the binding's namespace
   or in "default".

A namespaced identity therefore never crosses into a "default" binding, and
a namespaced binding never reaches pods of other namespaces. Everything in
this module is pure.
"""

from collections.abc import Mapping

from constants import DEFAULT_NAMESPACE
from models import Binding, Identity, LabelSelector, Pod, SelectorOperator, SelectorRequirement


def binding_visible_to_pod(binding: Binding, pod: Pod) -> bool:
    """Check whether a binding applies to pods in the pod's namespace."""
    return binding.namespace == pod.namespace or binding.namespace == DEFAULT_NAMESPACE


def identity_usable_by_binding(identity: Identity, binding: Binding) -> bool:
    """Check whether a binding may reference the identity."""
    return (
        identity.namespace == binding.namespace
        or identity.namespace == DEFAULT_NAMESPACE
    )


def _requirement_matches(requirement: SelectorRequirement, labels: Mapping[str, str]) -> bool:
    present = requirement.key in labels
    if requirement.operator is SelectorOperator.EXISTS:
        return present
    if requirement.operator is SelectorOperator.DOES_NOT_EXIST:
        return not present
    if requirement.operator is SelectorOperator.IN:
        return present and labels[requirement.key] in requirement.values
    # NotIn also matches pods without the label
    return not present or labels[requirement.key] not in requirement.values


def selector_matches(selector: LabelSelector, labels: Mapping[str, str]) -> bool:
    """Match labels against a selector.

    All matchLabels pairs and all matchExpressions must hold. A selector
    without any requirement matches nothing, so an incomplete binding never
    grants an identity to every pod.
    """
    if selector.is_empty:
        return False
    for key, value in selector.match_labels.items():
        if labels.get(key) != value:
            return False
    return all(
        _requirement_matches(requirement, labels)
        for requirement in selector.match_expressions
    )


def pod_matches_binding(pod: Pod, binding: Binding) -> bool:
    """Check namespace visibility and selector match together."""
    return binding_visible_to_pod(binding, pod) and selector_matches(
        binding.selector, pod.labels
    )
