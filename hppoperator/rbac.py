"""RBAC objects for the provisioner and their reconciliation."""

from __future__ import annotations

import logging
from typing import Iterable

from hppoperator.reconcile import ResourceNames, delete_object, reconcile_object

RBAC_API_GROUP = "rbac.authorization.k8s.io"
RBAC_API_VERSION = "rbac.authorization.k8s.io/v1"

_log = logging.getLogger(__name__)


def _rule(api_groups: Iterable[str], resources: Iterable[str], verbs: Iterable[str]) -> dict:
    return {"apiGroups": list(api_groups), "resources": list(resources), "verbs": list(verbs)}


def _metadata(names: ResourceNames, name: str, namespace: str = "") -> dict:
    metadata = {"name": name, "labels": names.labels()}
    if namespace:
        metadata["namespace"] = namespace
    return metadata


def _binding(kind: str, role_kind: str, names: ResourceNames, name: str,
             namespace: str, sa_name: str, bound_namespace: str) -> dict:
    return {
        "apiVersion": RBAC_API_VERSION,
        "kind": kind,
        "metadata": _metadata(names, name, bound_namespace),
        "subjects": [{"kind": "ServiceAccount", "name": sa_name, "namespace": namespace}],
        "roleRef": {"kind": role_kind, "name": name, "apiGroup": RBAC_API_GROUP},
    }


def create_cluster_role_binding_object(names: ResourceNames, name: str, namespace: str,
                                       sa_name: str) -> dict:
    """Return a cluster role binding of cluster role ``name`` to a service account."""
    return _binding("ClusterRoleBinding", "ClusterRole", names, name, namespace, sa_name, "")


def create_role_binding_object(names: ResourceNames, name: str, namespace: str,
                               sa_name: str) -> dict:
    """Return a role binding of role ``name`` to a service account in ``namespace``."""
    return _binding("RoleBinding", "Role", names, name, namespace, sa_name, namespace)


def _cluster_role(names: ResourceNames, name: str, rules: list) -> dict:
    return {
        "apiVersion": RBAC_API_VERSION,
        "kind": "ClusterRole",
        "metadata": _metadata(names, name),
        "rules": rules,
    }


def _role(names: ResourceNames, name: str, namespace: str, rules: list) -> dict:
    return {
        "apiVersion": RBAC_API_VERSION,
        "kind": "Role",
        "metadata": _metadata(names, name, namespace),
        "rules": rules,
    }


def create_cluster_role_object_provisioner(names: ResourceNames) -> dict:
    """Return the cluster role of the legacy provisioner."""
    return _cluster_role(names, names.app_name, [
        _rule([""], ["persistentvolumes"], ["get", "list", "watch", "create", "delete"]),
        _rule([""], ["persistentvolumeclaims"], ["get", "list", "watch", "update"]),
        _rule(["storage.k8s.io"], ["storageclasses"], ["get", "list", "watch"]),
        _rule([""], ["events"], ["list", "watch", "create", "patch", "update"]),
        _rule([""], ["nodes"], ["get"]),
    ])


def create_snapshot_csi_cluster_rules() -> list:
    """Return the extra rules the CSI driver needs for snapshots."""
    return [
        _rule(["snapshot.storage.k8s.io"], ["volumesnapshotclasses"], ["get", "list", "watch"]),
        _rule(["snapshot.storage.k8s.io"], ["volumesnapshots"], ["get"]),
        _rule(["snapshot.storage.k8s.io"], ["volumesnapshotcontents"],
              ["create", "get", "list", "watch", "update", "delete", "patch"]),
        _rule(["snapshot.storage.k8s.io"], ["volumesnapshotcontents/status"], ["update", "patch"]),
    ]


def create_csi_cluster_role_object_provisioner(names: ResourceNames, snapshot_enabled: bool) -> dict:
    """Return the cluster role of the CSI driver, with snapshot rules when enabled."""
    rules = [
        _rule([""], ["persistentvolumes"], ["get", "list", "watch", "create", "delete"]),
        _rule([""], ["persistentvolumeclaims"], ["get", "list", "watch", "update"]),
        _rule(["storage.k8s.io"], ["storageclasses"], ["get", "list", "watch"]),
        _rule([""], ["events"], ["list", "watch", "create", "patch", "update"]),
        _rule(["storage.k8s.io"], ["csinodes"], ["get", "list", "watch"]),
        _rule([""], ["nodes"], ["get", "list", "watch"]),
        _rule(["storage.k8s.io"], ["volumeattachments"], ["get", "list", "watch", "patch"]),
        _rule(["storage.k8s.io"], ["volumeattachments/status"], ["patch"]),
    ]
    if snapshot_enabled:
        rules.extend(create_snapshot_csi_cluster_rules())
    return _cluster_role(names, names.csi_service_account, rules)


def create_cluster_role_object_health_check(names: ResourceNames) -> dict:
    """Return the cluster role of the health check."""
    return _cluster_role(names, names.health_check, [
        _rule([""], ["persistentvolumes"], ["get", "list", "watch"]),
        _rule([""], ["persistentvolumeclaims"], ["get", "list", "watch"]),
        _rule([""], ["nodes"], ["get", "list", "watch"]),
        _rule([""], ["pods"], ["get", "list", "watch"]),
        _rule([""], ["events"], ["get", "list", "watch", "create", "patch"]),
    ])


def create_role_object_provisioner(names: ResourceNames, namespace: str) -> dict:
    """Return the namespaced role of the CSI provisioner."""
    return _role(names, names.csi_service_account, namespace, [
        _rule(["coordination.k8s.io"], ["leases"],
              ["get", "list", "watch", "delete", "update", "create"]),
        _rule(["storage.k8s.io"], ["csistoragecapacities"],
              ["get", "list", "watch", "delete", "update", "create"]),
        _rule([""], ["pods"], ["get"]),
    ])


def create_role_object_health_check(names: ResourceNames, namespace: str) -> dict:
    """Return the namespaced role of the health check."""
    return _role(names, names.health_check, namespace, [
        _rule(["coordination.k8s.io"], ["leases"],
              ["get", "list", "watch", "delete", "update", "create"]),
    ])


def reconcile_cluster_role_binding(client, recorder, cr, names: ResourceNames,
                                   namespace: str) -> list:
    """Reconcile the cluster role bindings; return the outcome of each."""
    desired = [
        ("provisioner", create_cluster_role_binding_object(
            names, names.csi_service_account, namespace, names.csi_service_account)),
        ("health-check", create_cluster_role_binding_object(
            names, names.health_check, namespace, names.csi_service_account)),
        ("provisioner", create_cluster_role_binding_object(
            names, names.app_name, namespace, names.provisioner_service_account)),
    ]
    return [reconcile_object(client, recorder, cr, obj, _log.getChild(label))
            for label, obj in desired]


def reconcile_cluster_role(client, recorder, cr, names: ResourceNames,
                           snapshot_enabled: bool) -> list:
    """Reconcile the cluster roles; return the outcome of each."""
    desired = [
        create_cluster_role_object_provisioner(names),
        create_csi_cluster_role_object_provisioner(names, snapshot_enabled),
        create_cluster_role_object_health_check(names),
    ]
    logger = _log.getChild("provisioner")
    return [reconcile_object(client, recorder, cr, obj, logger) for obj in desired]


def reconcile_role_binding(client, recorder, cr, names: ResourceNames, namespace: str) -> list:
    """Reconcile the namespaced role bindings; return the outcome of each."""
    desired = [
        ("provisioner", create_role_binding_object(
            names, names.csi_service_account, namespace, names.csi_service_account)),
        ("health-check", create_role_binding_object(
            names, names.health_check, namespace, names.csi_service_account)),
    ]
    return [reconcile_object(client, recorder, cr, obj, _log.getChild(label))
            for label, obj in desired]


def reconcile_role(client, recorder, cr, names: ResourceNames, namespace: str) -> list:
    """Reconcile the namespaced roles; return the outcome of each."""
    desired = [
        ("provisioner", create_role_object_provisioner(names, namespace)),
        ("health-check", create_role_object_health_check(names, namespace)),
    ]
    return [reconcile_object(client, recorder, cr, obj, _log.getChild(label))
            for label, obj in desired]


def delete_cluster_role_binding(client, name: str) -> None:
    """Delete a cluster role binding if it exists."""
    delete_object(client, "ClusterRoleBinding", name)


def delete_cluster_role(client, name: str) -> None:
    """Delete a cluster role if it exists."""
    delete_object(client, "ClusterRole", name)


def delete_role_binding(client, name: str, namespace: str) -> None:
    """Delete a role binding if it exists."""
    delete_object(client, "RoleBinding", name, namespace)


def delete_role(client, name: str, namespace: str) -> None:
    """Delete a role if it exists."""
    delete_object(client, "Role", name, namespace)