"""Service accounts for the provisioner and their reconciliation."""

from __future__ import annotations

import logging

from hppoperator.merge import set_last_applied_configuration
from hppoperator.reconcile import (
    ResourceNames,
    delete_object,
    reconcile_object,
    set_controller_reference,
)

SERVICE_ACCOUNT_KIND = "ServiceAccount"
OWNER_KIND = "HostPathProvisioner"

_log = logging.getLogger(__name__)


def create_service_account(name: str, namespace: str, labels: dict) -> dict:
    """Return a service account object."""
    return {
        "apiVersion": "v1",
        "kind": SERVICE_ACCOUNT_KIND,
        "metadata": {"name": name, "namespace": namespace, "labels": dict(labels)},
    }


def create_service_account_object(names: ResourceNames, namespace: str) -> dict:
    """Return the legacy provisioner's service account."""
    return create_service_account(names.provisioner_service_account, namespace, names.labels())


def create_csi_service_account_object(names: ResourceNames, namespace: str) -> dict:
    """Return the CSI driver's service account."""
    return create_service_account(names.csi_service_account, namespace, names.labels())


def get_duplicate_service_accounts(client, cr_name: str, names: ResourceNames,
                                   namespace: str) -> list:
    """Return service accounts left by older versions that named them after the CR."""
    fixed = {names.provisioner_service_account, names.health_check, names.csi_service_account}
    candidates = client.list(
        SERVICE_ACCOUNT_KIND,
        namespace=namespace,
        label_selector={"k8s-app": {names.app_name, cr_name}},
    )
    return [
        account
        for account in candidates
        if account["metadata"]["name"] not in fixed
        and any(
            ref.get("kind") == OWNER_KIND and ref.get("name") == cr_name
            for ref in account["metadata"].get("ownerReferences") or []
        )
    ]


def delete_service_account(client, name: str, namespace: str) -> None:
    """Delete a service account if it exists."""
    delete_object(client, SERVICE_ACCOUNT_KIND, name, namespace)


def reconcile_service_accounts(client, recorder, cr, names: ResourceNames,
                               namespace: str) -> list:
    """Remove duplicate accounts, then reconcile the fixed ones; return their outcomes."""
    cr_name = (cr.get("metadata") or {}).get("name", "")
    for duplicate in get_duplicate_service_accounts(client, cr_name, names, namespace):
        dup_name = duplicate["metadata"]["name"]
        _log.info("Deleting extra service account %s/%s", namespace, dup_name)
        delete_service_account(client, dup_name, namespace)

    outcomes = []
    for desired in (create_service_account_object(names, namespace),
                    create_csi_service_account_object(names, namespace)):
        set_last_applied_configuration(desired)
        set_controller_reference(cr, desired)
        outcomes.append(reconcile_object(client, recorder, cr, desired, _log))
    return outcomes