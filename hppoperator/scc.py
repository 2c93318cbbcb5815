"""Security context constraints for the provisioner and their reconciliation."""

from __future__ import annotations

import logging

from hppoperator.reconcile import NoMatchError, ResourceNames, delete_object, reconcile_object

SCC_API_VERSION = "security.openshift.io/v1"
SCC_KIND = "SecurityContextConstraints"

REQUIRED_DROP_CAPABILITIES = ("KILL", "MKNOD", "SETUID", "SETGID")
RUN_AS_ANY = "RunAsAny"

_log = logging.getLogger(__name__)


def _service_account_user(namespace: str, sa_name: str) -> str:
    return f"system:serviceaccount:{namespace}:{sa_name}"


def _scc(names: ResourceNames, name: str, user: str, privileged: bool, host_dir: bool) -> dict:
    return {
        "apiVersion": SCC_API_VERSION,
        "kind": SCC_KIND,
        "metadata": {"name": name, "labels": names.labels()},
        "groups": [],
        "allowPrivilegedContainer": privileged,
        "requiredDropCapabilities": list(REQUIRED_DROP_CAPABILITIES),
        "runAsUser": {"type": RUN_AS_ANY},
        "seLinuxContext": {"type": RUN_AS_ANY},
        "fsGroup": {"type": RUN_AS_ANY},
        "supplementalGroups": {"type": RUN_AS_ANY},
        "allowHostDirVolumePlugin": host_dir,
        "users": [user],
    }


def create_scc_object(names: ResourceNames, namespace: str) -> dict:
    """Return the constraints for the legacy provisioner's service account."""
    scc = _scc(
        names,
        names.app_name,
        _service_account_user(namespace, names.provisioner_service_account),
        privileged=False,
        host_dir=True,
    )
    scc["volumes"] = ["hostPath", "secret", "projected"]
    return scc


def create_csi_scc_object(names: ResourceNames, namespace: str) -> dict:
    """Return the constraints for the CSI driver's service account."""
    return _scc(
        names,
        f"{names.app_name}-csi",
        _service_account_user(namespace, names.csi_service_account),
        privileged=True,
        host_dir=False,
    )


def scc_used(client) -> bool:
    """Return whether the cluster serves security context constraints."""
    try:
        client.list(SCC_KIND)
    except NoMatchError:
        return False
    return True


def reconcile_security_context_constraints(client, recorder, cr, names: ResourceNames,
                                           namespace: str) -> list:
    """Reconcile both constraints when the cluster uses them; return the outcomes."""
    if not scc_used(client):
        return []
    return [
        reconcile_object(client, recorder, cr, desired, _log)
        for desired in (create_scc_object(names, namespace), create_csi_scc_object(names, namespace))
    ]


def delete_scc(client, name: str) -> None:
    """Delete the named constraints if the cluster uses them and they exist."""
    if not scc_used(client):
        return
    delete_object(client, SCC_KIND, name)