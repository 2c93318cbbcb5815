"""Build the operator deployment and load the CRD from manifest text."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import yaml

OPENSHIFT_PRIORITY_CLASS_NAME = "openshift-user-critical"
OPERATOR_LABEL = "operator.hostpath-provisioner.kubevirt.io"


@dataclass
class OperatorArgs:
    """Settings applied to the operator deployment."""

    namespace: str = ""
    image_pull_policy: str = ""
    verbosity: str = "1"
    operator_image: str = ""
    provisioner_image: str = ""
    csi_driver_image: str = ""
    csi_external_health_monitor_image: str = ""
    csi_node_driver_registrar_image: str = ""
    csi_liveness_probe_image: str = ""
    csi_external_provisioner_image: str = ""
    csi_snapshotter_image: str = ""


def _load_mapping(text: str, what: str) -> dict:
    try:
        document = next(iter(yaml.safe_load_all(text)), None)
    except yaml.YAMLError as exc:
        raise ValueError(f"invalid {what} YAML: {exc}") from exc
    if not isinstance(document, dict):
        raise ValueError(f"{what} YAML does not hold a mapping")
    return document


def set_env_variable(key: str, value: str, env: list) -> None:
    """Set the value of every entry of ``env`` named ``key``."""
    for entry in env:
        if entry.get("name") == key:
            entry["value"] = value


def create_operator_deployment(args: OperatorArgs, deployment_yaml: str) -> dict:
    """Return the operator deployment from ``deployment_yaml`` customised by ``args``."""
    deployment = _load_mapping(deployment_yaml, "deployment")
    deployment.setdefault("metadata", {})["namespace"] = args.namespace

    spec = deployment.setdefault("spec", {})
    selector = spec.setdefault("selector", {})
    if selector.get("matchLabels") is None:
        selector["matchLabels"] = {}
    selector["matchLabels"][OPERATOR_LABEL] = ""

    template = spec.setdefault("template", {})
    template_meta = template.setdefault("metadata", {})
    if template_meta.get("labels") is None:
        template_meta["labels"] = {}
    template_meta["labels"][OPERATOR_LABEL] = ""

    pod_spec = template.setdefault("spec", {})
    pod_spec["priorityClassName"] = OPENSHIFT_PRIORITY_CLASS_NAME
    containers = pod_spec.get("containers") or []
    if not containers:
        raise ValueError("deployment has no containers")
    container = containers[0]
    container["image"] = args.operator_image
    container["imagePullPolicy"] = args.image_pull_policy

    env = container.get("env") or []
    env.append({"name": "PRIORITY_CLASS", "value": OPENSHIFT_PRIORITY_CLASS_NAME})
    container["env"] = env
    for key, value in (
        ("VERBOSITY", args.verbosity),
        ("PROVISIONER_IMAGE", args.provisioner_image),
        ("CSI_PROVISIONER_IMAGE", args.csi_driver_image),
        ("EXTERNAL_HEALTH_MON_IMAGE", args.csi_external_health_monitor_image),
        ("NODE_DRIVER_REG_IMAGE", args.csi_node_driver_registrar_image),
        ("LIVENESS_PROBE_IMAGE", args.csi_liveness_probe_image),
        ("CSI_SIG_STORAGE_PROVISIONER_IMAGE", args.csi_external_provisioner_image),
        ("CSI_SNAPSHOT_IMAGE", args.csi_snapshotter_image),
    ):
        set_env_variable(key, value, env)
    return deployment


def load_crd(crd_yaml: str) -> dict:
    """Return the custom resource definition held in ``crd_yaml``."""
    return _load_mapping(crd_yaml, "CRD")