"""Build the ClusterServiceVersion manifest of the operator."""

from __future__ import annotations

import argparse
import json
import os
import sys
from dataclasses import dataclass, field
from typing import Optional

import semver
import yaml

from hppoperator.crdgen import CLUSTER_ROLE_FILE, CRD_FILE, DEPLOYMENT_FILE, ROLE_FILE
from hppoperator.deployment import OperatorArgs, create_operator_deployment, load_crd
from hppoperator.marshaller import marshall_object

CSV_API_VERSION = "operators.coreos.com/v1alpha1"
CSV_KIND = "ClusterServiceVersion"
OPERATOR_NAME = "hostpath-provisioner-operator"

DESCRIPTION = (
    "\nHostpath provisioner is a local storage provisioner that uses kubernetes hostpath "
    "support to create directories on the host that map to a PV. These PVs are dynamically "
    "created when a new PVC is requested.\n"
)

_ALM_EXAMPLE = [
    {
        "apiVersion": "hostpathprovisioner.kubevirt.io/v1beta1",
        "kind": "HostPathProvisioner",
        "metadata": {"name": "hostpath-provisioner"},
        "spec": {
            "imagePullPolicy": "IfNotPresent",
            "pathConfig": {"path": "/var/hpvolumes", "useNamingPrefix": False},
        },
    }
]

_OWNER_LABELS = {
    "alm-owner-hostpath-provisioner": OPERATOR_NAME,
    "operated-by": OPERATOR_NAME,
}

_TEXT = "urn:alm:descriptor:text"


@dataclass
class ClusterServiceVersionData:
    """Arguments used to build the ClusterServiceVersion manifest."""

    csv_version: str
    replaces_csv_version: str = ""
    icon_base64: str = ""
    operator_args: OperatorArgs = field(default_factory=OperatorArgs)
    operator_service_account: str = ""
    maintainer_email: str = "maintainers@example.com"
    links: tuple = ()


def rules_from_yaml(text: str) -> list:
    """Return the policy rules of the role or cluster role held in ``text``."""
    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ValueError(f"invalid role YAML: {exc}") from exc
    if document is None:
        return []
    if not isinstance(document, dict):
        raise ValueError("role YAML does not hold a mapping")
    return list(document.get("rules") or [])


def _descriptor(description: str, display_name: str, path: str, x_descriptor: str) -> dict:
    return {
        "description": description,
        "displayName": display_name,
        "path": path,
        "x-descriptors": [x_descriptor],
    }


def _owned_crd() -> dict:
    return {
        "name": "hostpathprovisioners.hostpathprovisioner.kubevirt.io",
        "version": "v1beta1",
        "kind": "HostPathProvisioner",
        "displayName": "HostPathProvisioner deployment",
        "description": "Represents a HostPathProvisioner deployment",
        "specDescriptors": [
            _descriptor("The ImageRegistry to use for the HostPathProvisioner components",
                        "ImageRegistry", "imageRegistry", _TEXT),
            _descriptor("The ImageTag to use for the HostPathProvisioner components",
                        "ImageTag", "imageTag", _TEXT),
            _descriptor("The ImagePullPolicy to use for the HostPathProvisioner components",
                        "ImagePullPolicy", "imagePullPolicy",
                        "urn:alm:descriptor:io.kubernetes:imagePullPolicy"),
            _descriptor("describes the location and layout of PV storage on nodes",
                        "PathConfig", "pathConfig", _TEXT),
        ],
        "statusDescriptors": [
            _descriptor("Explanation for the current status of the HostPathProvisioner deployment.",
                        "Conditions", "conditions", "urn:alm:descriptor:io.kubernetes.conditions"),
            _descriptor("The observed version of the HostPathProvisioner deployment",
                        "Observed HostPathProvisioner Version", "observedVersion", _TEXT),
            _descriptor("The targeted version of the HostPathProvisioner deployment",
                        "Target HostPathProvisioner Version", "targetVersion", _TEXT),
            _descriptor("The version of the HostPathProvisioner Operator",
                        "HostPathProvisioner Operator Version", "operatorVersion", _TEXT),
        ],
    }


def _service_account(data: ClusterServiceVersionData, deployment: dict) -> str:
    if data.operator_service_account:
        return data.operator_service_account
    pod_spec = ((deployment.get("spec") or {}).get("template") or {}).get("spec") or {}
    name = pod_spec.get("serviceAccountName")
    if not name:
        raise ValueError("no operator service account given and none in the deployment")
    return name


def create_cluster_service_version(data: ClusterServiceVersionData, deployment_yaml: str,
                                   cluster_role_yaml: str, role_yaml: str) -> dict:
    """Return the ClusterServiceVersion object for ``data``.

    Raises ``ValueError`` when ``data.csv_version`` is not a semantic version
    or a manifest cannot be read.
    """
    deployment = create_operator_deployment(data.operator_args, deployment_yaml)
    service_account = _service_account(data, deployment)

    strategy_spec = {
        "permissions": [
            {"serviceAccountName": service_account, "rules": rules_from_yaml(role_yaml)},
        ],
        "clusterPermissions": [
            {"serviceAccountName": service_account, "rules": rules_from_yaml(cluster_role_yaml)},
        ],
        "deployments": [
            {"name": OPERATOR_NAME, "spec": deployment.get("spec") or {}},
        ],
    }

    version = semver.Version.parse(data.csv_version)

    metadata = {
        "name": "hostpathprovisioneroperator." + data.csv_version,
        "annotations": {
            "capabilities": "Full Lifecycle",
            "categories": "Storage",
            "alm-examples": json.dumps(_ALM_EXAMPLE, indent=2),
            "description": "Creates and maintains hostpath provisioner deployments",
        },
    }
    if data.operator_args.namespace:
        metadata["namespace"] = data.operator_args.namespace

    spec = {
        "displayName": "Hostpath Provisioner",
        "description": DESCRIPTION,
        "keywords": ["Hostpath Provisioner", "Storage"],
        "version": str(version),
        "maturity": "beta",
        "maintainers": [{"name": "KubeVirt project", "email": data.maintainer_email}],
        "provider": {"name": "KubeVirt/Hostpath-provisioner project"},
        "links": [{"name": name, "url": url} for name, url in data.links],
        "icon": [{"base64data": data.icon_base64, "mediatype": "image/png"}],
        "labels": dict(_OWNER_LABELS),
        "selector": {"matchLabels": dict(_OWNER_LABELS)},
        "installModes": [
            {"type": "OwnNamespace", "supported": True},
            {"type": "SingleNamespace", "supported": True},
            {"type": "MultiNamespace", "supported": False},
            {"type": "AllNamespaces", "supported": False},
        ],
        "install": {"strategy": "deployment", "spec": strategy_spec},
        "customresourcedefinitions": {"owned": [_owned_crd()]},
    }
    if data.replaces_csv_version:
        spec["replaces"] = data.replaces_csv_version

    return {"apiVersion": CSV_API_VERSION, "kind": CSV_KIND, "metadata": metadata, "spec": spec}


def _read(path: str) -> str:
    with open(path, encoding="utf-8") as handle:
        return handle.read()


def main(argv: Optional[list] = None) -> int:
    """Print the ClusterServiceVersion, and optionally the CRD, as YAML."""
    parser = argparse.ArgumentParser(description="Generate the operator ClusterServiceVersion.")
    parser.add_argument("--csv-version", default="")
    parser.add_argument("--replaces-csv-version", default="")
    parser.add_argument("--namespace", default="")
    parser.add_argument("--pull-policy", default="")
    parser.add_argument("--logo-base64", default="")
    parser.add_argument("--verbosity", default="1")
    parser.add_argument("--operator-image-name", default="")
    parser.add_argument("--provisioner-image-name", default="")
    parser.add_argument("--csi-driver-image-name", default="")
    parser.add_argument("--csi-external-health-monitor-image-name", default="")
    parser.add_argument("--csi-node-driver-image-name", default="")
    parser.add_argument("--csi-liveness-probe-image-name", default="")
    parser.add_argument("--csi-external-provisioner-image-name", default="")
    parser.add_argument("--csi-snapshotter-image-name", default="")
    parser.add_argument("--dump-crds", action="store_true",
                        help="also dump the operator CRD manifest")
    parser.add_argument("--manifest-dir", default="tools/helper",
                        help="directory holding the generated manifest files")
    args = parser.parse_args(argv)

    data = ClusterServiceVersionData(
        csv_version=args.csv_version,
        replaces_csv_version=args.replaces_csv_version,
        icon_base64=args.logo_base64,
        operator_args=OperatorArgs(
            namespace=args.namespace,
            image_pull_policy=args.pull_policy,
            verbosity=args.verbosity,
            operator_image=args.operator_image_name,
            provisioner_image=args.provisioner_image_name,
            csi_driver_image=args.csi_driver_image_name,
            csi_external_health_monitor_image=args.csi_external_health_monitor_image_name,
            csi_node_driver_registrar_image=args.csi_node_driver_image_name,
            csi_liveness_probe_image=args.csi_liveness_probe_image_name,
            csi_external_provisioner_image=args.csi_external_provisioner_image_name,
            csi_snapshotter_image=args.csi_snapshotter_image_name,
        ),
    )
    directory = args.manifest_dir
    csv = create_cluster_service_version(
        data,
        _read(os.path.join(directory, DEPLOYMENT_FILE)),
        _read(os.path.join(directory, CLUSTER_ROLE_FILE)),
        _read(os.path.join(directory, ROLE_FILE)),
    )
    marshall_object(csv, sys.stdout)
    if args.dump_crds:
        marshall_object(load_crd(_read(os.path.join(directory, CRD_FILE))), sys.stdout)
    return 0