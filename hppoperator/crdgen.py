"""Extract the CRD, RBAC roles and operator deployment from a manifest file."""

from __future__ import annotations

import argparse
import copy
import os
from typing import Optional

import yaml

SEPARATOR = "---"

CRD_FILE = "crd_generated.yaml"
CLUSTER_ROLE_FILE = "cluster_role_generated.yaml"
ROLE_FILE = "role_generated.yaml"
DEPLOYMENT_FILE = "operator_deployment_generated.yaml"


def split_documents(text: str) -> list:
    """Split ``text`` at every ``---``, wherever it occurs.

    A trailing empty piece after the last separator is dropped.
    """
    if not text:
        return []
    pieces = text.split(SEPARATOR)
    if pieces[-1] == "":
        pieces.pop()
    return pieces


def _parse(document: str, what: str) -> dict:
    try:
        parsed = yaml.safe_load(document)
    except yaml.YAMLError as exc:
        raise ValueError(f"failed to parse {what} from text {document}, {exc}") from exc
    if parsed is None:
        return {}
    if not isinstance(parsed, dict):
        raise ValueError(f"failed to parse {what} from text {document}, not a mapping")
    return parsed


def _name(obj: dict) -> str:
    metadata = obj.get("metadata")
    if not isinstance(metadata, dict):
        return ""
    return metadata.get("name") or ""


def get_crd(document: str) -> tuple:
    """Return the singular name and the object of a CRD document."""
    crd = _parse(document, "crd")
    names = (crd.get("spec") or {}).get("names") or {}
    singular = names.get("singular") if isinstance(names, dict) else ""
    return singular or "", crd


def get_cluster_role(document: str) -> tuple:
    """Return the name and the object of a cluster role document."""
    role = _parse(document, "cluster role")
    return _name(role), role


def get_role(document: str) -> tuple:
    """Return the name and the object of a role document."""
    role = _parse(document, "role")
    return _name(role), role


def get_operator_deployment(document: str) -> tuple:
    """Return the name and the object of a deployment document."""
    deployment = _parse(document, "deployment")
    return _name(deployment), deployment


def _write(output_dir: str, file_name: str, obj: dict) -> str:
    path = os.path.join(output_dir, file_name)
    if os.path.exists(path):
        os.remove(path)
    with open(path, "w", encoding="utf-8") as handle:
        handle.write(yaml.safe_dump(obj, default_flow_style=False, sort_keys=True,
                                    allow_unicode=True))
    return path


def _is_crd(crd: dict) -> bool:
    return crd.get("kind", "CustomResourceDefinition") == "CustomResourceDefinition"


def generate_manifests(source_text: str, output_dir: str) -> list:
    """Write the CRD, roles and operator deployment found in ``source_text``.

    Returns ``(what, name, path)`` for every file written, in order. A later
    document of the same sort replaces the file of an earlier one.
    """
    written = []
    for document in split_documents(source_text):
        crd_name, crd = get_crd(document)
        if crd_name and _is_crd(crd):
            crd = copy.deepcopy(crd)
            crd.pop("status", None)
            written.append(("CRD", crd_name, _write(output_dir, CRD_FILE, crd)))

        cluster_role_name, cluster_role = get_cluster_role(document)
        if (cluster_role_name and cluster_role.get("rules")
                and cluster_role.get("kind") == "ClusterRole"):
            written.append(("cluster role", cluster_role_name,
                            _write(output_dir, CLUSTER_ROLE_FILE, cluster_role)))

        role_name, role = get_role(document)
        if role_name and role.get("rules") and role.get("kind") == "Role":
            written.append(("role", role_name, _write(output_dir, ROLE_FILE, role)))

        deployment_name, deployment = get_operator_deployment(document)
        if deployment_name and deployment.get("kind") == "Deployment":
            written.append(("operator deployment", deployment_name,
                            _write(output_dir, DEPLOYMENT_FILE, deployment)))
    return written


def main(argv: Optional[list] = None) -> int:
    """Generate manifest files from an operator manifest."""
    parser = argparse.ArgumentParser(
        description="Extract the CRD, roles and operator deployment from a manifest.")
    parser.add_argument("--sourcefile", default="deploy/operator.yaml", help="crd source file")
    parser.add_argument("--outputDir", dest="output_dir", default="tools/helper",
                        help="directory where the manifest files are generated")
    args = parser.parse_args(argv)

    with open(args.sourcefile, encoding="utf-8") as handle:
        text = handle.read()
    for what, name, path in generate_manifests(text, args.output_dir):
        print(f"Generating {what} {name}")
        print(f"output file: {path}")
    return 0