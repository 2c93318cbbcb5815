"""Export custom resource definitions as YAML files."""

from __future__ import annotations

import argparse
import copy
import os
from pathlib import Path
from typing import Iterable, Optional

import yaml

from hppoperator.marshaller import marshall_object


def export_crds(crds: Iterable[dict], export_path: str = "") -> list:
    """Write each CRD, without its conversion settings, to a file named after it.

    ``export_path`` is created when given and missing. Returns the written paths.
    """
    if export_path:
        Path(export_path).mkdir(exist_ok=True)
    written = []
    for crd in crds:
        crd = copy.deepcopy(crd)
        name = (crd.get("metadata") or {}).get("name")
        if not name:
            raise ValueError("CRD has no metadata.name")
        spec = crd.get("spec")
        if isinstance(spec, dict):
            spec.pop("conversion", None)
        path = os.path.join(export_path, name)
        with open(path, "w", encoding="utf-8") as handle:
            marshall_object(crd, handle)
        written.append(path)
    return written


def _crds_from_manifest(text: str) -> list:
    return [
        document
        for document in yaml.safe_load_all(text)
        if isinstance(document, dict) and document.get("kind") == "CustomResourceDefinition"
    ]


def main(argv: Optional[list] = None) -> int:
    """Export the CRDs found in a manifest file."""
    parser = argparse.ArgumentParser(description="Export the operator CRD schemas to YAML files.")
    parser.add_argument("--export-path", default="", help="directory to write the CRDs to")
    parser.add_argument("--sourcefile", default="deploy/operator.yaml",
                        help="manifest file holding the CRDs")
    args = parser.parse_args(argv)
    with open(args.sourcefile, encoding="utf-8") as handle:
        crds = _crds_from_manifest(handle.read())
    export_crds(crds, args.export_path)
    return 0