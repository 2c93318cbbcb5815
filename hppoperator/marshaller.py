"""Render Kubernetes objects as cleaned-up YAML documents."""

from __future__ import annotations

import json
from typing import Any, TextIO

import yaml

MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"

_MISSING = object()


def _nested(obj: Any, *path: str) -> Any:
    current = obj
    for key in path:
        if not isinstance(current, dict) or key not in current:
            return _MISSING
        current = current[key]
    return current


def _remove_nested(obj: Any, *path: str) -> None:
    current = obj
    for key in path[:-1]:
        if not isinstance(current, dict):
            return
        current = current.get(key)
    if isinstance(current, dict):
        current.pop(path[-1], None)


def _has_string(obj: Any, *path: str) -> bool:
    return isinstance(_nested(obj, *path), str)


def _clean(doc: dict) -> None:
    _remove_nested(doc, "metadata", "creationTimestamp")
    _remove_nested(doc, "template", "metadata", "creationTimestamp")
    _remove_nested(doc, "spec", "template", "metadata", "creationTimestamp")
    _remove_nested(doc, "status")

    templates = _nested(doc, "spec", "dataVolumeTemplates")
    if isinstance(templates, list):
        for template in templates:
            if isinstance(template, dict) and not _has_string(template, "spec", "pvc", "dataSource"):
                _remove_nested(template, "spec", "pvc", "dataSource")

    objects = _nested(doc, "objects")
    if isinstance(objects, list):
        for item in objects:
            if not isinstance(item, dict):
                continue
            if item.get("kind") == "PersistentVolumeClaim" and not _has_string(item, "spec", "dataSource"):
                _remove_nested(item, "spec", "dataSource")

    deployments = _nested(doc, "spec", "install", "spec", "deployments")
    if isinstance(deployments, list):
        for deployment in deployments:
            if not isinstance(deployment, dict):
                continue
            _remove_nested(deployment, "metadata", "creationTimestamp")
            _remove_nested(deployment, "spec", "template", "metadata", "creationTimestamp")
            _remove_nested(deployment, "status")

    labels = _nested(doc, "metadata", "labels")
    if isinstance(labels, dict):
        labels.pop(MANAGED_BY_LABEL, None)


def render_object(obj: Any) -> str:
    """Return ``obj`` as a YAML document preceded by a ``---`` separator.

    Creation timestamps, status and empty data sources are stripped, and
    quoting around templates and double-quoted strings is removed.
    """
    doc = json.loads(json.dumps(obj))
    if not isinstance(doc, dict):
        raise ValueError("object does not serialise to a JSON object")
    _clean(doc)

    text = yaml.safe_dump(doc, default_flow_style=False, sort_keys=True, allow_unicode=True)
    text = text.replace("'{{", "{{").replace("}}'", "}}")
    text = text.replace(" '\"", " \"").replace("\"'\n", "\"\n")
    return "---\n" + text


def marshall_object(obj: Any, writer: TextIO) -> None:
    """Write ``obj`` to ``writer`` as rendered by :func:`render_object`."""
    writer.write(render_object(obj))