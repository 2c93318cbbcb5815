"""Three-way merging of desired and live objects, and shared object helpers."""

from __future__ import annotations

import copy
import json
from typing import Any, Optional

CREATE_VERSION_LABEL = "hostpathprovisioner.kubevirt.io/createVersion"
UPDATE_VERSION_LABEL = "hostpathprovisioner.kubevirt.io/updateVersion"
LAST_APPLIED_CONFIG_ANNOTATION = "hostpathprovisioner.kubevirt.io/lastAppliedConfiguration"

APP_KUBERNETES_MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
APP_KUBERNETES_COMPONENT_LABEL = "app.kubernetes.io/component"
APP_KUBERNETES_PART_OF_LABEL = "app.kubernetes.io/part-of"
APP_KUBERNETES_VERSION_LABEL = "app.kubernetes.io/version"


class MergeError(ValueError):
    """Raised when a desired object cannot be merged into the live one."""


def _kind(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    raise MergeError(f"unsupported JSON value {value!r}")


def _json_equal(a: Any, b: Any) -> bool:
    kind = _kind(a)
    if kind != _kind(b):
        return False
    if kind == "object":
        return a.keys() == b.keys() and all(_json_equal(a[k], b[k]) for k in a)
    if kind == "array":
        return len(a) == len(b) and all(_json_equal(x, y) for x, y in zip(a, b))
    return a == b


def _as_object(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    if isinstance(value, str):
        try:
            return json.loads(value) if value else {}
        except json.JSONDecodeError as exc:
            raise MergeError(f"invalid JSON document: {exc}") from exc
    return {} if value is None else value


def merge_labels_and_annotations(src: dict, dest: dict) -> None:
    """Copy labels and annotations of ``src`` onto ``dest``, keeping extra ones of ``dest``."""
    src_meta = src.get("metadata") or {}
    for field in ("labels", "annotations"):
        values = src_meta.get(field) or {}
        if not values:
            continue
        dest_meta = dest.setdefault("metadata", {})
        if dest_meta.get(field) is None:
            dest_meta[field] = {}
        dest_meta[field].update(values)


def set_last_applied_configuration(obj: dict) -> None:
    """Record the JSON form of ``obj`` in its last-applied annotation."""
    encoded = json.dumps(obj, sort_keys=True, separators=(",", ":"))
    metadata = obj.setdefault("metadata", {})
    if metadata.get("annotations") is None:
        metadata["annotations"] = {}
    metadata["annotations"][LAST_APPLIED_CONFIG_ANNOTATION] = encoded


def _merge_diff(a: dict, b: dict) -> dict:
    into: dict = {}
    for key, bv in b.items():
        if key not in a:
            into[key] = bv
            continue
        av = a[key]
        if _kind(av) != _kind(bv):
            into[key] = bv
        elif isinstance(av, dict):
            sub = _merge_diff(av, bv)
            if sub:
                into[key] = sub
        elif not _json_equal(av, bv):
            into[key] = bv
    for key in a:
        if key not in b:
            into[key] = None
    return into


def _filter_nulls(patch: dict, keep_null: bool) -> dict:
    filtered: dict = {}
    for key, value in patch.items():
        if value is None:
            if keep_null:
                filtered[key] = None
        elif isinstance(value, dict):
            if not value:
                if not keep_null:
                    filtered[key] = value
                continue
            sub = _filter_nulls(value, keep_null)
            if sub:
                filtered[key] = sub
        elif not keep_null:
            filtered[key] = value
    return filtered


def _has_conflicts(left: Any, right: Any) -> bool:
    if isinstance(left, dict):
        if not isinstance(right, dict):
            return True
        return any(_has_conflicts(value, right[key]) for key, value in left.items() if key in right)
    if isinstance(left, list):
        if not isinstance(right, list) or len(left) != len(right):
            return True
        return any(_has_conflicts(x, y) for x, y in zip(left, right))
    return not _json_equal(left, right)


def _prune_nulls(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _prune_nulls(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [_prune_nulls(v) for v in value]
    return value


def _merge_into(doc: dict, patch: dict) -> None:
    for key, value in patch.items():
        if value is None:
            doc.pop(key, None)
        elif isinstance(doc.get(key), dict) and isinstance(value, dict):
            _merge_into(doc[key], value)
        else:
            doc[key] = _prune_nulls(copy.deepcopy(value))


def apply_merge_patch(document: Any, patch: Any) -> Any:
    """Apply a JSON merge patch to ``document`` and return the result."""
    document = _as_object(document)
    patch = _as_object(patch)
    if not isinstance(patch, dict):
        return _prune_nulls(copy.deepcopy(patch))
    result = copy.deepcopy(document) if isinstance(document, dict) else {}
    _merge_into(result, patch)
    return result


def _preconditions_hold(patch: dict) -> bool:
    if "apiVersion" in patch or "kind" in patch:
        return False
    metadata = patch.get("metadata")
    return not (isinstance(metadata, dict) and "name" in metadata)


def create_three_way_merge_patch(original: Any, modified: Any, current: Any) -> dict:
    """Build a merge patch turning ``current`` into ``modified``.

    Fields present in ``original`` but dropped from ``modified`` are deleted;
    fields only ``current`` has are left alone. Raises :class:`MergeError`
    on conflicts or when apiVersion, kind or metadata.name would change.
    """
    original, modified, current = (_as_object(v) for v in (original, modified, current))
    for value in (original, modified, current):
        if not isinstance(value, dict):
            raise MergeError("merge documents must be JSON objects")

    add_and_change = _filter_nulls(_merge_diff(current, modified), keep_null=False)
    deletions = _filter_nulls(_merge_diff(original, modified), keep_null=True)
    if _has_conflicts(add_and_change, deletions):
        raise MergeError(f"merge conflict between {add_and_change!r} and {deletions!r}")

    patch = apply_merge_patch(deletions, add_and_change)
    # Deletions must survive in the combined patch.
    combined = copy.deepcopy(deletions)
    _merge_patch_keep_nulls(combined, add_and_change)
    patch = combined
    if not _preconditions_hold(patch):
        raise MergeError(f"precondition failed for patch {patch!r}")
    return patch


def _merge_patch_keep_nulls(doc: dict, patch: dict) -> None:
    for key, value in patch.items():
        if isinstance(doc.get(key), dict) and isinstance(value, dict):
            _merge_patch_keep_nulls(doc[key], value)
        else:
            doc[key] = copy.deepcopy(value)


def merge_object(desired: dict, current: dict) -> dict:
    """Return ``current`` updated with ``desired`` using the last-applied annotation."""
    metadata = current.get("metadata") or {}
    annotations = metadata.get("annotations") or {}
    if LAST_APPLIED_CONFIG_ANNOTATION not in annotations:
        raise MergeError(
            f"{current.get('kind', 'object')} {metadata.get('namespace', '')}/"
            f"{metadata.get('name', '')} missing last applied config"
        )
    original = _as_object(annotations[LAST_APPLIED_CONFIG_ANNOTATION])

    modified = copy.deepcopy(desired)
    modified_meta = modified.setdefault("metadata", {})
    if "creationTimestamp" in metadata:
        modified_meta["creationTimestamp"] = metadata["creationTimestamp"]
    else:
        modified_meta.pop("creationTimestamp", None)

    patch = create_three_way_merge_patch(original, modified, current)
    return apply_merge_patch(current, patch)


def _escape(key: str) -> str:
    return key.replace("~", "~0").replace("/", "~1")


def _diff_values(a: Any, b: Any, path: str, ops: list) -> None:
    if _json_equal(a, b):
        return
    if isinstance(a, dict) and isinstance(b, dict):
        for key in a:
            if key not in b:
                ops.append({"op": "remove", "path": f"{path}/{_escape(key)}"})
        for key, value in b.items():
            child = f"{path}/{_escape(key)}"
            if key in a:
                _diff_values(a[key], value, child, ops)
            else:
                ops.append({"op": "add", "path": child, "value": value})
    elif isinstance(a, list) and isinstance(b, list):
        common = min(len(a), len(b))
        for index, (x, y) in enumerate(zip(a, b)):
            _diff_values(x, y, f"{path}/{index}", ops)
        for index in range(common, len(b)):
            ops.append({"op": "add", "path": f"{path}/{index}", "value": b[index]})
        for index in reversed(range(common, len(a))):
            ops.append({"op": "remove", "path": f"{path}/{index}"})
    else:
        ops.append({"op": "replace", "path": path, "value": b})


def json_diff(a: Any, b: Any) -> list:
    """Return JSON Patch operations that turn ``a`` into ``b``."""
    ops: list = []
    _diff_values(_as_object(a), _as_object(b), "", ops)
    return ops


def get_recommended_labels(
    app_name: str, part_of: Optional[str] = None, version: Optional[str] = None
) -> dict:
    """Return the labels every managed resource carries."""
    labels = {
        "k8s-app": app_name,
        APP_KUBERNETES_MANAGED_BY_LABEL: "hostpath-provisioner-operator",
        APP_KUBERNETES_COMPONENT_LABEL: "storage",
    }
    if part_of:
        labels[APP_KUBERNETES_PART_OF_LABEL] = part_of
    if version:
        labels[APP_KUBERNETES_VERSION_LABEL] = version
    return labels