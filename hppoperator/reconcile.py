"""Generic create-or-update reconciliation against a cluster client."""

from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional, Union

from hppoperator.merge import (
    get_recommended_labels,
    json_diff,
    merge_labels_and_annotations,
    merge_object,
    set_last_applied_configuration,
)

EVENT_TYPE_NORMAL = "Normal"
EVENT_TYPE_WARNING = "Warning"

CREATE_RESOURCE_FAILED = "CreateResourceFailed"
CREATE_RESOURCE_SUCCESS = "CreateResourceSuccess"
UPDATE_RESOURCE_FAILED = "UpdateResourceFailed"
UPDATE_RESOURCE_SUCCESS = "UpdateResourceSuccess"

CREATED = "created"
UPDATED = "updated"
UNCHANGED = "unchanged"

_log = logging.getLogger(__name__)


class NotFoundError(LookupError):
    """Raised when a requested object does not exist."""


class NoMatchError(LookupError):
    """Raised when the cluster does not serve the requested kind."""


@dataclass(frozen=True)
class ResourceNames:
    """Fixed names of the resources the operator manages."""

    app_name: str = "hostpath-provisioner"
    provisioner_service_account: str = "hostpath-provisioner-admin"
    csi_service_account: str = "hostpath-provisioner-admin-csi"
    health_check: str = "hostpath-provisioner-health-check"
    part_of: Optional[str] = None
    version: Optional[str] = None

    def labels(self) -> dict:
        """Return the recommended labels for a managed resource."""
        return get_recommended_labels(self.app_name, self.part_of, self.version)


@dataclass(frozen=True)
class Event:
    """An event recorded against an object."""

    kind: str
    name: str
    event_type: str
    reason: str
    message: str


@dataclass
class EventRecorder:
    """Collects events in the order they are recorded."""

    events: list = field(default_factory=list)

    def event(self, obj: Mapping, event_type: str, reason: str, message: str) -> None:
        metadata = obj.get("metadata") or {}
        self.events.append(
            Event(obj.get("kind", ""), metadata.get("name", ""), event_type, reason, message)
        )


def _identity(obj: Mapping) -> tuple:
    kind = obj.get("kind")
    metadata = obj.get("metadata") or {}
    name = metadata.get("name")
    if not kind or not name:
        raise ValueError("object must have a kind and metadata.name")
    return kind, metadata.get("namespace") or "", name


class InMemoryClient:
    """A cluster client that keeps objects in memory."""

    def __init__(self, objects: Iterable[Mapping] = (), unserved_kinds: Iterable[str] = ()):
        self._objects: dict = {}
        self._unserved = frozenset(unserved_kinds)
        for obj in objects:
            self.create(obj)

    def _check_served(self, kind: str) -> None:
        if kind in self._unserved:
            raise NoMatchError(f"no matches for kind {kind!r}")

    def get(self, kind: str, name: str, namespace: str = "") -> dict:
        self._check_served(kind)
        try:
            return copy.deepcopy(self._objects[(kind, namespace or "", name)])
        except KeyError:
            raise NotFoundError(f"{kind} {namespace}/{name} not found") from None

    def create(self, obj: Mapping) -> None:
        key = _identity(obj)
        self._check_served(key[0])
        if key in self._objects:
            raise ValueError(f"{key[0]} {key[1]}/{key[2]} already exists")
        self._objects[key] = copy.deepcopy(dict(obj))

    def update(self, obj: Mapping) -> None:
        key = _identity(obj)
        self._check_served(key[0])
        if key not in self._objects:
            raise NotFoundError(f"{key[0]} {key[1]}/{key[2]} not found")
        self._objects[key] = copy.deepcopy(dict(obj))

    def delete(self, kind: str, name: str, namespace: str = "") -> None:
        self._check_served(kind)
        try:
            del self._objects[(kind, namespace or "", name)]
        except KeyError:
            raise NotFoundError(f"{kind} {namespace}/{name} not found") from None

    def list(
        self,
        kind: str,
        namespace: Optional[str] = None,
        label_selector: Optional[Mapping[str, Union[str, Iterable[str]]]] = None,
    ) -> list:
        """Return objects of ``kind``, optionally filtered by namespace and labels.

        Each selector value is either one allowed label value or a collection of them.
        """
        self._check_served(kind)
        selector = {
            key: {allowed} if isinstance(allowed, str) else set(allowed)
            for key, allowed in (label_selector or {}).items()
        }
        found = []
        for (obj_kind, obj_ns, _), obj in sorted(self._objects.items(), key=lambda item: item[0]):
            if obj_kind != kind or (namespace is not None and obj_ns != namespace):
                continue
            labels = (obj.get("metadata") or {}).get("labels") or {}
            if all(labels.get(key) in allowed for key, allowed in selector.items()):
                found.append(copy.deepcopy(obj))
        return found


def set_controller_reference(owner: Mapping, obj: dict) -> None:
    """Make ``owner`` the controlling owner of ``obj``.

    Raises ``ValueError`` when ``obj`` is already controlled by another owner.
    """
    owner_meta = owner.get("metadata") or {}
    if not owner.get("kind") or not owner_meta.get("name"):
        raise ValueError("owner must have a kind and metadata.name")
    reference = {
        "apiVersion": owner.get("apiVersion", ""),
        "kind": owner["kind"],
        "name": owner_meta["name"],
        "uid": owner_meta.get("uid", ""),
        "controller": True,
        "blockOwnerDeletion": True,
    }
    metadata = obj.setdefault("metadata", {})
    references = metadata.get("ownerReferences") or []
    kept = []
    for existing in references:
        same = existing.get("kind") == reference["kind"] and existing.get("name") == reference["name"]
        if existing.get("controller") and not same:
            raise ValueError(
                f"object {metadata.get('name', '')} is already controlled by "
                f"{existing.get('kind')} {existing.get('name')}"
            )
        if not same:
            kept.append(existing)
    kept.append(reference)
    metadata["ownerReferences"] = kept


def reconcile_object(client, recorder, cr: Mapping, desired: dict, logger=None) -> str:
    """Create ``desired`` or bring the live object in line with it.

    Returns ``CREATED``, ``UPDATED`` or ``UNCHANGED``. Client errors are
    recorded as warning events on ``cr`` and raised again.
    """
    logger = logger or _log
    set_last_applied_configuration(desired)
    kind, namespace, name = _identity(desired)

    try:
        found = client.get(kind, name, namespace)
    except NotFoundError:
        logger.info("Creating a new %s %s", kind, name)
        try:
            client.create(desired)
        except Exception as exc:
            recorder.event(
                cr, EVENT_TYPE_WARNING, CREATE_RESOURCE_FAILED,
                f"Failed to create resource {name}, {exc}",
            )
            raise
        recorder.event(
            cr, EVENT_TYPE_NORMAL, CREATE_RESOURCE_SUCCESS,
            f"Successfully created resource {kind} {name}",
        )
        return CREATED

    original = copy.deepcopy(found)
    merge_labels_and_annotations(desired, found)
    merged = merge_object(desired, found)

    if merged == original:
        logger.debug("Skip reconcile: %s %s already exists", kind, name)
        return UNCHANGED

    logger.info("DIFF %s %s patch=%s", kind, name, json.dumps(json_diff(original, merged)))
    logger.info("Updating %s %s", kind, name)
    try:
        client.update(merged)
    except Exception as exc:
        recorder.event(
            cr, EVENT_TYPE_WARNING, UPDATE_RESOURCE_FAILED,
            f"Failed to update resource {name}, {exc}",
        )
        raise
    recorder.event(
        cr, EVENT_TYPE_NORMAL, UPDATE_RESOURCE_SUCCESS,
        f"Successfully updated resource {kind} {name}",
    )
    return UPDATED


def delete_object(client, kind: str, name: str, namespace: str = "") -> None:
    """Delete an object, treating one that is already gone as success."""
    try:
        client.delete(kind, name, namespace)
    except NotFoundError:
        pass