import copy
import json

import pytest

from hppoperator.merge import (
    APP_KUBERNETES_COMPONENT_LABEL,
    APP_KUBERNETES_MANAGED_BY_LABEL,
    APP_KUBERNETES_PART_OF_LABEL,
    APP_KUBERNETES_VERSION_LABEL,
    LAST_APPLIED_CONFIG_ANNOTATION,
    MergeError,
    apply_merge_patch,
    create_three_way_merge_patch,
    get_recommended_labels,
    json_diff,
    merge_labels_and_annotations,
    merge_object,
    set_last_applied_configuration,
)


def _role(rules, **extra):
    obj = {
        "apiVersion": "rbac.authorization.k8s.io/v1",
        "kind": "Role",
        "metadata": {"name": "r", "namespace": "ns", "labels": {"k8s-app": "hpp"}},
        "rules": rules,
    }
    obj.update(extra)
    set_last_applied_configuration(obj)
    return obj


def test_merge_labels_and_annotations_overrides_and_keeps():
    src = {"metadata": {"labels": {"a": "ours"}, "annotations": {"x": "1"}}}
    dest = {"metadata": {"labels": {"a": "theirs", "user": "u"}}}
    merge_labels_and_annotations(src, dest)
    assert dest["metadata"]["labels"] == {"a": "ours", "user": "u"}
    assert dest["metadata"]["annotations"] == {"x": "1"}


def test_merge_labels_without_source_values_leaves_dest():
    dest = {"metadata": {"name": "n"}}
    merge_labels_and_annotations({"metadata": {}}, dest)
    assert dest == {"metadata": {"name": "n"}}


def test_last_applied_round_trip():
    obj = {"kind": "Role", "metadata": {"name": "r"}, "rules": [{"verbs": ["get"]}]}
    before = copy.deepcopy(obj)
    set_last_applied_configuration(obj)
    recorded = json.loads(obj["metadata"]["annotations"][LAST_APPLIED_CONFIG_ANNOTATION])
    assert recorded == before


def test_apply_merge_patch_semantics():
    doc = {"keep": 1, "drop": 2, "nested": {"a": 1, "b": 2}, "arr": [1, 2, 3]}
    patch = {"drop": None, "nested": {"b": None, "c": 3}, "arr": [9], "new": {"x": None, "y": 1}}
    result = apply_merge_patch(doc, patch)
    assert result == {"keep": 1, "nested": {"a": 1, "c": 3}, "arr": [9], "new": {"y": 1}}
    assert doc["drop"] == 2


def test_three_way_patch_keeps_user_fields_and_deletes_ours():
    original = {"a": 1, "b": 2}
    modified = {"a": 1}
    current = {"a": 1, "b": 2, "c": 3}
    patch = create_three_way_merge_patch(original, modified, current)
    result = apply_merge_patch(current, patch)
    assert result == {"a": 1, "c": 3}


def test_three_way_patch_precondition_kind():
    with pytest.raises(MergeError):
        create_three_way_merge_patch({"kind": "A"}, {"kind": "B"}, {"kind": "A"})


def test_three_way_patch_precondition_name():
    with pytest.raises(MergeError):
        create_three_way_merge_patch(
            {"metadata": {"name": "a"}}, {"metadata": {"name": "b"}}, {"metadata": {"name": "a"}}
        )


def test_merge_object_missing_annotation():
    with pytest.raises(MergeError):
        merge_object({"metadata": {"name": "r"}}, {"kind": "Role", "metadata": {"name": "r"}})


def test_merge_object_keeps_user_additions():
    desired = _role([{"verbs": ["get"]}])
    current = copy.deepcopy(desired)
    current["metadata"]["labels"]["user"] = "added"
    current["extra"] = True
    merged = merge_object(desired, current)
    assert merged == current


def test_merge_object_applies_changes():
    old = _role([{"verbs": ["get"]}])
    current = copy.deepcopy(old)
    current["metadata"]["labels"]["user"] = "added"
    desired = _role([{"verbs": ["get", "list"]}])
    merged = merge_object(desired, current)
    assert merged["rules"] == desired["rules"]
    assert merged["metadata"]["labels"]["user"] == "added"
    assert merge_object(desired, merged) == merged


def test_merge_object_removes_dropped_fields():
    old = _role([], obsolete=True)
    current = copy.deepcopy(old)
    desired = _role([])
    merged = merge_object(desired, current)
    assert "obsolete" not in merged
    assert merged["rules"] == []


def test_merge_object_rejects_kind_change():
    current = _role([])
    desired = copy.deepcopy(current)
    desired["kind"] = "ClusterRole"
    with pytest.raises(MergeError):
        merge_object(desired, current)


def test_json_diff_equal_is_empty():
    assert json_diff({"a": [1, {"b": 2}]}, {"a": [1, {"b": 2}]}) == []


def test_json_diff_replace():
    assert json_diff({"a": 1}, {"a": 2}) == [{"op": "replace", "path": "/a", "value": 2}]


def test_json_diff_escapes_paths():
    assert json_diff({"a/b": 1}, {}) == [{"op": "remove", "path": "/a~1b"}]


def test_json_diff_lists_cover_every_index():
    ops = json_diff({"l": [1, 2, 3]}, {"l": [1]})
    assert {op["op"] for op in ops} == {"remove"}
    assert [op["path"] for op in ops] == ["/l/2", "/l/1"]


def test_recommended_labels_base():
    labels = get_recommended_labels("hostpath-provisioner")
    assert labels == {
        "k8s-app": "hostpath-provisioner",
        APP_KUBERNETES_MANAGED_BY_LABEL: "hostpath-provisioner-operator",
        APP_KUBERNETES_COMPONENT_LABEL: "storage",
    }


def test_recommended_labels_with_installer_values():
    labels = get_recommended_labels("hpp", part_of="testing", version="v0.0.0-tests")
    assert labels[APP_KUBERNETES_PART_OF_LABEL] == "testing"
    assert labels[APP_KUBERNETES_VERSION_LABEL] == "v0.0.0-tests"


def test_recommended_labels_empty_values_skipped():
    labels = get_recommended_labels("hpp", part_of="", version="")
    assert APP_KUBERNETES_PART_OF_LABEL not in labels
    assert APP_KUBERNETES_VERSION_LABEL not in labels