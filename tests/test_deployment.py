import pytest

from hppoperator.deployment import (
    OPERATOR_LABEL,
    OperatorArgs,
    create_operator_deployment,
    load_crd,
    set_env_variable,
)

DEPLOYMENT_YAML = """\
apiVersion: apps/v1
kind: Deployment
metadata:
  name: hostpath-provisioner-operator
spec:
  selector:
    matchLabels:
      name: hostpath-provisioner-operator
  template:
    metadata:
      labels:
        name: hostpath-provisioner-operator
    spec:
      containers:
      - name: hostpath-provisioner-operator
        image: old-image
        env:
        - name: VERBOSITY
          value: "1"
        - name: PROVISIONER_IMAGE
          value: old-provisioner
        - name: CSI_SNAPSHOT_IMAGE
          value: old-snapshot
"""


def make_args():
    return OperatorArgs(
        namespace="hpp-ns",
        image_pull_policy="IfNotPresent",
        verbosity="3",
        operator_image="registry.example.com/operator:v1",
        provisioner_image="registry.example.com/provisioner:v1",
        csi_snapshotter_image="registry.example.com/snapshot:v1",
    )


def env_of(deployment):
    env = deployment["spec"]["template"]["spec"]["containers"][0]["env"]
    return {e["name"]: e["value"] for e in env}


def test_deployment_namespace_image_and_policy():
    deployment = create_operator_deployment(make_args(), DEPLOYMENT_YAML)
    container = deployment["spec"]["template"]["spec"]["containers"][0]
    assert deployment["metadata"]["namespace"] == "hpp-ns"
    assert container["image"] == "registry.example.com/operator:v1"
    assert container["imagePullPolicy"] == "IfNotPresent"


def test_deployment_labels_and_priority_class():
    deployment = create_operator_deployment(make_args(), DEPLOYMENT_YAML)
    assert deployment["spec"]["selector"]["matchLabels"][OPERATOR_LABEL] == ""
    assert deployment["spec"]["template"]["metadata"]["labels"][OPERATOR_LABEL] == ""
    assert deployment["spec"]["template"]["spec"]["priorityClassName"] == "openshift-user-critical"
    assert deployment["spec"]["selector"]["matchLabels"]["name"] == "hostpath-provisioner-operator"


def test_deployment_env_values_replaced_and_priority_appended():
    env = env_of(create_operator_deployment(make_args(), DEPLOYMENT_YAML))
    assert env["VERBOSITY"] == "3"
    assert env["PROVISIONER_IMAGE"] == "registry.example.com/provisioner:v1"
    assert env["CSI_SNAPSHOT_IMAGE"] == "registry.example.com/snapshot:v1"
    assert env["PRIORITY_CLASS"] == "openshift-user-critical"


def test_deployment_without_containers_raises():
    text = "kind: Deployment\nspec:\n  template:\n    spec: {}\n"
    with pytest.raises(ValueError):
        create_operator_deployment(make_args(), text)


def test_deployment_non_mapping_raises():
    with pytest.raises(ValueError):
        create_operator_deployment(make_args(), "- a\n- b\n")


def test_set_env_variable_only_touches_matching_entries():
    env = [{"name": "A", "value": "1"}, {"name": "B", "value": "2"}]
    set_env_variable("B", "new", env)
    assert env == [{"name": "A", "value": "1"}, {"name": "B", "value": "new"}]


def test_load_crd_reads_first_document():
    text = "kind: CustomResourceDefinition\nmetadata:\n  name: hostpathprovisioners.hostpathprovisioner.kubevirt.io\n---\nkind: Other\n"
    crd = load_crd(text)
    assert crd["kind"] == "CustomResourceDefinition"
    assert crd["metadata"]["name"] == "hostpathprovisioners.hostpathprovisioner.kubevirt.io"


def test_load_crd_invalid_yaml_raises():
    with pytest.raises(ValueError):
        load_crd("key: [unclosed")