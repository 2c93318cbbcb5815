import pytest

from hppoperator.reconcile import (
    CREATED,
    UNCHANGED,
    UPDATED,
    EventRecorder,
    InMemoryClient,
    NotFoundError,
    ResourceNames,
)
from hppoperator.serviceaccount import (
    create_csi_service_account_object,
    create_service_account,
    create_service_account_object,
    delete_service_account,
    get_duplicate_service_accounts,
    reconcile_service_accounts,
)

NAMESPACE = "test-namespace"
CR_NAME = "custom-hpp"
CR = {
    "apiVersion": "hostpathprovisioner.kubevirt.io/v1beta1",
    "kind": "HostPathProvisioner",
    "metadata": {"name": CR_NAME, "uid": "uid-1"},
}
OWNER_REF = {"kind": "HostPathProvisioner", "name": CR_NAME, "controller": True}


@pytest.fixture
def names():
    return ResourceNames(part_of="testing", version="v0.0.0-tests")


def _account(name, namespace=NAMESPACE, app=CR_NAME, owners=(OWNER_REF,)):
    return {
        "apiVersion": "v1",
        "kind": "ServiceAccount",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "labels": {"k8s-app": app},
            "ownerReferences": list(owners),
        },
    }


def test_create_service_account():
    account = create_service_account("sa", NAMESPACE, {"a": "b"})
    assert account["kind"] == "ServiceAccount"
    assert account["metadata"] == {"name": "sa", "namespace": NAMESPACE, "labels": {"a": "b"}}


def test_fixed_service_account_objects(names):
    provisioner = create_service_account_object(names, NAMESPACE)
    csi = create_csi_service_account_object(names, NAMESPACE)
    assert provisioner["metadata"]["name"] == names.provisioner_service_account
    assert csi["metadata"]["name"] == names.csi_service_account
    assert provisioner["metadata"]["labels"] == names.labels()
    assert csi["metadata"]["namespace"] == NAMESPACE


def test_get_duplicate_service_accounts(names):
    client = InMemoryClient([
        _account("old-sa"),
        _account("legacy-app-sa", app=names.app_name),
        _account(names.provisioner_service_account),
        _account(names.health_check),
        _account("no-owner", owners=()),
        _account("other-ns", namespace="elsewhere"),
        _account("other-label", app="unrelated"),
        _account("other-owner", owners=({"kind": "HostPathProvisioner", "name": "x"},)),
    ])
    duplicates = get_duplicate_service_accounts(client, CR_NAME, names, NAMESPACE)
    assert sorted(d["metadata"]["name"] for d in duplicates) == ["legacy-app-sa", "old-sa"]


def test_reconcile_removes_duplicates_and_creates_accounts(names):
    client = InMemoryClient([_account("old-sa")])
    recorder = EventRecorder()
    assert reconcile_service_accounts(client, recorder, CR, names, NAMESPACE) == [CREATED, CREATED]

    with pytest.raises(NotFoundError):
        client.get("ServiceAccount", "old-sa", NAMESPACE)
    for name in (names.provisioner_service_account, names.csi_service_account):
        account = client.get("ServiceAccount", name, NAMESPACE)
        refs = account["metadata"]["ownerReferences"]
        assert [(r["kind"], r["name"], r["controller"]) for r in refs] == [
            ("HostPathProvisioner", CR_NAME, True)
        ]
    assert len(recorder.events) == 2


def test_reconcile_is_idempotent(names):
    client = InMemoryClient()
    recorder = EventRecorder()
    reconcile_service_accounts(client, recorder, CR, names, NAMESPACE)
    assert reconcile_service_accounts(client, recorder, CR, names, NAMESPACE) == [UNCHANGED, UNCHANGED]
    assert len(recorder.events) == 2


def test_reconcile_restores_labels(names):
    client = InMemoryClient()
    recorder = EventRecorder()
    reconcile_service_accounts(client, recorder, CR, names, NAMESPACE)

    live = client.get("ServiceAccount", names.csi_service_account, NAMESPACE)
    live["metadata"]["labels"]["k8s-app"] = "changed"
    client.update(live)

    assert reconcile_service_accounts(client, recorder, CR, names, NAMESPACE) == [UNCHANGED, UPDATED]
    restored = client.get("ServiceAccount", names.csi_service_account, NAMESPACE)
    assert restored["metadata"]["labels"] == names.labels()


def test_delete_service_account(names):
    client = InMemoryClient([_account("gone")])
    delete_service_account(client, "gone", NAMESPACE)
    with pytest.raises(NotFoundError):
        client.get("ServiceAccount", "gone", NAMESPACE)
    delete_service_account(client, "gone", NAMESPACE)
    assert client.list("ServiceAccount") == []