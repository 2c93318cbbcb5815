# hppoperator

Tools and helpers for operating a hostpath storage provisioner on Kubernetes.

The package has two sides:

* **Manifest tooling**: split a multi-document operator manifest into its
  CustomResourceDefinition, ClusterRole, Role and operator Deployment, build
  an Operator Lifecycle Manager ClusterServiceVersion from them, and export
  CRD schemas as clean YAML.
* **Reconcile helpers**: build the desired RBAC objects, SecurityContextConstraints
  and ServiceAccounts for the provisioner, and bring a cluster, represented by a
  client object, to that state. Changes to existing objects are made with a
  three-way JSON merge patch, so labels and annotations that users add to the
  objects are kept.

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Commands

### hpp-crd-generator

Reads a manifest, splits it at every `---`, and writes the CRD (without its
status), cluster role, role and operator deployment it finds as separate
YAML files into an output directory: `crd_generated.yaml`,
`cluster_role_generated.yaml`, `role_generated.yaml` and
`operator_deployment_generated.yaml`. A later document of the same sort
replaces the file written for an earlier one. Each file written is reported
on standard output.

```
hpp-crd-generator --sourcefile deploy/operator.yaml --outputDir generated
```

The defaults are `deploy/operator.yaml` and `tools/helper`.

### hpp-csv-generator

Writes a ClusterServiceVersion for the operator to standard output. It reads
the deployment, cluster role and role files that `hpp-crd-generator` wrote,
from the directory given with `--manifest-dir` (default `tools/helper`). The
version given with `--csv-version` must be a valid semantic version.

```
hpp-csv-generator --manifest-dir generated --csv-version 0.1.0 \
    --namespace hostpath-provisioner --pull-policy IfNotPresent
```

Other options:

* `--replaces-csv-version`, `--logo-base64`, `--verbosity` (default `1`);
* `--operator-image-name`, `--provisioner-image-name`,
  `--csi-driver-image-name`, `--csi-external-health-monitor-image-name`,
  `--csi-node-driver-image-name`, `--csi-liveness-probe-image-name`,
  `--csi-external-provisioner-image-name`, `--csi-snapshotter-image-name`,
  which set the operator container image and its environment variables;
* `--dump-crds`, which also prints the CRD from `crd_generated.yaml` after
  the ClusterServiceVersion.

The permissions in the install strategy are given to the service account
named in the deployment's pod spec (`serviceAccountName`).

### hpp-yaml-dumper

Exports the CRDs found in a manifest as YAML files, one per CRD, named after
the CRD and without its conversion settings. The export directory is created
if it is missing.

```
hpp-yaml-dumper --sourcefile deploy/operator.yaml --export-path crds
```

## Library use

Versions are read from a string or from the first line of a file; a leading
`v` is accepted and an invalid version raises `ValueError`:

```python
from hppoperator.version import get_version_from_string, get_string_from_file

print(get_version_from_string("v0.0.1"))  # 0.0.1
```

`get_version` parses what a reader function returns, by default the first
line of `version.txt`.

Any mapping can be rendered as a YAML document, with creation timestamps,
status and the `app.kubernetes.io/managed-by` label removed, the way the
commands print their objects:

```python
import sys
from hppoperator.marshaller import marshall_object, render_object

marshall_object({"kind": "ConfigMap", "metadata": {"name": "demo"}}, sys.stdout)
```

`hppoperator.deployment` builds the operator deployment from its YAML with
`create_operator_deployment` and an `OperatorArgs`, and `hppoperator.csv`
builds the ClusterServiceVersion with `create_cluster_service_version` and a
`ClusterServiceVersionData`.

### Reconciling

Reconcile functions take a client, an `EventRecorder`, the custom resource
they act for, and a `ResourceNames` holding the fixed names and labels of
the managed resources:

* `hppoperator.rbac`: `reconcile_cluster_role`, `reconcile_cluster_role_binding`,
  `reconcile_role`, `reconcile_role_binding` and the matching `delete_*`
  functions;
* `hppoperator.scc`: `reconcile_security_context_constraints` and `delete_scc`,
  which do nothing when the cluster does not serve SecurityContextConstraints;
* `hppoperator.serviceaccount`: `reconcile_service_accounts`, which first
  deletes service accounts left behind under names taken from the custom
  resource.

Each returns the outcome for every object, one of `created`, `updated` or
`unchanged` (`CREATED`, `UPDATED`, `UNCHANGED` in `hppoperator.reconcile`).
Failed creates and updates are recorded as warning events and the error is
raised again.

```python
from hppoperator.reconcile import EventRecorder, InMemoryClient, ResourceNames
from hppoperator.rbac import reconcile_role

client = InMemoryClient()
recorder = EventRecorder()
cr = {"kind": "HostPathProvisioner", "metadata": {"name": "hostpath-provisioner"}}
print(reconcile_role(client, recorder, cr, ResourceNames(), "hostpath-provisioner"))
```

Objects that already exist are merged with `merge_object` from
`hppoperator.merge`, which raises `MergeError` when the existing object has
no last-applied configuration or when a patch would change its kind, API
version or name.

## What this package does not do

It has no client for a real Kubernetes API server and no controller that
watches resources and runs the reconcile functions. `InMemoryClient` is the
only client provided; any object with the same `get`, `create`, `update`,
`delete` and `list` methods, raising `NotFoundError` and `NoMatchError`, can
be used in its place. The package does not deploy the provisioner's
DaemonSets or other workloads, and it has no typed models of the custom
resource; objects are plain dictionaries.