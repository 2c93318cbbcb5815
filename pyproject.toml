[build-system]
requires = ["setuptools>=64"]
build-backend = "setuptools.build_meta"

[project]
name = "hppoperator"
version = "0.1.0"
description = "Manifest generation and reconcile helpers for a hostpath storage provisioner operator"
requires-python = ">=3.10"
dependencies = [
    "pyyaml>=6.0",
    "semver>=3.0",
]
keywords = [
    "kubernetes",
    "operator",
    "hostpath",
    "storage",
    "rbac",
    "manifests",
    "clusterserviceversion",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration",
]

[project.optional-dependencies]
test = [
    "pytest>=7.0",
]

[project.scripts]
hpp-crd-generator = "hppoperator.crdgen:main"
hpp-csv-generator = "hppoperator.csv:main"
hpp-yaml-dumper = "hppoperator.dumper:main"

[tool.setuptools.packages.find]
include = ["hppoperator*"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
