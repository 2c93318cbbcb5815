"""Manifest tooling and reconcile helpers for a hostpath storage provisioner operator."""

__version__ = "0.1.0"