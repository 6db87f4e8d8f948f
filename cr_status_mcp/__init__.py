"""Normalized status and workflow pipeline insight for Kubernetes custom resources."""

__version__ = "0.1.0"
