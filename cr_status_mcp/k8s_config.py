"""Kubernetes client construction.

In-cluster service account credentials are used when present; otherwise the
kubeconfig (``KUBECONFIG`` or ``~/.kube/config``) is loaded, optionally for a
named context.
"""

import logging

from kubernetes import client, config
from kubernetes.config.config_exception import ConfigException

logger = logging.getLogger("mcp-server")


def _api_client(context: str = "") -> client.ApiClient:
    if not context:
        try:
            config.load_incluster_config()
            return client.ApiClient()
        except ConfigException:
            pass
    try:
        return config.new_client_from_config(context=context or None)
    except ConfigException as e:
        logger.error(f"Unable to load Kubernetes configuration: {e}")
        raise


def get_custom_objects_client(context: str = "") -> client.CustomObjectsApi:
    """Return a CustomObjectsApi bound to ``context`` (current if empty)."""
    return client.CustomObjectsApi(_api_client(context))
