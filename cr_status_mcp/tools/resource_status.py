"""Custom resource status and workflow pipeline tools.

Gives an LLM the same at-a-glance view a dashboard shows: one comparable
status per resource regardless of which controller owns it, and for Argo
Workflows the patient/scan identifiers and pipelines behind each run.

Tools:
    list_resource_statuses    - List instances of a CR type with classified status
    get_resource_status       - Status, details, decoded arguments and pipelines of one CR
    classify_resource         - Classify a resource document supplied by the caller
    decode_workflow_arguments - Decode the binary argument blob of a workflow
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from mcp.types import ToolAnnotations

from cr_status_mcp.age import age_bucket, now_ms, sort_by_age, within_date_range
from cr_status_mcp.argument_blob import decode_argument_blob, workflow_arguments
from cr_status_mcp.classifier import classify
from cr_status_mcp.details import resource_details
from cr_status_mcp.k8s_config import get_custom_objects_client
from cr_status_mcp.models import CustomResource, Diagnostics
from cr_status_mcp.pipelines import (
    correlate,
    correlate_decoded,
    matches_query,
    pipeline_names,
)

logger = logging.getLogger("mcp-server")

SORT_ORDERS = ("asc", "desc", "none")


def _parse_date(value: str, field: str) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValueError(f"{field} must be an ISO date (YYYY-MM-DD), got {value!r}") from None


def _is_not_found(error_msg: str) -> bool:
    return "404" in error_msg or "not found" in error_msg.lower()


def _summarize(resource: CustomResource, now: int) -> Dict[str, Any]:
    entry: Dict[str, Any] = {
        "name": resource.name,
        "namespace": resource.namespace,
        "kind": resource.kind,
        "age": resource.age,
        "timeline": age_bucket(resource.age, now),
        "status": classify(resource).to_dict(),
    }
    if resource.kind == "Workflow":
        entry["pipelines"] = pipeline_names(correlate(resource))
    return entry


def _workflow_details(resource: CustomResource) -> Dict[str, Any]:
    diagnostics = Diagnostics()
    decoded = decode_argument_blob(workflow_arguments(resource.spec), diagnostics)
    executions = correlate_decoded(resource, decoded, diagnostics)
    return {
        "decodedParameters": decoded.to_dict() if decoded else None,
        "pipelineExecutions": [p.to_dict() for p in executions],
        "pipelines": pipeline_names(executions),
        "warnings": diagnostics.messages,
    }


def register_resource_status_tools(server, non_destructive: bool):
    """Register custom resource status and workflow pipeline tools."""

    @server.tool(
        annotations=ToolAnnotations(
            title="List Custom Resource Statuses",
            readOnlyHint=True,
        ),
    )
    def list_resource_statuses(
        group: str,
        version: str,
        plural: str,
        namespace: str = "",
        label_selector: str = "",
        query: str = "",
        start_date: str = "",
        end_date: str = "",
        sort: str = "desc",
        context: str = ""
    ) -> Dict[str, Any]:
        """List instances of a custom resource type with a normalized status.

        Each item gets a label and one of Success, Warning, Failure,
        Progressing or Unknown, so resources from ArgoCD, Argo Workflows,
        Argo Events, CloudNativePG or any other controller compare directly.
        Workflows also list the pipelines they triggered.

        Example: failed Argo Workflows for one patient:
          list_resource_statuses(group="argoproj.io", version="v1alpha1",
                                 plural="workflows", query="54123478_demo")

        Args:
            group: API group (e.g., "argoproj.io")
            version: API version (e.g., "v1alpha1")
            plural: Plural resource name (e.g., "workflows")
            namespace: Namespace (empty = all namespaces / cluster-scoped)
            label_selector: Label selector to filter
            query: Case-insensitive text matched against name, namespace and
                workflow pipeline identifiers
            start_date: Only resources created on or after this date (YYYY-MM-DD)
            end_date: Only resources created on or before this date (YYYY-MM-DD)
            sort: "desc" (newest first), "asc" (oldest first) or "none"
            context: Kubernetes context (uses current if not specified)
        """
        try:
            if sort not in SORT_ORDERS:
                raise ValueError(f"sort must be one of {', '.join(SORT_ORDERS)}")
            start = _parse_date(start_date, "start_date")
            end = _parse_date(end_date, "end_date")

            custom_api = get_custom_objects_client(context)

            kwargs: Dict[str, Any] = {}
            if label_selector:
                kwargs["label_selector"] = label_selector

            if namespace:
                raw = custom_api.list_namespaced_custom_object(
                    group=group, version=version, namespace=namespace,
                    plural=plural, **kwargs,
                )
            else:
                raw = custom_api.list_cluster_custom_object(
                    group=group, version=version, plural=plural, **kwargs,
                )

            now = now_ms()
            resources: List[CustomResource] = [
                CustomResource.from_dict(item, now) for item in raw.get("items", [])
            ]
            resources = [
                r for r in resources
                if matches_query(r, query) and within_date_range(r.age, start, end, now)
            ]
            if sort != "none":
                resources = sort_by_age(resources, descending=sort == "desc", now=now)

            items = [_summarize(r, now) for r in resources]
            severities: Dict[str, int] = {}
            for item in items:
                severity = item["status"]["severity"]
                severities[severity] = severities.get(severity, 0) + 1

            return {
                "success": True,
                "context": context or "current",
                "resource": f"{plural}.{group}/{version}",
                "namespace": namespace or "all",
                "count": len(items),
                "severities": severities,
                "items": items,
            }
        except Exception as e:
            error_msg = str(e)
            if _is_not_found(error_msg):
                return {
                    "success": False,
                    "error": f"Resource type {plural}.{group}/{version} not found",
                    "hint": "Check the group, version and plural of the CRD",
                }
            logger.error(f"Error listing custom resource statuses: {e}")
            return {"success": False, "error": error_msg}

    @server.tool(
        annotations=ToolAnnotations(
            title="Get Custom Resource Status",
            readOnlyHint=True,
        ),
    )
    def get_resource_status(
        group: str,
        version: str,
        plural: str,
        name: str,
        namespace: str = "",
        context: str = ""
    ) -> Dict[str, Any]:
        """Get the normalized status of a single custom resource.

        Kind-specific fields such as sync revision, workflow duration or
        sensor trigger counts are returned under "details". For Argo Workflows
        the result also carries the identifiers decoded from the workflow's
        binary argument blob and the pipeline executions it triggered. Decoded
        identifiers are best effort; fields that could not be recovered are
        omitted.

        Args:
            group: API group (e.g., "postgresql.cnpg.io")
            version: API version (e.g., "v1")
            plural: Plural resource name (e.g., "clusters")
            name: Resource name
            namespace: Namespace (empty for cluster-scoped resources)
            context: Kubernetes context (uses current if not specified)
        """
        try:
            custom_api = get_custom_objects_client(context)

            if namespace:
                raw = custom_api.get_namespaced_custom_object(
                    group=group, version=version, namespace=namespace,
                    plural=plural, name=name,
                )
            else:
                raw = custom_api.get_cluster_custom_object(
                    group=group, version=version, plural=plural, name=name,
                )

            now = now_ms()
            resource = CustomResource.from_dict(raw, now)
            result: Dict[str, Any] = {
                "success": True,
                "context": context or "current",
                **_summarize(resource, now),
                "details": resource_details(resource, now),
            }
            if resource.kind == "Workflow":
                result.update(_workflow_details(resource))
            return result
        except Exception as e:
            error_msg = str(e)
            if _is_not_found(error_msg):
                return {
                    "success": False,
                    "error": f"{plural}.{group} '{name}' not found",
                    "hint": "Use list_resource_statuses to find resource names",
                }
            logger.error(f"Error getting custom resource status: {e}")
            return {"success": False, "error": error_msg}

    @server.tool(
        annotations=ToolAnnotations(
            title="Classify Custom Resource",
            readOnlyHint=True,
        ),
    )
    def classify_resource(
        resource: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Classify a custom resource document without contacting the cluster.

        Accepts either a raw Kubernetes object (apiVersion, kind, metadata,
        spec, status) or a dashboard record (name, kind, api_version, age,
        metadata.spec, metadata.status).

        The result carries the same "details" block as get_resource_status.

        Args:
            resource: The resource document
        """
        try:
            cr = CustomResource.from_dict(resource)
            result: Dict[str, Any] = {
                "success": True,
                "kind": cr.kind,
                "status": classify(cr).to_dict(),
                "details": resource_details(cr),
            }
            if cr.kind == "Workflow":
                result.update(_workflow_details(cr))
            return result
        except Exception as e:
            logger.error(f"Error classifying custom resource: {e}")
            return {"success": False, "error": str(e)}

    @server.tool(
        annotations=ToolAnnotations(
            title="Decode Workflow Arguments",
            readOnlyHint=True,
        ),
    )
    def decode_workflow_arguments(
        parameters: List[Dict[str, Any]]
    ) -> Dict[str, Any]:
        """Decode patient, study, scan and session IDs from workflow arguments.

        Looks for a parameter whose name contains "dicom-extract", "base64"
        or "msg-bytes" and decodes its base64 value. The binary layout is
        undocumented, so each field is recovered independently and omitted
        when it cannot be found.

        Args:
            parameters: Workflow spec.arguments.parameters ([{name, value}])
        """
        try:
            diagnostics = Diagnostics()
            decoded = decode_argument_blob(parameters, diagnostics)
            return {
                "success": True,
                "found": decoded is not None,
                "decodedParameters": decoded.to_dict() if decoded else None,
                "warnings": diagnostics.messages,
            }
        except Exception as e:
            logger.error(f"Error decoding workflow arguments: {e}")
            return {"success": False, "error": str(e)}
