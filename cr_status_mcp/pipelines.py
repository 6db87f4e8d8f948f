"""Pipeline executions triggered by an Argo Workflow.

The ``scan-filter`` step publishes the pipelines it selected as JSON in its
``selected-pipelines`` output. When that output is missing, the workflow's
encoded argument blob still tells us which patient and scan triggered it.
"""

import json
import re
from typing import Any, Dict, List, Optional

from cr_status_mcp.argument_blob import decode_argument_blob, workflow_arguments
from cr_status_mcp.models import (
    CustomResource,
    DecodedParameters,
    Diagnostics,
    PipelineExecution,
)

SCAN_FILTER_NODE_NAMES = ("scan-filter", "scan-filter(0)")
SELECTED_PIPELINES_PARAM = "selected-pipelines"

_PIPELINE_PREFIXES = (
    re.compile(r"^PIPELINE_ID_", re.IGNORECASE),
    re.compile(r"^PIPELINE_", re.IGNORECASE),
)


def _selected_pipelines_value(status: Dict[str, Any]) -> Optional[str]:
    nodes = status.get("nodes")
    if not isinstance(nodes, dict):
        return None

    for node in nodes.values():
        if not isinstance(node, dict):
            continue
        if node.get("displayName") not in SCAN_FILTER_NODE_NAMES:
            continue
        outputs = node.get("outputs")
        if not isinstance(outputs, dict):
            continue
        parameters = outputs.get("parameters")
        if not isinstance(parameters, list):
            continue
        for param in parameters:
            if (
                isinstance(param, dict)
                and param.get("name") == SELECTED_PIPELINES_PARAM
                and param.get("value")
            ):
                return param["value"]
    return None


def _parse_selected_pipelines(
    value: Any,
    diagnostics: Diagnostics,
) -> List[PipelineExecution]:
    if not isinstance(value, str):
        diagnostics.warn("pipelines", f"{SELECTED_PIPELINES_PARAM} is not a string")
        return []

    try:
        parsed = json.loads(value)
    except ValueError as e:
        diagnostics.warn("pipelines", f"could not parse {SELECTED_PIPELINES_PARAM}: {e}")
        return []

    entries = parsed if isinstance(parsed, list) else [parsed]
    results: List[PipelineExecution] = []
    for entry in entries:
        if not isinstance(entry, dict):
            diagnostics.warn("pipelines", f"skipping non-object pipeline entry {entry!r}")
            continue
        results.append(PipelineExecution.from_dict(entry))
    return results


def correlate(
    resource: Any,
    diagnostics: Optional[Diagnostics] = None,
) -> List[PipelineExecution]:
    """List the pipeline executions a workflow triggered.

    Node output wins; the argument blob fills in patient IDs or, when no node
    output exists, provides a single synthesized execution.
    """
    if diagnostics is None:
        diagnostics = Diagnostics()
    resource = CustomResource.from_dict(resource)
    decoded = decode_argument_blob(workflow_arguments(resource.spec), diagnostics)
    return correlate_decoded(resource, decoded, diagnostics)


def correlate_decoded(
    resource: CustomResource,
    decoded: Optional[DecodedParameters],
    diagnostics: Diagnostics,
) -> List[PipelineExecution]:
    """Same as :func:`correlate` for a blob the caller already decoded."""
    results: List[PipelineExecution] = []
    value = _selected_pipelines_value(resource.status)
    if value is not None:
        results = _parse_selected_pipelines(value, diagnostics)

    if not results:
        if decoded and (decoded.patient_id or decoded.upload_session_id):
            results.append(PipelineExecution(
                patient_id=decoded.patient_id,
                triggering_scan_id=decoded.scan_id,
                triggering_study_instance_uid=decoded.study_instance_uid,
                triggering_upload_session_id=decoded.upload_session_id,
            ))
    elif decoded and decoded.patient_id:
        for pipeline in results:
            if not pipeline.patient_id:
                pipeline.patient_id = decoded.patient_id

    return results


def normalize_pipeline_name(pipeline_id: str) -> str:
    name = pipeline_id
    for prefix in _PIPELINE_PREFIXES:
        name = prefix.sub("", name, count=1)
    return name


def pipeline_names(executions: List[PipelineExecution]) -> List[str]:
    """Deduplicated display names, in first-seen order."""
    names: List[str] = []
    for pipeline in executions:
        if not pipeline.pipeline_id:
            continue
        name = normalize_pipeline_name(pipeline.pipeline_id)
        if name and name not in names:
            names.append(name)
    return names


def workflow_pipeline_names(resource: Any) -> List[str]:
    return pipeline_names(correlate(resource))


def matches_query(resource: Any, query: str) -> bool:
    """Case-insensitive search over a resource's name and, for workflows,
    every pipeline identifier it carries."""
    needle = (query or "").strip().lower()
    if not needle:
        return True

    resource = CustomResource.from_dict(resource)
    if needle in resource.name.lower():
        return True
    if resource.namespace and needle in resource.namespace.lower():
        return True

    if resource.kind != "Workflow":
        return False

    executions = correlate(resource)
    if any(needle in name.lower() for name in pipeline_names(executions)):
        return True
    return any(
        needle in identifier.lower()
        for pipeline in executions
        for identifier in pipeline.identifiers()
    )
