"""Status classification for custom resources from unrelated controllers.

Every controller reports health differently: Argo CD uses ``health``/``sync``
blocks, Argo Workflows a ``phase``, Argo Events a set of conditions and
CloudNativePG free-text phases. Each known shape gets a rule registered
against its kind (and API group where the kind name is ambiguous); anything
else falls through to a generic cascade.

Rules:
    ApplicationSet        - ErrorOccurred / ResourcesUpToDate / ParametersGenerated
    Workflow              - status.phase
    EventSource           - Deployed + SourcesProvided
    Sensor                - Deployed + DependenciesProvided + TriggersProvided
    Cluster (CNPG)        - phase text, then Ready condition
    Backup (CNPG)         - status.phase
    everything else       - health, sync, phase, Ready/Available condition
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from cr_status_mcp.models import (
    UNKNOWN_STATUS,
    CustomResource,
    Severity,
    StatusResult,
)

logger = logging.getLogger("mcp-server")

CNPG_API_GROUP = "postgresql.cnpg.io"

StatusRule = Callable[[CustomResource], StatusResult]

_STATUS_RULES: Dict[Tuple[str, Optional[str]], StatusRule] = {}


def register_status_rule(kind: str, api_group: Optional[str] = None):
    """Register a classifier for ``kind``, optionally scoped to an API group."""

    def decorator(func: StatusRule) -> StatusRule:
        _STATUS_RULES[(kind, api_group)] = func
        return func

    return decorator


def status_rule_for(kind: str, api_version: str = "") -> StatusRule:
    """Look up the rule for a kind, preferring group-scoped registrations."""
    for (rule_kind, api_group), rule in _STATUS_RULES.items():
        if rule_kind == kind and api_group is not None and api_group in api_version:
            return rule
    return _STATUS_RULES.get((kind, None), _classify_generic)


def classify(resource: Any) -> StatusResult:
    """Classify a resource into a display label and a severity.

    Never raises: shapes that no rule recognises resolve to Unknown.
    """
    try:
        resource = CustomResource.from_dict(resource)
        if not resource.status:
            return UNKNOWN_STATUS
        rule = status_rule_for(resource.kind, resource.api_version)
        return rule(resource)
    except Exception as e:
        logger.warning(f"Error classifying custom resource status: {e}")
        return UNKNOWN_STATUS


def _text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value:
        return value
    return None


def _conditions(status: Dict[str, Any]) -> List[Dict[str, Any]]:
    conditions = status.get("conditions")
    if not isinstance(conditions, list):
        return []
    return [c for c in conditions if isinstance(c, dict)]


def _condition(conditions: List[Dict[str, Any]], *types: str) -> Optional[Dict[str, Any]]:
    return next((c for c in conditions if c.get("type") in types), None)


def _condition_status(conditions: List[Dict[str, Any]], type_: str) -> Optional[str]:
    condition = _condition(conditions, type_)
    return condition.get("status") if condition else None


def _nested_text(status: Dict[str, Any], section: str) -> Optional[str]:
    block = status.get(section)
    if not isinstance(block, dict):
        return None
    return _text(block.get("status"))


@register_status_rule("ApplicationSet")
def _classify_application_set(resource: CustomResource) -> StatusResult:
    conditions = _conditions(resource.status)

    if _condition_status(conditions, "ErrorOccurred") == "True":
        return StatusResult("Error", Severity.FAILURE)

    up_to_date = _condition(conditions, "ResourcesUpToDate")
    if up_to_date:
        if up_to_date.get("status") == "True":
            return StatusResult("Up to Date", Severity.SUCCESS)
        return StatusResult("Out of Date", Severity.WARNING)

    if _condition_status(conditions, "ParametersGenerated") == "True":
        return StatusResult("Active", Severity.SUCCESS)

    return UNKNOWN_STATUS


_WORKFLOW_PHASES = {
    "succeeded": StatusResult("Succeeded", Severity.SUCCESS),
    "failed": StatusResult("Failed", Severity.FAILURE),
    "error": StatusResult("Error", Severity.FAILURE),
    "running": StatusResult("Running", Severity.PROGRESSING),
    "pending": StatusResult("Pending", Severity.WARNING),
}


@register_status_rule("Workflow")
def _classify_workflow(resource: CustomResource) -> StatusResult:
    phase = _text(resource.status.get("phase"))
    if not phase:
        return UNKNOWN_STATUS
    return _WORKFLOW_PHASES.get(phase.lower(), StatusResult(phase, Severity.UNKNOWN))


@register_status_rule("EventSource")
def _classify_event_source(resource: CustomResource) -> StatusResult:
    conditions = _conditions(resource.status)
    if not conditions:
        return UNKNOWN_STATUS

    deployed = _condition_status(conditions, "Deployed")
    sources = _condition_status(conditions, "SourcesProvided")

    if deployed == "True" and sources == "True":
        return StatusResult("Running", Severity.SUCCESS)
    if deployed == "False":
        return StatusResult("Not Deployed", Severity.FAILURE)
    if sources == "False":
        return StatusResult("Not Configured", Severity.WARNING)
    return UNKNOWN_STATUS


@register_status_rule("Sensor")
def _classify_sensor(resource: CustomResource) -> StatusResult:
    conditions = _conditions(resource.status)
    if not conditions:
        return UNKNOWN_STATUS

    deployed = _condition_status(conditions, "Deployed")
    dependencies = _condition_status(conditions, "DependenciesProvided")
    triggers = _condition_status(conditions, "TriggersProvided")

    if deployed == "True" and dependencies == "True" and triggers == "True":
        return StatusResult("Active", Severity.SUCCESS)
    if deployed == "False":
        return StatusResult("Not Deployed", Severity.FAILURE)
    if dependencies == "False" or triggers == "False":
        return StatusResult("Not Configured", Severity.WARNING)
    return UNKNOWN_STATUS


# CNPG phases are sentences ("Cluster in healthy state"), so match on
# substrings, first hit wins.
_CNPG_CLUSTER_PHASES = (
    (("healthy",), StatusResult("Healthy", Severity.SUCCESS)),
    (("setting up", "initializing", "waiting for"), StatusResult("Initializing", Severity.PROGRESSING)),
    (("upgrade",), StatusResult("Upgrading", Severity.WARNING)),
    (("failed", "error"), StatusResult("Failed", Severity.FAILURE)),
)


@register_status_rule("Cluster", CNPG_API_GROUP)
def _classify_cnpg_cluster(resource: CustomResource) -> StatusResult:
    status = resource.status
    phase = _text(status.get("phase"))

    if phase:
        phase_lower = phase.lower()
        for needles, result in _CNPG_CLUSTER_PHASES:
            if any(needle in phase_lower for needle in needles):
                return result

    ready = _condition(_conditions(status), "Ready")
    if ready:
        if ready.get("status") == "True":
            return StatusResult("Ready", Severity.SUCCESS)
        reason = _text(ready.get("reason"))
        if not reason or reason == "ClusterIsNotReady":
            return StatusResult("Not Ready", Severity.WARNING)
        return StatusResult(reason, Severity.WARNING)

    return StatusResult(phase or "Unknown", Severity.UNKNOWN)


_CNPG_BACKUP_PHASES = {
    "completed": StatusResult("Completed", Severity.SUCCESS),
    "running": StatusResult("Running", Severity.PROGRESSING),
    "failed": StatusResult("Failed", Severity.FAILURE),
    "pending": StatusResult("Pending", Severity.WARNING),
}


@register_status_rule("Backup", CNPG_API_GROUP)
def _classify_cnpg_backup(resource: CustomResource) -> StatusResult:
    phase = _text(resource.status.get("phase"))
    if phase and phase.lower() in _CNPG_BACKUP_PHASES:
        return _CNPG_BACKUP_PHASES[phase.lower()]
    return StatusResult(phase or "Unknown", Severity.UNKNOWN)


_HEALTH_STATUSES = {
    "healthy": StatusResult("Healthy", Severity.SUCCESS),
    "degraded": StatusResult("Degraded", Severity.WARNING),
    "progressing": StatusResult("Progressing", Severity.PROGRESSING),
    "suspended": StatusResult("Suspended", Severity.UNKNOWN),
}

_SYNC_STATUSES = {
    "synced": StatusResult("Synced", Severity.SUCCESS),
    "outofsync": StatusResult("OutOfSync", Severity.WARNING),
}

_PHASE_SEVERITIES = {
    "running": Severity.SUCCESS,
    "active": Severity.SUCCESS,
    "ready": Severity.SUCCESS,
    "pending": Severity.PROGRESSING,
    "progressing": Severity.PROGRESSING,
    "failed": Severity.FAILURE,
    "error": Severity.FAILURE,
}


def _classify_generic(resource: CustomResource) -> StatusResult:
    status = resource.status

    health = _nested_text(status, "health")
    if health:
        return _HEALTH_STATUSES.get(health.lower(), StatusResult(health, Severity.UNKNOWN))

    sync = _nested_text(status, "sync")
    if sync:
        return _SYNC_STATUSES.get(sync.lower(), StatusResult(sync, Severity.UNKNOWN))

    phase = _text(status.get("phase"))
    if phase:
        return StatusResult(phase, _PHASE_SEVERITIES.get(phase.lower(), Severity.UNKNOWN))

    ready = _condition(_conditions(status), "Ready", "Available")
    if ready:
        if ready.get("status") == "True":
            return StatusResult("Ready", Severity.SUCCESS)
        return StatusResult("Not Ready", Severity.WARNING)

    return UNKNOWN_STATUS
