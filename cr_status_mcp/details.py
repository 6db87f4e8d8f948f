"""Per-controller detail fields shown next to a resource's status.

Each extractor reads a handful of spec/status fields that matter for its
kind (sync revision for an Argo CD Application, progress and duration for a
Workflow, trigger count for a Sensor) and returns them under camelCase keys.
Fields that are absent come back as ``None``; kinds without an extractor get
an empty mapping.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from cr_status_mcp.age import format_age, format_duration, now_ms, parse_timestamp
from cr_status_mcp.models import CustomResource

logger = logging.getLogger("mcp-server")

DetailExtractor = Callable[[CustomResource, int], Dict[str, Any]]

_DETAIL_EXTRACTORS: Dict[Tuple[str, Optional[str]], DetailExtractor] = {}

SHORT_REVISION_LENGTH = 8

# First matching key wins.
GENERATOR_TYPES = (
    ("list", "List"),
    ("git", "Git"),
    ("cluster", "Cluster"),
    ("pullRequest", "Pull Request"),
    ("matrix", "Matrix"),
    ("merge", "Merge"),
)

EVENT_SOURCE_TYPES = (
    ("webhook", "Webhook"),
    ("nats", "NATS"),
    ("kafka", "Kafka"),
    ("amqp", "AMQP"),
    ("mqtt", "MQTT"),
    ("redis", "Redis"),
    ("github", "GitHub"),
    ("gitlab", "GitLab"),
    ("sns", "SNS"),
    ("sqs", "SQS"),
    ("pubSub", "PubSub"),
    ("calendar", "Calendar"),
    ("resource", "Resource"),
    ("file", "File"),
    ("slack", "Slack"),
    ("generic", "Generic"),
)


def register_detail_extractor(kind: str, api_group: Optional[str] = None):
    """Register a detail extractor for ``kind``, optionally scoped to an API group."""

    def decorator(func: DetailExtractor) -> DetailExtractor:
        _DETAIL_EXTRACTORS[(kind, api_group)] = func
        return func

    return decorator


def detail_extractor_for(kind: str, api_version: str = "") -> Optional[DetailExtractor]:
    for (extractor_kind, api_group), extractor in _DETAIL_EXTRACTORS.items():
        if extractor_kind == kind and api_group is not None and api_group in api_version:
            return extractor
    return _DETAIL_EXTRACTORS.get((kind, None))


def resource_details(resource: Any, now: Optional[int] = None) -> Dict[str, Any]:
    """Extract the kind-specific detail fields of a resource.

    Never raises; a failing extractor is logged and yields no details.
    """
    resource = CustomResource.from_dict(resource)
    extractor = detail_extractor_for(resource.kind, resource.api_version)
    if extractor is None:
        return {}
    if now is None:
        now = now_ms()
    try:
        return extractor(resource, now)
    except Exception as e:
        logger.warning(f"Error extracting {resource.kind} details: {e}")
        return {}


def _section(document: Dict[str, Any], *path: str) -> Dict[str, Any]:
    for key in path:
        value = document.get(key)
        if not isinstance(value, dict):
            return {}
        document = value
    return document


def _text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value:
        return value
    return None


def _items(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _relative(value: Any, now: int) -> Optional[str]:
    timestamp = parse_timestamp(value)
    if timestamp is None:
        return None
    return f"{format_age(timestamp, now)} ago"


def _is_set(value: Any) -> bool:
    # an empty block such as `automated: {}` still switches a feature on
    return isinstance(value, (dict, list)) or bool(value)


def _first_type(section: Dict[str, Any], types) -> str:
    return next((label for key, label in types if _is_set(section.get(key))), "Other")


@register_detail_extractor("Application")
def _application_details(resource: CustomResource, now: int) -> Dict[str, Any]:
    status = resource.status
    source = _section(resource.spec, "source")
    sync = _section(status, "sync")
    automated = _section(resource.spec, "syncPolicy").get("automated")
    revision = _text(sync.get("revision"))

    return {
        "syncStatus": _text(sync.get("status")),
        "lastSynced": _relative(status.get("reconciledAt"), now),
        "revision": revision[:SHORT_REVISION_LENGTH] if revision else None,
        "repository": _text(source.get("repoURL")),
        "targetRevision": _text(source.get("targetRevision")),
        "syncPolicy": {
            "automated": _is_set(automated),
            "prune": bool(isinstance(automated, dict) and automated.get("prune")),
            "selfHeal": bool(isinstance(automated, dict) and automated.get("selfHeal")),
        },
    }


@register_detail_extractor("ApplicationSet")
def _application_set_details(resource: CustomResource, now: int) -> Dict[str, Any]:
    generators = _items(resource.spec.get("generators"))
    apps = _items(resource.status.get("resources"))
    template_source = _section(resource.spec, "template", "spec", "source")

    generator_type = None
    if generators:
        first = generators[0] if isinstance(generators[0], dict) else {}
        generator_type = _first_type(first, GENERATOR_TYPES)

    health = {"healthy": 0, "degraded": 0, "missing": 0}
    for app in apps:
        if not isinstance(app, dict):
            continue
        app_health = (_text(_section(app, "health").get("status")) or "").lower()
        if app_health in health:
            health[app_health] += 1

    return {
        "generatorType": generator_type,
        "managedApps": len(apps),
        "healthSummary": {**health, "total": len(apps)},
        "templateRepository": _text(template_source.get("repoURL")),
        "templateTargetRevision": _text(template_source.get("targetRevision")),
    }


def _workflow_template_ref(spec: Dict[str, Any]) -> Optional[str]:
    return (
        _text(_section(spec, "workflowTemplateRef").get("name"))
        or _text(_section(spec, "workflowSpec", "templateRef").get("name"))
    )


def _resource_seconds(value: Any) -> Optional[str]:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        return None
    return f"{value}s"


@register_detail_extractor("Workflow")
def _workflow_run_details(resource: CustomResource, now: int) -> Dict[str, Any]:
    status = resource.status
    started = parse_timestamp(status.get("startedAt"))
    finished = parse_timestamp(status.get("finishedAt"))

    duration = None
    if started is not None:
        duration = format_duration((finished if finished is not None else now) - started)

    usage = _section(status, "resourcesDuration")
    return {
        "progress": _text(status.get("progress")),
        "startedAt": _relative(status.get("startedAt"), now),
        "finishedAt": _text(status.get("finishedAt")),
        "duration": duration,
        "templateRef": _workflow_template_ref(resource.spec),
        "resourceUsage": {
            "cpu": _resource_seconds(usage.get("cpu")),
            "memory": _resource_seconds(usage.get("memory")),
        },
    }


@register_detail_extractor("WorkflowTemplate")
def _workflow_template_details(resource: CustomResource, now: int) -> Dict[str, Any]:
    return {
        "entrypoint": _text(resource.spec.get("entrypoint")),
        "templateCount": len(_items(resource.spec.get("templates"))),
    }


@register_detail_extractor("CronWorkflow")
def _cron_workflow_details(resource: CustomResource, now: int) -> Dict[str, Any]:
    return {
        "schedule": _text(resource.spec.get("schedule")),
        "suspended": resource.spec.get("suspend") is True,
    }


@register_detail_extractor("EventSource")
def _event_source_details(resource: CustomResource, now: int) -> Dict[str, Any]:
    spec = resource.spec
    return {"eventSourceType": _first_type(spec, EVENT_SOURCE_TYPES) if spec else None}


@register_detail_extractor("Sensor")
def _sensor_details(resource: CustomResource, now: int) -> Dict[str, Any]:
    return {
        "dependencies": len(_items(resource.spec.get("dependencies"))),
        "triggers": len(_items(resource.spec.get("triggers"))),
    }
