"""Derived value types shared by the classifier, decoder and correlator.

Every type here is recomputed from the current resource snapshot on each
evaluation; nothing is persisted or mutated after it is returned.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from cr_status_mcp.age import format_age, parse_timestamp

logger = logging.getLogger("mcp-server")


class Severity(str, Enum):
    SUCCESS = "Success"
    WARNING = "Warning"
    FAILURE = "Failure"
    PROGRESSING = "Progressing"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class StatusResult:
    label: str
    severity: Severity

    def to_dict(self) -> Dict[str, str]:
        return {"label": self.label, "severity": self.severity.value}


UNKNOWN_STATUS = StatusResult("Unknown", Severity.UNKNOWN)


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


@dataclass
class CustomResource:
    """A custom resource as seen by the dashboard.

    ``metadata`` carries the full object document; ``spec`` and ``status``
    live inside it and have no schema shared across controllers.
    """

    name: str = ""
    namespace: Optional[str] = None
    kind: str = ""
    api_version: str = ""
    age: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def status(self) -> Dict[str, Any]:
        return _as_dict(self.metadata.get("status"))

    @property
    def spec(self) -> Dict[str, Any]:
        return _as_dict(self.metadata.get("spec"))

    @property
    def labels(self) -> Dict[str, str]:
        labels = self.metadata.get("labels")
        if labels is None:
            labels = _as_dict(self.metadata.get("metadata")).get("labels")
        return _as_dict(labels)

    @classmethod
    def from_dict(cls, raw: Any, now: Optional[int] = None) -> "CustomResource":
        """Build a resource from a dashboard record or a raw Kubernetes object.

        Raw objects (``apiVersion`` at top level, name under ``metadata``) get
        their age computed from ``creationTimestamp``. Anything that is not a
        mapping yields an empty resource.
        """
        if isinstance(raw, CustomResource):
            return raw
        if not isinstance(raw, dict):
            return cls()

        if _is_kubernetes_object(raw):
            meta = _as_dict(raw.get("metadata"))
            created = parse_timestamp(meta.get("creationTimestamp"))
            return cls(
                name=_text(meta.get("name")),
                namespace=_text(meta.get("namespace")) or None,
                kind=_text(raw.get("kind")),
                api_version=_text(raw.get("apiVersion")),
                age=format_age(created, now) if created is not None else "",
                metadata={
                    "metadata": meta,
                    "labels": _as_dict(meta.get("labels")),
                    "spec": raw.get("spec"),
                    "status": raw.get("status"),
                },
            )

        metadata = dict(_as_dict(raw.get("metadata")))
        for section in ("spec", "status"):
            if section not in metadata and section in raw:
                metadata[section] = raw[section]
        return cls(
            name=_text(raw.get("name")),
            namespace=_text(raw.get("namespace")) or None,
            kind=_text(raw.get("kind")),
            api_version=_text(raw.get("api_version")),
            age=_text(raw.get("age")),
            metadata=metadata,
        )


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _is_kubernetes_object(raw: Dict[str, Any]) -> bool:
    if "apiVersion" in raw:
        return True
    if "api_version" in raw or "name" in raw:
        return False
    # dashboard records nest spec/status under metadata
    meta = _as_dict(raw.get("metadata"))
    return "spec" not in meta and "status" not in meta


_DECODED_KEYS = {
    "patient_id": "patientId",
    "upload_session_id": "uploadSessionId",
    "study_instance_uid": "studyInstanceUid",
    "scan_id": "scanId",
    "series_instance_uid": "seriesInstanceUid",
    "namespace": "namespace",
}


@dataclass
class DecodedParameters:
    patient_id: Optional[str] = None
    upload_session_id: Optional[str] = None
    study_instance_uid: Optional[str] = None
    scan_id: Optional[str] = None
    series_instance_uid: Optional[str] = None
    namespace: Optional[str] = None

    def is_empty(self) -> bool:
        return all(getattr(self, attr) is None for attr in _DECODED_KEYS)

    def to_dict(self) -> Dict[str, str]:
        return {
            key: getattr(self, attr)
            for attr, key in _DECODED_KEYS.items()
            if getattr(self, attr) is not None
        }


_PIPELINE_KEYS = {
    "patient_id": "patientId",
    "pipeline_id": "pipelineId",
    "pipeline_run_id": "pipelineRunId",
    "triggering_scan_id": "triggeringScanId",
    "triggering_study_instance_uid": "triggeringStudyInstanceUid",
    "triggering_upload_session_id": "triggeringUploadSessionId",
}


@dataclass
class PipelineExecution:
    patient_id: Optional[str] = None
    pipeline_id: Optional[str] = None
    pipeline_run_id: Optional[str] = None
    triggering_scan_id: Optional[str] = None
    triggering_study_instance_uid: Optional[str] = None
    triggering_upload_session_id: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "PipelineExecution":
        known: Dict[str, Optional[str]] = {}
        extra: Dict[str, Any] = {}
        for key, value in raw.items():
            if key in _PIPELINE_KEYS:
                known[key] = _identifier(value)
            else:
                extra[key] = value
        return cls(extra=extra, **known)

    def identifiers(self) -> List[str]:
        return [
            getattr(self, attr)
            for attr in _PIPELINE_KEYS
            if getattr(self, attr)
        ]

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            key: getattr(self, attr)
            for attr, key in _PIPELINE_KEYS.items()
            if getattr(self, attr) is not None
        }
        if self.extra:
            result["extra"] = dict(self.extra)
        return result


def _identifier(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    if isinstance(value, bool):
        return str(value).lower()
    return str(value)


@dataclass
class Diagnostic:
    source: str
    message: str

    def __str__(self) -> str:
        return f"{self.source}: {self.message}"


class Diagnostics:
    """Collects non-fatal problems found while decoding or correlating.

    Each warning is also logged, so callers that ignore the collector still
    leave a trace.
    """

    def __init__(self) -> None:
        self.entries: List[Diagnostic] = []

    def warn(self, source: str, message: str) -> None:
        entry = Diagnostic(source, message)
        self.entries.append(entry)
        logger.warning(str(entry))

    @property
    def messages(self) -> List[str]:
        return [str(e) for e in self.entries]
