"""Best-effort decoding of the binary workflow argument blob.

Workflows triggered by the imaging pipeline carry a base64 parameter holding a
length-delimited, protobuf-like message with no published schema. The field
boundaries below were recovered from captured payloads: each field is a tag
byte, a one-byte length, then ASCII. Nothing here is authoritative; a field
that does not match is simply left out.

Known layout::

    0a 24 <upload session uuid, 36 bytes>
    12 <len>
        0a <len> <patient id>
        12 08    <study instance uid>
        1a 12    <scan id>
        22 09    <series instance uid>
        2a 04    <namespace>
"""

import base64
import binascii
import re
from typing import Any, Dict, List, Optional, Pattern

from cr_status_mcp.models import DecodedParameters, Diagnostics

BLOB_PARAMETER_MARKERS = ("dicom-extract", "base64", "msg-bytes")

FIELD_PATTERNS: Dict[str, Pattern[bytes]] = {
    "upload_session_id": re.compile(
        rb'"?\$?([0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12})',
        re.IGNORECASE,
    ),
    "patient_id": re.compile(rb"\n\r?([a-zA-Z0-9_-]+(?:_[a-zA-Z0-9_-]+)?)\x12"),
    "study_instance_uid": re.compile(rb"\x12\x08([0-9.]+)\x1a"),
    "scan_id": re.compile(rb"\x1a\x12([0-9._]+)\x22"),
    "series_instance_uid": re.compile(rb"\x22\x09([0-9.]+)\x2a"),
    "namespace": re.compile(rb"\x2a\x04([a-zA-Z0-9-]+)\s*$"),
}


def select_blob_parameter(parameters: Any) -> Optional[Dict[str, Any]]:
    """Pick the workflow parameter that carries the encoded blob.

    The first parameter in list order whose name contains any of the
    markers wins.
    """
    if not isinstance(parameters, list):
        return None

    named = [
        p for p in parameters
        if isinstance(p, dict) and isinstance(p.get("name"), str)
    ]
    return next(
        (p for p in named if any(m in p["name"] for m in BLOB_PARAMETER_MARKERS)),
        None,
    )


def _b64decode(value: str) -> bytes:
    compact = "".join(value.split())
    compact += "=" * (-len(compact) % 4)
    return base64.b64decode(compact, validate=True)


def decode_blob(
    raw: bytes,
    diagnostics: Optional[Diagnostics] = None,
) -> DecodedParameters:
    """Scan a decoded buffer for each known field independently."""
    if diagnostics is None:
        diagnostics = Diagnostics()

    fields: Dict[str, Optional[str]] = {}
    for name, pattern in FIELD_PATTERNS.items():
        try:
            match = pattern.search(raw)
            fields[name] = match.group(1).decode("ascii") if match else None
        except (re.error, UnicodeDecodeError, IndexError) as e:
            diagnostics.warn("argument-blob", f"could not extract {name}: {e}")
            fields[name] = None
    return DecodedParameters(**fields)


def decode_argument_blob(
    parameters: Any,
    diagnostics: Optional[Diagnostics] = None,
) -> Optional[DecodedParameters]:
    """Decode business identifiers from a workflow's argument parameters.

    Returns None when no blob parameter is present or its value is not valid
    base64. Otherwise every field is optional on the returned record.
    """
    if diagnostics is None:
        diagnostics = Diagnostics()

    param = select_blob_parameter(parameters)
    if param is None:
        return None

    value = param.get("value")
    if not value or not isinstance(value, str):
        return None

    try:
        raw = _b64decode(value)
    except (binascii.Error, ValueError) as e:
        diagnostics.warn(
            "argument-blob",
            f"parameter {param['name']!r} is not valid base64: {e}",
        )
        return None

    return decode_blob(raw, diagnostics)


def workflow_arguments(spec: Dict[str, Any]) -> List[Any]:
    arguments = spec.get("arguments")
    if not isinstance(arguments, dict):
        return []
    parameters = arguments.get("parameters")
    return parameters if isinstance(parameters, list) else []
