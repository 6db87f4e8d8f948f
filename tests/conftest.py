"""Shared sample payloads.

ARGUMENT_BLOB is a hand-assembled dicom-extract message laid out like the
workflow payloads: a session UUID followed by a nested message holding
patient, study, scan, series and namespace.
"""

import pytest

ARGUMENT_BLOB = (
    "CiQzZjJiOGMxZS02YTRkLTRmN2ItOWMyZS0xZDVhN2I5ZTBjNDISPgoNNTQxMjM0NzhfZGVtbxII"
    "NTY4LjE1NjcaEjU2OC4xNTY3XzEuNTY3LjEwNSIJMS41NjcuMTA1KgRkZW1v"
)

ARGUMENT_BLOB_DECODED = {
    "patientId": "54123478_demo",
    "uploadSessionId": "3f2b8c1e-6a4d-4f7b-9c2e-1d5a7b9e0c42",
    "studyInstanceUid": "568.1567",
    "scanId": "568.1567_1.567.105",
    "seriesInstanceUid": "1.567.105",
    "namespace": "demo",
}

# Same message cut off after the study UID.
TRUNCATED_BLOB = (
    "CiQzZjJiOGMxZS02YTRkLTRmN2ItOWMyZS0xZDVhN2I5ZTBjNDISIAoNNTQxMjM0NzhfZGVtbxII"
    "NTY4LjE1Njca"
)

# Only the session UUID field, padding stripped.
SESSION_ONLY_BLOB = "CiQ3ZDllMmYxMC0xYjJjLTRkM2UtOGY0MC01YTZiN2M4ZDllMGY"


def make_workflow(
    name="scan-pipeline-abc12",
    phase="Succeeded",
    parameters=None,
    nodes=None,
    age="5m",
):
    status = {"phase": phase}
    if nodes is not None:
        status["nodes"] = nodes
    return {
        "name": name,
        "namespace": "argo",
        "kind": "Workflow",
        "api_version": "argoproj.io/v1alpha1",
        "age": age,
        "metadata": {
            "spec": {"arguments": {"parameters": parameters or []}},
            "status": status,
            "labels": {},
        },
    }


def scan_filter_nodes(value, display_name="scan-filter"):
    return {
        "scan-pipeline-abc12-111": {
            "displayName": "scan-pipeline-abc12",
            "type": "DAG",
        },
        "scan-pipeline-abc12-222": {
            "displayName": display_name,
            "type": "Pod",
            "outputs": {
                "parameters": [
                    {"name": "scan-count", "value": "1"},
                    {"name": "selected-pipelines", "value": value},
                ],
            },
        },
    }


@pytest.fixture
def blob_parameters():
    return [
        {"name": "event-source", "value": "minio"},
        {"name": "dicom-extract-msg", "value": ARGUMENT_BLOB},
    ]
