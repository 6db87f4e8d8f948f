"""Unit tests for the custom resource status MCP tools."""

import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest
from unittest.mock import patch, MagicMock

from conftest import ARGUMENT_BLOB, ARGUMENT_BLOB_DECODED, scan_filter_nodes


def _created(**delta):
    ts = datetime.now(timezone.utc) - timedelta(**delta)
    return ts.strftime("%Y-%m-%dT%H:%M:%SZ")


def _k8s_object(name, kind="Workflow", api_version="argoproj.io/v1alpha1",
                status=None, spec=None, namespace="argo", created=None):
    return {
        "apiVersion": api_version,
        "kind": kind,
        "metadata": {
            "name": name,
            "namespace": namespace,
            "creationTimestamp": created or _created(minutes=5),
            "labels": {},
        },
        "spec": spec or {},
        "status": status or {},
    }


def _server():
    from fastmcp import FastMCP
    from cr_status_mcp.tools.resource_status import register_resource_status_tools

    server = FastMCP(name="test")
    register_resource_status_tools(server, False)
    return server


def _call(server, tool, args):
    result = asyncio.run(server.call_tool(tool, args))
    return json.loads(result.content[0].text)


def _list_args(**overrides):
    args = {
        "group": "argoproj.io",
        "version": "v1alpha1",
        "plural": "workflows",
        "namespace": "argo",
        "label_selector": "",
        "query": "",
        "start_date": "",
        "end_date": "",
        "sort": "desc",
        "context": "",
    }
    args.update(overrides)
    return args


class TestListResourceStatuses:

    @pytest.mark.unit
    @patch("cr_status_mcp.tools.resource_status.get_custom_objects_client")
    def test_list_workflows(self, mock_get_client):
        mock_api = MagicMock()
        mock_get_client.return_value = mock_api
        mock_api.list_namespaced_custom_object.return_value = {
            "items": [
                _k8s_object("wf-old", status={"phase": "Failed"}, created=_created(days=3)),
                _k8s_object(
                    "wf-new",
                    status={
                        "phase": "Running",
                        "nodes": scan_filter_nodes('[{"pipeline_id":"PIPELINE_ID_LUNG"}]'),
                    },
                    created=_created(minutes=2),
                ),
            ]
        }

        data = _call(_server(), "list_resource_statuses", _list_args())
        assert data["success"] is True
        assert data["count"] == 2
        assert [i["name"] for i in data["items"]] == ["wf-new", "wf-old"]
        assert data["items"][0]["status"] == {"label": "Running", "severity": "Progressing"}
        assert data["items"][0]["pipelines"] == ["LUNG"]
        assert data["items"][0]["timeline"] == "Recent"
        assert data["items"][1]["status"] == {"label": "Failed", "severity": "Failure"}
        assert data["items"][1]["age"] == "3d"
        assert data["severities"] == {"Progressing": 1, "Failure": 1}
        mock_api.list_namespaced_custom_object.assert_called_once_with(
            group="argoproj.io", version="v1alpha1", namespace="argo", plural="workflows",
        )

    @pytest.mark.unit
    @patch("cr_status_mcp.tools.resource_status.get_custom_objects_client")
    def test_list_cluster_scoped(self, mock_get_client):
        mock_api = MagicMock()
        mock_get_client.return_value = mock_api
        mock_api.list_cluster_custom_object.return_value = {"items": []}

        data = _call(_server(), "list_resource_statuses", _list_args(
            group="postgresql.cnpg.io", version="v1", plural="clusters",
            namespace="", label_selector="app=db",
        ))
        assert data["success"] is True
        assert data["count"] == 0
        assert data["namespace"] == "all"
        mock_api.list_cluster_custom_object.assert_called_once_with(
            group="postgresql.cnpg.io", version="v1", plural="clusters",
            label_selector="app=db",
        )

    @pytest.mark.unit
    @patch("cr_status_mcp.tools.resource_status.get_custom_objects_client")
    def test_query_matches_decoded_identifiers(self, mock_get_client):
        mock_api = MagicMock()
        mock_get_client.return_value = mock_api
        params = {"arguments": {"parameters": [{"name": "dicom-extract", "value": ARGUMENT_BLOB}]}}
        mock_api.list_namespaced_custom_object.return_value = {
            "items": [
                _k8s_object("wf-a", status={"phase": "Succeeded"}, spec=params),
                _k8s_object("wf-b", status={"phase": "Succeeded"}),
            ]
        }

        data = _call(_server(), "list_resource_statuses", _list_args(query="54123478_DEMO"))
        assert data["success"] is True
        assert [i["name"] for i in data["items"]] == ["wf-a"]

    @pytest.mark.unit
    @patch("cr_status_mcp.tools.resource_status.get_custom_objects_client")
    def test_date_filter_and_ascending_sort(self, mock_get_client):
        mock_api = MagicMock()
        mock_get_client.return_value = mock_api
        mock_api.list_namespaced_custom_object.return_value = {
            "items": [
                _k8s_object("today-1", created=_created(minutes=1)),
                _k8s_object("ancient", created=_created(days=400)),
                _k8s_object("today-2", created=_created(minutes=3)),
            ]
        }
        since = (datetime.now(timezone.utc) - timedelta(days=7)).date().isoformat()

        data = _call(_server(), "list_resource_statuses", _list_args(
            start_date=since, sort="asc",
        ))
        assert data["success"] is True
        assert [i["name"] for i in data["items"]] == ["today-2", "today-1"]
        assert data["items"][0]["status"]["severity"] == "Unknown"

    @pytest.mark.unit
    @patch("cr_status_mcp.tools.resource_status.get_custom_objects_client")
    def test_invalid_date(self, mock_get_client):
        data = _call(_server(), "list_resource_statuses", _list_args(start_date="last week"))
        assert data["success"] is False
        assert "start_date" in data["error"]
        mock_get_client.assert_not_called()

    @pytest.mark.unit
    @patch("cr_status_mcp.tools.resource_status.get_custom_objects_client")
    def test_invalid_sort(self, mock_get_client):
        data = _call(_server(), "list_resource_statuses", _list_args(sort="sideways"))
        assert data["success"] is False
        assert "sort" in data["error"]

    @pytest.mark.unit
    @patch("cr_status_mcp.tools.resource_status.get_custom_objects_client")
    def test_list_404_error(self, mock_get_client):
        mock_api = MagicMock()
        mock_get_client.return_value = mock_api
        mock_api.list_namespaced_custom_object.side_effect = Exception("404 not found")

        data = _call(_server(), "list_resource_statuses", _list_args(plural="missing"))
        assert data["success"] is False
        assert "not found" in data["error"].lower()
        assert "hint" in data

    @pytest.mark.unit
    @patch("cr_status_mcp.tools.resource_status.get_custom_objects_client")
    def test_connection_error(self, mock_get_client):
        mock_get_client.side_effect = Exception("connection refused")

        data = _call(_server(), "list_resource_statuses", _list_args())
        assert data["success"] is False
        assert "connection refused" in data["error"]


class TestGetResourceStatus:

    @pytest.mark.unit
    @patch("cr_status_mcp.tools.resource_status.get_custom_objects_client")
    def test_get_workflow(self, mock_get_client):
        mock_api = MagicMock()
        mock_get_client.return_value = mock_api
        mock_api.get_namespaced_custom_object.return_value = _k8s_object(
            "wf-1",
            status={
                "phase": "Succeeded",
                "nodes": scan_filter_nodes('[{"pipeline_id":"PIPELINE_ID_LUNG","pipeline_run_id":"r1"}]'),
            },
            spec={"arguments": {"parameters": [{"name": "x-base64", "value": ARGUMENT_BLOB}]}},
        )

        data = _call(_server(), "get_resource_status", {
            "group": "argoproj.io",
            "version": "v1alpha1",
            "plural": "workflows",
            "name": "wf-1",
            "namespace": "argo",
            "context": "",
        })
        assert data["success"] is True
        assert data["status"] == {"label": "Succeeded", "severity": "Success"}
        assert data["decodedParameters"] == ARGUMENT_BLOB_DECODED
        assert data["pipelineExecutions"] == [{
            "patientId": "54123478_demo",
            "pipelineId": "PIPELINE_ID_LUNG",
            "pipelineRunId": "r1",
        }]
        assert data["pipelines"] == ["LUNG"]
        assert data["warnings"] == []

    @pytest.mark.unit
    @patch("cr_status_mcp.tools.resource_status.get_custom_objects_client")
    def test_get_cnpg_cluster(self, mock_get_client):
        mock_api = MagicMock()
        mock_get_client.return_value = mock_api
        mock_api.get_namespaced_custom_object.return_value = _k8s_object(
            "pg-main",
            kind="Cluster",
            api_version="postgresql.cnpg.io/v1",
            namespace="db",
            status={"phase": "Cluster in healthy state", "instances": 3},
        )

        data = _call(_server(), "get_resource_status", {
            "group": "postgresql.cnpg.io",
            "version": "v1",
            "plural": "clusters",
            "name": "pg-main",
            "namespace": "db",
            "context": "",
        })
        assert data["success"] is True
        assert data["status"] == {"label": "Healthy", "severity": "Success"}
        assert "decodedParameters" not in data
        assert data["details"] == {}

    @pytest.mark.unit
    @patch("cr_status_mcp.tools.resource_status.get_custom_objects_client")
    def test_get_application_details(self, mock_get_client):
        mock_api = MagicMock()
        mock_get_client.return_value = mock_api
        mock_api.get_namespaced_custom_object.return_value = _k8s_object(
            "guestbook",
            kind="Application",
            namespace="argocd",
            spec={
                "source": {"repoURL": "https://git.example.com/apps.git", "targetRevision": "main"},
                "syncPolicy": {"automated": {"prune": True}},
            },
            status={
                "health": {"status": "Healthy"},
                "sync": {"status": "Synced", "revision": "9f8e7d6c5b4a39281706"},
            },
        )

        data = _call(_server(), "get_resource_status", {
            "group": "argoproj.io",
            "version": "v1alpha1",
            "plural": "applications",
            "name": "guestbook",
            "namespace": "argocd",
            "context": "",
        })
        assert data["success"] is True
        assert data["status"] == {"label": "Healthy", "severity": "Success"}
        details = data["details"]
        assert details["syncStatus"] == "Synced"
        assert details["revision"] == "9f8e7d6c"
        assert details["repository"] == "https://git.example.com/apps.git"
        assert details["syncPolicy"] == {"automated": True, "prune": True, "selfHeal": False}
        assert details["lastSynced"] is None

    @pytest.mark.unit
    @patch("cr_status_mcp.tools.resource_status.get_custom_objects_client")
    def test_get_cluster_scoped(self, mock_get_client):
        mock_api = MagicMock()
        mock_get_client.return_value = mock_api
        mock_api.get_cluster_custom_object.return_value = _k8s_object(
            "issuer", kind="ClusterIssuer", api_version="cert-manager.io/v1",
            namespace=None,
            status={"conditions": [{"type": "Ready", "status": "False"}]},
        )

        data = _call(_server(), "get_resource_status", {
            "group": "cert-manager.io",
            "version": "v1",
            "plural": "clusterissuers",
            "name": "issuer",
            "namespace": "",
            "context": "",
        })
        assert data["success"] is True
        assert data["namespace"] is None
        assert data["status"] == {"label": "Not Ready", "severity": "Warning"}

    @pytest.mark.unit
    @patch("cr_status_mcp.tools.resource_status.get_custom_objects_client")
    def test_get_not_found(self, mock_get_client):
        mock_api = MagicMock()
        mock_get_client.return_value = mock_api
        mock_api.get_namespaced_custom_object.side_effect = Exception("404 not found")

        data = _call(_server(), "get_resource_status", {
            "group": "argoproj.io",
            "version": "v1alpha1",
            "plural": "workflows",
            "name": "missing",
            "namespace": "argo",
            "context": "",
        })
        assert data["success"] is False
        assert "not found" in data["error"].lower()
        assert "hint" in data


class TestOfflineTools:

    @pytest.mark.unit
    def test_classify_resource(self):
        data = _call(_server(), "classify_resource", {"resource": {
            "kind": "EventSource",
            "apiVersion": "argoproj.io/v1alpha1",
            "metadata": {"name": "minio"},
            "spec": {"minio": {}, "webhook": {"example": {"port": "12000"}}},
            "status": {"conditions": [
                {"type": "Deployed", "status": "True"},
                {"type": "SourcesProvided", "status": "True"},
            ]},
        }})
        assert data["success"] is True
        assert data["status"] == {"label": "Running", "severity": "Success"}
        assert data["details"] == {"eventSourceType": "Webhook"}

    @pytest.mark.unit
    def test_classify_workflow_record_reports_warnings(self):
        data = _call(_server(), "classify_resource", {"resource": {
            "name": "wf",
            "kind": "Workflow",
            "api_version": "argoproj.io/v1alpha1",
            "age": "1m",
            "metadata": {
                "status": {"phase": "Error"},
                "spec": {"arguments": {"parameters": [
                    {"name": "msg-bytes", "value": "not-valid-base64!!"},
                ]}},
            },
        }})
        assert data["success"] is True
        assert data["status"] == {"label": "Error", "severity": "Failure"}
        assert data["decodedParameters"] is None
        assert data["pipelineExecutions"] == []
        assert len(data["warnings"]) == 1

    @pytest.mark.unit
    def test_decode_workflow_arguments(self):
        data = _call(_server(), "decode_workflow_arguments", {"parameters": [
            {"name": "dicom-extract", "value": ARGUMENT_BLOB},
        ]})
        assert data["success"] is True
        assert data["found"] is True
        assert data["decodedParameters"] == ARGUMENT_BLOB_DECODED

    @pytest.mark.unit
    def test_decode_without_blob(self):
        data = _call(_server(), "decode_workflow_arguments", {"parameters": []})
        assert data["success"] is True
        assert data["found"] is False
        assert data["decodedParameters"] is None


class TestToolRegistration:

    @pytest.mark.unit
    def test_four_tools_registered(self):
        tools = asyncio.run(_server().list_tools())
        tool_names = [t.name for t in tools]
        expected = [
            "list_resource_statuses",
            "get_resource_status",
            "classify_resource",
            "decode_workflow_arguments",
        ]
        for name in expected:
            assert name in tool_names, f"Tool '{name}' not registered"
        assert len(tool_names) == 4

    @pytest.mark.unit
    def test_tools_are_read_only(self):
        tools = asyncio.run(_server().list_tools())
        for tool in tools:
            assert tool.annotations.readOnlyHint is True

    @pytest.mark.unit
    def test_import_from_init(self):
        from cr_status_mcp.tools import register_resource_status_tools
        assert callable(register_resource_status_tools)

    @pytest.mark.unit
    def test_create_server(self):
        from cr_status_mcp.server import create_server

        tools = asyncio.run(create_server().list_tools())
        assert len(tools) == 4
