"""Tests for MCP tool handlers and error reporting."""
import asyncio
import json
import logging

import httpx
import pytest

from rally_core.diagnostics import ClassifierState
from rally_core.error_classifier import ErrorClassifier
from rally_core.models import DefectSeverity, DefectState, ErrorCategory, TaskState
from rally_core.rally_client import RallyClient
from rally_core.schemas import QueryableArtifact
from rally_mcp import handlers, tools

BASE_URL = "https://rally1.rallydev.com/slm/webservice/v2.0"


def call(name, arguments, handler, classifier=None):
    """Execute a tool against a mock Rally and return (text, classifier)."""
    classifier = classifier or ErrorClassifier(ClassifierState())

    async def main():
        async with httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler)) as http:
            return await handlers.execute_tool(name, arguments, RallyClient(http), classifier)

    content = asyncio.run(main())
    assert len(content) == 1
    return content[0].text, classifier


class TestToolRegistry:
    """Test tool definitions line up with handlers."""

    def test_every_tool_has_a_handler(self):
        names = [tool.name for tool in tools.get_tools()]

        assert len(names) == 14
        assert sorted(names) == sorted(handlers.HANDLERS)

    def test_schemas_use_kebab_case(self):
        for tool in tools.get_tools():
            for prop in tool.inputSchema["properties"]:
                assert prop == prop.lower()
                assert "_" not in prop

    def test_enum_properties_match_models(self):
        """Test advertised enum values are the ones argument validation accepts."""
        schemas = {tool.name: tool.inputSchema["properties"] for tool in tools.get_tools()}

        assert schemas["create_defect"]["severity"]["enum"] == [s.value for s in DefectSeverity]
        assert schemas["update_defect_state"]["state"]["enum"] == [s.value for s in DefectState]
        assert schemas["update_task"]["state"]["enum"] == [s.value for s in TaskState]
        assert schemas["query_all_artifacts"]["artifact-type"]["enum"] == [a.value for a in QueryableArtifact]


class TestArtifactHandlers:
    """Test the happy paths through each artifact family."""

    def test_get_user_story_returns_kebab_case(self):
        def rally(request: httpx.Request) -> httpx.Response:
            assert request.url.path.endswith("/hierarchicalrequirement/123")
            return httpx.Response(200, json={"HierarchicalRequirement": {
                "_ref": "/hierarchicalrequirement/123",
                "FormattedID": "US123",
                "PlanEstimate": 5,
                "c_BusinessValue": "High",
            }})

        text, _ = call("get_user_story", {"object-id": "123"}, rally)

        assert text.startswith("User Story Retrieved:")
        body = json.loads(text.split(":\n", 1)[1])
        assert body == {
            "metadata-ref": "/hierarchicalrequirement/123",
            "formatted-id": "US123",
            "plan-estimate": 5,
            "custom-business-value": "High",
        }

    def test_create_user_story_sends_rally_names(self):
        seen = {}

        def rally(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"CreateResult": {"Object": {"FormattedID": "US7"}, "Errors": []}})

        text, _ = call("create_user_story", {
            "name": "Login",
            "project": "/project/1",
            "schedule-state": "Defined",
            "custom-business-value": "High",
        }, rally)

        assert seen["body"] == {"HierarchicalRequirement": {
            "Name": "Login",
            "Project": "/project/1",
            "ScheduleState": "Defined",
            "c_BusinessValue": "High",
        }}
        assert "User Story Created Successfully" in text

    def test_update_defect_state(self):
        seen = {}

        def rally(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"OperationResult": {"Object": {"State": "Fixed"}, "Errors": []}})

        text, _ = call("update_defect_state", {
            "object-id": "42", "state": "Fixed", "resolution": "Code Change", "fixed-in-build": "2.1",
        }, rally)

        assert seen["path"].endswith("/defect/42")
        assert seen["body"] == {"Defect": {"State": "Fixed", "Resolution": "Code Change", "FixedInBuild": "2.1"}}
        assert "State Updated to Fixed" in text

    def test_create_task_links_parent(self):
        seen = {}

        def rally(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"CreateResult": {"Object": {"FormattedID": "TA1"}, "Errors": []}})

        call("create_task", {"name": "Write tests", "parent-defect": "/defect/3", "todo": 4}, rally)

        assert seen["body"] == {"Task": {"Name": "Write tests", "WorkProduct": "/defect/3", "ToDo": 4.0}}

    def test_query_tasks(self):
        def rally(request: httpx.Request) -> httpx.Response:
            assert request.url.params["query"] == '(ToDo >= 1.0)'
            return httpx.Response(200, json={"QueryResult": {
                "Results": [{"FormattedID": "TA1", "ToDo": 3}],
                "TotalResultCount": 12,
                "Warnings": ["Please upgrade"],
                "Errors": [],
            }})

        text, _ = call("query_tasks", {"todo-hours": 1}, rally)

        assert text.startswith("Found 1 of 12 tasks:")
        assert '"to-do": 3' in text
        assert "- Please upgrade" in text

    def test_query_all_artifacts_routes_by_type(self):
        def rally(request: httpx.Request) -> httpx.Response:
            assert request.url.path.endswith("/defect")
            assert request.url.params["query"] == '(Severity = "Major")'
            return httpx.Response(200, json={"QueryResult": {"Results": [], "TotalResultCount": 0, "Errors": []}})

        text, _ = call("query_all_artifacts", {"artifact-type": "Defect", "severity": "Major"}, rally)
        assert text.startswith("Found 0 Defect artifacts:")


def fail_with(status, body=None):
    def rally(request: httpx.Request) -> httpx.Response:
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)
    return rally


class TestErrorReporting:
    """Test failures come back as classified, non-leaking text."""

    def test_authentication_failure(self):
        body = {"OperationResult": {"Errors": ["Not authorized: key _abcdefghij for secret-workspace"]}}
        text, classifier = call("get_defect", {"object-id": "1"}, fail_with(401, body))

        assert text.startswith("Error executing get_defect: Authentication failed. Please check your API credentials.")
        assert "Category: authentication | Recovery: require-intervention" in text
        assert "secret-workspace" not in text
        assert classifier.state.count(ErrorCategory.AUTHENTICATION) == 1

    def test_rate_limit_suggests_retries(self):
        text, _ = call("query_defects", {}, fail_with(429))

        assert "Category: rate-limit" in text
        assert "Suggested retries: 5" in text

    def test_invalid_arguments(self):
        text, classifier = call("create_defect", {"name": "Crash"}, fail_with(500))

        assert "Category: schema-validation" in text
        assert classifier.state.count(ErrorCategory.SCHEMA_VALIDATION) == 1

    def test_rally_payload_error(self):
        text, _ = call(
            "update_task",
            {"object-id": "7", "state": "Completed"},
            fail_with(200, {"OperationResult": {"Errors": ["Validation error: Task.ToDo must be 0"]}}),
        )
        assert "Category: validation" in text

    def test_unknown_tool(self):
        text, _ = call("delete_everything", {}, fail_with(200, {}))
        assert "Category: protocol" in text

    def test_correlation_id_reported(self):
        classifier = ErrorClassifier(ClassifierState(), id_factory=lambda: "req-77")
        text, _ = call("get_task", {"object-id": "1"}, fail_with(404), classifier)
        assert text.endswith("Correlation ID: req-77")

    @pytest.mark.parametrize("status, level", [(401, logging.ERROR), (404, logging.WARNING)])
    def test_log_level_follows_severity(self, caplog, status, level):
        with caplog.at_level(logging.INFO, logger="rally-mcp.handlers"):
            call("get_defect", {"object-id": "1"}, fail_with(status))

        failures = [r for r in caplog.records if "get_defect failed" in r.getMessage()]
        assert failures and failures[0].levelno == level
