import json

from fastapi.testclient import TestClient

from conftest import ScriptedRunner, engine_reply, quota_failure
from research_relay.api.main import build_services, create_app
from research_relay.config import RelaySettings


def _client(project_root, outcomes) -> tuple[TestClient, ScriptedRunner]:
    runner = ScriptedRunner(outcomes)
    settings = RelaySettings(project_root=project_root, _env_file=None)
    app = create_app(build_services(settings, runner))
    return TestClient(app), runner


def test_health_and_tool_listing(project_root) -> None:
    client, _ = _client(project_root, [])

    with client:
        health = client.get("/health")
        tools = client.get("/tools")

    assert health.status_code == 200
    assert health.json()["status"] == "ok"
    assert health.json()["project_root"] == str(project_root)
    assert tools.status_code == 200
    names = {item["name"] for item in tools.json()["items"]}
    assert names == {"quick_query", "deep_research", "fetch_chunk", "validate_paths", "health_check"}


def test_tool_call_returns_result(project_root) -> None:
    client, runner = _client(project_root, [engine_reply("Auth is handled in src/auth.py")])

    with client:
        response = client.post("/tools/quick_query", json={"arguments": {"prompt": "Explain @src/auth.py"}})

    assert response.status_code == 200
    payload = response.json()
    assert payload["answer"] == "Auth is handled in src/auth.py"
    assert payload["model"] == "gemini-3-flash-preview"
    assert len(runner.calls) == 1


def test_unknown_tool_and_invalid_arguments(project_root) -> None:
    client, runner = _client(project_root, [])

    with client:
        missing = client.post("/tools/analyze_everything", json={"arguments": {}})
        invalid = client.post("/tools/fetch_chunk", json={"arguments": {"cache_key": "seg_x", "chunk_index": 0}})
        wrong_enum = client.post(
            "/tools/quick_query", json={"arguments": {"prompt": "x", "response_style": "verbose"}}
        )

    assert missing.status_code == 404
    assert invalid.status_code == 422
    assert wrong_enum.status_code == 422
    assert runner.calls == []


def test_progress_mode_streams_events_then_result(project_root) -> None:
    client, _ = _client(project_root, [quota_failure(), engine_reply("fallback answer")])

    with client:
        response = client.post(
            "/tools/deep_research",
            json={"arguments": {"prompt": "Review @src"}, "progress": True},
        )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/x-ndjson")
    lines = [json.loads(line) for line in response.text.splitlines() if line]
    assert lines[0] == {"type": "progress", "progress": 0, "message": "Starting deep_research", "total": None}
    assert lines[-2]["message"] == "deep_research completed successfully"
    assert lines[-1]["type"] == "result"
    assert lines[-1]["result"]["answer"] == "fallback answer"
    assert lines[-1]["result"]["model"] == "gemini-2.5-pro"


def test_progress_mode_reports_tool_failure(project_root) -> None:
    client, _ = _client(project_root, [])

    with client:
        response = client.post(
            "/tools/quick_query",
            json={"arguments": {"prompt": "@../secrets.txt"}, "progress": True},
        )

    lines = [json.loads(line) for line in response.text.splitlines() if line]
    assert lines[-2]["message"] == "quick_query failed"
    assert lines[-1]["result"]["error"]["code"] == "PATH_NOT_ALLOWED"
