"""Tests for the run history endpoints, reading what the controller recorded."""

from datetime import datetime
from unittest import mock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from api.src.db.database import async_database_url, get_db
from api.src.main import app
from controller.src.models.pipeline import ActionKind
from controller.src.models.results import ActionResult, ActionStatus, ExecutionResult, StageResult
from controller.src.services.status_reporter import StatusReporter

def execution_result() -> ExecutionResult:
    source = ActionResult(
        stage="Source", stage_order=0, action="GitHub_Source", action_order=0,
        kind=ActionKind.SOURCE, status=ActionStatus.SUCCEEDED, outputs=["SourceOutput"],
    )
    build = ActionResult(
        stage="Build", stage_order=1, action="Application_Build", action_order=0,
        kind=ActionKind.BUILD, status=ActionStatus.FAILED, error_kind="BuildFailed",
        reason="Phase 'build' exited with code 2", logs="npm ERR! missing script: build",
    )
    return ExecutionResult(
        run_id="0b0e7a4e-6a57-4c39-9a2e-1f3c1f0b9d11",
        pipeline="CrossAccountPipeline",
        revision="abc123",
        status=ActionStatus.RUNNING,
        started_at=datetime(2024, 5, 1, 12, 0, 0),
        stages=[
            StageResult(name="Source", order=0, actions=[source]),
            StageResult(name="Build", order=1, actions=[build]),
        ],
    )

@pytest.fixture
def client(tmp_path):
    url = f"sqlite:///{tmp_path / 'runs.db'}"

    reporter = StatusReporter(url)
    result = execution_result()
    reporter.start_run(result)
    for stage in result.stages:
        for action in stage.actions:
            reporter.update_action(result.run_id, action)
    result.status = ActionStatus.FAILED
    result.failed_stage = "Build"
    result.failed_action = "Application_Build"
    result.error_kind = "BuildFailed"
    result.finished_at = datetime(2024, 5, 1, 12, 5, 0)
    reporter.finish_run(result)

    engine = create_async_engine(async_database_url(url), poolclass=NullPool)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()

RUN_ID = "0b0e7a4e-6a57-4c39-9a2e-1f3c1f0b9d11"

def test_async_database_url():
    assert async_database_url("postgresql://u:p@db/x") == "postgresql+asyncpg://u:p@db/x"
    assert async_database_url("sqlite:///./x.db") == "sqlite+aiosqlite:///./x.db"

def test_list_runs(client):
    response = client.get("/api/pipelines/runs")

    assert response.status_code == 200
    runs = response.json()
    assert [r["id"] for r in runs] == [RUN_ID]
    assert runs[0]["status"] == "failed"
    assert [a["name"] for a in runs[0]["actions"]] == ["GitHub_Source", "Application_Build"]

def test_list_runs_filters_by_status(client):
    assert client.get("/api/pipelines/runs", params={"status": "succeeded"}).json() == []

def test_get_run(client):
    run = client.get(f"/api/pipelines/runs/{RUN_ID}").json()

    assert run["failed_stage"] == "Build"
    assert run["error_kind"] == "BuildFailed"
    assert run["actions"][0]["outputs"] == ["SourceOutput"]

def test_run_status_groups_by_stage(client):
    status = client.get(f"/api/pipelines/runs/{RUN_ID}/status").json()

    assert status["status"] == "failed"
    assert [s["name"] for s in status["stages"]] == ["Source", "Build"]
    assert status["stages"][1]["actions"][0]["error_kind"] == "BuildFailed"

def test_run_logs(client):
    logs = client.get(f"/api/pipelines/runs/{RUN_ID}/logs").json()

    assert logs["actions"][1]["logs"] == "npm ERR! missing script: build"

def test_unknown_run(client):
    assert client.get("/api/pipelines/runs/does-not-exist").status_code == 404

def test_stats(client):
    stats = client.get("/api/pipelines/stats").json()

    assert stats["total_runs"] == 1
    assert stats["failures"] == {"BuildFailed": 1}

def test_health():
    response = TestClient(app).get("/health")

    assert response.json() == {"status": "healthy", "service": "crossdeploy-api"}

def test_database_health(client):
    assert client.get("/health/db").json() == {"status": "healthy", "database": "healthy"}

def test_serve_uses_configured_address():
    from api.src import main

    with mock.patch.object(main.uvicorn, "run") as run:
        main.serve()

    run.assert_called_once_with(main.app, host=main.settings.api_host, port=main.settings.api_port)
