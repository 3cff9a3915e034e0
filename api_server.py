"""
Workflow Execution API Server

FastAPI server that accepts workflow graphs from the editor, runs them in a
real browser and streams run status back as Server-Sent Events.

Usage:
    python -m uvicorn api_server:app --host 0.0.0.0 --port 3001
    # or
    python api_server.py
"""

import json
import logging
from contextlib import aclosing, asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

import engine_config
from persistence import JSONRunArchive
from run_tracker import RunTracker
from workflow_errors import InvalidWorkflowError, RunNotFoundError
from workflow_loader import parse_workflow
from workflow_models import RunStatus

logger = logging.getLogger(__name__)

# --- Tracker ---

tracker: Optional[RunTracker] = None


def get_tracker() -> RunTracker:
    global tracker
    if tracker is None:
        archive = JSONRunArchive(engine_config.RUN_ARCHIVE_DIR) if engine_config.RUN_ARCHIVE_DIR else None
        tracker = RunTracker(archive=archive)
    return tracker


@asynccontextmanager
async def lifespan(app):
    get_tracker()
    yield
    if tracker is not None:
        await tracker.shutdown()


app = FastAPI(
    title="Workflow Execution API",
    description="Runs browser-automation workflow graphs and streams their status",
    version="1.0.0",
    lifespan=lifespan,
)


# --- Request models ---


class ExecuteRequest(BaseModel):
    workflow: Optional[dict[str, Any]] = None
    variables: dict[str, Any] = Field(default_factory=dict)


class TestModuleRequest(BaseModel):
    module: Optional[dict[str, Any]] = None
    workflow: Optional[dict[str, Any]] = None


class ExecuteOptions(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    until_node_id: Optional[str] = Field(default=None, alias="untilNodeId")


class CurrentUrlRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    workflow: Optional[dict[str, Any]] = None
    node_id: Optional[str] = Field(default=None, alias="nodeId")
    execute_options: Optional[ExecuteOptions] = Field(default=None, alias="executeOptions")
    variables: dict[str, Any] = Field(default_factory=dict)


# --- Helpers ---


def _start_run(workflow_data: Optional[dict[str, Any]], variables: dict[str, Any]) -> str:
    if not workflow_data:
        raise HTTPException(status_code=400, detail="Workflow is required")
    try:
        workflow = parse_workflow(workflow_data)
        return get_tracker().start(workflow, variables)
    except InvalidWorkflowError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _status(execution_id: str):
    try:
        return get_tracker().status(execution_id)
    except RunNotFoundError:
        raise HTTPException(status_code=404, detail="Execution not found")


# --- Endpoints ---


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "service": "playwright-backend",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.post("/api/playwright/execute")
async def execute_workflow(req: ExecuteRequest):
    """Start a workflow run in the background and return its id."""
    execution_id = _start_run(req.workflow, req.variables)
    return {
        "success": True,
        "executionId": execution_id,
        "message": "Workflow execution started",
    }


@app.post("/api/playwright/test-module")
async def test_module(req: TestModuleRequest):
    """Run the workflow built around a single module."""
    if not req.module or not req.workflow:
        raise HTTPException(status_code=400, detail="Module and workflow are required")
    execution_id = _start_run(req.workflow, {})
    logger.info(f"Testing module {req.module.get('name', '?')} as run {execution_id}")
    return {
        "success": True,
        "executionId": execution_id,
        "message": "Module test started",
    }


@app.post("/api/playwright/get-current-url")
async def get_current_url(req: CurrentUrlRequest):
    """
    Execute the workflow in a throwaway browser and return the URL the first
    page ended on. The browser is closed afterwards.

    Only executeOptions.untilNodeId stops the walk early; nodeId names the
    node asking for the URL and is logged.
    """
    if not req.workflow or not req.workflow.get("nodes"):
        raise HTTPException(status_code=400, detail="Workflow data is required")

    until_node_id = req.execute_options.until_node_id if req.execute_options else None
    logger.info(f"Current URL requested for node {req.node_id or '?'}, stopping at {until_node_id or 'end'}")

    try:
        workflow = parse_workflow(req.workflow)
        run, current_url = await get_tracker().probe_current_url(workflow, until_node_id, req.variables)
    except InvalidWorkflowError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if run.status is RunStatus.FAILED:
        raise HTTPException(status_code=500, detail=run.error or "Failed to get current URL")

    return {
        "success": True,
        "currentUrl": current_url,
        "execution": run.to_json_dict(),
    }


@app.get("/api/playwright/executions")
async def list_executions():
    """List runs still held in memory."""
    return [
        {
            "id": run.id,
            "status": run.status.value,
            "currentNodeId": run.current_node_id,
            "startTime": run.start_time,
            "endTime": run.end_time,
            "completedCount": len(run.completed_nodes),
            "logCount": len(run.logs),
        }
        for run in get_tracker().runs()
    ]


@app.get("/api/playwright/execution/{execution_id}")
async def get_execution(execution_id: str):
    """Get a run's status snapshot."""
    return _status(execution_id).to_json_dict()


@app.get("/api/playwright/execution/{execution_id}/stream")
async def stream_execution(execution_id: str):
    """Stream run snapshots as SSE until the run finishes or the client disconnects."""
    _status(execution_id)
    run_tracker = get_tracker()

    async def event_generator():
        try:
            async with aclosing(run_tracker.stream(execution_id)) as snapshots:
                async for snapshot in snapshots:
                    yield f"data: {json.dumps(snapshot.to_json_dict(), ensure_ascii=False)}\n\n"
        except RunNotFoundError:
            yield f"data: {json.dumps({'error': 'Execution not found'})}\n\n"

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@app.post("/api/playwright/execution/{execution_id}/cancel")
async def cancel_execution(execution_id: str):
    """Cancel a running workflow. The run ends as failed."""
    try:
        run = await get_tracker().cancel(execution_id)
    except RunNotFoundError:
        raise HTTPException(status_code=404, detail="Execution not found")
    return run.to_json_dict()


@app.post("/api/playwright/execution/{execution_id}/terminate")
async def terminate_execution(execution_id: str):
    """Close the browser left open by a run."""
    try:
        terminated = await get_tracker().terminate_session(execution_id)
    except RunNotFoundError:
        raise HTTPException(status_code=404, detail="Execution not found")
    return {"executionId": execution_id, "terminated": terminated}


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
    uvicorn.run(app, host=engine_config.API_HOST, port=engine_config.API_PORT)
