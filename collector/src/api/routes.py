"""
API routes for the collector.
"""
import logging
import time
from typing import List, Optional

import requests
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from shared.constants import DEFAULT_QUERY_LIMIT
from shared.schemas import (
    AgentDeleteResponse,
    AgentUpdate,
    AgentView,
    MetricSampleView,
    WebhookTarget,
    WebhookTestResponse,
)
from ..errors import AgentNotFoundError, StorageError
from .auth import require_api_key

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
def health_check(request: Request):
    """Health check endpoint."""
    try:
        with request.app.state.database.session_scope() as session:
            session.execute(text("SELECT 1"))
    except StorageError as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse(status_code=503, content={"status": "unhealthy", "detail": str(e)})
    return {"status": "healthy"}


@router.get("/agents", response_model=List[AgentView])
def list_agents(request: Request):
    """List all agents with their derived online state."""
    return request.app.state.registry.list()


@router.get("/agents/{agent_id}", response_model=AgentView)
def get_agent(agent_id: str, request: Request):
    """Get one agent."""
    try:
        return request.app.state.registry.get(agent_id)
    except AgentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.put("/agents/{agent_id}", response_model=AgentView, dependencies=[Depends(require_api_key)])
def update_agent(agent_id: str, update: AgentUpdate, request: Request):
    """Change an agent's display name. Agent-reported fields are never touched."""
    name = update.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Name must not be blank")

    try:
        return request.app.state.registry.rename(agent_id, name)
    except AgentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.delete("/agents/{agent_id}", response_model=AgentDeleteResponse, dependencies=[Depends(require_api_key)])
def delete_agent(agent_id: str, request: Request):
    """Delete an agent and all of its samples."""
    try:
        metrics_deleted = request.app.state.registry.delete(agent_id)
    except AgentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return AgentDeleteResponse(
        message="Agent deleted",
        agent_id=agent_id,
        metrics_deleted=metrics_deleted
    )


@router.get("/agents/{agent_id}/metrics", response_model=List[MetricSampleView])
def get_agent_metrics(
    agent_id: str,
    request: Request,
    time_from: int = Query(0, alias="from", description="Start of range, unix seconds"),
    time_to: Optional[int] = Query(None, alias="to", description="End of range, unix seconds"),
    limit: int = Query(DEFAULT_QUERY_LIMIT, description="Maximum number of samples")
):
    """Samples of one agent in [from, to], most recent first."""
    if not request.app.state.registry.exists(agent_id):
        raise HTTPException(status_code=404, detail=f"Agent {agent_id} not found")

    if time_to is None:
        time_to = int(time.time())
    if limit <= 0:
        limit = DEFAULT_QUERY_LIMIT
    if time_from > time_to:
        raise HTTPException(status_code=400, detail="'from' must not be after 'to'")

    return request.app.state.store.query(agent_id, time_from, time_to, limit)


@router.get("/webhook", response_model=List[WebhookTarget])
def get_webhooks(request: Request):
    """Configured notification targets."""
    return request.app.state.webhooks.load()


@router.put("/webhook", dependencies=[Depends(require_api_key)])
def set_webhooks(targets: List[WebhookTarget], request: Request):
    """Replace the notification target list."""
    try:
        request.app.state.webhooks.save(targets)
    except OSError as e:
        logger.error(f"Failed to save webhook config: {e}")
        raise HTTPException(status_code=500, detail="Failed to save webhook configuration")
    return {"message": "Saved", "count": len(targets)}


@router.post("/webhook/test", response_model=WebhookTestResponse, dependencies=[Depends(require_api_key)])
def test_webhook(target: WebhookTarget, request: Request):
    """Send a test message through one target."""
    try:
        return request.app.state.notifier.test_target(target)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except requests.RequestException as e:
        logger.error(f"Webhook test delivery failed: {e}")
        raise HTTPException(status_code=502, detail=f"Webhook delivery failed: {e}")
