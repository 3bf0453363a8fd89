"""FastAPI app — health check, model assignment and action approval endpoints."""

from typing import Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from assistant_relay.relay import Relay
from assistant_relay.usage import AVAILABLE_MODELS


class ModelUpdate(BaseModel):
    agent: Optional[str] = None
    provider: Optional[str] = None
    model: Optional[str] = None


def create_app(relay: Relay) -> FastAPI:
    app = FastAPI(title="Assistant Relay")

    @app.get("/health")
    async def health():
        return relay.health()

    @app.get("/api/models")
    async def get_models():
        configs = await relay.router.model_configs.get_all()
        return {
            "configs": [
                {"agent": c.agent, "provider": c.provider, "model": c.model, "enabled": c.enabled}
                for c in configs
            ],
            "available": AVAILABLE_MODELS,
        }

    @app.post("/api/models")
    async def update_model(body: ModelUpdate):
        if not body.agent or not body.provider or not body.model:
            raise HTTPException(status_code=400, detail="Missing agent, provider, or model")
        return await relay.router.model_configs.set(body.agent, body.provider, body.model)

    @app.get("/api/actions/pending")
    async def pending_actions():
        actions = await relay.actions.list_actions()
        return [
            {"id": a.id, "type": a.type, "description": a.description, "created_at": a.created_at}
            for a in actions
        ]

    @app.post("/api/actions/{action_id}/approve")
    async def approve(action_id: str):
        return await relay.actions.approve_action(action_id)

    @app.post("/api/actions/{action_id}/deny")
    async def deny(action_id: str):
        return await relay.actions.deny_action(action_id)

    @app.get("/api/usage")
    async def usage():
        return relay.router.usage.get_status()

    return app
