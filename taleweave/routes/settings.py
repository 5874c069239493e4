"""Health check and settings endpoints."""

from fastapi import APIRouter, Request

from taleweave.config import update_config

from . import deps

router = APIRouter()


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/settings")
async def get_settings(request: Request):
    """Get app settings (LLM connection, history and mission policy, prompts)."""
    return deps.config(request)


@router.patch("/settings")
async def update_settings(request: Request, body: dict):
    """Update app settings (partial merge)."""
    return update_config(request.app.state.data_dir, body)
