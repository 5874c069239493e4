"""World template endpoints."""

from fastapi import APIRouter, HTTPException, Request

from taleweave.models import WorldTemplate
from taleweave.storage import slugify

from . import deps
from .models import CreateTemplate

router = APIRouter()


@router.get("/templates")
async def list_templates(request: Request):
    """List all stored world templates."""
    return [t.model_dump() for t in deps.store(request).list_templates()]


@router.post("/templates", status_code=201)
async def create_template(request: Request, body: CreateTemplate):
    """Store a world template that sessions can point at."""
    template = WorldTemplate(slug=slugify(body.title), **body.model_dump())
    try:
        return deps.store(request).save_template(template).model_dump()
    except FileExistsError as e:
        raise HTTPException(409, str(e))


@router.get("/templates/{slug}")
async def get_template(request: Request, slug: str):
    """Get a single template by slug."""
    template = deps.store(request).get_template(slug)
    if not template:
        raise HTTPException(404, "Template not found")
    return template.model_dump()


@router.delete("/templates/{slug}")
async def delete_template(request: Request, slug: str):
    """Delete a template. Sessions pointing at it can no longer be recovered."""
    if not deps.store(request).delete_template(slug):
        raise HTTPException(404, "Template not found")
    return {"ok": True}
