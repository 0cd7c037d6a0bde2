"""OpenAPI document in the formats API clients ask for."""

from __future__ import annotations

import yaml
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, RedirectResponse, Response

router = APIRouter(tags=["docs"], include_in_schema=False)


@router.get("/swagger.json")
async def swagger_json(request: Request) -> JSONResponse:
    return JSONResponse(request.app.openapi())


@router.get("/swagger.yaml")
async def swagger_yaml(request: Request) -> Response:
    document = yaml.safe_dump(request.app.openapi(), sort_keys=False, allow_unicode=True)
    return Response(content=document, media_type="application/x-yaml")


@router.get("/api-docs")
async def api_docs() -> RedirectResponse:
    return RedirectResponse(url="/docs")
