"""API information endpoint."""

from __future__ import annotations

from fastapi import APIRouter

router = APIRouter(tags=["system"])

API_NAME = "Euromillones Results API"
API_VERSION = "1.0"

ENDPOINTS = {
    "get_result": "/results/{date}  (GET, YYYY-MM-DD)",
    "get_winners": "/results/{date}/winners  (GET, auth)",
    "add_result": "/results  (POST JSON, auth)",
    "add_user": "/user  (POST JSON, auth)",
    "get_user": "/user/{email}  (GET, auth)",
    "update_user": "/user/{email}  (PUT JSON, auth)",
    "delete_user": "/user/{email}  (DELETE, auth)",
    "add_combination": "/combinations  (POST JSON, auth)",
    "get_combinations": "/combinations/{email}  (GET, auth)",
    "update_combination": "/combinations/{id}  (PUT JSON, auth)",
    "delete_combination": "/combinations/{id}  (DELETE, auth)",
    "health": "/health",
    "docs": "/docs",
}


@router.get("/")
async def api_info():
    """Name, version and endpoint directory."""
    return {
        "api": API_NAME,
        "version": API_VERSION,
        "endpoints": ENDPOINTS,
        "description": (
            "This API allows you to query Euromillones results, "
            "manage users and their combinations."
        ),
    }
