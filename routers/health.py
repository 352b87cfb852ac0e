from __future__ import annotations

from fastapi import APIRouter

router = APIRouter()

@router.get("/health")
def health():
    """Liveness probe; does not touch the spreadsheet or mail server."""
    return {"status": "ok"}
