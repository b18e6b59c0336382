"""
olympia/routes/__init__.py
Route registration
"""
from fastapi import APIRouter

from olympia.realtime.ws_server import websocket_endpoint
from olympia.routes import control, packages, play, scoring, sessions

router = APIRouter()

router.include_router(sessions.router)
router.include_router(control.router)
router.include_router(play.router)
router.include_router(scoring.router)
router.include_router(packages.router)

# Read-only viewer feed
router.add_api_websocket_route("/olympia/ws/{match_id}", websocket_endpoint)
