"""
Interactive Avatar - FastAPI Backend
Drives real-time talking-avatar sessions for UI clients
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, WebSocket, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings, validate_config
from errors import InvalidSessionState, SendFailed
from models import (
    AVATAR_CATALOG,
    AvatarDescriptor,
    SessionCreateRequest,
    SessionCreateResponse,
    SessionSnapshot,
    SendMessageRequest,
    InputModeRequest,
    StatusResponse,
    get_avatar,
)
from core import AvatarSessionController, get_session_manager
from transports import SessionWebSocketHandler
from utils import setup_logging, get_logger

# Initialize logging
setup_logging()
logger = get_logger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting Interactive Avatar backend...")

    try:
        validate_config()
        logger.info("Configuration validated")
    except Exception as e:
        logger.error(f"Configuration validation failed: {e}")
        raise

    session_manager = get_session_manager()
    await session_manager.start()
    logger.info("Session manager started")

    logger.info(f"Backend running on {settings.host}:{settings.port}")
    logger.info(f"Environment: {settings.environment.value}")
    logger.info(f"Event transport: {settings.event_transport.value}")

    yield

    logger.info("Shutting down Interactive Avatar backend...")
    await session_manager.stop()
    logger.info("Backend shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="Interactive Avatar API",
    description="Real-time streaming avatar sessions",
    version=VERSION,
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _get_controller(session_key: str) -> AvatarSessionController:
    controller = get_session_manager().get_session(session_key)
    if controller is None:
        raise HTTPException(status_code=404, detail=f"Session not found: {session_key}")
    return controller


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    session_manager = get_session_manager()

    return {
        "status": "healthy",
        "version": VERSION,
        "environment": settings.environment.value,
        "event_transport": settings.event_transport.value,
        "sessions": len(session_manager.list_sessions()),
        "active_sessions": session_manager.active_count,
        "max_sessions": settings.max_sessions,
    }


@app.get("/api/avatars", response_model=list[AvatarDescriptor])
async def list_avatars():
    """Built-in avatar catalog."""
    return list(AVATAR_CATALOG.values())


# Session management endpoints
@app.post("/api/sessions", response_model=SessionCreateResponse, status_code=202)
async def create_session(request: SessionCreateRequest):
    """
    Create an avatar session and start it in the background.

    Args:
        request: catalog avatar id or an inline avatar descriptor

    Returns:
        Session key and the first snapshot
    """
    avatar = request.avatar
    if request.avatar_id is not None:
        avatar = get_avatar(request.avatar_id)
        if avatar is None:
            raise HTTPException(status_code=404, detail=f"Unknown avatar: {request.avatar_id}")

    session_manager = get_session_manager()
    try:
        controller = session_manager.create_session(avatar)
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))

    session_manager.start_session(controller.session_key)
    logger.info(f"Session created: {controller.session_key}")

    return SessionCreateResponse(
        session_key=controller.session_key,
        snapshot=controller.snapshot(),
    )


@app.get("/api/sessions", response_model=list[SessionSnapshot])
async def list_sessions():
    """List all sessions."""
    return get_session_manager().list_sessions()


@app.get("/api/sessions/{session_key}", response_model=SessionSnapshot)
async def get_session(session_key: str):
    return _get_controller(session_key).snapshot()


@app.post("/api/sessions/{session_key}/start", response_model=StatusResponse, status_code=202)
async def start_session(session_key: str):
    """Retry a session from IDLE or FAILED."""
    controller = _get_controller(session_key)
    if controller.state_machine.is_busy:
        raise HTTPException(
            status_code=409,
            detail=f"Session is {controller.phase.value}",
        )

    get_session_manager().start_session(session_key)
    return StatusResponse(status="starting")


@app.post("/api/sessions/{session_key}/messages", response_model=StatusResponse)
async def send_message(session_key: str, request: SendMessageRequest):
    """Ask the avatar to talk about or repeat a text."""
    controller = _get_controller(session_key)
    try:
        await controller.send(request.text, request.task_type)
    except InvalidSessionState as e:
        raise HTTPException(status_code=409, detail=e.to_dict())
    except SendFailed as e:
        raise HTTPException(status_code=502, detail=e.to_dict())

    return StatusResponse(status="sent")


@app.put("/api/sessions/{session_key}/input-mode", response_model=SessionSnapshot)
async def set_input_mode(session_key: str, request: InputModeRequest):
    controller = _get_controller(session_key)
    controller.set_input_mode(request.mode)
    return controller.snapshot()


@app.delete("/api/sessions/{session_key}", response_model=StatusResponse)
async def delete_session(session_key: str):
    """Stop and remove a session."""
    closed = await get_session_manager().close_session(session_key)
    if not closed:
        raise HTTPException(status_code=404, detail=f"Session not found: {session_key}")

    logger.info(f"Session deleted: {session_key}")
    return StatusResponse(status="success", message=f"Session {session_key} closed")


@app.websocket("/ws/sessions/{session_key}")
async def session_websocket(websocket: WebSocket, session_key: str):
    """Push snapshots and accept commands for one session."""
    session_manager = get_session_manager()
    controller = session_manager.get_session(session_key)
    if controller is None:
        await websocket.close(code=4404, reason="Session not found")
        return

    handler = SessionWebSocketHandler(websocket, controller, session_manager)
    await handler.handle_connection()


# Error handlers
@app.exception_handler(500)
async def internal_error_handler(request, exc):
    logger.error(f"Internal server error: {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error"}
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
