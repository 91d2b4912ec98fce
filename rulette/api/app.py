"""
FastAPI Application - REST API for Rulette clients.

Endpoints:
    POST   /api/v1/sessions                             Create session
    GET    /api/v1/sessions                             List sessions
    GET    /api/v1/sessions/{id}                        Get session snapshot
    POST   /api/v1/sessions/{id_or_code}/join           Join (or rejoin) a session
    POST   /api/v1/sessions/{id}/leave                  Leave a session
    POST   /api/v1/sessions/{id}/disconnect             Mark a player disconnected
    POST   /api/v1/sessions/{id}/start                  Start the game (host)
    POST   /api/v1/sessions/{id}/end                    End the game
    POST   /api/v1/sessions/{id}/spin                   Record the current player's spin
    POST   /api/v1/sessions/{id}/turn/next              Advance the turn
    POST   /api/v1/sessions/{id}/draw                   Draw a card
    POST   /api/v1/sessions/{id}/referee/swap           Hand over the referee role
    POST   /api/v1/sessions/{id}/callouts               Call out a player
    POST   /api/v1/sessions/{id}/callouts/adjudicate    Referee ruling
    POST   /api/v1/sessions/{id}/cards/transfer         Give a card to another player
    POST   /api/v1/sessions/{id}/cards/swap             Exchange two cards
    POST   /api/v1/sessions/{id}/cards/clone            Clone another player's card
    POST   /api/v1/sessions/{id}/cards/flip             Flip a card
    DELETE /api/v1/sessions/{id}/players/{pid}/cards/{cid}  Remove a card (and its clones)
    POST   /api/v1/sessions/{id}/prompt                 Start a prompt challenge
    POST   /api/v1/sessions/{id}/prompt/complete        Prompted player is done
    POST   /api/v1/sessions/{id}/prompt/judge           Referee judges the prompt
    WS     /api/v1/sessions/{id}/ws                     Effects pushed as they happen

Failed actions return an ErrorResponse with an HTTP status derived from
the error code: not found 404, role 403, throttling 429, conflicts 409,
everything else 400.
"""

from typing import Union
import json
import logging
import os

from ..engine_core.action import ErrorCode

# Environment configuration
RULETTE_ENV = os.getenv("RULETTE_ENV", "development")
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "*").split(",")

logger = logging.getLogger(__name__)


NOT_FOUND_CODES = {
    ErrorCode.SESSION_NOT_FOUND,
    ErrorCode.PLAYER_NOT_FOUND,
    ErrorCode.CARD_NOT_FOUND,
    ErrorCode.TARGET_NOT_FOUND,
    ErrorCode.NO_ACTIVE_CALLOUT,
    ErrorCode.NO_ACTIVE_PROMPT,
}
ROLE_CODES = {
    ErrorCode.NOT_REFEREE,
    ErrorCode.NOT_CURRENT_REFEREE,
    ErrorCode.NOT_HOST,
    ErrorCode.NOT_PROMPT_PLAYER,
    ErrorCode.REFEREE_CANNOT_CALL_OUT,
    ErrorCode.PLAYER_NOT_IN_SESSION,
}
THROTTLE_CODES = {
    ErrorCode.CALLOUT_COOLDOWN,
    ErrorCode.CALLOUT_RATE_LIMITED,
    ErrorCode.REFEREE_COOLDOWN,
}
CONFLICT_CODES = {
    ErrorCode.CALLOUT_PENDING,
    ErrorCode.CALLOUT_ALREADY_DECIDED,
    ErrorCode.PROMPT_ACTIVE,
    ErrorCode.SESSION_FULL,
    ErrorCode.SESSION_NOT_JOINABLE,
    ErrorCode.DUPLICATE_PLAYER_NAME,
    ErrorCode.PLAYER_IN_ANOTHER_SESSION,
    ErrorCode.DUPLICATE_ACTION,
    ErrorCode.CLONE_BLOCKED,
    ErrorCode.FLIP_BLOCKED,
    ErrorCode.SWAP_BLOCKED,
    ErrorCode.CLONE_CHAIN_LIMIT_EXCEEDED,
    ErrorCode.INVALID_TRANSITION,
}


def status_for_error(error_code: ErrorCode) -> int:
    """HTTP status for a failed action."""
    if error_code in NOT_FOUND_CODES:
        return 404
    if error_code in ROLE_CODES:
        return 403
    if error_code in THROTTLE_CODES:
        return 429
    if error_code in CONFLICT_CODES:
        return 409
    if error_code == ErrorCode.INTERNAL_ERROR:
        return 500
    if error_code == ErrorCode.SESSION_ID_EXHAUSTED:
        return 503
    return 400


def create_app(service=None):
    """
    Create the FastAPI application.

    Args:
        service: Optional APIService instance (creates new if not provided)

    Returns:
        FastAPI application instance
    """
    try:
        from fastapi import FastAPI, WebSocket, WebSocketDisconnect
        from fastapi.middleware.cors import CORSMiddleware
        from fastapi.responses import JSONResponse
    except ImportError:
        raise ImportError(
            "FastAPI not installed. Install with: pip install fastapi uvicorn"
        )

    from .service import APIService
    from .schemas import (
        # Request models
        ActivatePromptRequest,
        AdjudicateRequest,
        CalloutRequest,
        CloneCardRequest,
        CreateSessionRequest,
        DrawCardRequest,
        EndGameRequest,
        FlipCardRequest,
        JoinSessionRequest,
        JudgePromptRequest,
        PlayerRequest,
        StartGameRequest,
        SwapCardsRequest,
        SwapRefereeRequest,
        TransferCardRequest,
        # Response models
        ActionResponse,
        ErrorResponse,
        HealthResponse,
        SessionListResponse,
        SessionResponse,
    )
    from .. import __version__
    from ..config import EngineConfig
    from ..session import GameManager

    app = FastAPI(
        title="Rulette Engine API",
        description="""
Session engine for the Rulette party game.

## Game Flow

1. Host creates a session and shares its `shareable_code`
2. Players join with `POST /sessions/{code}/join`
3. Host starts the game; a referee is drawn at random
4. Current player spins and draws; anyone but the referee may call out
5. The referee adjudicates; a valid callout moves one point

## Error Codes

| Code | Description |
|------|-------------|
| `SESSION_NOT_FOUND` | Session does not exist |
| `CALLOUT_PENDING` | A callout is waiting for the referee |
| `CALLOUT_COOLDOWN` | Caller must wait before another callout |
| `CALLOUT_RATE_LIMITED` | Too many callouts in the last minute |
| `NOT_REFEREE` | Only the referee may decide |
| `CLONE_CHAIN_LIMIT_EXCEEDED` | Card is too deep in a clone chain |
        """,
        version=__version__,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Service instance
    api_service = service or APIService(manager=GameManager(config=EngineConfig.from_env()))

    # WebSocket connections
    ws_connections: dict[str, list[WebSocket]] = {}

    # =========================================================================
    # Helpers
    # =========================================================================

    def make_error_response(error: ErrorResponse) -> JSONResponse:
        """Create a standardized error response."""
        return JSONResponse(
            status_code=status_for_error(error.error_code),
            content=error.model_dump(mode="json"),
        )

    async def broadcast_to_session(session_id: str, message: dict):
        """Broadcast a message to all WebSocket connections for a session."""
        if session_id in ws_connections:
            dead_connections = []
            for ws in ws_connections[session_id]:
                try:
                    await ws.send_json(message)
                except Exception:
                    logger.debug("Dropping websocket for %s", session_id, exc_info=True)
                    dead_connections.append(ws)
            for ws in dead_connections:
                ws_connections[session_id].remove(ws)

    async def respond(
        session_id: str, response: Union[ActionResponse, ErrorResponse]
    ) -> Union[ActionResponse, JSONResponse]:
        if isinstance(response, ErrorResponse):
            return make_error_response(response)
        if response.effects:
            await broadcast_to_session(session_id, {
                "type": "effects",
                "payload": [effect.model_dump(mode="json") for effect in response.effects],
            })
        return response

    action_responses = {
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
    }

    # =========================================================================
    # Session Endpoints
    # =========================================================================

    @app.post(
        "/api/v1/sessions",
        response_model=SessionResponse,
        status_code=201,
        responses={409: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
        tags=["Sessions"],
        summary="Create a game session",
    )
    async def create_session(request: CreateSessionRequest):
        response = await api_service.create_session(request)
        if isinstance(response, ErrorResponse):
            return make_error_response(response)
        return response

    @app.get(
        "/api/v1/sessions",
        response_model=SessionListResponse,
        tags=["Sessions"],
        summary="List sessions",
    )
    async def list_sessions() -> SessionListResponse:
        return api_service.list_sessions()

    @app.get(
        "/api/v1/sessions/{session_id}",
        response_model=SessionResponse,
        responses={404: {"model": ErrorResponse}},
        tags=["Sessions"],
        summary="Get session snapshot",
    )
    async def get_session(session_id: str):
        response = api_service.get_session(session_id)
        if isinstance(response, ErrorResponse):
            return make_error_response(response)
        return response

    @app.post(
        "/api/v1/sessions/{session_ref}/join",
        response_model=ActionResponse,
        responses=action_responses,
        tags=["Sessions"],
        summary="Join a session by id or shareable code",
    )
    async def join_session(session_ref: str, request: JoinSessionRequest):
        response = await api_service.join_session(session_ref, request)
        session_id = response.data.get("session_id", session_ref) if isinstance(
            response, ActionResponse
        ) else session_ref
        return await respond(session_id, response)

    @app.post(
        "/api/v1/sessions/{session_id}/leave",
        response_model=ActionResponse,
        responses=action_responses,
        tags=["Sessions"],
    )
    async def leave_session(session_id: str, request: PlayerRequest):
        return await respond(session_id, await api_service.leave_session(session_id, request))

    @app.post(
        "/api/v1/sessions/{session_id}/disconnect",
        response_model=ActionResponse,
        responses=action_responses,
        tags=["Sessions"],
    )
    async def disconnect_player(session_id: str, request: PlayerRequest):
        return await respond(session_id, await api_service.disconnect_player(session_id, request))

    @app.post(
        "/api/v1/sessions/{session_id}/start",
        response_model=ActionResponse,
        responses=action_responses,
        tags=["Sessions"],
        summary="Start the game (host only)",
    )
    async def start_game(session_id: str, request: StartGameRequest):
        return await respond(session_id, await api_service.start_game(session_id, request))

    @app.post(
        "/api/v1/sessions/{session_id}/end",
        response_model=ActionResponse,
        responses=action_responses,
        tags=["Sessions"],
    )
    async def end_game(session_id: str, request: EndGameRequest):
        return await respond(session_id, await api_service.end_game(session_id, request))

    # =========================================================================
    # Turn Endpoints
    # =========================================================================

    @app.post(
        "/api/v1/sessions/{session_id}/spin",
        response_model=ActionResponse,
        responses=action_responses,
        tags=["Turns"],
    )
    async def spin(session_id: str, request: PlayerRequest):
        return await respond(session_id, await api_service.spin(session_id, request))

    @app.post(
        "/api/v1/sessions/{session_id}/turn/next",
        response_model=ActionResponse,
        responses=action_responses,
        tags=["Turns"],
    )
    async def next_turn(session_id: str):
        return await respond(session_id, await api_service.next_turn(session_id))

    @app.post(
        "/api/v1/sessions/{session_id}/draw",
        response_model=ActionResponse,
        responses=action_responses,
        tags=["Turns"],
    )
    async def draw_card(session_id: str, request: DrawCardRequest):
        return await respond(session_id, await api_service.draw_card(session_id, request))

    # =========================================================================
    # Referee & Callout Endpoints
    # =========================================================================

    @app.post(
        "/api/v1/sessions/{session_id}/referee/swap",
        response_model=ActionResponse,
        responses=action_responses,
        tags=["Referee"],
    )
    async def swap_referee(session_id: str, request: SwapRefereeRequest):
        return await respond(session_id, await api_service.swap_referee(session_id, request))

    @app.post(
        "/api/v1/sessions/{session_id}/callouts",
        response_model=ActionResponse,
        responses=action_responses,
        tags=["Referee"],
        summary="Call out a player for breaking a rule",
    )
    async def initiate_callout(session_id: str, request: CalloutRequest):
        return await respond(session_id, await api_service.initiate_callout(session_id, request))

    @app.post(
        "/api/v1/sessions/{session_id}/callouts/adjudicate",
        response_model=ActionResponse,
        responses=action_responses,
        tags=["Referee"],
        summary="Referee decision on the pending callout",
    )
    async def adjudicate_callout(session_id: str, request: AdjudicateRequest):
        return await respond(session_id, await api_service.adjudicate_callout(session_id, request))

    # =========================================================================
    # Card Endpoints
    # =========================================================================

    @app.post(
        "/api/v1/sessions/{session_id}/cards/transfer",
        response_model=ActionResponse,
        responses=action_responses,
        tags=["Cards"],
    )
    async def transfer_card(session_id: str, request: TransferCardRequest):
        return await respond(session_id, await api_service.transfer_card(session_id, request))

    @app.post(
        "/api/v1/sessions/{session_id}/cards/swap",
        response_model=ActionResponse,
        responses=action_responses,
        tags=["Cards"],
    )
    async def swap_cards(session_id: str, request: SwapCardsRequest):
        return await respond(session_id, await api_service.swap_cards(session_id, request))

    @app.post(
        "/api/v1/sessions/{session_id}/cards/clone",
        response_model=ActionResponse,
        responses=action_responses,
        tags=["Cards"],
    )
    async def clone_card(session_id: str, request: CloneCardRequest):
        return await respond(session_id, await api_service.clone_card(session_id, request))

    @app.post(
        "/api/v1/sessions/{session_id}/cards/flip",
        response_model=ActionResponse,
        responses=action_responses,
        tags=["Cards"],
    )
    async def flip_card(session_id: str, request: FlipCardRequest):
        return await respond(session_id, await api_service.flip_card(session_id, request))

    @app.delete(
        "/api/v1/sessions/{session_id}/players/{player_id}/cards/{card_id}",
        response_model=ActionResponse,
        responses=action_responses,
        tags=["Cards"],
        summary="Remove a card and every clone made from it",
    )
    async def remove_card(session_id: str, player_id: str, card_id: str):
        return await respond(
            session_id, await api_service.remove_card(session_id, player_id, card_id)
        )

    # =========================================================================
    # Prompt Endpoints
    # =========================================================================

    @app.post(
        "/api/v1/sessions/{session_id}/prompt",
        response_model=ActionResponse,
        responses=action_responses,
        tags=["Prompts"],
    )
    async def activate_prompt(session_id: str, request: ActivatePromptRequest):
        return await respond(session_id, await api_service.activate_prompt(session_id, request))

    @app.post(
        "/api/v1/sessions/{session_id}/prompt/complete",
        response_model=ActionResponse,
        responses=action_responses,
        tags=["Prompts"],
    )
    async def complete_prompt(session_id: str, request: PlayerRequest):
        return await respond(session_id, await api_service.complete_prompt(session_id, request))

    @app.post(
        "/api/v1/sessions/{session_id}/prompt/judge",
        response_model=ActionResponse,
        responses=action_responses,
        tags=["Prompts"],
    )
    async def judge_prompt(session_id: str, request: JudgePromptRequest):
        return await respond(session_id, await api_service.judge_prompt(session_id, request))

    # =========================================================================
    # WebSocket Endpoint
    # =========================================================================

    @app.websocket("/api/v1/sessions/{session_id}/ws")
    async def websocket_endpoint(websocket: WebSocket, session_id: str):
        """
        WebSocket for real-time updates.

        Messages from server:
        - state_update: Session snapshot (sent on connect)
        - effects: Effects of an action, in order
        - error: Error occurred

        Messages from client:
        - ping: Keep-alive
        """
        await websocket.accept()
        ws_connections.setdefault(session_id, []).append(websocket)

        try:
            response = api_service.get_session(session_id)
            if isinstance(response, SessionResponse):
                await websocket.send_json({
                    "type": "state_update",
                    "payload": response.model_dump(mode="json"),
                })

            while True:
                data = await websocket.receive_text()
                try:
                    message = json.loads(data)
                    if message.get("type") == "ping":
                        await websocket.send_json({"type": "pong"})
                except json.JSONDecodeError:
                    await websocket.send_json({
                        "type": "error",
                        "payload": {"message": "Invalid JSON"},
                    })

        except WebSocketDisconnect:
            logger.debug("Websocket closed for %s", session_id)
        finally:
            if session_id in ws_connections:
                if websocket in ws_connections[session_id]:
                    ws_connections[session_id].remove(websocket)

    # =========================================================================
    # Health Check
    # =========================================================================

    @app.get(
        "/health",
        response_model=HealthResponse,
        tags=["System"],
        summary="Health check",
    )
    async def health_check() -> HealthResponse:
        """Health check endpoint for load balancers."""
        return HealthResponse(
            status="healthy",
            service="rulette-engine",
            version=__version__,
        )

    @app.get("/", tags=["System"])
    async def root():
        """Root endpoint with API info."""
        return {
            "name": "Rulette Engine API",
            "version": __version__,
            "environment": RULETTE_ENV,
            "docs": "/api/docs",
            "health": "/health",
        }

    return app
