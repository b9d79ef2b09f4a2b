from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, WebSocket, WebSocketDisconnect, status

from app.api.deps import extract_token, get_context, get_current_user
from app.api.models import (
    AnswerRequest,
    AnswerResponse,
    AuthResponse,
    AuthResult,
    CredentialsRequest,
    GameResult,
    LeaderboardResponse,
    QuestionResponse,
    TokenPayload,
    UserHighScoreResponse,
)
from app.core.context import GameContext
from app.core.errors import InvalidStateError, ProviderError, StorageError
from app.core.events import EventKind

logger = logging.getLogger(__name__)

router = APIRouter()

TOKEN_COOKIE = "token"


def _set_token_cookie(response: Response, *, result: AuthResult, ctx: GameContext) -> None:
    response.set_cookie(
        TOKEN_COOKIE,
        result.token,
        httponly=True,
        secure=ctx.settings.is_production,
        max_age=ctx.settings.token_ttl_s,
    )


@router.get("/healthcheck")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.websocket("/ws/events")
async def events_ws(websocket: WebSocket, token: str = "") -> None:
    ctx: GameContext = websocket.app.state.ctx
    try:
        payload = ctx.auth.verify_token(token or websocket.cookies.get(TOKEN_COOKIE, ""))
    except StorageError:
        logger.exception("Token lookup failed for %s", websocket.url.path)
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return
    if payload is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await ctx.hub.connect(payload.user_id, websocket)
    try:
        # Keep the socket open; client can optionally send pings.
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        await ctx.hub.disconnect(payload.user_id, websocket)
    except Exception:
        await ctx.hub.disconnect(payload.user_id, websocket)
        raise


@router.post("/api/auth/register", response_model=AuthResponse)
async def register_route(
    payload: CredentialsRequest,
    response: Response,
    ctx: GameContext = Depends(get_context),
) -> AuthResponse:
    result = await ctx.auth.register(payload.username, payload.password)
    if result is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username already exists")

    _set_token_cookie(response, result=result, ctx=ctx)
    ctx.bus.publish(EventKind.user_registered, {"username": result.username, "user_id": result.user_id})
    return AuthResponse(token=result.token, user_id=result.user_id)


@router.post("/api/auth/login", response_model=AuthResponse)
async def login_route(
    payload: CredentialsRequest,
    response: Response,
    ctx: GameContext = Depends(get_context),
) -> AuthResponse:
    result = await ctx.auth.login(payload.username, payload.password)
    if result is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid username or password")

    _set_token_cookie(response, result=result, ctx=ctx)
    ctx.bus.publish(EventKind.user_logged_in, {"username": result.username, "user_id": result.user_id})
    return AuthResponse(token=result.token, user_id=result.user_id)


@router.post("/api/auth/logout")
async def logout_route(request: Request, response: Response, ctx: GameContext = Depends(get_context)) -> dict[str, bool]:
    token = extract_token(request)
    if token:
        ctx.auth.revoke_token(token)
    response.delete_cookie(TOKEN_COOKIE)
    return {"logged_out": True}


@router.post("/api/game/start")
async def start_game_route(
    user: TokenPayload = Depends(get_current_user),
    ctx: GameContext = Depends(get_context),
) -> dict[str, bool]:
    await ctx.session.start(user.user_id)
    return {"playing": ctx.session.is_playing()}


@router.post("/api/game/question", response_model=QuestionResponse)
async def question_route(
    user: TokenPayload = Depends(get_current_user),
    ctx: GameContext = Depends(get_context),
) -> QuestionResponse:
    try:
        question = await ctx.session.request_question()
    except InvalidStateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    except ProviderError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to fetch question") from e

    # The solution stays on the server.
    return QuestionResponse(question=question.question)


@router.post("/api/game/answer", response_model=AnswerResponse)
async def answer_route(
    payload: AnswerRequest,
    user: TokenPayload = Depends(get_current_user),
    ctx: GameContext = Depends(get_context),
) -> AnswerResponse:
    try:
        is_correct = await ctx.session.submit_answer(payload.answer)
    except ProviderError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to fetch next question") from e

    return AnswerResponse(is_correct=is_correct, score=ctx.session.get_score())


@router.post("/api/game/end", response_model=GameResult)
async def end_game_route(
    user: TokenPayload = Depends(get_current_user),
    ctx: GameContext = Depends(get_context),
) -> GameResult:
    try:
        return await ctx.session.end()
    except StorageError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Failed to read high score") from e


@router.get("/api/leaderboard", response_model=LeaderboardResponse)
async def leaderboard_route(
    limit: int | None = Query(default=None, ge=1, le=100),
    user: TokenPayload = Depends(get_current_user),
    ctx: GameContext = Depends(get_context),
) -> LeaderboardResponse:
    try:
        rows = await ctx.scores.get_high_scores(limit or ctx.settings.leaderboard_limit)
    except StorageError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Failed to fetch leaderboard") from e
    return LeaderboardResponse(high_scores=rows)


@router.get("/api/user/highscore", response_model=UserHighScoreResponse)
async def user_high_score_route(
    user: TokenPayload = Depends(get_current_user),
    ctx: GameContext = Depends(get_context),
) -> UserHighScoreResponse:
    try:
        high_score = await ctx.scores.get_user_high_score(user.user_id)
    except StorageError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Failed to fetch high score") from e
    return UserHighScoreResponse(high_score=high_score)
