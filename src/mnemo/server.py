import logging
import time
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from mnemo.application.selector import SelectionMode
from mnemo.application.service import ReviewService
from mnemo.application.session import ReviewSession, SessionView
from mnemo.consts import VERSION
from mnemo.domain.errors import (
    InvalidRatingError,
    PersistenceError,
    SessionOrderError,
    StoreFetchError,
)

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("mnemo.server")


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


class CardRequest(BaseModel):
    title: str
    content: str


class CardResponse(BaseModel):
    id: str
    title: str
    content: str
    next_review_at: datetime | None = None


class SessionRequest(BaseModel):
    user_id: str
    mode: SelectionMode = SelectionMode.DUE
    limit: int | None = Field(None, ge=1)
    card_ids: list[str] | None = None


class SessionResponse(BaseModel):
    session_id: str
    status: str
    position: int
    total: int
    card_id: str | None = None
    title: str | None = None
    content: str | None = None
    hint: str | None = None
    state: str | None = None


class RateRequest(BaseModel):
    rating: int


class RateResponse(BaseModel):
    card_id: str
    interval_days: int
    ease_factor: float
    repetition_count: int
    next_review_at: datetime
    duration_seconds: float
    current_streak: int
    session: SessionResponse


class AbortRequest(BaseModel):
    discard: bool = False


class StreakResponse(BaseModel):
    current_streak: int
    longest_streak: int
    total_reviews: int
    last_review_date: date | None
    reviewed_today: int
    daily_goal: int
    completion_rate: int


class AchievementResponse(BaseModel):
    id: str
    name: str
    description: str
    unlocked: bool


def _session_response(view: SessionView) -> SessionResponse:
    return SessionResponse(
        session_id=view.session_id,
        status=view.status.value,
        position=view.position,
        total=view.total,
        card_id=view.card_id,
        title=view.title,
        content=view.content,
        hint=view.hint,
        state=view.state.value if view.state else None,
    )


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------


def create_app(service: ReviewService | None = None) -> FastAPI:
    """
    Build the HTTP session host.

    The service and the open sessions live on ``app.state``; pass a service
    to embed or test, otherwise one is built from the resolved config at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"mnemo server v{VERSION} starting up...")
        if getattr(app.state, "service", None) is None:
            from mnemo.application.config import resolve_config
            from mnemo.application.factory import build_review_service

            app.state.service = build_review_service(resolve_config())
        yield
        logger.info("mnemo server shutting down...")

    app = FastAPI(
        title="mnemo",
        description="Review-session host for spaced-repetition knowledge cards.",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.service = service
    app.state.sessions = {}
    app.state.last_seen = {}
    app.state.start_time = time.time()

    @app.exception_handler(SessionOrderError)
    async def order_error(request: Request, exc: SessionOrderError):
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(InvalidRatingError)
    async def rating_error(request: Request, exc: InvalidRatingError):
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.exception_handler(PersistenceError)
    async def persistence_error(request: Request, exc: PersistenceError):
        logger.error(f"Write failed ({exc.stage}) for card {exc.card_id}: {exc}")
        return JSONResponse(
            status_code=503,
            content={"detail": str(exc), "stage": exc.stage, "card_id": exc.card_id},
        )

    @app.exception_handler(StoreFetchError)
    async def fetch_error(request: Request, exc: StoreFetchError):
        logger.error(f"Fetch failed: {exc}")
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    def get_service() -> ReviewService:
        return app.state.service

    def expire_idle_sessions() -> None:
        service = get_service()
        cutoff = service.now() - timedelta(minutes=service.config.session_idle_minutes)
        for session_id, seen in list(app.state.last_seen.items()):
            if seen < cutoff:
                logger.info(f"Expiring idle session {session_id}")
                drop_session(session_id)

    def drop_session(session_id: str) -> None:
        app.state.sessions.pop(session_id, None)
        app.state.last_seen.pop(session_id, None)

    def get_session(session_id: str) -> ReviewSession:
        expire_idle_sessions()
        session = app.state.sessions.get(session_id)
        if session is None:
            raise HTTPException(status_code=404, detail=f"Unknown session {session_id}")
        app.state.last_seen[session_id] = get_service().now()
        return session

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        """
        Simple health check to verify server is reachable.
        """
        return HealthResponse(
            status="ok", version=VERSION, uptime_seconds=time.time() - app.state.start_time
        )

    @app.get("/version")
    async def get_version():
        return {"version": VERSION}

    @app.post("/users/{user_id}/cards", response_model=CardResponse)
    async def add_card(user_id: str, req: CardRequest):
        card = await get_service().add_card(user_id, req.title, req.content)
        return CardResponse(
            id=card.id,
            title=card.title,
            content=card.content,
            next_review_at=card.schedule.next_review_at if card.schedule else None,
        )

    @app.post("/sessions", response_model=SessionResponse)
    async def start_session(req: SessionRequest):
        """Open a session over due cards, a random sample or a curated set."""
        if req.mode is SelectionMode.CURATED and not req.card_ids:
            raise HTTPException(status_code=422, detail="curated mode requires card_ids")
        session = await get_service().start_session(
            req.user_id, mode=req.mode, limit=req.limit, card_ids=req.card_ids
        )
        expire_idle_sessions()
        if not session.is_finished:
            app.state.sessions[session.id] = session
            app.state.last_seen[session.id] = get_service().now()
        return _session_response(session.view())

    @app.get("/sessions/{session_id}", response_model=SessionResponse)
    async def session_state(session_id: str):
        return _session_response(get_session(session_id).view())

    @app.post("/sessions/{session_id}/reveal", response_model=SessionResponse)
    async def reveal(session_id: str):
        session = get_session(session_id)
        session.reveal()
        return _session_response(session.view())

    @app.post("/sessions/{session_id}/hint", response_model=SessionResponse)
    async def hint(session_id: str):
        session = get_session(session_id)
        session.request_hint()
        return _session_response(session.view())

    def _rate_response(session: ReviewSession, outcome) -> RateResponse:
        if session.is_finished:
            drop_session(session.id)
        return RateResponse(
            card_id=outcome.card_id,
            interval_days=outcome.schedule.interval_days,
            ease_factor=outcome.schedule.ease_factor,
            repetition_count=outcome.schedule.repetition_count,
            next_review_at=outcome.schedule.next_review_at,
            duration_seconds=outcome.duration_seconds,
            current_streak=outcome.streak.current_streak,
            session=_session_response(session.view()),
        )

    @app.post("/sessions/{session_id}/rate", response_model=RateResponse)
    async def rate(session_id: str, req: RateRequest):
        session = get_session(session_id)
        outcome = await session.rate(req.rating)
        return _rate_response(session, outcome)

    @app.post("/sessions/{session_id}/retry", response_model=RateResponse)
    async def retry(session_id: str):
        """Re-attempt the writes of a rated card after a 503."""
        session = get_session(session_id)
        outcome = await session.retry()
        return _rate_response(session, outcome)

    @app.post("/sessions/{session_id}/abort", response_model=SessionResponse)
    async def abort(session_id: str, req: AbortRequest | None = None):
        session = get_session(session_id)
        session.abort(discard=req.discard if req else False)
        drop_session(session_id)
        return _session_response(session.view())

    @app.get("/users/{user_id}/streak", response_model=StreakResponse)
    async def get_streak(user_id: str):
        service = get_service()
        streak = await service.streak(user_id)
        progress = await service.daily_progress(user_id)
        return StreakResponse(
            current_streak=streak.current_streak,
            longest_streak=streak.longest_streak,
            total_reviews=streak.total_reviews,
            last_review_date=streak.last_review_date,
            reviewed_today=progress.reviewed_today,
            daily_goal=progress.daily_goal,
            completion_rate=progress.completion_rate,
        )

    @app.get("/users/{user_id}/achievements", response_model=list[AchievementResponse])
    async def get_achievements(user_id: str):
        achievements = await get_service().achievements(user_id)
        return [
            AchievementResponse(
                id=a.id, name=a.name, description=a.description, unlocked=a.unlocked
            )
            for a in achievements
        ]

    return app


app = create_app()
