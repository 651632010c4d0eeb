"""
PM Dojo REST API

FastAPI application serving the question bank and cached intelligence to the
practice app. Reads are served from sqlite; the LLM is only called for a bank
miss (on-demand question) and for answer evaluation.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.pm_dojo.core.config import DB_PATH
from src.pm_dojo.core.db import get_connection, init_db
from src.pm_dojo.core.metrics import get_metrics
from src.pm_dojo.pipeline.aggregation import aggregate_intelligence
from src.pm_dojo.pipeline.errors import DojoError, ErrorKind
from src.pm_dojo.pipeline.llm_client import ModelGateway
from src.pm_dojo.pipeline.practice import NoPracticeContext, evaluate_answer, next_question
from src.pm_dojo.pipeline.schemas import Difficulty, InterviewType
from src.pm_dojo.storage.intelligence_cache import IntelligenceCache
from src.pm_dojo.storage.question_bank import QuestionBank

from .models import (
    CompaniesResponse,
    EvaluateRequest,
    EvaluateResponse,
    FrameworksResponse,
    NextQuestionResponse,
    QuestionListResponse,
    StatsResponse,
)

logger = logging.getLogger(__name__)

# Taxonomy kind -> HTTP status for interactive calls
ERROR_STATUS = {
    ErrorKind.NO_CREDENTIAL: 400,
    ErrorKind.BAD_CREDENTIAL: 401,
    ErrorKind.PAYMENT_REQUIRED: 402,
    ErrorKind.RATE_LIMITED: 429,
}

router = APIRouter()


# ============================================================
# Dependencies
# ============================================================

def get_db(request: Request) -> Iterator:
    conn = get_connection(request.app.state.db_path)
    try:
        yield conn
    finally:
        conn.close()


def get_gateway(request: Request) -> ModelGateway:
    return request.app.state.gateway


# ============================================================
# Health & Metrics
# ============================================================

@router.get("/health")
def health_check(conn=Depends(get_db)):
    """Health check with database connectivity test."""
    try:
        episodes = IntelligenceCache(conn).count()
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return {"status": "unhealthy", "database": "error", "error": str(e)}
    return {
        "status": "healthy",
        "database": "connected",
        "episodes_cached": episodes,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/metrics")
def prometheus_metrics():
    """Prometheus metrics endpoint."""
    return Response(
        content=get_metrics().format_prometheus(),
        media_type="text/plain; version=0.0.4",
    )


@router.get("/api/stats", response_model=StatsResponse)
def get_stats(conn=Depends(get_db)):
    bank = QuestionBank(conn)
    return StatsResponse(
        episodes_cached=IntelligenceCache(conn).count(),
        questions_total=bank.count(),
        questions_by_type=bank.counts_by_type(),
    )


# ============================================================
# Questions
# ============================================================

@router.get("/api/questions", response_model=QuestionListResponse)
def list_questions(
    type: Optional[InterviewType] = Query(None, description="Interview type"),
    difficulty: Optional[Difficulty] = Query(None, description="Difficulty"),
    company: Optional[str] = Query(None, description="Company name (case-insensitive)"),
    limit: int = Query(50, ge=1, le=500),
    conn=Depends(get_db),
):
    """Query the question bank. Never calls the LLM."""
    questions = QuestionBank(conn).query_by(
        interview_type=type.value if type else None,
        difficulty=difficulty.value if difficulty else None,
        company=company,
        limit=limit,
    )
    return QuestionListResponse(count=len(questions), questions=questions)


@router.get("/api/questions/next", response_model=NextQuestionResponse)
def get_next_question(
    type: InterviewType = Query(..., description="Interview type"),
    difficulty: Difficulty = Query(Difficulty.MEDIUM, description="Difficulty"),
    company: Optional[str] = Query(None, description="Company name (case-insensitive)"),
    x_dojo_caller: Optional[str] = Header(None),
    conn=Depends(get_db),
    gateway: ModelGateway = Depends(get_gateway),
):
    """
    A random matching question from the bank, or a freshly generated one when
    the bank has nothing matching.
    """
    try:
        question, origin = next_question(
            QuestionBank(conn),
            IntelligenceCache(conn),
            gateway,
            type.value,
            difficulty.value,
            company=company,
            caller=x_dojo_caller,
        )
    except NoPracticeContext as e:
        raise HTTPException(status_code=404, detail=str(e))
    return NextQuestionResponse(origin=origin, question=question)


@router.post("/api/evaluate", response_model=EvaluateResponse)
def evaluate(
    body: EvaluateRequest,
    x_dojo_caller: Optional[str] = Header(None),
    conn=Depends(get_db),
    gateway: ModelGateway = Depends(get_gateway),
):
    question = body.question
    if question is None:
        if not body.question_id:
            raise HTTPException(status_code=400, detail="question_id or question is required")
        stored = QuestionBank(conn).get(body.question_id)
        if stored is None:
            raise HTTPException(status_code=404, detail=f"Question {body.question_id} not found")
        question = stored.question

    try:
        evaluation = evaluate_answer(gateway, question, body.answer, caller=x_dojo_caller)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return EvaluateResponse(question_id=question.id, evaluation=evaluation)


# ============================================================
# Intelligence
# ============================================================

@router.get("/api/companies", response_model=CompaniesResponse)
def list_companies(limit: int = Query(100, ge=1, le=1000), conn=Depends(get_db)):
    companies, _ = aggregate_intelligence(IntelligenceCache(conn).list_all())
    return CompaniesResponse(count=len(companies), companies=companies[:limit])


@router.get("/api/frameworks", response_model=FrameworksResponse)
def list_frameworks(limit: int = Query(100, ge=1, le=1000), conn=Depends(get_db)):
    _, frameworks = aggregate_intelligence(IntelligenceCache(conn).list_all())
    return FrameworksResponse(count=len(frameworks), frameworks=frameworks[:limit])


# ============================================================
# Error handling
# ============================================================

async def dojo_error_handler(request: Request, exc: DojoError):
    """Map taxonomy errors to HTTP statuses with a user-facing message."""
    cause = getattr(exc, "cause", None)
    message = str(cause or exc)
    status = ERROR_STATUS.get(exc.kind, 502)
    logger.warning(f"{request.method} {request.url.path} failed ({exc.kind.value}): {message}")
    return JSONResponse(status_code=status, content={"error": message, "kind": exc.kind.value})


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle FastAPI validation errors with detailed logging."""
    logger.error(f"Validation error on {request.method} {request.url}: {exc.errors()}")
    return JSONResponse(status_code=400, content={"detail": exc.errors()})


# ============================================================
# App Lifecycle
# ============================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting PM Dojo API...")
    logger.info(f"Initializing database at: {app.state.db_path}")
    conn = get_connection(app.state.db_path)
    try:
        init_db(conn)
    finally:
        conn.close()
    logger.info("✓ Database initialized")
    yield
    logger.info("Shutting down PM Dojo API...")


def create_app(db_path: Path = DB_PATH, gateway: Optional[ModelGateway] = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="PM Dojo API",
        description="""
        Question bank and podcast intelligence for PM interview practice:
        - Pre-generated interview questions by type, difficulty and company
        - On-demand question generation when the bank has no match
        - Answer evaluation against podcast-grounded model answers
        - Company and framework profiles aggregated across episodes
        """,
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.db_path = Path(db_path)
    app.state.gateway = gateway or ModelGateway()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(DojoError, dojo_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.include_router(router)
    return app


app = create_app()
