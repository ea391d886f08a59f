"""
FastAPI application exposing reports, statistics and exports to teachers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional, TypeVar

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from .auth import Authorizer, IdentityVerifier, JwtIdentityVerifier, Principal, authenticate
from .class_stats import class_scores, compute_class_statistics
from .config import Settings, get_settings
from .errors import AuthError, InternalError, NotFoundError, QuizReportError, ValidationError
from .export import build_export_rows, csv_text, xlsx_bytes
from .render import render_reports, report_filename
from .report import build_class_reports, build_student_report, find_student_document, load_quiz_documents
from .responses import normalize_responses
from .roster import RosterEntry, resolve_roster
from .scoring import overall_percent
from .store import DocumentStore, JsonDocumentStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

PDF_MEDIA_TYPE = "application/pdf"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
CSV_MEDIA_TYPE = "text/csv"
GENERIC_FAILURE = "Report generation failed. Please try again later."


@dataclass
class ApiContext:
    """Collaborators shared by every request handled by one application."""

    settings: Settings
    store: DocumentStore
    verifier: IdentityVerifier
    authorizer: Authorizer
    roster_path: Optional[Path] = None

    def roster(self) -> Dict[str, RosterEntry]:
        return resolve_roster(self.store, self.settings.ROSTER_COLLECTION, self.roster_path)


def _status_for(exc: QuizReportError) -> int:
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, AuthError):
        return exc.status_code
    return 500


def _require(**params: Optional[str]) -> None:
    missing = [name for name, value in params.items() if value is None or not str(value).strip()]
    if missing:
        raise ValidationError(f"Missing required query parameter(s): {', '.join(missing)}.")


def _guarded(action: str, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run ``func``; unexpected failures are logged and surfaced as InternalError."""
    try:
        return func(*args, **kwargs)
    except QuizReportError:
        raise
    except Exception as exc:
        logger.exception("Unexpected failure while %s", action)
        raise InternalError(GENERIC_FAILURE) from exc


def _attachment(content: bytes, media_type: str, filename: str, *, inline: bool = False) -> Response:
    disposition = "inline" if inline else "attachment"
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'{disposition}; filename="{filename}"'},
    )


def get_context(request: Request) -> ApiContext:
    return request.app.state.context


def require_teacher(
    context: ApiContext = Depends(get_context),
    authorization: Optional[str] = Header(None),
) -> Principal:
    return authenticate(authorization, context.verifier, context.authorizer)


def create_app(
    settings: Optional[Settings] = None,
    *,
    store: Optional[DocumentStore] = None,
    verifier: Optional[IdentityVerifier] = None,
    authorizer: Optional[Authorizer] = None,
    roster_path: Optional[Path] = None,
) -> FastAPI:
    """
    Build the API application.

    Collaborators default to the configured JSON data directory, JWT verifier
    and allow-list; tests inject their own.
    """
    settings = settings or get_settings()
    context = ApiContext(
        settings=settings,
        store=store if store is not None else JsonDocumentStore(settings.DATA_DIR),
        verifier=verifier
        or JwtIdentityVerifier(
            settings.JWT_SECRET_KEY,
            algorithms=settings.JWT_ALGORITHMS,
            audience=settings.JWT_AUDIENCE,
            issuer=settings.JWT_ISSUER,
        ),
        authorizer=authorizer or Authorizer(settings.admin_emails, settings.ALLOWED_EMAIL_DOMAIN),
        roster_path=roster_path,
    )

    app = FastAPI(
        title=settings.APP_NAME,
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None,
    )
    app.state.context = context
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_methods=["GET"],
        allow_headers=["Authorization"],
    )

    @app.exception_handler(QuizReportError)
    async def _handle_report_error(request: Request, exc: QuizReportError) -> JSONResponse:
        status_code = _status_for(exc)
        if status_code >= 500:
            logger.error("Request %s failed: %s", request.url.path, exc)
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    @app.get("/", response_class=PlainTextResponse)
    def root() -> str:
        return "quiz-report backend online"

    @app.get("/api/test")
    def api_test(ctx: ApiContext = Depends(get_context)) -> Dict[str, Any]:
        return {"status": "ok", "collections": ctx.store.collections()}

    @app.get("/api/reports/student")
    def student_report(
        quizId: Optional[str] = Query(None),
        email: Optional[str] = Query(None),
        classLabel: Optional[str] = Query(None),
        format: str = Query("pdf"),
        ctx: ApiContext = Depends(get_context),
        principal: Principal = Depends(require_teacher),
    ) -> Response:
        _require(quizId=quizId, email=email)
        if format not in {"pdf", "json"}:
            raise ValidationError("format must be 'pdf' or 'json'.")
        logger.info("%s requested report for %s on %s", principal.email, email, quizId)

        report = _guarded(
            "building student report",
            build_student_report,
            ctx.store,
            ctx.roster(),
            quizId,
            email,
            classLabel,
            collection=ctx.settings.RESPONSES_COLLECTION,
        )
        if format == "json":
            return JSONResponse(report.to_dict())
        document = _guarded("rendering student report", render_reports, [report])
        return _attachment(document.content, PDF_MEDIA_TYPE, report_filename(report), inline=True)

    @app.get("/api/reports/class")
    def class_report(
        quizId: Optional[str] = Query(None),
        classLabel: Optional[str] = Query(None),
        newPage: bool = Query(True),
        ctx: ApiContext = Depends(get_context),
        principal: Principal = Depends(require_teacher),
    ) -> Response:
        _require(quizId=quizId, classLabel=classLabel)
        logger.info("%s requested class report for %s on %s", principal.email, classLabel, quizId)

        reports = _guarded(
            "building class reports",
            build_class_reports,
            ctx.store,
            ctx.roster(),
            quizId,
            classLabel,
            collection=ctx.settings.RESPONSES_COLLECTION,
        )
        document = _guarded(
            "rendering class reports", render_reports, reports, new_page_per_report=newPage
        )
        return _attachment(document.content, PDF_MEDIA_TYPE, f"{classLabel}-{quizId}.pdf", inline=True)

    @app.get("/api/stats")
    def stats(
        quizId: Optional[str] = Query(None),
        email: Optional[str] = Query(None),
        classLabel: Optional[str] = Query(None),
        ctx: ApiContext = Depends(get_context),
        principal: Principal = Depends(require_teacher),
    ) -> Dict[str, Any]:
        _require(quizId=quizId, email=email)

        def _compute() -> Dict[str, Any]:
            documents = load_quiz_documents(ctx.store, quizId, collection=ctx.settings.RESPONSES_COLLECTION)
            student = overall_percent(normalize_responses(find_student_document(documents, email)))
            distribution = class_scores(documents, ctx.roster(), classLabel)
            statistics = compute_class_statistics(list(distribution.values()), student)
            return {"classStats": statistics.to_dict(), "boxPlot": statistics.box_plot()}

        return _guarded("computing class statistics", _compute)

    @app.get("/api/exports/responses")
    def export_responses(
        quizId: Optional[str] = Query(None),
        classLabel: Optional[str] = Query(None),
        format: str = Query("xlsx"),
        ctx: ApiContext = Depends(get_context),
        principal: Principal = Depends(require_teacher),
    ) -> Response:
        _require(quizId=quizId)
        if format not in {"xlsx", "csv"}:
            raise ValidationError("format must be 'xlsx' or 'csv'.")
        logger.info("%s exported responses for %s", principal.email, quizId)

        table = _guarded(
            "building export",
            build_export_rows,
            ctx.store,
            ctx.roster(),
            quizId,
            classLabel,
            collection=ctx.settings.RESPONSES_COLLECTION,
        )
        stem = f"{quizId}-{classLabel}" if classLabel else quizId
        if format == "csv":
            return _attachment(csv_text(table).encode("utf-8"), CSV_MEDIA_TYPE, f"{stem}.csv")
        return _attachment(xlsx_bytes(table), XLSX_MEDIA_TYPE, f"{stem}.xlsx")

    return app
