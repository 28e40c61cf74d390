from __future__ import annotations

import logging
import uuid
from typing import Any

from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from partner_portal.errors import ApiError, PartialWriteFailure
from partner_portal.models import Actor
from partner_portal.pagination import Page
from partner_portal.portal import Portal, create_portal
from partner_portal.schemas import (
    ActorPayload,
    CredentialRevokeRequest,
    DealStatusUpdateRequest,
    PartnerStatusUpdateRequest,
    PartnerTierChangeRequest,
    error_envelope,
    success_envelope,
)

logger = logging.getLogger(__name__)


def _trace_id_from_request(request: Request) -> str:
    trace_id = getattr(request.state, "trace_id", None)
    if trace_id:
        return trace_id
    return uuid.uuid4().hex


def _request_id_from_request(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return request_id
    return f"req_{uuid.uuid4().hex[:12]}"


def _error_response(
    request: Request,
    *,
    code: str,
    message: str,
    error_class: str,
    retryable: bool,
    status_code: int,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_envelope(
            code=code,
            message=message,
            error_class=error_class,
            retryable=retryable,
            trace_id=_trace_id_from_request(request),
            details=details,
        ),
    )


def _not_found(entity_type: str) -> ApiError:
    return ApiError(
        code=f"{entity_type.upper()}_NOT_FOUND",
        message=f"{entity_type} not found",
        error_class="validation",
        retryable=False,
        http_status=404,
    )


def _dump(model: Any) -> dict[str, Any]:
    return model.model_dump(mode="json")


def _page_payload(page: Page[Any]) -> dict[str, Any]:
    return page.to_dict(_dump)


def _actor(payload: ActorPayload) -> Actor:
    return Actor(id=payload.id, name=payload.name, type=payload.type)


def _client_details(request: Request) -> dict[str, str | None]:
    forwarded = request.headers.get("x-forwarded-for", "").split(",")[0].strip()
    host = request.client.host if request.client else None
    return {
        "ip_address": forwarded or host,
        "user_agent": request.headers.get("user-agent"),
    }


def create_app(portal: Portal | None = None) -> FastAPI:
    app = FastAPI(title="Partner Portal Store API", version="0.1.0")
    portal = portal or create_portal()
    app.state.portal = portal

    @app.middleware("http")
    async def add_trace_id(request: Request, call_next):
        incoming_trace_id = request.headers.get("x-trace-id", "").strip()
        request.state.trace_id = incoming_trace_id or uuid.uuid4().hex
        request.state.request_id = request.headers.get("x-request-id", f"req_{uuid.uuid4().hex[:12]}")
        response = await call_next(request)
        response.headers["x-trace-id"] = _trace_id_from_request(request)
        response.headers["x-request-id"] = _request_id_from_request(request)
        return response

    @app.exception_handler(ApiError)
    async def handle_api_error(request: Request, exc: ApiError):
        details = None
        if isinstance(exc, PartialWriteFailure):
            details = {"entity_type": exc.entity_type, "entity_id": exc.entity_id, "failed": exc.failed}
        if exc.retryable:
            logger.warning("api_error_retryable code=%s path=%s", exc.code, request.url.path)
        return _error_response(
            request,
            code=exc.code,
            message=exc.message,
            error_class=exc.error_class,
            retryable=exc.retryable,
            status_code=exc.http_status,
            details=details,
        )

    @app.exception_handler(ValueError)
    async def handle_value_error(request: Request, exc: ValueError):
        return _error_response(
            request,
            code="REQ_VALIDATION_FAILED",
            message=str(exc),
            error_class="validation",
            retryable=False,
            status_code=400,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        return _error_response(
            request,
            code="REQ_VALIDATION_FAILED",
            message="invalid payload",
            error_class="validation",
            retryable=False,
            status_code=400,
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return _error_response(
                request,
                code="REQ_NOT_FOUND",
                message="resource not found",
                error_class="validation",
                retryable=False,
                status_code=404,
            )
        return _error_response(
            request,
            code="REQ_HTTP_ERROR",
            message=str(exc.detail),
            error_class="validation",
            retryable=False,
            status_code=exc.status_code,
        )

    @app.get("/healthz")
    def healthz(request: Request) -> dict[str, object]:
        return success_envelope({"status": "ok"}, _trace_id_from_request(request))

    @app.get("/api/v1/health")
    def health_api(request: Request) -> dict[str, object]:
        return success_envelope({"status": "ok"}, _trace_id_from_request(request))

    @app.get("/api/v1/partners")
    async def list_partners(
        request: Request,
        status: str | None = Query(default=None),
        tier: str | None = Query(default=None),
        country: str | None = Query(default=None),
        cursor: int = Query(default=0, ge=0),
        limit: int = Query(default=20, ge=1, le=100),
        with_total: bool = Query(default=False),
    ):
        page_args = {"cursor": cursor, "limit": limit, "with_total": with_total}
        if tier:
            page = await portal.partners.list_by_tier(tier, **page_args)
        elif status:
            page = await portal.partners.list_by_status(status, **page_args)
        elif country:
            page = await portal.partners.list_by_country(country, **page_args)
        else:
            page = await portal.partners.list_all(**page_args)
        return success_envelope(_page_payload(page), _trace_id_from_request(request))

    @app.get("/api/v1/partners/search")
    async def search_partners(
        request: Request,
        q: str = Query(min_length=1),
        limit: int = Query(default=10, ge=1, le=100),
    ):
        matches = await portal.partners.search(q, limit=limit)
        return success_envelope({"items": [_dump(p) for p in matches]}, _trace_id_from_request(request))

    @app.get("/api/v1/partners/{partner_id}")
    async def get_partner(partner_id: str, request: Request):
        partner = await portal.partners.get(partner_id)
        if partner is None:
            raise _not_found("partner")
        stats = await portal.partner_stats(partner_id)
        return success_envelope({"partner": _dump(partner), "stats": stats}, _trace_id_from_request(request))

    @app.post("/api/v1/partners/{partner_id}/status")
    async def update_partner_status(partner_id: str, payload: PartnerStatusUpdateRequest, request: Request):
        current = await portal.partners.get(partner_id)
        if current is None:
            raise _not_found("partner")
        actor = _actor(payload.actor)
        if payload.status == "suspended":
            updated = await portal.partners.suspend(partner_id, suspended_by=actor.id, reason=payload.reason)
            revoked = await portal.credentials.revoke_all_for_partner(
                partner_id, revoked_by=actor.id, reason=payload.reason or "partner suspended"
            )
        else:
            updated = await portal.partners.reactivate(partner_id)
            revoked = []
        await portal.audit.record(
            "partner.suspended" if payload.status == "suspended" else "partner.reactivated",
            "partner",
            partner_id,
            actor,
            changes={"status": {"from": current.status, "to": updated.status}},
            metadata={"reason": payload.reason, "revoked_credentials": len(revoked)},
            entity_name=updated.company_name or updated.name or None,
            **_client_details(request),
        )
        return success_envelope(
            {"partner": _dump(updated), "revoked_credentials": [c.id for c in revoked]},
            _trace_id_from_request(request),
        )

    @app.post("/api/v1/partners/{partner_id}/tier")
    async def change_partner_tier(partner_id: str, payload: PartnerTierChangeRequest, request: Request):
        current = await portal.partners.get(partner_id)
        if current is None:
            raise _not_found("partner")
        updated = await portal.tier_history.record_change(partner_id, payload.tier, reason=payload.reason)
        await portal.audit.record(
            "partner.tier_changed",
            "partner",
            partner_id,
            _actor(payload.actor),
            changes={"tier": {"from": current.tier, "to": updated.tier}},
            metadata={"reason": payload.reason},
            entity_name=updated.company_name or updated.name or None,
            **_client_details(request),
        )
        return success_envelope({"partner": _dump(updated)}, _trace_id_from_request(request))

    @app.get("/api/v1/partners/{partner_id}/tier-history")
    async def partner_tier_history(
        partner_id: str,
        request: Request,
        limit: int = Query(default=50, ge=1, le=500),
    ):
        entries = await portal.tier_history.history(partner_id, limit=limit)
        return success_envelope({"items": [_dump(e) for e in entries]}, _trace_id_from_request(request))

    @app.get("/api/v1/partners/{partner_id}/team")
    async def partner_team(partner_id: str, request: Request):
        if not await portal.partners.exists(partner_id):
            raise _not_found("partner")
        performance = await portal.team.team_performance(partner_id)
        members = await portal.team.members_performance(partner_id)
        return success_envelope({"performance": performance, "members": members}, _trace_id_from_request(request))

    @app.get("/api/v1/documents/{document_id}/audit-events")
    async def document_audit_events(
        document_id: str,
        request: Request,
        limit: int = Query(default=50, ge=1, le=500),
    ):
        if not await portal.documents.exists(document_id):
            raise _not_found("legal_document")
        events = await portal.documents.get_audit_events(document_id, limit=limit)
        return success_envelope({"items": [_dump(e) for e in events]}, _trace_id_from_request(request))

    @app.get("/api/v1/deals")
    async def list_deals(
        request: Request,
        status: str | None = Query(default=None),
        stage: str | None = Query(default=None),
        partner_id: str | None = Query(default=None),
        cursor: int = Query(default=0, ge=0),
        limit: int = Query(default=20, ge=1, le=100),
        with_total: bool = Query(default=False),
    ):
        page_args = {"cursor": cursor, "limit": limit, "with_total": with_total}
        if partner_id:
            page = await portal.deals.list_by_partner(partner_id, **page_args)
        elif status:
            page = await portal.deals.list_by_status(status, **page_args)
        elif stage:
            page = await portal.deals.list_by_stage(stage, **page_args)
        else:
            page = await portal.deals.list_all(**page_args)
        return success_envelope(_page_payload(page), _trace_id_from_request(request))

    @app.post("/api/v1/deals/{deal_id}/status")
    async def update_deal_status(deal_id: str, payload: DealStatusUpdateRequest, request: Request):
        current = await portal.deals.get(deal_id)
        if current is None:
            raise _not_found("deal")
        updated = await portal.deals.transition(deal_id, payload.status)
        await portal.audit.record(
            "deal.status_changed",
            "deal",
            deal_id,
            _actor(payload.actor),
            changes={"status": {"from": current.status, "to": updated.status}},
            entity_name=updated.company_name or None,
            **_client_details(request),
        )
        return success_envelope({"deal": _dump(updated)}, _trace_id_from_request(request))

    @app.post("/api/v1/credentials/{credential_id}/revoke")
    async def revoke_credential(credential_id: str, payload: CredentialRevokeRequest, request: Request):
        current = await portal.credentials.get(credential_id)
        if current is None:
            raise _not_found("credential")
        actor = _actor(payload.actor)
        updated = await portal.credentials.revoke(credential_id, revoked_by=actor.id, reason=payload.reason)
        await portal.audit.record(
            "credential.revoked",
            "credential",
            credential_id,
            actor,
            changes={"status": {"from": current.status, "to": updated.status}},
            metadata={"reason": payload.reason},
            entity_name=updated.holder_name or None,
            **_client_details(request),
        )
        return success_envelope({"credential": _dump(updated)}, _trace_id_from_request(request))

    @app.get("/api/v1/audit-logs")
    async def list_audit_logs(
        request: Request,
        entity_type: str | None = Query(default=None),
        entity_id: str | None = Query(default=None),
        actor_id: str | None = Query(default=None),
        action: str | None = Query(default=None),
        cursor: int = Query(default=0, ge=0),
        limit: int = Query(default=20, ge=1, le=100),
        with_total: bool = Query(default=False),
    ):
        page_args = {"cursor": cursor, "limit": limit, "with_total": with_total}
        if entity_type and entity_id:
            page = await portal.audit.get_by_entity(entity_type, entity_id, **page_args)
        elif actor_id:
            page = await portal.audit.get_by_actor(actor_id, **page_args)
        elif action:
            page = await portal.audit.get_by_action(action, **page_args)
        elif entity_type or entity_id:
            raise ValueError("entity_type and entity_id must be given together")
        else:
            page = await portal.audit.list_all(**page_args)
        return success_envelope(_page_payload(page), _trace_id_from_request(request))

    @app.get("/api/v1/training/analytics/overview")
    async def training_overview(request: Request):
        return success_envelope(await portal.analytics.overview_metrics(), _trace_id_from_request(request))

    @app.get("/api/v1/training/analytics/courses/{course_id}")
    async def course_analytics(course_id: str, request: Request):
        if await portal.courses.get(course_id) is None:
            raise _not_found("course")
        return success_envelope(await portal.analytics.course_analytics(course_id), _trace_id_from_request(request))

    @app.get("/api/v1/training/analytics/credentials")
    async def credential_analytics(request: Request):
        return success_envelope(
            await portal.analytics.credential_claim_analytics(),
            _trace_id_from_request(request),
        )

    @app.get("/api/v1/training/analytics/timeseries")
    async def training_timeseries(
        request: Request,
        start: str = Query(min_length=10, max_length=10),
        end: str = Query(min_length=10, max_length=10),
    ):
        data = {
            "enrollments": await portal.analytics.daily_enrollments(start, end),
            "completions": await portal.analytics.daily_completions(start, end),
        }
        return success_envelope(data, _trace_id_from_request(request))

    @app.get("/api/v1/ops/metrics")
    def ops_metrics(request: Request):
        return success_envelope(portal.ctx.metrics.snapshot(), _trace_id_from_request(request))

    return app


app = create_app()
