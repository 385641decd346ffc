from __future__ import annotations

from datetime import datetime, timezone
import logging

from fastapi import APIRouter, Body, Depends, HTTPException, status
from sqlalchemy.orm import Session

from sequence_service.api.deps.request_context import get_request_context
from sequence_service.db.session import get_db
from sequence_service.schemas.request_context import SequenceRequestContext
from sequence_service.schemas.sequence import (
    HealthResponse,
    NextSequenceResponse,
    SequenceBackfillResponse,
    SequenceBackfillView,
    SequenceConfigCreate,
    SequenceConfigListResponse,
    SequenceConfigResponse,
    SequenceConfigUpdate,
    SequenceConfigView,
    SequenceDeleteResponse,
    SequenceResetRequest,
    SequenceResetResponse,
    SequenceResetView,
    SequenceSeedResponse,
    SequenceSeedView,
    SequenceStatusResponse,
    SequenceStatusView,
)
from sequence_service.services.sequence_admin import SequenceAdminService
from sequence_service.services.sequence_errors import SequenceServiceError
from sequence_service.services.sequence_generator import SequenceGenerator
from sequence_service.services.sequence_store import SqlSequenceConfigStore

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/sequences",
    tags=["Sequence Numbers"],
)


def _raise_sequence_failure(db: Session, ctx: SequenceRequestContext, exc: SequenceServiceError) -> None:
    db.rollback()
    logger.log(
        logging.WARNING if exc.retryable else logging.INFO,
        "sequence_request_failed request_id=%s tenant_id=%s code=%s message=%s",
        ctx.request_id,
        ctx.tenant_id,
        exc.code,
        exc.message,
    )
    detail = exc.to_detail()
    detail["request_id"] = ctx.request_id
    raise HTTPException(status_code=exc.status_code, detail=detail) from exc


def _admin(db: Session) -> SequenceAdminService:
    return SequenceAdminService(SqlSequenceConfigStore(db), db=db)


@router.get("/health", response_model=HealthResponse)
def sequences_health():
    return HealthResponse(
        status="ok",
        service="sequences",
        timestamp=datetime.now(timezone.utc),
    )


@router.get("/configs", response_model=SequenceConfigListResponse)
def list_sequence_configs(
    db: Session = Depends(get_db),
    ctx: SequenceRequestContext = Depends(get_request_context),
):
    """All active sequence configurations of the calling tenant/environment."""
    configs = _admin(db).list_configs(ctx.tenant_id, ctx.is_live)
    return SequenceConfigListResponse(
        data=[SequenceConfigView.model_validate(c) for c in configs],
        request_id=ctx.request_id,
    )


@router.get("/status", response_model=SequenceStatusResponse)
def sequence_status(
    db: Session = Depends(get_db),
    ctx: SequenceRequestContext = Depends(get_request_context),
):
    """Configurations with their current counter and a preview of the next number."""
    items = _admin(db).status(ctx.tenant_id, ctx.is_live)
    return SequenceStatusResponse(
        data=[
            SequenceStatusView(
                **SequenceConfigView.model_validate(item.config).model_dump(),
                next_value=item.next_value,
                next_preview=item.next_preview,
            )
            for item in items
        ],
        request_id=ctx.request_id,
    )


@router.get("/next/{code}", response_model=NextSequenceResponse)
def next_sequence_number(
    code: str,
    db: Session = Depends(get_db),
    ctx: SequenceRequestContext = Depends(get_request_context),
):
    """Allocate the next formatted number. Every call consumes a value."""
    generator = SequenceGenerator(SqlSequenceConfigStore(db))
    try:
        allocated = generator.allocate(
            ctx.tenant_id,
            code,
            ctx.is_live,
            created_by=ctx.identity.actor,
        )
    except SequenceServiceError as exc:
        _raise_sequence_failure(db, ctx, exc)
    return NextSequenceResponse(
        sequence_number=allocated.sequence_number,
        value=allocated.value,
        code=allocated.code,
        is_live=allocated.is_live,
        request_id=ctx.request_id,
    )


@router.post("/configs", response_model=SequenceConfigResponse, status_code=status.HTTP_201_CREATED)
def create_sequence_config(
    payload: SequenceConfigCreate,
    db: Session = Depends(get_db),
    ctx: SequenceRequestContext = Depends(get_request_context),
):
    try:
        created = _admin(db).create_config(
            ctx.tenant_id,
            ctx.is_live,
            payload.model_dump(exclude_unset=True),
            created_by=ctx.identity.actor,
        )
    except SequenceServiceError as exc:
        _raise_sequence_failure(db, ctx, exc)
    return SequenceConfigResponse(
        data=SequenceConfigView.model_validate(created),
        request_id=ctx.request_id,
    )


@router.patch("/configs/{config_id}", response_model=SequenceConfigResponse)
def update_sequence_config(
    config_id: int,
    payload: SequenceConfigUpdate,
    db: Session = Depends(get_db),
    ctx: SequenceRequestContext = Depends(get_request_context),
):
    """Change formatting or reset rules. The counter itself is only moved by reset."""
    try:
        updated = _admin(db).update_config(
            ctx.tenant_id,
            config_id,
            payload.model_dump(exclude_unset=True),
            changed_by=ctx.identity.actor,
        )
    except SequenceServiceError as exc:
        _raise_sequence_failure(db, ctx, exc)
    return SequenceConfigResponse(
        data=SequenceConfigView.model_validate(updated),
        request_id=ctx.request_id,
    )


@router.delete("/configs/{config_id}", response_model=SequenceDeleteResponse)
def delete_sequence_config(
    config_id: int,
    db: Session = Depends(get_db),
    ctx: SequenceRequestContext = Depends(get_request_context),
):
    try:
        _admin(db).delete_config(ctx.tenant_id, config_id, changed_by=ctx.identity.actor)
    except SequenceServiceError as exc:
        _raise_sequence_failure(db, ctx, exc)
    return SequenceDeleteResponse(message="Configuration deleted", request_id=ctx.request_id)


@router.post("/reset/{code}", response_model=SequenceResetResponse)
def reset_sequence(
    code: str,
    payload: SequenceResetRequest | None = Body(default=None),
    db: Session = Depends(get_db),
    ctx: SequenceRequestContext = Depends(get_request_context),
):
    new_start_value = payload.new_start_value if payload is not None else None
    try:
        result = _admin(db).reset_sequence(
            ctx.tenant_id,
            code,
            ctx.is_live,
            new_start_value,
            changed_by=ctx.identity.actor,
        )
    except SequenceServiceError as exc:
        _raise_sequence_failure(db, ctx, exc)
    return SequenceResetResponse(
        data=SequenceResetView(
            code=result.code,
            old_value=result.old_value,
            new_value=result.new_value,
            next_preview=result.next_preview,
        ),
        request_id=ctx.request_id,
    )


@router.post("/seed", response_model=SequenceSeedResponse)
def seed_sequences(
    db: Session = Depends(get_db),
    ctx: SequenceRequestContext = Depends(get_request_context),
):
    """Create the default sequences for a newly onboarded tenant. Safe to repeat."""
    try:
        result = _admin(db).seed_defaults(ctx.tenant_id, created_by=ctx.identity.actor)
    except SequenceServiceError as exc:
        _raise_sequence_failure(db, ctx, exc)
    return SequenceSeedResponse(
        data=SequenceSeedView(
            created_count=len(result.created),
            skipped_count=len(result.skipped),
            created=[SequenceConfigView.model_validate(c) for c in result.created],
            skipped=result.skipped,
        ),
        request_id=ctx.request_id,
    )


@router.post("/backfill/{code}", response_model=SequenceBackfillResponse)
def backfill_sequence(
    code: str,
    db: Session = Depends(get_db),
    ctx: SequenceRequestContext = Depends(get_request_context),
):
    """Number existing records of ``code`` that were created without a sequence number."""
    try:
        result = _admin(db).backfill_existing(ctx.tenant_id, code, ctx.is_live)
    except SequenceServiceError as exc:
        _raise_sequence_failure(db, ctx, exc)
    return SequenceBackfillResponse(
        data=SequenceBackfillView(
            code=result.code,
            updated=result.updated,
            first_number=result.first_number,
            last_number=result.last_number,
            current_value=result.current_value,
        ),
        request_id=ctx.request_id,
    )
