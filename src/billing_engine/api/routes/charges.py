"""Charge API endpoints."""

from decimal import Decimal
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, Response, status

from billing_engine.api.dependencies import DbSession
from billing_engine.api.schemas import (
    ChargeCreate,
    ChargeListResponse,
    ChargeResponse,
    ChargeUpdate,
    ErrorResponse,
)
from billing_engine.calculators.types import ChargeType
from billing_engine.models import Charge
from billing_engine.services.charge_service import ChargeFilters, ChargeService
from billing_engine.services.state_machine import BillingPeriodStateMachine

router = APIRouter(prefix="/charges", tags=["charges"])

ChargeId = Annotated[UUID, Path(description="Charge ID")]


def _to_response(charge: Charge, period_status: str) -> ChargeResponse:
    response = ChargeResponse.model_validate(charge)
    response.provisional = BillingPeriodStateMachine.is_provisional(period_status)
    return response


@router.post(
    "",
    response_model=ChargeResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        404: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
        423: {"model": ErrorResponse},
    },
)
async def create_charge(
    db: DbSession,
    payload: ChargeCreate,
) -> ChargeResponse:
    """Add a manual charge to a billing period."""
    service = ChargeService(db)
    charge = await service.add_charge(
        billing_period_id=payload.billing_period_id,
        staff_id=payload.staff_id,
        charge_type=payload.charge_type,
        amount=payload.amount,
        proration_factor=payload.proration_factor,
        description=payload.description,
    )
    await db.commit()
    await db.refresh(charge)
    period = await service.get_period(charge.billing_period_id)
    return _to_response(charge, period.status)


@router.get("", response_model=ChargeListResponse)
async def list_charges(
    db: DbSession,
    billing_period_id: UUID | None = None,
    staff_id: UUID | None = None,
    charge_type: ChargeType | None = None,
    min_amount: Decimal | None = None,
    max_amount: Decimal | None = None,
    search: str | None = None,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=500)] = 50,
) -> ChargeListResponse:
    """List charges, newest first."""
    charges, total = await ChargeService(db).list_charges(
        ChargeFilters(
            billing_period_id=billing_period_id,
            staff_id=staff_id,
            charge_type=charge_type,
            min_amount=min_amount,
            max_amount=max_amount,
            search=search,
            offset=(page - 1) * page_size,
            limit=page_size,
        )
    )
    return ChargeListResponse(
        items=[_to_response(c, c.billing_period.status) for c in charges],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get(
    "/{charge_id}",
    response_model=ChargeResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_charge(
    db: DbSession,
    charge_id: ChargeId,
) -> ChargeResponse:
    """Get a charge by ID."""
    service = ChargeService(db)
    charge = await service.get_charge(charge_id)
    period = await service.get_period(charge.billing_period_id)
    return _to_response(charge, period.status)


@router.patch(
    "/{charge_id}",
    response_model=ChargeResponse,
    responses={
        404: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
        423: {"model": ErrorResponse},
    },
)
async def update_charge(
    db: DbSession,
    charge_id: ChargeId,
    payload: ChargeUpdate,
) -> ChargeResponse:
    """Correct a charge; exported and cancelled periods are locked."""
    service = ChargeService(db)
    existing = await service.get_charge(charge_id)
    charge = await service.update_charge(
        existing.billing_period_id,
        charge_id,
        payload.model_dump(exclude_unset=True),
    )
    await db.commit()
    await db.refresh(charge)
    period = await service.get_period(charge.billing_period_id)
    return _to_response(charge, period.status)


@router.delete(
    "/{charge_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}, 423: {"model": ErrorResponse}},
)
async def delete_charge(
    db: DbSession,
    charge_id: ChargeId,
) -> Response:
    """Remove a charge; exported and cancelled periods are locked."""
    service = ChargeService(db)
    existing = await service.get_charge(charge_id)
    await service.delete_charge(existing.billing_period_id, charge_id)
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
