"""/v1/registry - policy constants, interest schedule and originator access list"""

from fastapi import APIRouter, Depends, HTTPException, Query

from mortgage_gateway.api.v1.schemas import (
    ConstantsResponse,
    InterestRateResponse,
    OriginatorRequest,
    OriginatorResponse,
)
from mortgage_gateway.api.dependencies import get_caller, get_registry
from mortgage_gateway.domain.exceptions import Unauthorized
from mortgage_gateway.domain.registry import ParameterRegistry
from mortgage_gateway.infrastructure.observability.metrics import record_operation
from mortgage_gateway.utils.time_utils import days

router = APIRouter()


@router.get("/registry/constants", response_model=ConstantsResponse)
def get_constants(registry: ParameterRegistry = Depends(get_registry)):
    """Down payment and duration bounds, default fee and extension policy"""
    return ConstantsResponse(constants=registry.constants())


@router.get("/registry/interest-rate", response_model=InterestRateResponse)
def get_interest_rate(
    duration_days: int = Query(..., gt=0, description="Contracted term in days"),
    registry: ParameterRegistry = Depends(get_registry),
):
    """Interest rate (per-mille per year) a loan of this duration would get"""
    return InterestRateResponse(
        duration_days=duration_days,
        interest_rate=registry.interest_rate_for(days(duration_days)),
    )


@router.get("/registry/originators/{identity}", response_model=OriginatorResponse)
def get_originator(identity: str, registry: ParameterRegistry = Depends(get_registry)):
    return OriginatorResponse(identity=identity, authorized=registry.is_authorized_originator(identity))


@router.put("/registry/originators/{identity}", response_model=OriginatorResponse)
def set_originator(
    identity: str,
    request_body: OriginatorRequest,
    caller: str = Depends(get_caller),
    registry: ParameterRegistry = Depends(get_registry),
):
    """Grant or revoke origination rights. Administrator only."""
    try:
        registry.set_authorized_originator(caller, identity, request_body.authorized)
    except Unauthorized as e:
        record_operation("set_authorized_originator", e)
        raise HTTPException(status_code=403, detail={"error": "Unauthorized", "message": str(e)})

    record_operation("set_authorized_originator")
    return OriginatorResponse(identity=identity, authorized=registry.is_authorized_originator(identity))
