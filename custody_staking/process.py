"""FastAPI application exposing a custody deployment."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Union

from fastapi import Depends, FastAPI, HTTPException
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from .deployment import CustodyDeployment
from .errors import (
    AuthorizationFailure,
    CustodyError,
    PreconditionViolation,
    ResourceExhaustion,
    StateViolation,
)
from .identity import normalize_address

logger = logging.getLogger(__name__)


class FulfillmentRequest(BaseModel):
    relayer: str = Field(..., description="Address submitting the bundle")
    claimant: str
    amount: Union[int, str]
    epoch: int = Field(..., ge=0)
    proof: List[str] = Field(default_factory=list)
    v: List[int]
    r: List[str]
    s: List[str]


def _status_for(exc: CustodyError) -> int:
    if isinstance(exc, PreconditionViolation):
        return 400
    if isinstance(exc, AuthorizationFailure):
        return 403
    if isinstance(exc, StateViolation):
        return 409
    if isinstance(exc, ResourceExhaustion):
        return 503
    return 502


def create_app(deployment: CustodyDeployment) -> FastAPI:
    """Instantiate the FastAPI application around ``deployment``."""

    app = FastAPI(title="Custody Staking", version="0.1.0")

    def get_deployment() -> CustodyDeployment:
        return deployment

    @app.get("/healthz")
    def health(deployment: CustodyDeployment = Depends(get_deployment)) -> Dict[str, Any]:
        return deployment.health()

    @app.get("/readyz")
    def ready(deployment: CustodyDeployment = Depends(get_deployment)) -> JSONResponse:
        payload = deployment.health()
        return JSONResponse(payload, status_code=200 if payload["attestorsReady"] else 503)

    @app.get("/metrics")
    def metrics(deployment: CustodyDeployment = Depends(get_deployment)) -> Response:
        return Response(deployment.metrics(), media_type=deployment.metrics_content_type)

    @app.get("/v1/stakers/{address}")
    def staker(address: str, deployment: CustodyDeployment = Depends(get_deployment)) -> Dict[str, Any]:
        try:
            address = normalize_address(address)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        payload = deployment.staking.record_of(address).to_dict()
        payload["address"] = address
        payload["unbondAvailableAt"] = deployment.staking.unbond_available_at(address)
        return payload

    @app.get("/v1/attestors")
    def attestors(deployment: CustodyDeployment = Depends(get_deployment)) -> Dict[str, Any]:
        return {"members": list(deployment.attestors), "threshold": deployment.threshold}

    @app.get("/v1/pool")
    def pool(deployment: CustodyDeployment = Depends(get_deployment)) -> Dict[str, Any]:
        return {"address": deployment.pool.address, "balance": str(deployment.pool_balance())}

    @app.post("/v1/fulfill")
    def fulfill(
        request: FulfillmentRequest,
        deployment: CustodyDeployment = Depends(get_deployment),
    ) -> JSONResponse:
        try:
            amount = int(request.amount)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="amount must be an integer") from exc
        try:
            deployment.fulfill_unstake(
                request.relayer,
                request.claimant,
                amount,
                request.epoch,
                request.proof,
                request.v,
                request.r,
                request.s,
            )
        except CustodyError as exc:
            raise HTTPException(status_code=_status_for(exc), detail=exc.to_dict()) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        claimant = normalize_address(request.claimant)
        logger.info(
            "Fulfillment relayed",
            extra={"event": "relay_fulfilled", "data": {"claimant": claimant, "epoch": request.epoch}},
        )
        return JSONResponse(
            {
                "claimant": claimant,
                "amount": str(amount),
                "epoch": request.epoch,
                "state": deployment.staker_state(claimant).name,
            }
        )

    return app


__all__ = ["FulfillmentRequest", "create_app"]
