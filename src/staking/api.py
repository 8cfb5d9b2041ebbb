"""
FastAPI endpoints for a staking pool.

Provides REST API for staking, withdrawing, claiming, reward funding, and
read-only pool and participant queries.
"""

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from typing import Optional

from staking.errors import StakingError
from staking.pool import StakingPool

# HTTP status per error category
STATUS_BY_CATEGORY = {
    "identity": 404,
    "permission": 403,
    "temporal-policy": 409,
}


# Request/Response models


class AmountRequest(BaseModel):
    """Request carrying a token amount"""

    amount: int = Field(..., ge=0, description="Amount in the token's smallest unit")
    now: Optional[int] = Field(None, ge=0, description="Timestamp override (seconds)")


class TimestampRequest(BaseModel):
    """Request with only an optional timestamp"""

    now: Optional[int] = Field(None, ge=0, description="Timestamp override (seconds)")


class DurationRequest(BaseModel):
    """Administrator request to set the round length"""

    caller: str = Field(..., description="Caller identity")
    duration: int = Field(..., ge=0, description="Round length in seconds")
    now: Optional[int] = Field(None, ge=0)


class FundRequest(BaseModel):
    """Administrator request to fund rewards"""

    caller: str = Field(..., description="Caller identity")
    amount: int = Field(..., ge=0, description="Reward units to fund")
    now: Optional[int] = Field(None, ge=0)


class StakeResponse(BaseModel):
    participant_id: str
    stake: int


class ClaimResponse(BaseModel):
    participant_id: str
    paid: int


class ExitResponse(BaseModel):
    participant_id: str
    withdrawn: int
    paid: int


class ParticipantView(BaseModel):
    participant_id: str
    stake: int
    earned: int


class PoolView(BaseModel):
    pool: str
    duration: int
    finish_at: int
    updated_at: int
    reward_rate: int
    phase: str
    reward_per_unit_stored: int
    total_staked: int
    reward_balance: int
    reward_for_duration: int


def create_app(pool: StakingPool) -> FastAPI:
    """Build the REST API around one staking pool"""
    app = FastAPI(title="Staking Pool API", version="1.0.0")

    @app.exception_handler(StakingError)
    async def staking_error_handler(request: Request, exc: StakingError):
        status = STATUS_BY_CATEGORY.get(exc.category, 400)
        return JSONResponse(
            status_code=status,
            content={"error": type(exc).__name__, "category": exc.category, "detail": str(exc)},
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(status_code=400, content={"error": "ValueError", "detail": str(exc)})

    # API Endpoints

    @app.post("/participants/{participant_id}/stake", response_model=StakeResponse)
    async def stake(participant_id: str, request: AmountRequest):
        """Deposit stake tokens for a participant."""
        new_stake = pool.stake(participant_id, request.amount, now=request.now)
        return StakeResponse(participant_id=participant_id, stake=new_stake)

    @app.post("/participants/{participant_id}/withdraw", response_model=StakeResponse)
    async def withdraw(participant_id: str, request: AmountRequest):
        """Withdraw part or all of a participant's stake."""
        remaining = pool.withdraw(participant_id, request.amount, now=request.now)
        return StakeResponse(participant_id=participant_id, stake=remaining)

    @app.post("/participants/{participant_id}/claim", response_model=ClaimResponse)
    async def claim(participant_id: str, request: TimestampRequest):
        """Pay out a participant's earned reward."""
        paid = pool.claim(participant_id, now=request.now)
        return ClaimResponse(participant_id=participant_id, paid=paid)

    @app.post("/participants/{participant_id}/exit", response_model=ExitResponse)
    async def exit_pool(participant_id: str, request: TimestampRequest):
        """Withdraw the full stake and claim all reward."""
        result = pool.exit(participant_id, now=request.now)
        return ExitResponse(participant_id=participant_id, **result)

    @app.get("/participants/{participant_id}", response_model=ParticipantView)
    async def get_participant(participant_id: str, now: Optional[int] = None):
        """Current stake and claimable reward of a participant."""
        return ParticipantView(
            participant_id=participant_id,
            stake=pool.stake_of(participant_id),
            earned=pool.earned(participant_id, now=now),
        )

    @app.post("/admin/duration", status_code=204)
    async def set_duration(request: DurationRequest):
        """Set the length of future reward rounds."""
        pool.set_duration(request.caller, request.duration, now=request.now)
        return Response(status_code=204)

    @app.post("/admin/fund")
    async def fund(request: FundRequest):
        """Fund rewards and start a new round."""
        result = pool.fund(request.caller, request.amount, now=request.now)
        return {"reward_rate": result.reward_rate, "finish_at": result.finish_at}

    @app.get("/pool", response_model=PoolView)
    async def get_pool(now: Optional[int] = None):
        """Schedule, accumulator, and custody balances of the pool."""
        snapshot = pool.schedule_snapshot(now=now)
        return PoolView(reward_for_duration=pool.reward_for_duration(), **snapshot)

    @app.get("/metrics")
    async def metrics():
        return Response(
            content=pool.metrics.get_metrics(),
            media_type="text/plain; version=0.0.4; charset=utf-8",
        )

    return app


if __name__ == "__main__":
    import logging

    import uvicorn

    from staking.config import StakingConfig

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    app = create_app(StakingPool.from_config(StakingConfig.from_env()))
    uvicorn.run(app, host="0.0.0.0", port=8000)
