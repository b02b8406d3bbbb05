"""Zap protocol endpoints: fee quotes, stats, pool state and bridge relaying."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from pydantic import BaseModel, Field

from aggzap.addresses import normalize_address
from aggzap.bridge.base import RelayResult
from aggzap.config import get_settings
from aggzap.ledger.models import MessageStatus
from aggzap.services.deployment import ProtocolDeployment
from aggzap.services.reconciliation import check_pool_solvency

logger = logging.getLogger(__name__)

router = APIRouter()


def get_deployment(request: Request) -> ProtocolDeployment:
    deployment = request.app.state.deployment
    if deployment is None:
        raise HTTPException(status_code=503, detail="Protocol not deployed yet")
    return deployment


async def require_admin_token(x_admin_token: str = Header(None)) -> bool:
    """Verify admin token from header.

    If ADMIN_TOKEN is not set, allows access (dev mode).
    """
    settings = get_settings()

    if not settings.admin_token:
        return True

    if x_admin_token != settings.admin_token:
        raise HTTPException(status_code=401, detail="Invalid admin token")

    return True


def resolve_token(deployment: ProtocolDeployment, token: str) -> str:
    """Accept a mock token symbol (USDC, WETH, ETH) or an address."""
    try:
        return deployment.token_address(token)
    except KeyError:
        return normalize_address(token)


# Amounts are decimal strings: uint256 does not fit a JSON number


class FeeQuote(BaseModel):
    amount: str
    fee_bps: int
    fee: str
    net_amount: str


class SenderStatsResponse(BaseModel):
    network_id: int
    address: str
    total_zaps: str
    total_volume: str
    fee_bps: int


class ReceiverStatsResponse(BaseModel):
    network_id: int
    address: str
    total_deposits: str
    total_volume: str


class ProtocolStats(BaseModel):
    sender: SenderStatsResponse
    receiver: ReceiverStatsResponse
    pending_messages: int


class PoolInfo(BaseModel):
    pool: str
    token: str
    supported: bool
    tvl: str
    apy_bps: int
    lp_token: str


class UserPosition(BaseModel):
    pool: str
    user: str
    token: str
    deposit: str
    lp_balance: str


class RelayRequest(BaseModel):
    message_id: Optional[str] = Field(
        default=None, description="Message to relay; all pending messages when omitted"
    )


class RelayResultResponse(BaseModel):
    message_id: str
    status: str
    error: Optional[str] = None
    lp_received: Optional[str] = None

    @classmethod
    def from_result(cls, result: RelayResult) -> "RelayResultResponse":
        receipt = result.receipt
        return cls(
            message_id=result.message_id,
            status=result.status.value,
            error=result.error,
            lp_received=str(receipt.lp_received) if receipt is not None else None,
        )


@router.get("/fees/quote", response_model=FeeQuote)
async def quote_fee(
    amount: int = Query(..., gt=0, description="Amount in token base units"),
    deployment: ProtocolDeployment = Depends(get_deployment),
) -> FeeQuote:
    """Fee the sender would take from ``amount`` right now."""
    async with deployment.source.view() as ctx:
        fee_bps = await deployment.sender.fee_bps(ctx)
        fee = await deployment.sender.calculate_fee(ctx, amount)
    return FeeQuote(amount=str(amount), fee_bps=fee_bps, fee=str(fee), net_amount=str(amount - fee))


@router.get("/stats", response_model=ProtocolStats)
async def protocol_stats(deployment: ProtocolDeployment = Depends(get_deployment)) -> ProtocolStats:
    async with deployment.source.view() as ctx:
        sender_stats = await deployment.sender.get_stats(ctx)
    async with deployment.destination.view() as ctx:
        receiver_stats = await deployment.receiver.get_stats(ctx)
    pending = await deployment.bridge.pending_messages()

    return ProtocolStats(
        sender=SenderStatsResponse(
            network_id=deployment.source.network_id,
            address=deployment.sender.address,
            total_zaps=str(sender_stats.total_zaps),
            total_volume=str(sender_stats.total_volume),
            fee_bps=sender_stats.fee_bps,
        ),
        receiver=ReceiverStatsResponse(
            network_id=deployment.destination.network_id,
            address=deployment.receiver.address,
            total_deposits=str(receiver_stats.total_deposits),
            total_volume=str(receiver_stats.total_volume),
        ),
        pending_messages=len(pending),
    )


@router.get("/pools/solvency")
async def pool_solvency(deployment: ProtocolDeployment = Depends(get_deployment)) -> dict:
    """Reconcile pool accounting against the destination ledger."""
    report = await check_pool_solvency(deployment.pool)
    return report.to_dict()


@router.get("/pools/{token}", response_model=PoolInfo)
async def pool_info(token: str, deployment: ProtocolDeployment = Depends(get_deployment)) -> PoolInfo:
    token_address = resolve_token(deployment, token)
    pool = deployment.pool
    async with deployment.destination.view() as ctx:
        return PoolInfo(
            pool=pool.address,
            token=token_address,
            supported=await pool.is_token_supported(ctx, token_address),
            tvl=str(await pool.get_tvl(ctx, token_address)),
            apy_bps=await pool.get_apy(ctx),
            lp_token=await pool.lp_token(ctx),
        )


@router.get("/pools/{token}/users/{user}", response_model=UserPosition)
async def user_position(
    token: str,
    user: str,
    deployment: ProtocolDeployment = Depends(get_deployment),
) -> UserPosition:
    token_address = resolve_token(deployment, token)
    user = normalize_address(user)
    pool = deployment.pool
    async with deployment.destination.view() as ctx:
        return UserPosition(
            pool=pool.address,
            user=user,
            token=token_address,
            deposit=str(await pool.get_user_deposit(ctx, user, token_address)),
            lp_balance=str(await pool.get_user_lp_balance(ctx, user)),
        )


@router.get("/bridge/messages")
async def bridge_messages(
    status: Optional[MessageStatus] = Query(None, description="Filter by message status"),
    deployment: ProtocolDeployment = Depends(get_deployment),
) -> list[dict]:
    messages = await deployment.bridge.get_messages(status)
    return [m.to_dict() for m in messages]


@router.post("/bridge/relay", response_model=list[RelayResultResponse])
async def relay_messages(
    body: RelayRequest,
    _: bool = Depends(require_admin_token),
    deployment: ProtocolDeployment = Depends(get_deployment),
) -> list[RelayResultResponse]:
    """Deliver one bridge message, or every pending one."""
    if body.message_id:
        results = [await deployment.bridge.relay(body.message_id)]
    else:
        results = await deployment.bridge.relay_pending()
    logger.info(f"Relayed {len(results)} bridge message(s) via API")
    return [RelayResultResponse.from_result(r) for r in results]
