"""Manual call: score one token against a preset and return its call card."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from config.settings import settings
from src.api.app import limiter
from src.api.dependencies import get_metrics_source
from src.parsers.alerts import format_call_card, format_call_card_compact
from src.parsers.call_card import MetricsSource, process_call_request
from src.parsers.dexscreener.client import resolve_token_input
from src.parsers.errors import ConfigError
from src.parsers.policies import create_policy, get_policy_presets

router = APIRouter(prefix="/api/v1/call", tags=["call"])


class CallRequest(BaseModel):
    token: str = Field(min_length=1, max_length=64)
    policy: str = "momentum"


@router.post("")
@limiter.limit(settings.api_call_rate_limit)
async def make_call(
    request: Request,
    body: CallRequest,
    source: MetricsSource = Depends(get_metrics_source),
) -> dict[str, Any]:
    try:
        policy = create_policy("api-call", body.policy)
    except ConfigError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    result = await process_call_request(resolve_token_input(body.token), policy, source)
    if not result.success or result.card is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.error)

    return {
        "success": True,
        "card": result.card.model_dump(mode="json"),
        "formatted": format_call_card(result.card),
        "compact": format_call_card_compact(result.card),
    }


@router.get("")
async def call_help() -> dict[str, Any]:
    return {
        "endpoint": "POST /api/v1/call",
        "body": {
            "token": "Token mint or $TICKER (required)",
            "policy": "Policy preset (optional, default: momentum)",
        },
        "policies": get_policy_presets(),
    }
