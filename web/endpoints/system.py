"""System health, formats, and rate limit endpoints."""

import logging
import os
from typing import Any

from fastapi import APIRouter, Request

from formats import format_registry
from models.providers import ProviderFactory

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


@router.get("/health")
async def health_check():
    """Health check endpoint to verify API is running."""
    return {"isAlive": True}


@router.get("/formats")
async def get_formats():
    """Get available debate formats."""
    return {"formats": format_registry.get_format_descriptions()}


@router.get("/providers")
async def get_providers(request: Request):
    """Available model providers and whether OpenRouter has an API key."""
    config = request.app.state.debate_manager.config
    providers = []
    for provider_name in ProviderFactory.get_available_providers():
        provider_info: dict[str, Any] = {"name": provider_name, "status": "available"}
        if provider_name == "openrouter":
            api_key_configured = bool(
                config.system.openrouter.api_key or os.getenv("OPENROUTER_API_KEY")
            )
            provider_info["api_key_configured"] = api_key_configured
            if not api_key_configured:
                provider_info["status"] = "requires_api_key"
        providers.append(provider_info)
    return {"providers": providers}


@router.get("/rate-limits")
async def get_rate_limits(request: Request):
    """Current request windows and provider-reported quotas."""
    return {"rate_limits": request.app.state.rate_limiter.get_stats()}
