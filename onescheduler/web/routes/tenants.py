"""Tenant API: context snapshot, refresh, create, join, switch, name check."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from onescheduler.models.domain import ContextSnapshot, NameCheck
from onescheduler.tenancy.context import TenantContext
from onescheduler.tenancy.flows import SetupResult, TenantFlows
from onescheduler.web.dependencies import get_flows, get_tenant_context

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/tenants", tags=["tenants"])


class CreateTenantRequest(BaseModel):
    name: str


class JoinTenantRequest(BaseModel):
    code: str


class SwitchTenantRequest(BaseModel):
    slug: str


def _setup_response(result: SetupResult) -> dict[str, Any]:
    return {
        "tenant": {
            "id": result.tenant.id,
            "name": result.tenant.name,
            "slug": result.tenant.slug,
            "code": result.tenant.code,
        },
        "redirect": result.redirect_to,
        "redirect_delay_seconds": result.redirect_delay_seconds,
    }


@router.get("", response_model=ContextSnapshot)
async def get_context(context: TenantContext = Depends(get_tenant_context)) -> ContextSnapshot:
    return context.snapshot()


@router.post("/refresh", response_model=ContextSnapshot)
async def refresh_context(
    context: TenantContext = Depends(get_tenant_context),
) -> ContextSnapshot:
    await context.refresh()
    return context.snapshot()


@router.get("/name-available", response_model=NameCheck)
async def name_available(name: str, flows: TenantFlows = Depends(get_flows)) -> NameCheck:
    return await flows.name_checker.check(name)


@router.post("", status_code=201)
async def create_tenant(
    body: CreateTenantRequest, flows: TenantFlows = Depends(get_flows)
) -> dict[str, Any]:
    result = await flows.create_tenant(body.name)
    return _setup_response(result)


@router.post("/join")
async def join_tenant(
    body: JoinTenantRequest, flows: TenantFlows = Depends(get_flows)
) -> dict[str, Any]:
    result = await flows.join_tenant(body.code)
    return _setup_response(result)


@router.post("/switch")
async def switch_tenant(
    body: SwitchTenantRequest, flows: TenantFlows = Depends(get_flows)
) -> dict[str, str]:
    return {"redirect": flows.switch_tenant(body.slug)}
