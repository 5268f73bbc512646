"""Rules router: CRUD for the office-assignment cascade."""
from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from officesync.api.dependencies import get_session, invalidate_config
from officesync.api.schemas.rules import RuleCreateRequest, RulePatchRequest, RuleResponse
from officesync.core.exceptions import ConfigurationError
from officesync.services.rule_service import RuleService

router = APIRouter(prefix="/rules", tags=["rules"])


def _invalid(exc: ConfigurationError) -> HTTPException:
    return HTTPException(status_code=422, detail={"message": exc.message, **exc.details})


@router.get("", response_model=List[RuleResponse])
async def list_rules(
    active_only: bool = False,
    session: AsyncSession = Depends(get_session),
):
    rules = await RuleService(session).list_all(active_only=active_only)
    return [RuleResponse.model_validate(r) for r in rules]


@router.post("", response_model=RuleResponse, status_code=status.HTTP_201_CREATED)
async def create_rule(
    request: Request,
    body: RuleCreateRequest,
    session: AsyncSession = Depends(get_session),
):
    try:
        rule = await RuleService(session).create(body.model_dump())
    except ConfigurationError as exc:
        raise _invalid(exc)
    invalidate_config(request)
    return RuleResponse.model_validate(rule)


@router.get("/{rule_id}", response_model=RuleResponse)
async def get_rule(
    rule_id: UUID,
    session: AsyncSession = Depends(get_session),
):
    rule = await RuleService(session).get(rule_id)
    if rule is None:
        raise HTTPException(status_code=404, detail="Rule not found")
    return RuleResponse.model_validate(rule)


@router.patch("/{rule_id}", response_model=RuleResponse)
async def patch_rule(
    request: Request,
    rule_id: UUID,
    body: RulePatchRequest,
    session: AsyncSession = Depends(get_session),
):
    update_data = body.model_dump(exclude_none=True)
    if not update_data:
        raise HTTPException(status_code=422, detail="No fields to update")
    try:
        rule = await RuleService(session).update(rule_id, update_data)
    except ConfigurationError as exc:
        raise _invalid(exc)
    if rule is None:
        raise HTTPException(status_code=404, detail="Rule not found")
    invalidate_config(request)
    return RuleResponse.model_validate(rule)


@router.delete("/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_rule(
    request: Request,
    rule_id: UUID,
    session: AsyncSession = Depends(get_session),
):
    deleted = await RuleService(session).delete(rule_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Rule not found")
    invalidate_config(request)
