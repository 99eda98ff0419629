# ==============================================================================
# BACKOFFICE ENDPOINTS - Schema Discovery and Action Execution
# ==============================================================================

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Query, Request

from backoffice.api.dependencies import (
    ActionServiceDep,
    AppConfigDep,
    BackofficeDep,
    BackofficesDep,
    OptionalUserID,
)
from backoffice.schemas.base import APIResponse, BackofficeSummary

router = APIRouter(tags=["Backoffices"])

ACTION_PATH = "/backoffices/{backoffice_id}/sections/{section_id}/actions/{action_id}"
RESERVED_QUERY_PARAMS = {"page", "page_size"}


# ==============================================================================
# SCHEMA DISCOVERY
# ==============================================================================

@router.get(
    "/config",
    response_model=APIResponse[Dict[str, Any]],
    summary="Application config",
    description="Server configuration with secrets removed.",
)
async def get_config(app_config: AppConfigDep) -> APIResponse[Dict[str, Any]]:
    return APIResponse.ok(data=app_config.public_view())


@router.get(
    "/backoffices",
    response_model=APIResponse[List[BackofficeSummary]],
    summary="List backoffices",
    description="All loaded backoffices with their section ids.",
)
async def list_backoffices(backoffices: BackofficesDep) -> APIResponse[List[BackofficeSummary]]:
    summaries = [
        BackofficeSummary(
            id=b.id,
            name=b.name,
            description=b.description,
            sections=[s.id for s in b.sections],
        )
        for b in backoffices.values()
    ]
    return APIResponse.ok(data=summaries)


@router.get(
    "/backoffices/{backoffice_id}",
    response_model=APIResponse[Dict[str, Any]],
    summary="Get backoffice",
    description="Full schema of one backoffice; data source credentials are omitted.",
)
async def get_backoffice(backoffice: BackofficeDep) -> APIResponse[Dict[str, Any]]:
    return APIResponse.ok(data=backoffice.public_view())


# ==============================================================================
# ACTIONS
# ==============================================================================

@router.get(
    ACTION_PATH,
    response_model=APIResponse[Dict[str, Any]],
    summary="Execute read action",
    description=(
        "Run a list, view or custom action; other query parameters are passed "
        "to the data source. Form actions return their definition."
    ),
)
async def execute_action(
    request: Request,
    section_id: str,
    action_id: str,
    service: ActionServiceDep,
    page: Optional[int] = Query(None, ge=1),
    page_size: Optional[int] = Query(None, ge=1, le=1000),
) -> APIResponse[Dict[str, Any]]:
    params = {
        k: v for k, v in request.query_params.items() if k not in RESERVED_QUERY_PARAMS
    }
    result = await service.query(
        section_id,
        action_id,
        params=params or None,
        page=page,
        page_size=page_size,
    )
    return APIResponse.ok(data=result)


@router.post(
    ACTION_PATH,
    response_model=APIResponse[Dict[str, Any]],
    summary="Execute mutation",
    description="Validate the record, check its references and write it.",
)
async def execute_mutation(
    section_id: str,
    action_id: str,
    service: ActionServiceDep,
    user_id: OptionalUserID,
    data: Dict[str, Any] = Body(...),
) -> APIResponse[Dict[str, Any]]:
    result = await service.mutate(section_id, action_id, data, user_id=user_id)
    return APIResponse.ok(data=result, message="Mutation executed successfully")


@router.delete(
    ACTION_PATH,
    response_model=APIResponse[Dict[str, Any]],
    summary="Delete record",
    description=(
        "Delete a record and its cascading dependents. With dry_run the "
        "cascade plan is returned and nothing is deleted."
    ),
)
async def execute_delete(
    section_id: str,
    action_id: str,
    service: ActionServiceDep,
    user_id: OptionalUserID,
    record_id: str = Query(..., alias="id", description="Record id"),
    dry_run: bool = Query(False),
) -> APIResponse[Dict[str, Any]]:
    result = await service.delete(
        section_id,
        action_id,
        record_id,
        dry_run=dry_run,
        user_id=user_id,
    )
    message = "Cascade plan computed" if dry_run else result["message"]
    return APIResponse.ok(data=result, message=message)
