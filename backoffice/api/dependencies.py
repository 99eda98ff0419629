# ==============================================================================
# API DEPENDENCIES - Dependency Injection
# ==============================================================================
# FastAPI dependencies resolving the loaded schema, the adapter registry and
# the action service from application state
# ==============================================================================

from __future__ import annotations

from typing import Annotated, Dict, Optional

from fastapi import Depends, Header, Path, Request

from backoffice.audit.logger import AuditLogger
from backoffice.config.models import AppConfig, BackofficeConfig
from backoffice.core.exceptions import NotFoundError
from backoffice.datasources.registry import DataSourceRegistry
from backoffice.services.action_service import ActionService


# ==============================================================================
# STATE DEPENDENCIES
# ==============================================================================

def get_app_config(request: Request) -> AppConfig:
    return request.app.state.app_config


def get_backoffices(request: Request) -> Dict[str, BackofficeConfig]:
    return request.app.state.backoffices


def get_registry(request: Request) -> DataSourceRegistry:
    return request.app.state.registry


def get_audit_logger(request: Request) -> Optional[AuditLogger]:
    return getattr(request.app.state, "audit_logger", None)


AppConfigDep = Annotated[AppConfig, Depends(get_app_config)]
BackofficesDep = Annotated[Dict[str, BackofficeConfig], Depends(get_backoffices)]
RegistryDep = Annotated[DataSourceRegistry, Depends(get_registry)]
AuditLoggerDep = Annotated[Optional[AuditLogger], Depends(get_audit_logger)]


# ==============================================================================
# BACKOFFICE DEPENDENCIES
# ==============================================================================

def get_backoffice(
    backoffices: BackofficesDep,
    backoffice_id: str = Path(..., description="Backoffice id"),
) -> BackofficeConfig:
    """
    Resolve the backoffice named in the path.

    Raises:
        NotFoundError: If no backoffice has that id
    """
    backoffice = backoffices.get(backoffice_id)
    if backoffice is None:
        raise NotFoundError(
            message="Backoffice not found",
            resource_type="backoffice",
            resource_id=backoffice_id,
        )
    return backoffice


BackofficeDep = Annotated[BackofficeConfig, Depends(get_backoffice)]


def get_action_service(
    backoffice: BackofficeDep,
    registry: RegistryDep,
    audit_logger: AuditLoggerDep,
) -> ActionService:
    return ActionService(backoffice, registry, audit_logger)


ActionServiceDep = Annotated[ActionService, Depends(get_action_service)]


# ==============================================================================
# CALLER IDENTITY
# ==============================================================================

async def get_optional_user_id(
    x_user_id: Annotated[Optional[str], Header()] = None,
) -> Optional[str]:
    """
    Caller id recorded in the audit trail.

    Taken from the ``X-User-ID`` header set by the fronting gateway;
    absent means anonymous.
    """
    return x_user_id or None


OptionalUserID = Annotated[Optional[str], Depends(get_optional_user_id)]
