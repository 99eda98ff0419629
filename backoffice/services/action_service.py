# ==============================================================================
# ACTION SERVICE - Query, Mutation and Delete Orchestration
# ==============================================================================
# Runs one section action end to end: validation, referential checks,
# adapter dispatch, cascade deletes and the audit trail
# ==============================================================================

from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Optional, Tuple

from backoffice.audit.logger import AuditLogger, AuditOperation, should_audit
from backoffice.config.models import (
    ActionBase,
    BackofficeConfig,
    CustomAction,
    FieldConfig,
    FormAction,
    FormMode,
    ListAction,
    SectionConfig,
)
from backoffice.core.exceptions import (
    AppException,
    NotFoundError,
    RecordValidationError,
    RelationshipValidationError,
)
from backoffice.datasources.adapters.base_adapter import BaseDataSourceAdapter, Pagination
from backoffice.datasources.coercion import Record, to_record_value
from backoffice.datasources.registry import DataSourceRegistry
from backoffice.relationships.engine import (
    execute_cascade_operations,
    handle_cascade_delete,
    validate_foreign_keys,
    validate_many_to_many,
)
from backoffice.validation.engine import validate

logger = logging.getLogger(__name__)


class ActionService:
    """
    Executes the actions of one backoffice.

    Adapters are borrowed from the registry for the length of each call.
    Writes follow a fixed order: field validation (no I/O), reference
    checks, the write itself, then the audit entry. A request rejected by
    validation never touches a backend.

    Example:
        >>> service = ActionService(backoffice, registry, audit_logger)
        >>> await service.mutate("users", "create", {"name": "Alice"})
    """

    def __init__(
        self,
        backoffice: BackofficeConfig,
        registry: DataSourceRegistry,
        audit_logger: Optional[AuditLogger] = None,
    ) -> None:
        self._backoffice = backoffice
        self._registry = registry
        self._audit = audit_logger

    # ==========================================================================
    # RESOLUTION
    # ==========================================================================

    def _resolve(self, section_id: str, action_id: str) -> Tuple[SectionConfig, ActionBase]:
        section = self._backoffice.get_section(section_id)
        if section is None:
            raise NotFoundError("Section not found", resource_type="section", resource_id=section_id)
        action = section.get_action(action_id)
        if action is None:
            raise NotFoundError("Action not found", resource_type="action", resource_id=action_id)
        return section, action

    @staticmethod
    def _fields_payload(fields: List[FieldConfig]) -> List[Dict[str, Any]]:
        return [f.model_dump(mode="json") for f in fields]

    async def _fetch_current(
        self,
        adapter: BaseDataSourceAdapter,
        section: SectionConfig,
        record_id: Any,
    ) -> Optional[Record]:
        """Current stored values of a record, for the audit trail only."""
        try:
            query, params = adapter.render_lookup(section.storage_name, "id", record_id)
            rows = await adapter.execute_query(query, params)
        except AppException as e:
            logger.warning(f"Could not load {section.id}/{record_id} for audit: {e.message}")
            return None
        return rows[0] if rows else None

    # ==========================================================================
    # READS
    # ==========================================================================

    async def query(
        self,
        section_id: str,
        action_id: str,
        params: Optional[Dict[str, Any]] = None,
        page: Optional[int] = None,
        page_size: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Run a read action.

        Form actions return their field layout without any backend call.
        Paginated list actions page natively where the backend can,
        otherwise the full result is sliced here and totals are reported.

        Returns:
            ``{"data", "fields", "config"}`` plus ``"pagination"`` for
            paginated lists
        """
        _, action = self._resolve(section_id, action_id)
        fields = self._fields_payload(action.fields)

        if isinstance(action, FormAction):
            return {"fields": fields, "config": action.config.model_dump(mode="json")}

        query_text = action.query_text
        response: Dict[str, Any] = {"fields": fields}
        if isinstance(action, ListAction):
            response["config"] = action.config.model_dump(mode="json")

        async with self._registry.borrow(self._backoffice, required=[action.data_source]) as adapters:
            adapter = adapters[action.data_source]

            if isinstance(action, ListAction) and action.config.enable_pagination:
                pagination = Pagination(
                    page=page or 1,
                    page_size=page_size or action.config.page_size,
                )
                if adapter.supports_pagination:
                    rows = await adapter.execute_query_paginated(query_text, params, pagination)
                    response["pagination"] = {
                        "page": pagination.page,
                        "page_size": pagination.page_size,
                        "returned": len(rows),
                    }
                else:
                    all_rows = await adapter.execute_query(query_text, params)
                    total = len(all_rows)
                    rows = all_rows[pagination.start:pagination.start + pagination.limit]
                    response["pagination"] = {
                        "page": pagination.page,
                        "page_size": pagination.page_size,
                        "returned": len(rows),
                        "total_items": total,
                        "total_pages": math.ceil(total / pagination.page_size),
                    }
            else:
                rows = await adapter.execute_query(query_text, params)

        logger.info(f"Action {section_id}/{action_id} returned {len(rows)} record(s)")
        response["data"] = rows
        return response

    # ==========================================================================
    # WRITES
    # ==========================================================================

    async def mutate(
        self,
        section_id: str,
        action_id: str,
        data: Record,
        user_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Validate and apply a write.

        Raises:
            NotFoundError: Unknown section or action
            RecordValidationError: Field rules failed (before any I/O)
            RelationshipValidationError: Referenced records are missing
            AdapterError: The backend rejected the write
        """
        section, action = self._resolve(section_id, action_id)

        if isinstance(action, (FormAction, CustomAction)):
            fields = action.fields
        else:
            logger.warning(f"Mutation on {action.type} action '{action_id}'; no field rules apply")
            fields = []

        errors = validate(data, fields)
        if errors:
            logger.warning(f"Validation failed for {section_id}/{action_id}: {len(errors)} error(s)")
            raise RecordValidationError([e.to_dict() for e in errors])

        is_update = isinstance(action, FormAction) and action.config.form_mode == FormMode.UPDATE
        operation = AuditOperation.UPDATE if is_update else AuditOperation.CREATE

        async with self._registry.borrow(self._backoffice, required=[action.data_source]) as adapters:
            relationship_errors = await validate_foreign_keys(
                data, section_id, self._backoffice, adapters
            )
            relationship_errors += await validate_many_to_many(
                data, section_id, self._backoffice, adapters
            )
            if relationship_errors:
                logger.warning(
                    f"Relationship validation failed for {section_id}: "
                    f"{len(relationship_errors)} error(s)"
                )
                raise RelationshipValidationError([e.to_dict() for e in relationship_errors])

            adapter = adapters[action.data_source]
            audited = self._audit is not None and should_audit(section.audit, operation)
            old_values = None
            if audited and is_update and data.get("id") is not None:
                old_values = await self._fetch_current(adapter, section, data["id"])

            logger.info(f"Executing mutation {section_id}/{action_id}")
            result = to_record_value(await adapter.execute_mutation(action.query_text, data))

        if audited:
            record_id = _result_id(result, data)
            if is_update:
                await self._audit.log(AuditLogger.update_entry(
                    section_id, record_id, old_values or {}, data, user_id
                ))
            else:
                await self._audit.log(AuditLogger.create_entry(
                    section_id, record_id, data, user_id
                ))

        return {"success": True, "data": result}

    async def delete(
        self,
        section_id: str,
        action_id: str,
        record_id: Any,
        dry_run: bool = False,
        user_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Delete a record and everything that cascades from it.

        The cascade plan is computed first and returned as is on a dry run.
        Otherwise dependents are deleted in plan order, then the record.

        Raises:
            NotFoundError: Unknown section or action
            CascadeError: Planning or a cascade step failed
            AdapterError: The final delete failed
        """
        section, action = self._resolve(section_id, action_id)

        async with self._registry.borrow(self._backoffice, required=[action.data_source]) as adapters:
            plan = await handle_cascade_delete(record_id, section_id, self._backoffice, adapters)
            planned = [op.to_dict() for op in plan]

            if dry_run:
                logger.info(f"Dry run delete {section_id}/{record_id}: {len(plan)} cascade operation(s)")
                return {"dry_run": True, "record_id": record_id, "cascade_operations": planned}

            adapter = adapters[action.data_source]
            audited = self._audit is not None and should_audit(section.audit, AuditOperation.DELETE)
            old_values = await self._fetch_current(adapter, section, record_id) if audited else None

            if plan:
                logger.info(f"Executing {len(plan)} cascade operation(s) for {section_id}/{record_id}")
                await execute_cascade_operations(plan, self._backoffice, adapters)

            custom_delete = (
                isinstance(action, FormAction)
                and action.config.form_mode == FormMode.DELETE
                and action.query_text
            )
            if custom_delete:
                query, payload = action.query_text, {"id": record_id, "delete": True}
            else:
                query, payload = adapter.render_delete(section.storage_name, "id", record_id)

            logger.info(f"Deleting {section_id}/{record_id}")
            result = to_record_value(await adapter.execute_mutation(query, payload))

        if audited:
            await self._audit.log(AuditLogger.delete_entry(
                section_id, str(record_id), old_values, user_id
            ))

        return {
            "success": True,
            "data": result,
            "message": f"Record {record_id} deleted successfully",
            "cascade_operations": planned,
        }


def _result_id(result: Any, data: Record) -> Optional[str]:
    """Identifier of a written record: backend-assigned first, then submitted."""
    if isinstance(result, dict):
        for key in ("inserted_id", "id", "_id"):
            if result.get(key) is not None:
                return str(result[key])
    elif isinstance(result, (str, int)) and not isinstance(result, bool):
        return str(result)
    if data.get("id") is not None:
        return str(data["id"])
    return None
