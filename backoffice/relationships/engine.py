# ==============================================================================
# RELATIONSHIP ENGINE - Referential Integrity and Cascade Deletes
# ==============================================================================
# Existence checks for foreign keys and many-to-many members, cascade delete
# planning over the relationship graph, and ordered plan execution. Every
# backend call goes through the adapter contract, so the engine never builds
# backend-specific query text itself
# ==============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple

from backoffice.config.models import (
    BackofficeConfig,
    RelationshipConfig,
    RelationshipKind,
)
from backoffice.core.exceptions import AdapterError, AppException, CascadeError
from backoffice.datasources.adapters.base_adapter import BaseDataSourceAdapter
from backoffice.datasources.coercion import Record

logger = logging.getLogger(__name__)

Adapters = Mapping[str, BaseDataSourceAdapter]


# ==============================================================================
# RESULT TYPES
# ==============================================================================

@dataclass(frozen=True)
class RelationshipError:
    """A reference that could not be confirmed."""

    relationship_id: str
    field: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "relationship_id": self.relationship_id,
            "field": self.field,
            "message": self.message,
        }


class CascadeOperationType(str, Enum):
    DELETE = "delete"
    DELETE_JUNCTION = "delete_junction"
    # Reserved: logged and skipped on execution
    SET_NULL = "set_null"


@dataclass(frozen=True)
class CascadeOperation:
    """
    One planned cascade step.

    ``section`` is a section id for ``DELETE`` and the junction table for
    ``DELETE_JUNCTION``. ``record_id`` keeps the identifier as the backend
    returned it.
    """

    operation_type: CascadeOperationType
    section: str
    record_id: Any
    relationship_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation_type": self.operation_type.value,
            "section": self.section,
            "record_id": self.record_id,
            "relationship_id": self.relationship_id,
        }


# ==============================================================================
# HELPERS
# ==============================================================================

def _section_adapter(
    schema: BackofficeConfig,
    section_id: str,
    adapters: Adapters,
) -> Tuple[Optional[BaseDataSourceAdapter], str]:
    """
    Adapter and storage name of a section.

    Returns ``(None, reason)`` when the section, its data source or the
    pooled adapter is missing.
    """
    section = schema.get_section(section_id)
    if section is None:
        return None, f"Section not found: {section_id}"
    data_source = schema.section_data_source(section_id)
    if data_source is None:
        return None, f"No actions found in section: {section_id}"
    adapter = adapters.get(data_source)
    if adapter is None:
        return None, f"Data source not available: {data_source}"
    return adapter, section.storage_name


def _junction_adapter(
    schema: BackofficeConfig,
    relationship: RelationshipConfig,
    adapters: Adapters,
) -> Optional[BaseDataSourceAdapter]:
    """
    Adapter holding a relationship's junction table.

    Resolution order: the junction's own data source, a section named like
    the junction table, then the data source of the owning section.
    """
    junction = relationship.junction
    candidates = [
        junction.data_source if junction else None,
        schema.section_data_source(junction.table) if junction else None,
        schema.section_data_source(relationship.from_section),
    ]
    for name in candidates:
        if name and name in adapters:
            return adapters[name]
    return None


def _raw_id(record: Record) -> Any:
    for key in ("id", "_id"):
        value = record.get(key)
        if value is not None and not isinstance(value, (dict, list)):
            return value
    return None


async def _exists(
    adapter: BaseDataSourceAdapter,
    collection: str,
    field: str,
    value: Any,
) -> bool:
    query, params = adapter.render_lookup(collection, field, value)
    rows = await adapter.execute_query(query, params)
    return len(rows) > 0


async def _check_reference(
    relationship: RelationshipConfig,
    value: Any,
    schema: BackofficeConfig,
    adapters: Adapters,
) -> Optional[RelationshipError]:
    """Existence check of one referenced value; None when it exists."""
    adapter, collection = _section_adapter(schema, relationship.to_section, adapters)
    if adapter is None:
        logger.warning(f"Cannot validate relationship '{relationship.id}': {collection}")
        return RelationshipError(
            relationship.id,
            relationship.from_field,
            f"Failed to validate relationship: {collection}",
        )

    logger.debug(f"Validating reference {relationship.id}: {relationship.to_field} = {value!r}")
    try:
        found = await _exists(adapter, collection, relationship.to_field, value)
    except AdapterError as e:
        logger.warning(f"Failed to validate relationship '{relationship.id}': {e.message}")
        return RelationshipError(
            relationship.id,
            relationship.from_field,
            f"Failed to validate relationship: {e.message}",
        )

    if found:
        return None
    return RelationshipError(
        relationship.id,
        relationship.from_field,
        f"Referenced {relationship.to_section} with {relationship.to_field} = {value} does not exist",
    )


# ==============================================================================
# REFERENCE VALIDATION
# ==============================================================================

async def validate_foreign_keys(
    record: Record,
    section_id: str,
    schema: BackofficeConfig,
    adapters: Adapters,
) -> List[RelationshipError]:
    """
    Confirm every outgoing one-to-one and many-to-one reference exists.

    Absent or null foreign keys are not checked; requiredness belongs to
    field validation. A failed lookup counts as an error because the
    reference cannot be confirmed.

    Args:
        record: Candidate record
        section_id: Section the record is written to
        schema: Owning backoffice
        adapters: Borrowed adapters keyed by data source id

    Returns:
        One error per unconfirmed reference
    """
    errors: List[RelationshipError] = []

    for relationship in schema.relationships_from(section_id):
        if relationship.relationship_type not in (
            RelationshipKind.ONE_TO_ONE,
            RelationshipKind.MANY_TO_ONE,
        ):
            continue

        value = record.get(relationship.from_field)
        if value is None:
            continue

        error = await _check_reference(relationship, value, schema, adapters)
        if error is not None:
            errors.append(error)

    return errors


async def validate_many_to_many(
    record: Record,
    section_id: str,
    schema: BackofficeConfig,
    adapters: Adapters,
) -> List[RelationshipError]:
    """
    Confirm every id listed in a many-to-many field exists.

    Each list element is checked on its own and errors accumulate per
    element. Fields that are not lists are ignored.
    """
    errors: List[RelationshipError] = []

    for relationship in schema.relationships_from(section_id):
        if relationship.relationship_type != RelationshipKind.MANY_TO_MANY:
            continue

        ids = record.get(relationship.from_field)
        if not isinstance(ids, list):
            continue

        for value in ids:
            if value is None or isinstance(value, (bool, dict, list)):
                continue
            error = await _check_reference(relationship, value, schema, adapters)
            if error is not None:
                errors.append(error)

    return errors


# ==============================================================================
# CASCADE PLANNING
# ==============================================================================

async def handle_cascade_delete(
    record_id: Any,
    section_id: str,
    schema: BackofficeConfig,
    adapters: Adapters,
    _visited: Optional[Set[Tuple[str, str]]] = None,
) -> List[CascadeOperation]:
    """
    Plan the cascade for deleting one record, depth-first.

    Reads only: the plan can be shown as a dry run before anything is
    deleted. A ``(section, record id)`` pair is expanded at most once, so
    cyclic relationship graphs terminate.

    - one_to_one / one_to_many: every dependent row gets a ``DELETE`` and
      is expanded in turn.
    - many_to_one: never cascades.
    - many_to_many: one ``DELETE_JUNCTION`` for the junction rows.

    Raises:
        CascadeError: If dependents cannot be listed; planning aborts so
            no partial plan is executed.
    """
    visited = _visited if _visited is not None else set()
    visited.add((section_id, str(record_id)))
    operations: List[CascadeOperation] = []

    for relationship in schema.relationships_to(section_id):
        if not relationship.cascade_delete:
            continue

        logger.info(f"Processing cascade {relationship.id} for {section_id}/{record_id}")
        kind = relationship.relationship_type

        if kind == RelationshipKind.MANY_TO_ONE:
            logger.debug(f"Skipping cascade for many_to_one relationship '{relationship.id}'")
            continue

        if kind == RelationshipKind.MANY_TO_MANY:
            operations.append(
                CascadeOperation(
                    CascadeOperationType.DELETE_JUNCTION,
                    relationship.junction.table,
                    record_id,
                    relationship.id,
                )
            )
            continue

        adapter, collection = _section_adapter(schema, relationship.from_section, adapters)
        if adapter is None:
            raise CascadeError(
                f"Cannot plan cascade '{relationship.id}': {collection}",
                details={"relationship_id": relationship.id},
            )

        try:
            query, params = adapter.render_lookup(collection, relationship.from_field, record_id)
            dependents = await adapter.execute_query(query, params)
        except AdapterError as e:
            raise CascadeError(
                f"Failed to find dependents for '{relationship.id}': {e.message}",
                details={"relationship_id": relationship.id, **e.details},
            ) from e

        for dependent in dependents:
            dependent_id = _raw_id(dependent)
            if dependent_id is None:
                logger.warning(f"Dependent row in '{relationship.from_section}' has no id; skipped")
                continue

            key = (relationship.from_section, str(dependent_id))
            if key in visited:
                logger.debug(f"Already planned {key[0]}/{key[1]}; not revisiting")
                continue

            operations.append(
                CascadeOperation(
                    CascadeOperationType.DELETE,
                    relationship.from_section,
                    dependent_id,
                    relationship.id,
                )
            )
            operations.extend(
                await handle_cascade_delete(
                    dependent_id,
                    relationship.from_section,
                    schema,
                    adapters,
                    visited,
                )
            )

    return operations


# ==============================================================================
# CASCADE EXECUTION
# ==============================================================================

async def _execute_one(
    operation: CascadeOperation,
    schema: BackofficeConfig,
    adapters: Adapters,
) -> None:
    if operation.operation_type == CascadeOperationType.DELETE:
        adapter, collection = _section_adapter(schema, operation.section, adapters)
        if adapter is None:
            raise CascadeError(collection)
        query, data = adapter.render_delete(collection, "id", operation.record_id)

    elif operation.operation_type == CascadeOperationType.DELETE_JUNCTION:
        relationship = schema.get_relationship(operation.relationship_id)
        if relationship is None or relationship.junction is None:
            raise CascadeError(f"Relationship not found: {operation.relationship_id}")
        adapter = _junction_adapter(schema, relationship, adapters)
        if adapter is None:
            raise CascadeError(f"No data source for junction table: {relationship.junction.table}")
        query, data = adapter.render_delete(
            relationship.junction.table,
            relationship.junction.to_field,
            operation.record_id,
        )

    else:
        logger.warning(
            f"SET_NULL cascade for {operation.section}/{operation.record_id} is not supported; skipped"
        )
        return

    logger.debug(f"Executing cascade {operation.operation_type.value}: {query}")
    await adapter.execute_mutation(query, data)


async def execute_cascade_operations(
    operations: List[CascadeOperation],
    schema: BackofficeConfig,
    adapters: Adapters,
) -> int:
    """
    Apply a cascade plan in order.

    Stops at the first failure. Earlier operations stay applied: the plan
    may span several backends, so there is nothing to roll back to.

    Returns:
        Number of operations applied

    Raises:
        CascadeError: With ``failed_index`` and ``applied`` set
    """
    applied = 0
    for index, operation in enumerate(operations):
        logger.info(
            f"Executing cascade {operation.operation_type.value} "
            f"{operation.section}/{operation.record_id}"
        )
        try:
            await _execute_one(operation, schema, adapters)
        except AppException as e:
            logger.error(f"Cascade aborted at operation {index}: {e.message}")
            raise CascadeError(
                f"Cascade aborted at operation {index}: {e.message}",
                failed_index=index,
                applied=applied,
                details={"operation": operation.to_dict()},
            ) from e
        if operation.operation_type != CascadeOperationType.SET_NULL:
            applied += 1

    return applied
