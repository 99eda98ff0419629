# ==============================================================================
# AUDIT TRAIL - Append-Only JSON Lines per Day
# ==============================================================================

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from backoffice.config.models import AuditConfig
from backoffice.datasources.coercion import Record

logger = logging.getLogger(__name__)

FILE_PREFIX = "audit-"
FILE_SUFFIX = ".jsonl"


class AuditOperation(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    READ = "read"


class FieldChange(BaseModel):
    field: str
    old_value: Any = None
    new_value: Any = None


class AuditEntry(BaseModel):
    """One audited event, serialized as a single JSON line."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    operation: AuditOperation
    section_id: str
    record_id: Optional[str] = None
    user_id: Optional[str] = None
    old_values: Optional[Record] = None
    new_values: Optional[Record] = None
    changes: List[FieldChange] = Field(default_factory=list)
    metadata: Dict[str, str] = Field(default_factory=dict)


def compute_changes(old: Record, new: Record) -> List[FieldChange]:
    """Fields whose value differs, in old-then-new key order."""
    fields = list(old) + [k for k in new if k not in old]
    return [
        FieldChange(field=f, old_value=old.get(f), new_value=new.get(f))
        for f in fields
        if old.get(f) != new.get(f) or (f in old) != (f in new)
    ]


def should_audit(audit_config: Optional[AuditConfig], operation: AuditOperation) -> bool:
    """
    Whether a section tracks an operation.

    Sections without an audit block are not audited, and reads never are.
    """
    if audit_config is None:
        return False
    if operation == AuditOperation.CREATE:
        return audit_config.track_created
    if operation == AuditOperation.UPDATE:
        return audit_config.track_updated
    if operation == AuditOperation.DELETE:
        return audit_config.track_deleted
    return False


class AuditLogger:
    """
    Writes audit entries to ``<log_dir>/audit-YYYY-MM-DD.jsonl``.

    File writes run in a worker thread. A failed write is logged and never
    propagates, so auditing cannot fail the request that triggered it.

    Example:
        >>> audit = AuditLogger("logs/audit")
        >>> await audit.log(AuditLogger.create_entry("users", "42", data, "admin"))
    """

    def __init__(self, log_dir: Union[str, Path], enabled: bool = True) -> None:
        self.log_dir = Path(log_dir)
        self.enabled = enabled
        if enabled:
            try:
                self.log_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                logger.error(f"Failed to create audit log directory {self.log_dir}: {e}")

    def file_for(self, day: datetime) -> Path:
        return self.log_dir / f"{FILE_PREFIX}{day.strftime('%Y-%m-%d')}{FILE_SUFFIX}"

    def _append(self, entry: AuditEntry) -> None:
        path = self.file_for(entry.timestamp)
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as f:
            f.write(entry.model_dump_json() + "\n")

    async def log(self, entry: AuditEntry) -> bool:
        """
        Append one entry.

        Returns:
            True if the entry was written
        """
        if not self.enabled:
            logger.debug("Audit logging disabled, skipping")
            return False
        try:
            await asyncio.to_thread(self._append, entry)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to write audit entry {entry.id}: {e}")
            return False

        logger.info(f"Audit {entry.operation.value} on {entry.section_id}/{entry.record_id} logged")
        return True

    # ==========================================================================
    # ENTRY BUILDERS
    # ==========================================================================

    @staticmethod
    def create_entry(
        section_id: str,
        record_id: Optional[str],
        data: Record,
        user_id: Optional[str] = None,
    ) -> AuditEntry:
        return AuditEntry(
            operation=AuditOperation.CREATE,
            section_id=section_id,
            record_id=record_id,
            user_id=user_id,
            new_values=dict(data),
            changes=[FieldChange(field=k, new_value=v) for k, v in data.items()],
        )

    @staticmethod
    def update_entry(
        section_id: str,
        record_id: Optional[str],
        old_data: Record,
        new_data: Record,
        user_id: Optional[str] = None,
    ) -> AuditEntry:
        return AuditEntry(
            operation=AuditOperation.UPDATE,
            section_id=section_id,
            record_id=record_id,
            user_id=user_id,
            old_values=dict(old_data),
            new_values=dict(new_data),
            changes=compute_changes(old_data, new_data),
        )

    @staticmethod
    def delete_entry(
        section_id: str,
        record_id: str,
        old_data: Optional[Record] = None,
        user_id: Optional[str] = None,
    ) -> AuditEntry:
        return AuditEntry(
            operation=AuditOperation.DELETE,
            section_id=section_id,
            record_id=record_id,
            user_id=user_id,
            old_values=dict(old_data) if old_data is not None else None,
            changes=[FieldChange(field=k, old_value=v) for k, v in (old_data or {}).items()],
        )

    # ==========================================================================
    # RETENTION
    # ==========================================================================

    def _cleanup(self, retention_days: int) -> int:
        cutoff = (datetime.now(timezone.utc) - timedelta(days=retention_days)).strftime("%Y-%m-%d")
        deleted = 0
        if not self.log_dir.is_dir():
            return 0
        for path in self.log_dir.iterdir():
            name = path.name
            if not (name.startswith(FILE_PREFIX) and name.endswith(FILE_SUFFIX)):
                continue
            day = name[len(FILE_PREFIX):-len(FILE_SUFFIX)]
            if day < cutoff:
                logger.debug(f"Deleting old audit log {name}")
                path.unlink()
                deleted += 1
        return deleted

    async def cleanup_old_logs(self, retention_days: int) -> int:
        """
        Delete daily files older than ``retention_days``.

        Returns:
            Number of files deleted
        """
        logger.info(f"Starting audit log cleanup (retention {retention_days} days)")
        deleted = await asyncio.to_thread(self._cleanup, retention_days)
        logger.info(f"Audit log cleanup completed: {deleted} file(s) deleted")
        return deleted
