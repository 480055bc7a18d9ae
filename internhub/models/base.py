"""
Colonnes et helpers partagés par toutes les tables.
- id (uuid4 str), status (soft-delete), created_at/updated_at (UTC naïf)
- active_only(): unique prédicat "non supprimé", appliqué par tous les repositories
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Enum, String

from internhub.models.enums import Status


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


def enum_column(enum_cls, **kwargs) -> Column:
    # stocke la valeur ("pending"), pas le nom du membre
    return Column(
        Enum(enum_cls, native_enum=False, length=32, values_callable=lambda e: [m.value for m in e]),
        **kwargs,
    )


class BaseColumns:
    id = Column(String(36), primary_key=True, default=new_id)
    status = enum_column(Status, nullable=False, default=Status.PUBLISHED)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


def active_only(stmt, model):
    return stmt.where(model.status != Status.DELETED)
