"""
Common mixins for POS models
"""
from sqlalchemy import Column, DateTime
from sqlalchemy.sql import func

from mostrador.common.money import utcnow


class TimestampMixin:
    """Mixin for models that need timestamp tracking"""

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False)


class CreatedAtMixin:
    """Mixin for append-only records (payments, expenses, usages)"""

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False, index=True)
