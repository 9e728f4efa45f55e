from advanced_alchemy.base import BigIntAuditBase


class Base(BigIntAuditBase):
    """Declarative base for postboard models (integer ids, created/updated timestamps)."""

    __abstract__ = True
