"""Declarative base for all tables: UUID primary key plus audit timestamps."""

from advanced_alchemy.base import UUIDAuditBase


class Base(UUIDAuditBase):
    __abstract__ = True
