"""Declarative base shared by the ``AudioFile`` and ``ProcessingPreset`` models.

``create_tables`` imports ``mastering.models`` before calling
``Base.metadata.create_all`` so every mapped table is registered on this base.
"""

from sqlalchemy.orm import declarative_base

Base = declarative_base()

__all__ = ["Base"]
