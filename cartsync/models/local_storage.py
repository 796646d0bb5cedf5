from sqlalchemy import Column, String, Text

from ..db.base import Base
from ..models.base import TimeStampMixin


class LocalStorageEntry(Base, TimeStampMixin):
    """Browser-style key/value slot; values are raw strings, usually JSON"""
    __tablename__ = "local_storage"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)
