"""
SQLAlchemy models for the design draft pipeline.

Database Schema:
----------------
products table:
    - id: Primary key, auto-increment
    - filename: Base name of the source design file (not unique)
    - status: Status enum (pending, processing, completed, error)
    - title, description, theme, style: Listing content from image analysis
    - bullets: Ordered list of bullet strings (JSON)
    - tags: Ordered list of tag strings (JSON)
    - remote_image_id: Catalog image handle returned by the upload stage
    - remote_product_id: Catalog draft handle returned by draft creation
    - error_message: Failure detail, only while status is error
    - created_at / updated_at: Record timestamps

logs table:
    - id: Primary key, auto-increment
    - item_id: Owning product (nullable for process-level entries)
    - stage: Pipeline action name (processing_started, upload_complete, ...)
    - outcome: info, success or error
    - message: Free-text detail
    - created_at: Timestamp when the entry was appended

settings table:
    - key / value: Live operator settings (auto_process, blueprint_id, ...)
"""

from datetime import datetime
from enum import Enum as PyEnum
from typing import List, Optional

from sqlalchemy import (
    JSON,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class ItemStatus(PyEnum):
    """Lifecycle status for items in the pipeline."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class LogOutcome(PyEnum):
    """Outcome recorded on an action log entry."""
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


class Item(Base):
    """
    SQLAlchemy model for the products table.

    One row per design file ever submitted to the pipeline.
    """
    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    filename: Mapped[str] = mapped_column(String(255), nullable=False)

    status: Mapped[ItemStatus] = mapped_column(
        Enum(ItemStatus, name="item_status_enum",
             values_callable=lambda enum: [e.value for e in enum]),
        nullable=False,
        default=ItemStatus.PROCESSING
    )

    # Listing content from the analyzer
    title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    bullets: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True)
    tags: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True)
    theme: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    style: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Catalog handles
    remote_image_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    remote_product_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
        onupdate=func.now()
    )

    logs: Mapped[List["LogEntry"]] = relationship(
        "LogEntry", back_populates="item", order_by="LogEntry.id"
    )

    __table_args__ = (
        Index("idx_products_filename", "filename"),
        Index("idx_products_status", "status"),
        Index("idx_products_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Item(id={self.id}, filename='{self.filename}', "
            f"status={self.status.value})>"
        )

    def to_dict(self) -> dict:
        """Convert model to dictionary for serialization."""
        return {
            "id": self.id,
            "filename": self.filename,
            "status": self.status.value,
            "title": self.title,
            "description": self.description,
            "bullets": self.bullets or [],
            "tags": self.tags or [],
            "theme": self.theme,
            "style": self.style,
            "remote_image_id": self.remote_image_id,
            "remote_product_id": self.remote_product_id,
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class LogEntry(Base):
    """
    SQLAlchemy model for the append-only logs table.

    Entries are written once per pipeline stage transition and never
    updated. item_id is NULL for process-level events such as watcher errors.
    """
    __tablename__ = "logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    item_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("products.id"), nullable=True
    )
    stage: Mapped[str] = mapped_column(String(100), nullable=False)
    outcome: Mapped[LogOutcome] = mapped_column(
        Enum(LogOutcome, name="log_outcome_enum",
             values_callable=lambda enum: [e.value for e in enum]),
        nullable=False
    )
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now()
    )

    item: Mapped[Optional["Item"]] = relationship("Item", back_populates="logs")

    __table_args__ = (
        Index("idx_logs_item_id", "item_id"),
        Index("idx_logs_outcome", "outcome"),
    )

    def __repr__(self) -> str:
        return (
            f"<LogEntry(id={self.id}, item_id={self.item_id}, "
            f"stage='{self.stage}', outcome={self.outcome.value})>"
        )

    def to_dict(self) -> dict:
        """Convert model to dictionary for serialization."""
        return {
            "id": self.id,
            "item_id": self.item_id,
            "stage": self.stage,
            "outcome": self.outcome.value,
            "message": self.message,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class Setting(Base):
    """Key/value operator setting, read live by the pipeline."""
    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
        onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<Setting(key='{self.key}', value='{self.value}')>"
