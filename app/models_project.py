"""
Fabrication project models: projects, design packages (blueprints) and the production log
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from .database import Base
from .models import generate_public_id


class Project(Base):
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, index=True)
    public_id = Column(String(36), unique=True, index=True, default=generate_public_id)

    appointment_id = Column(
        Integer, ForeignKey("appointments.id"), unique=True, nullable=False, index=True
    )
    customer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    sales_staff_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    title = Column(String(255), nullable=False)
    service_type = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    site_address = Column(String(500), nullable=True)
    measurements = Column(JSON, nullable=True)
    material_type = Column(Text, nullable=True)
    finish_color = Column(Text, nullable=True)
    quantity = Column(Integer, default=1, nullable=False)
    notes = Column(Text, nullable=True)

    # Status workflow: draft → submitted → blueprint → approved → payment_pending → fabrication → completed
    status = Column(String(50), default="draft", nullable=False, index=True)
    cancel_reason = Column(Text, nullable=True)

    engineer_ids = Column(JSON, nullable=False, default=list)
    fabrication_lead_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    fabrication_assistant_ids = Column(JSON, nullable=False, default=list)
    media_keys = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime, nullable=True, index=True)  # soft delete


class Blueprint(Base):
    """One version of a project's design package (drawing + costing)"""

    __tablename__ = "blueprints"
    __table_args__ = (UniqueConstraint("project_id", "version", name="uq_blueprint_version"),)

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    version = Column(Integer, nullable=False)
    status = Column(String(50), default="uploaded", nullable=False)

    blueprint_key = Column(String(500), nullable=False)  # object storage key
    costing_key = Column(String(500), nullable=True)
    quotation = Column(JSON, nullable=True)

    blueprint_approved = Column(Boolean, default=False, nullable=False)
    costing_approved = Column(Boolean, default=False, nullable=False)
    revision_notes = Column(Text, nullable=True)
    revision_ref_keys = Column(JSON, nullable=False, default=list)

    uploaded_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class FabricationUpdate(Base):
    """Append-only production log entry; the newest row is the current stage"""

    __tablename__ = "fabrication_updates"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    status = Column(String(50), nullable=False)
    notes = Column(Text, nullable=True)
    photo_keys = Column(JSON, nullable=False, default=list)
    updated_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, server_default=func.now())
