"""
Modelos de base de datos (ORM).

Ambas tablas comparten las columnas técnicas del sync:
- external_id: record id de Airtable (UNIQUE por tabla)
- external_modified_at: último lastModified aplicado (guardia de monotonía)
- synced_at: momento de la última escritura desde Airtable
"""
from datetime import datetime, timezone

from sqlalchemy import Column, String, Integer, DateTime, Date, Numeric, JSON, ForeignKey

from app.infrastructure.database.session import Base


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SyncedEntityMixin:
    """Columnas técnicas comunes a toda entidad sincronizada."""

    id = Column(Integer, primary_key=True, index=True)
    external_id = Column(String(64), nullable=False, unique=True, index=True)
    external_modified_at = Column(DateTime(timezone=True), nullable=False)
    synced_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utc_now)
    updated_at = Column(DateTime(timezone=True), default=_utc_now)


class ProjectModel(SyncedEntityMixin, Base):
    """Modelo de base de datos para proyectos (tabla padre)."""

    __tablename__ = "projects"

    name = Column(String(255), nullable=False, index=True)
    status = Column(String(100), nullable=True, index=True)
    investment_type = Column(String(100), nullable=True)
    area_cluster = Column(String(100), nullable=True)
    renovator = Column(String(255), nullable=True)
    project_address = Column(String(500), nullable=True)
    project_start_date = Column(Date, nullable=True)
    settlement_date = Column(Date, nullable=True)
    renovation_spend = Column(Numeric(14, 2), nullable=True)

    def __repr__(self):
        return f"<Project(id={self.id}, external_id={self.external_id}, name={self.name})>"


class PropertyModel(SyncedEntityMixin, Base):
    """
    Modelo de base de datos para propiedades (tabla hija).

    budget_index es derivado de los PDFs de presupuesto: el mapeo de campos
    de Airtable nunca lo escribe. project_id solo lo escribe el LinkResolver.
    """

    __tablename__ = "properties"

    address = Column(String(500), nullable=False)
    unique_id = Column(String(100), nullable=True, index=True)
    property_type = Column(String(100), nullable=True)
    status = Column(String(100), nullable=True, index=True)
    renovation_type = Column(String(100), nullable=True)
    area_cluster = Column(String(100), nullable=True)
    estimated_visit_date = Column(Date, nullable=True)
    reno_start_date = Column(Date, nullable=True)
    estimated_end_date = Column(Date, nullable=True)
    budget_amount = Column(Numeric(14, 2), nullable=True)

    budget_pdf_urls = Column(JSON(none_as_null=True), nullable=True)        # lista ordenada de URLs
    project_external_refs = Column(JSON(none_as_null=True), nullable=True)  # record ids del proyecto en Airtable
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=True, index=True)

    budget_index = Column(JSON(none_as_null=True), nullable=True)  # {categoria: "importe"}
    budget_indexed_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<Property(id={self.id}, external_id={self.external_id}, project_id={self.project_id})>"
