"""
PZK material CRUD.

PDF lookups for downloads always go through the composite key
(material_id, pdf_id) so a pdf id from another material never resolves.
"""
import logging
import uuid
from collections.abc import Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from dietpanel.enums import MaterialStatus
from dietpanel.models import (
    PzkCategory,
    PzkMaterial,
    PzkMaterialPdf,
    PzkMaterialVideo,
)

logger = logging.getLogger(__name__)

VISIBLE_STATUSES = (MaterialStatus.published.value, MaterialStatus.publish_soon.value)


def get_by_id(*, session: Session, material_id: uuid.UUID) -> PzkMaterial | None:
    try:
        return session.get(PzkMaterial, material_id)
    except SQLAlchemyError:
        logger.exception("Failed to load material %s", material_id)
        raise


def get_category(*, session: Session, category_id: uuid.UUID) -> PzkCategory | None:
    return session.get(PzkCategory, category_id)


def find_pdf_by_material_and_pdf_id(
    *, session: Session, material_id: uuid.UUID, pdf_id: uuid.UUID
) -> PzkMaterialPdf | None:
    """
    Resolve a PDF only when it belongs to the given material.

    Returns the full row, object key included; callers must not serialize it.
    """
    statement = select(PzkMaterialPdf).where(
        PzkMaterialPdf.id == pdf_id,
        PzkMaterialPdf.material_id == material_id,
    )
    try:
        return session.exec(statement).first()
    except SQLAlchemyError:
        logger.exception("Failed to load pdf %s of material %s", pdf_id, material_id)
        raise


def list_pdfs(*, session: Session, material_id: uuid.UUID) -> list[PzkMaterialPdf]:
    statement = (
        select(PzkMaterialPdf)
        .where(PzkMaterialPdf.material_id == material_id)
        .order_by(PzkMaterialPdf.display_order.asc(), PzkMaterialPdf.id.asc())
    )
    return list(session.exec(statement).all())


def list_videos(*, session: Session, material_id: uuid.UUID) -> list[PzkMaterialVideo]:
    statement = (
        select(PzkMaterialVideo)
        .where(PzkMaterialVideo.material_id == material_id)
        .order_by(PzkMaterialVideo.display_order.asc(), PzkMaterialVideo.id.asc())
    )
    return list(session.exec(statement).all())


def list_catalog(*, session: Session) -> list[tuple[PzkMaterial, PzkCategory]]:
    """Published and publish_soon materials with their categories, in display order."""
    statement = (
        select(PzkMaterial, PzkCategory)
        .join(PzkCategory, PzkCategory.id == PzkMaterial.category_id)
        .where(PzkMaterial.status.in_(VISIBLE_STATUSES))
        .order_by(
            PzkMaterial.module.asc(),
            PzkCategory.display_order.asc(),
            PzkMaterial.order.asc(),
        )
    )
    return list(session.exec(statement).all())


def material_ids_with_pdfs(*, session: Session, material_ids: Iterable[uuid.UUID]) -> set[uuid.UUID]:
    ids = list(material_ids)
    if not ids:
        return set()
    statement = select(PzkMaterialPdf.material_id).where(PzkMaterialPdf.material_id.in_(ids))
    return set(session.exec(statement).all())


def material_ids_with_videos(*, session: Session, material_ids: Iterable[uuid.UUID]) -> set[uuid.UUID]:
    ids = list(material_ids)
    if not ids:
        return set()
    statement = select(PzkMaterialVideo.material_id).where(PzkMaterialVideo.material_id.in_(ids))
    return set(session.exec(statement).all())
