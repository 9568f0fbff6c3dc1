"""
PZK catalog: modules -> categories -> materials, with per-material lock state.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any

from sqlmodel import Session

from dietpanel.core.config import settings
from dietpanel.crud import pzk_material
from dietpanel.enums import MaterialStatus
from dietpanel.models import utc_now
from dietpanel.services import access_service
from dietpanel.services.access_service import PZK_MODULES, InvalidModuleError
from dietpanel.utils.purchase_url import PURCHASE_CTA_PARAM, build_purchase_url

logger = logging.getLogger(__name__)


def _material_state(status: MaterialStatus, module_active: bool) -> tuple[bool, bool]:
    """(is_locked, is_actionable) for a catalog row."""
    if status == MaterialStatus.published and module_active:
        return False, True
    return True, False


def get_catalog(
    *, session: Session, user_id: uuid.UUID, now: datetime | None = None
) -> dict[str, Any]:
    """
    Build the catalog for a user.

    Every module 1..3 is listed, even without materials. Only published and
    publish_soon materials appear. A published material in an inactive module
    carries a purchase ``ctaUrl``.

    Raises:
        InvalidModuleError: a material row references a module outside 1..3
    """
    now = now or utc_now()
    summary = access_service.get_access_summary(session=session, user_id=user_id, now=now)
    active = set(summary.active_modules)

    rows = pzk_material.list_catalog(session=session)
    material_ids = [material.id for material, _ in rows]
    with_pdfs = pzk_material.material_ids_with_pdfs(session=session, material_ids=material_ids)
    with_videos = pzk_material.material_ids_with_videos(session=session, material_ids=material_ids)

    categories_by_module: dict[int, dict[uuid.UUID, dict[str, Any]]] = {m: {} for m in PZK_MODULES}
    for material, category in rows:
        if not access_service.is_valid_module(material.module):
            logger.error("Material %s has invalid module %r", material.id, material.module)
            raise InvalidModuleError(material.module)

        categories = categories_by_module[material.module]
        entry = categories.get(category.id)
        if entry is None:
            entry = {
                "id": str(category.id),
                "slug": category.slug,
                "label": category.label,
                "description": category.description,
                "displayOrder": category.display_order,
                "materials": [],
            }
            categories[category.id] = entry

        status = MaterialStatus(material.status)
        module_active = material.module in active
        is_locked, is_actionable = _material_state(status, module_active)
        cta_url = None
        if status == MaterialStatus.published and not module_active:
            cta_url = build_purchase_url(material.module)

        entry["materials"].append(
            {
                "id": str(material.id),
                "title": material.title,
                "description": material.description,
                "status": status.value,
                "order": material.order,
                "module": material.module,
                "isLocked": is_locked,
                "isActionable": is_actionable,
                "ctaUrl": cta_url,
                "hasPdf": material.id in with_pdfs,
                "hasVideos": material.id in with_videos,
            }
        )

    modules = []
    for module in PZK_MODULES:
        categories = sorted(
            categories_by_module[module].values(), key=lambda c: c["displayOrder"]
        )
        for category in categories:
            category["materials"].sort(key=lambda m: m["order"])
        modules.append({"module": module, "isActive": module in active, "categories": categories})

    return {
        "purchaseCta": {
            "baseUrl": settings.PZK_PURCHASE_CTA_BASE_URL,
            "paramName": PURCHASE_CTA_PARAM,
        },
        "modules": modules,
    }
