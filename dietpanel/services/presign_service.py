"""
PZK PDF download presigning.

Gate order for a presign request:
1. material missing / draft / archived -> not_found (no metadata leak)
2. publish_soon -> forbidden(publish_soon), even with module access
3. no active access to the material's module -> forbidden(no_module_access)
4. pdf looked up by (material_id, pdf_id) -> not_found if it belongs elsewhere
5. storage signs a GET URL valid for PRESIGN_TTL_SECONDS

Every branch emits one best-effort audit event.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlmodel import Session

from dietpanel.crud import pzk_access, pzk_material
from dietpanel.enums import MaterialStatus
from dietpanel.integrations.storage import Presigner, StorageError
from dietpanel.models import utc_now
from dietpanel.services.audit import AuditQueue
from dietpanel.services.result import Err, ErrorKind, Ok, Result
from dietpanel.utils.filenames import content_disposition

logger = logging.getLogger(__name__)

PRESIGN_TTL_SECONDS = 60

EVENT_SUCCESS = "pzk_pdf_presign_success"
EVENT_FORBIDDEN = "pzk_pdf_presign_forbidden"
EVENT_ERROR = "pzk_pdf_presign_error"


@dataclass(frozen=True)
class PresignedDownload:
    url: str
    expires_at: str
    ttl_seconds: int


class PdfPresignService:
    def __init__(
        self, *, session: Session, presigner: Presigner | None, audit: AuditQueue
    ) -> None:
        self.session = session
        self.presigner = presigner
        self.audit = audit

    def _event(self, event_type: str, user_id: uuid.UUID, **properties: Any) -> None:
        self.audit.emit(event_type, user_id=user_id, properties=properties)

    def generate_presign_url(
        self,
        *,
        user_id: uuid.UUID,
        material_id: uuid.UUID,
        pdf_id: uuid.UUID,
        ip: str | None = None,
        now: datetime | None = None,
    ) -> Result[PresignedDownload]:
        now = now or utc_now()
        ttl = PRESIGN_TTL_SECONDS
        try:
            material = pzk_material.get_by_id(session=self.session, material_id=material_id)
            if material is None or material.status not in (
                MaterialStatus.published,
                MaterialStatus.publish_soon,
            ):
                self._event(
                    EVENT_ERROR, user_id,
                    materialId=material_id, pdfId=pdf_id, reason="material_not_found", ip=ip,
                )
                return Err(ErrorKind.not_found, "Material not found")

            if material.status == MaterialStatus.publish_soon:
                self._event(
                    EVENT_FORBIDDEN, user_id,
                    materialId=material_id, pdfId=pdf_id, module=material.module,
                    reason="publish_soon", ip=ip,
                )
                return Err(
                    ErrorKind.forbidden, "Material will be available soon", reason="publish_soon"
                )

            if not pzk_access.has_active_access_to_module(
                session=self.session, user_id=user_id, module=material.module, now=now
            ):
                self._event(
                    EVENT_FORBIDDEN, user_id,
                    materialId=material_id, pdfId=pdf_id, module=material.module,
                    reason="no_module_access", ip=ip,
                )
                return Err(
                    ErrorKind.forbidden,
                    "No active access to this module",
                    reason="no_module_access",
                )

            pdf = pzk_material.find_pdf_by_material_and_pdf_id(
                session=self.session, material_id=material_id, pdf_id=pdf_id
            )
            if pdf is None:
                self._event(
                    EVENT_ERROR, user_id,
                    materialId=material_id, pdfId=pdf_id, module=material.module,
                    reason="pdf_not_found", ip=ip,
                )
                return Err(ErrorKind.not_found, "PDF not found")

            if self.presigner is None:
                raise StorageError("Object storage not configured")

            url = self.presigner.presign_get(
                pdf.object_key,
                expires_in=ttl,
                content_disposition=content_disposition(pdf.file_name),
                content_type=pdf.content_type or "application/pdf",
            )
        except StorageError as e:
            logger.error("Presign failed for material %s pdf %s: %s", material_id, pdf_id, e)
            self._event(
                EVENT_ERROR, user_id,
                materialId=material_id, pdfId=pdf_id, reason="storage_error", ip=ip,
            )
            return Err(ErrorKind.unexpected, "Failed to generate download link")
        except Exception as e:
            logger.exception("Unexpected presign error for material %s pdf %s", material_id, pdf_id)
            self._event(
                EVENT_ERROR, user_id,
                materialId=material_id, pdfId=pdf_id, reason="unexpected_error",
                error=type(e).__name__, ip=ip,
            )
            return Err(ErrorKind.unexpected, "Failed to generate download link")

        expires_at = now + timedelta(seconds=ttl)
        self._event(
            EVENT_SUCCESS, user_id,
            materialId=material_id, pdfId=pdf_id, module=material.module, ttlSeconds=ttl, ip=ip,
        )
        return Ok(PresignedDownload(url=url, expires_at=expires_at.isoformat(), ttl_seconds=ttl))
