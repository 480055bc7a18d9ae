"""
Accès aux données du catalogue (lecture seule côté moteur de prix).
"""
from typing import Optional
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from internhub.errors import NotFoundError
from internhub.models import Internship, InternshipBatch, active_only

logger = logging.getLogger(__name__)


class CatalogRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def find_internship(self, internship_id: str) -> Optional[Internship]:
        stmt = active_only(select(Internship), Internship).where(Internship.id == str(internship_id))
        return self.session.execute(stmt).scalar_one_or_none()

    def get_internship(self, internship_id: str) -> Internship:
        internship = self.find_internship(internship_id)
        if internship is None:
            raise NotFoundError(
                f"internship {internship_id} not found",
                hint="Internship not found",
                details={"internship_id": str(internship_id)},
            )
        return internship

    def get_batch(self, batch_id: str) -> InternshipBatch:
        stmt = active_only(select(InternshipBatch), InternshipBatch).where(InternshipBatch.id == str(batch_id))
        batch = self.session.execute(stmt).scalar_one_or_none()
        if batch is None:
            raise NotFoundError(
                f"internship batch {batch_id} not found",
                hint="Internship batch not found",
                details={"batch_id": str(batch_id)},
            )
        return batch

