from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import delete, desc, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from leadrelay.database import ensure_schema
from leadrelay.logging_config import get_logger
from leadrelay.models import StagedLead
from leadrelay.schemas.lead import LeadFields
from leadrelay.services.errors import StoreError

logger = get_logger("staging")

MAX_LIST_LIMIT = 200


class StagingStore:
    """Durable holding area for leads that are not yet fully delivered.

    Every method runs in its own short session: one statement, one commit.
    Rows handed back are detached snapshots.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def ensure_schema(self) -> None:
        try:
            ensure_schema(self.session_factory.kw["bind"])
        except SQLAlchemyError as exc:
            raise StoreError(f"schema initialisation failed: {exc}") from exc

    def insert(
        self,
        bot_id: Optional[UUID],
        instance_name: str,
        fields: LeadFields,
        raw_message: Optional[dict],
    ) -> StagedLead:
        db = self.session_factory()
        try:
            lead = StagedLead(
                bot_id=bot_id,
                instance_name=instance_name,
                name=fields.name,
                phone=fields.phone,
                priority=fields.priority.value,
                contact_method=fields.contact_method.value,
                notes=fields.notes,
                raw_message=raw_message or {},
                created_at=datetime.now(timezone.utc),
            )
            db.add(lead)
            db.commit()
            db.refresh(lead)
            db.expunge(lead)
            return lead
        except SQLAlchemyError as exc:
            db.rollback()
            raise StoreError(f"staging insert failed: {exc}") from exc
        finally:
            db.close()

    def delete_by_id(self, lead_id: UUID) -> bool:
        """Delete a staged lead. Deleting a missing id is not an error.

        Returns:
            True if a row was removed
        """
        db = self.session_factory()
        try:
            result = db.execute(delete(StagedLead).where(StagedLead.id == lead_id))
            db.commit()
            return bool(result.rowcount)
        except SQLAlchemyError as exc:
            db.rollback()
            raise StoreError(f"staging delete failed: {exc}") from exc
        finally:
            db.close()

    def get_by_id(self, lead_id: UUID) -> Optional[StagedLead]:
        db = self.session_factory()
        try:
            lead = db.get(StagedLead, lead_id)
            if lead is not None:
                db.expunge(lead)
            return lead
        except SQLAlchemyError as exc:
            raise StoreError(f"staging lookup failed: {exc}") from exc
        finally:
            db.close()

    def list_recent(self, limit: int = MAX_LIST_LIMIT) -> list[StagedLead]:
        limit = max(1, min(int(limit), MAX_LIST_LIMIT))
        db = self.session_factory()
        try:
            rows = db.execute(select(StagedLead).order_by(desc(StagedLead.created_at)).limit(limit)).scalars().all()
            for row in rows:
                db.expunge(row)
            return list(rows)
        except SQLAlchemyError as exc:
            raise StoreError(f"staging list failed: {exc}") from exc
        finally:
            db.close()

    def count(self) -> int:
        db = self.session_factory()
        try:
            return db.execute(select(func.count()).select_from(StagedLead)).scalar_one()
        except SQLAlchemyError as exc:
            raise StoreError(f"staging count failed: {exc}") from exc
        finally:
            db.close()
