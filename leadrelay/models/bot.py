import uuid

from sqlalchemy import JSON, Column, Text
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from leadrelay.database import Base

JSONDocument = JSON().with_variant(JSONB(), "postgresql")


class Bot(Base):
    __tablename__ = "bots"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    instance_name = Column(Text, nullable=False, unique=True)  # Evolution instance
    model = Column(Text)
    context_json = Column(JSONDocument, nullable=False, default=dict)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())

    staged_leads = relationship("StagedLead", back_populates="bot")

    @property
    def business_context(self) -> dict:
        return self.context_json if isinstance(self.context_json, dict) else {}
