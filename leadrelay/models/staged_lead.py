import uuid

from sqlalchemy import Column, ForeignKey, Text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from leadrelay.database import Base
from leadrelay.models.bot import JSONDocument


class StagedLead(Base):
    """Lead waiting for confirmed delivery to the sheet and the sales chat."""

    __tablename__ = "temp_leads"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    bot_id = Column(UUID(as_uuid=True), ForeignKey("bots.id"), nullable=True)
    instance_name = Column(Text, nullable=False)
    name = Column(Text)
    phone = Column(Text)
    priority = Column(Text, nullable=False, default="unknown")  # low, medium, high, unknown
    contact_method = Column(Text, nullable=False, default="unknown")  # phone, text, whatsapp, unknown
    notes = Column(Text, nullable=False, default="")
    raw_message = Column(JSONDocument, nullable=False, default=dict)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now(), index=True)

    bot = relationship("Bot", back_populates="staged_leads")
