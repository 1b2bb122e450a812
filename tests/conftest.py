import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("OPENROUTER_API_KEY", "test-key")

from typing import List, Optional
from unittest.mock import Mock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from leadrelay.database import Base, ensure_schema
from leadrelay.services.bot_registry import BotRegistry
from leadrelay.services.extraction_service import EXTRACTION_TEMPERATURE, LeadExtractor
from leadrelay.services.llm.base import LLMProvider, LLMResponse
from leadrelay.services.notification_service import SalesNotifier
from leadrelay.services.pipeline_service import DeliveryPipeline
from leadrelay.services.staging_service import StagingStore

TEST_MODEL = "test/model"
SALES_INSTANCE = "sales-bot"
SALES_NUMBER = "15550001111"
LEAD_JSON = (
    '{"name": "Ann", "phone": "555-1234", "priority": "high", '
    '"contact_method": "phone", "notes": "wants a callback"}'
)


class FakeGateway(LLMProvider):
    """Answers reply prompts with `reply` and extraction prompts with `extraction`."""

    def __init__(self, reply: str = "Thanks! We'll call you.", extraction: str = LEAD_JSON):
        self.reply = reply
        self.extraction = extraction
        self.calls = []

    def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        self.calls.append({"model": model, "messages": messages, "temperature": temperature})
        answer = self.extraction if temperature == EXTRACTION_TEMPERATURE else self.reply
        if isinstance(answer, Exception):
            raise answer
        return LLMResponse(content=answer, model=model or TEST_MODEL)

    @property
    def reply_calls(self) -> list:
        return [call for call in self.calls if call["temperature"] != EXTRACTION_TEMPERATURE]


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    ensure_schema(engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def store(session_factory):
    return StagingStore(session_factory)


@pytest.fixture
def registry(session_factory):
    return BotRegistry(session_factory, default_model=TEST_MODEL)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def messenger():
    """Evolution client stand-in; send_text succeeds unless a test sets side_effect."""
    mock = Mock()
    mock.send_text.return_value = {"status": "PENDING"}
    return mock


@pytest.fixture
def sheets():
    return Mock()


@pytest.fixture
def pipeline(registry, store, gateway, messenger, sheets):
    return DeliveryPipeline(
        registry=registry,
        store=store,
        gateway=gateway,
        extractor=LeadExtractor(gateway),
        messenger=messenger,
        notifier=SalesNotifier(messenger, SALES_INSTANCE, SALES_NUMBER),
        sheets=sheets,
    )


@pytest.fixture
def gateway_factory():
    return FakeGateway
