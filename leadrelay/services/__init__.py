from leadrelay.services.bot_registry import BotRegistry
from leadrelay.services.extraction_service import LeadExtractor
from leadrelay.services.pipeline_service import (
    APOLOGY_TEXT,
    DeliveryPipeline,
    DeliveryReport,
    PipelineOutcome,
    build_pipeline,
)
from leadrelay.services.result import Result
from leadrelay.services.staging_service import StagingStore
from leadrelay.services.state_machine import PipelineStage
