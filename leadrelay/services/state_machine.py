from enum import Enum


class PipelineStage(str, Enum):
    RESOLVE = "resolve"
    REPLY_GENERATE = "reply_generate"
    EXTRACT = "extract"
    STAGE = "stage"
    DELIVER_SHEET = "deliver_sheet"
    DELIVER_NOTIFY = "deliver_notify"
    CLEANUP = "cleanup"
    RESPOND = "respond"


# Commit order of a full run. The operator retry re-enters at DELIVER_SHEET.
STAGE_ORDER = [
    PipelineStage.RESOLVE,
    PipelineStage.REPLY_GENERATE,
    PipelineStage.EXTRACT,
    PipelineStage.STAGE,
    PipelineStage.DELIVER_SHEET,
    PipelineStage.DELIVER_NOTIFY,
    PipelineStage.CLEANUP,
    PipelineStage.RESPOND,
]

ENTRY_STAGES = {PipelineStage.RESOLVE, PipelineStage.DELIVER_SHEET}


class InvalidTransitionError(Exception):
    def __init__(self, from_stage: PipelineStage, to_stage: PipelineStage):
        self.from_stage = from_stage
        self.to_stage = to_stage
        super().__init__(f"Invalid transition: {from_stage.value} -> {to_stage.value}")


def next_stage(current: PipelineStage) -> PipelineStage | None:
    """Stage that follows current, or None after RESPOND."""
    index = STAGE_ORDER.index(current)
    if index + 1 >= len(STAGE_ORDER):
        return None
    return STAGE_ORDER[index + 1]


def can_transition(from_stage: PipelineStage | None, to_stage: PipelineStage) -> bool:
    """Stages only advance one step at a time from one of the entry points."""
    if from_stage is None:
        return to_stage in ENTRY_STAGES
    return next_stage(from_stage) == to_stage


def transition(from_stage: PipelineStage | None, to_stage: PipelineStage) -> PipelineStage:
    """Perform stage transition. Raises InvalidTransitionError if not allowed."""
    if not can_transition(from_stage, to_stage):
        raise InvalidTransitionError(from_stage or PipelineStage.RESOLVE, to_stage)
    return to_stage
