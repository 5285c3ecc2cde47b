"""Analysis and document state machines.

Document statuses move strictly forward through the stage sequence:

    uploaded -> parsing -> parsed -> embedding -> embedded
             -> retrieving -> retrieved -> extracting -> extracted

``failed`` is absorbing and reachable from every non-terminal status. A
processing sub-state may be re-entered so a redelivered message can resume
work interrupted by a crash.
"""

from enum import Enum

from kpi_worker.pipeline.exceptions import IllegalTransitionError


class AnalysisStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not AnalysisStatus.PROCESSING


class DocumentStatus(str, Enum):
    UPLOADED = "uploaded"
    PARSING = "parsing"
    PARSED = "parsed"
    EMBEDDING = "embedding"
    EMBEDDED = "embedded"
    RETRIEVING = "retrieving"
    RETRIEVED = "retrieved"
    EXTRACTING = "extracting"
    EXTRACTED = "extracted"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (DocumentStatus.EXTRACTED, DocumentStatus.FAILED)


_FORWARD_ORDER: tuple[DocumentStatus, ...] = (
    DocumentStatus.UPLOADED,
    DocumentStatus.PARSING,
    DocumentStatus.PARSED,
    DocumentStatus.EMBEDDING,
    DocumentStatus.EMBEDDED,
    DocumentStatus.RETRIEVING,
    DocumentStatus.RETRIEVED,
    DocumentStatus.EXTRACTING,
    DocumentStatus.EXTRACTED,
)

_PROCESSING_STATES = frozenset(
    {
        DocumentStatus.PARSING,
        DocumentStatus.EMBEDDING,
        DocumentStatus.RETRIEVING,
        DocumentStatus.EXTRACTING,
    }
)


def _build_transitions() -> dict[DocumentStatus, frozenset[DocumentStatus]]:
    table: dict[DocumentStatus, frozenset[DocumentStatus]] = {}
    for index, status in enumerate(_FORWARD_ORDER):
        allowed: set[DocumentStatus] = set()
        if index + 1 < len(_FORWARD_ORDER):
            allowed.add(_FORWARD_ORDER[index + 1])
        if status in _PROCESSING_STATES:
            allowed.add(status)
        if not status.is_terminal:
            allowed.add(DocumentStatus.FAILED)
        table[status] = frozenset(allowed)
    table[DocumentStatus.FAILED] = frozenset()
    return table


TRANSITIONS: dict[DocumentStatus, frozenset[DocumentStatus]] = _build_transitions()


def can_transition(current: DocumentStatus, target: DocumentStatus) -> bool:
    return target in TRANSITIONS[current]


def validate_transition(current: DocumentStatus, target: DocumentStatus) -> None:
    """Raises:
    IllegalTransitionError: if the table does not allow current -> target.
    """
    if not can_transition(current, target):
        raise IllegalTransitionError(
            f"Illegal document transition {current.value} -> {target.value}"
        )


def statuses_at_or_past(milestone: DocumentStatus) -> list[DocumentStatus]:
    """Forward statuses whose position is >= milestone. Never includes failed."""
    if milestone is DocumentStatus.FAILED:
        raise ValueError("failed is not a milestone")
    start = _FORWARD_ORDER.index(milestone)
    return list(_FORWARD_ORDER[start:])


class Stage(str, Enum):
    """Fixed pipeline stage order: parse -> embed -> retrieve -> extract."""

    PARSE = "parse"
    EMBED = "embed"
    RETRIEVE = "retrieve"
    EXTRACT = "extract"

    @property
    def input_status(self) -> DocumentStatus:
        return _STAGE_STATUSES[self][0]

    @property
    def processing_status(self) -> DocumentStatus:
        return _STAGE_STATUSES[self][1]

    @property
    def completed_status(self) -> DocumentStatus:
        return _STAGE_STATUSES[self][2]

    @property
    def next_stage(self) -> "Stage | None":
        order = list(Stage)
        index = order.index(self)
        return order[index + 1] if index + 1 < len(order) else None


_STAGE_STATUSES: dict[Stage, tuple[DocumentStatus, DocumentStatus, DocumentStatus]] = {
    Stage.PARSE: (DocumentStatus.UPLOADED, DocumentStatus.PARSING, DocumentStatus.PARSED),
    Stage.EMBED: (DocumentStatus.PARSED, DocumentStatus.EMBEDDING, DocumentStatus.EMBEDDED),
    Stage.RETRIEVE: (
        DocumentStatus.EMBEDDED,
        DocumentStatus.RETRIEVING,
        DocumentStatus.RETRIEVED,
    ),
    Stage.EXTRACT: (
        DocumentStatus.RETRIEVED,
        DocumentStatus.EXTRACTING,
        DocumentStatus.EXTRACTED,
    ),
}
