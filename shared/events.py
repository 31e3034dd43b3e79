"""Structured event stream for the candidate pipeline.

Scanning, enrichment and gating emit ``PipelineEvent`` records to a sink
instead of interleaving trace logging with control flow.  A sink is any
callable taking one event; ``log_event`` (DEBUG logging) is the default and
``EventLog`` collects events for tests and observability.
"""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    CHAIN = "chain"
    SCAN = "scan"
    ENRICH = "enrich"
    GATE_EV = "gate_ev"
    GATE_POP = "gate_pop"
    GATE_CREDIT = "gate_credit"
    RANK = "rank"
    RESULT = "result"


class Verdict(str, Enum):
    CANDIDATE = "candidate"
    SELECTED = "selected"
    CONSTRUCTION_FAILED = "construction_failed"
    REJECTED = "rejected"
    PASSED = "passed"
    ABORT = "abort"
    INFO = "info"


@dataclass(frozen=True)
class PipelineEvent:
    """One observation from the pipeline."""
    stage: Stage
    verdict: Verdict
    candidate: Optional[str] = None
    metrics: Dict[str, Any] = field(default_factory=dict)
    symbol: str = ""

    def describe(self) -> str:
        parts = [f"[{self.symbol or '??'}] {self.stage.value}/{self.verdict.value}"]
        if self.candidate:
            parts.append(self.candidate)
        if self.metrics:
            parts.append(", ".join(f"{k}={v}" for k, v in self.metrics.items()))
        return " | ".join(parts)


EventSink = Callable[[PipelineEvent], None]


def log_event(event: PipelineEvent) -> None:
    """Default sink: DEBUG-level trace."""
    logger.debug(event.describe())


class EventLog:
    """Thread-safe in-memory event collector.

    Also forwards each event to ``log_event`` unless ``forward=False``.
    """

    def __init__(self, forward: bool = True):
        self._lock = threading.Lock()
        self._events: List[PipelineEvent] = []
        self._forward = forward

    def __call__(self, event: PipelineEvent) -> None:
        with self._lock:
            self._events.append(event)
        if self._forward:
            log_event(event)

    @property
    def events(self) -> List[PipelineEvent]:
        with self._lock:
            return list(self._events)

    def filter(
        self,
        stage: Optional[Stage] = None,
        verdict: Optional[Verdict] = None,
    ) -> List[PipelineEvent]:
        return [
            e for e in self.events
            if (stage is None or e.stage == stage)
            and (verdict is None or e.verdict == verdict)
        ]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


class Emitter:
    """Binds a sink to a symbol so call sites stay one line."""

    def __init__(self, sink: Optional[EventSink] = None, symbol: str = ""):
        self._sink = sink or log_event
        self.symbol = symbol

    def __call__(
        self,
        stage: Stage,
        verdict: Verdict,
        candidate: Optional[str] = None,
        **metrics: Any,
    ) -> None:
        self._sink(PipelineEvent(
            stage=stage, verdict=verdict, candidate=candidate,
            metrics=metrics, symbol=self.symbol,
        ))
