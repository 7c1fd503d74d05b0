"""
Job Event Types — structured log records for analysis and job execution.

Every stage reports through an EventEmitter instead of printing free text:
  - ANALYSIS_COMPLETE / ESTIMATE_COMPLETE: static pipeline finished
  - WORKER_SPAWNED / WORKER_EXITED: isolated worker lifecycle
  - MEASUREMENT_COMPLETE: memory sample taken around the job
  - RECONCILED: measured numbers merged into (or rejected for) the estimate
"""

import json
import sys
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, TextIO


class EventType(str, Enum):
    # Static analysis
    ANALYSIS_COMPLETE = "ANALYSIS_COMPLETE"
    ESTIMATE_COMPLETE = "ESTIMATE_COMPLETE"

    # Worker lifecycle
    WORKER_SPAWNED = "WORKER_SPAWNED"
    WORKER_EXITED = "WORKER_EXITED"

    # Measurement
    MEASUREMENT_COMPLETE = "MEASUREMENT_COMPLETE"
    RECONCILED = "RECONCILED"

    # General
    JOB_LOG = "JOB_LOG"
    JOB_ERROR = "JOB_ERROR"


@dataclass
class JobEvent:
    event_type: EventType
    component: str
    message: str
    task_id: Optional[int] = None
    data: Optional[dict] = None
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            "event_type": self.event_type.value,
            "component": self.component,
            "message": self.message,
            "task_id": self.task_id,
            "timestamp": self.timestamp,
            "data": self.data,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class EventEmitter:
    """
    Collects events for one process.
    Components call emitter.log() / emitter.complete() / emitter.error().
    Sinks registered with on_event() see every event as it is emitted.
    """

    def __init__(self):
        self.events: list[JobEvent] = []
        self._callbacks: list = []

    def on_event(self, callback):
        """Register a callback, e.g. json_line_sink(sys.stderr)."""
        self._callbacks.append(callback)

    def _emit(self, event: JobEvent):
        self.events.append(event)
        for cb in self._callbacks:
            try:
                cb(event)
            except Exception:
                pass

    def log(self, component: str, message: str, task_id: int = None,
            data: dict = None):
        self._emit(JobEvent(
            event_type=EventType.JOB_LOG,
            component=component,
            message=message,
            task_id=task_id,
            data=data,
        ))

    def complete(self, event_type: EventType, component: str, message: str,
                 task_id: int = None, data: dict = None):
        self._emit(JobEvent(
            event_type=event_type,
            component=component,
            message=message,
            task_id=task_id,
            data=data,
        ))

    def error(self, component: str, message: str, task_id: int = None,
              data: dict = None):
        self._emit(JobEvent(
            event_type=EventType.JOB_ERROR,
            component=component,
            message=message,
            task_id=task_id,
            data=data,
        ))

    def of_type(self, event_type: EventType) -> list[JobEvent]:
        return [e for e in self.events if e.event_type == event_type]


def json_line_sink(stream: TextIO = None):
    """Return a callback that writes each event as one JSON line."""
    def _sink(event: JobEvent):
        out = stream if stream is not None else sys.stdout
        print(event.to_json(), file=out, flush=True)
    return _sink
