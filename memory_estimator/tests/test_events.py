"""Tests for models/events.py"""

import io
import json

from memory_estimator.models.events import EventEmitter, EventType, json_line_sink


class TestEventEmitter:

    def test_collects_and_filters(self):
        emitter = EventEmitter()
        emitter.log("worker", "starting", task_id=1)
        emitter.complete(EventType.RECONCILED, "dispatcher", "done", task_id=1,
                         data={"fallback_used": False})
        emitter.error("isolation", "boom")

        assert [e.event_type for e in emitter.events] == [
            EventType.JOB_LOG, EventType.RECONCILED, EventType.JOB_ERROR,
        ]
        assert emitter.of_type(EventType.RECONCILED)[0].data == {"fallback_used": False}

    def test_failing_callback_does_not_break_emitter(self):
        emitter = EventEmitter()
        seen = []

        def broken(event):
            raise RuntimeError("sink down")

        emitter.on_event(broken)
        emitter.on_event(seen.append)
        emitter.log("worker", "still here")

        assert len(seen) == 1
        assert len(emitter.events) == 1


class TestJsonLineSink:

    def test_one_line_per_event(self):
        stream = io.StringIO()
        emitter = EventEmitter()
        emitter.on_event(json_line_sink(stream))

        emitter.log("worker", "a\nb", task_id=4)
        emitter.complete(EventType.MEASUREMENT_COMPLETE, "worker", "measured",
                         data={"peak_bytes": 10})

        lines = stream.getvalue().splitlines()
        assert len(lines) == 2
        first = json.loads(lines[0])
        assert first["event_type"] == "JOB_LOG"
        assert first["message"] == "a\nb"
        assert first["task_id"] == 4
        assert json.loads(lines[1])["data"] == {"peak_bytes": 10}
