"""
FastAPI Server — job submission front end.

Flow for POST /submit_task:
  1. Validate the descriptor fields (pydantic)
  2. Hand the job to the dispatcher in a worker thread:
     a. static estimate from the binary and its disassembly
     b. fresh worker process, thread-pinned, runs the job once
     c. measured memory replaces the estimate, or the estimate is kept
  3. Return the JobResult with the "Task done" acknowledgement

Jobs run one at a time per request; the endpoint blocks until the worker
exits. Results and events are kept in memory for /api/results and
/api/events.
"""

import asyncio
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from memory_estimator.config import Settings
from memory_estimator.core.descriptor import validate_descriptor
from memory_estimator.core.dispatcher import dispatch_task
from memory_estimator.core.errors import DescriptorError, ScratchCollisionError
from memory_estimator.models.events import EventEmitter
from memory_estimator.models.types import JobResult, TaskDescriptor


VERSION = "0.1.0"
ACKNOWLEDGEMENT = "Task done"


# ═══════════════════════════════════════════════════════════
# App Setup
# ═══════════════════════════════════════════════════════════

app = FastAPI(
    title="MemoryEstimator",
    description="Static memory estimation and isolated execution of WebAssembly jobs",
    version=VERSION,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# In-memory stores
jobs: dict[int, JobResult] = {}
job_events: dict[int, list[dict]] = {}

settings = Settings.from_env()


# ═══════════════════════════════════════════════════════════
# Request/Response Models
# ═══════════════════════════════════════════════════════════

class SubmitTaskRequest(BaseModel):
    task_id: int
    binary_name: str
    function_name: str
    payload: str = ""
    payload_compressed: bool = False
    model_folder_name: str = ""

    def to_descriptor(self) -> TaskDescriptor:
        return TaskDescriptor(
            task_id=self.task_id,
            binary_name=self.binary_name,
            function_name=self.function_name,
            payload=self.payload,
            payload_compressed=self.payload_compressed,
            model_folder_name=self.model_folder_name,
        )


class HealthResponse(BaseModel):
    status: str
    version: str
    feature_source: str
    modules_dir: str


# ═══════════════════════════════════════════════════════════
# Endpoints
# ═══════════════════════════════════════════════════════════

@app.get("/api/health")
async def health():
    return HealthResponse(
        status="ok",
        version=VERSION,
        feature_source=settings.feature_source,
        modules_dir=str(settings.modules_dir),
    )


@app.post("/submit_task")
async def submit_task(request: SubmitTaskRequest):
    """Run one job in an isolated worker and report its memory use."""
    if request.task_id < 0:
        raise HTTPException(400, "task_id must be an unsigned integer")

    descriptor = request.to_descriptor()
    emitter = EventEmitter()

    try:
        validate_descriptor(descriptor)
        result = await asyncio.to_thread(dispatch_task, descriptor, settings, None, emitter)
    except ScratchCollisionError as e:
        raise HTTPException(409, str(e))
    except DescriptorError as e:
        raise HTTPException(400, str(e))

    jobs[descriptor.task_id] = result
    job_events[descriptor.task_id] = [event.to_dict() for event in emitter.events]

    return {"message": ACKNOWLEDGEMENT, **result.to_dict()}


@app.get("/plot_memory")
async def plot_memory():
    """Placeholder for memory plots."""
    return "Plots ok"


@app.get("/api/results/{task_id}")
async def get_results(task_id: int):
    """Get the stored result of a completed job."""
    result: Optional[JobResult] = jobs.get(task_id)
    if not result:
        raise HTTPException(404, f"Task {task_id} not found")
    return result.to_dict()


@app.get("/api/events/{task_id}")
async def get_events(task_id: int):
    """Get all events recorded while dispatching a job."""
    if task_id not in job_events:
        raise HTTPException(404, f"Task {task_id} not found")
    return {"task_id": task_id, "events": job_events[task_id]}


# ═══════════════════════════════════════════════════════════
# Run
# ═══════════════════════════════════════════════════════════

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)
