"""Frame-sliced inference scheduling with staged output read-back.

One job is in flight at a time. Each ``tick`` advances the compute graph by at
most ``layers_per_tick`` steps, then polls the two model outputs (coordinates,
then label ids) on separate ticks so no call ever waits on the device.

Stage flow::

    IDLE -> STEPPING -> AWAITING_COORD -> AWAITING_LABELS -> READY -> IDLE

Any stage may jump straight to ``READY`` with a failure. ``READY`` returns the
job's result from exactly one tick; the next tick releases the job's tensors
and goes back to ``IDLE``.
"""
from __future__ import annotations

import itertools
import logging
import operator
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator, Optional, Protocol

import numpy as np

from ..models import Tensor
from . import tensor_codec

LOGGER = logging.getLogger(__name__)


class SchedulerStage(str, Enum):
    IDLE = "idle"
    STEPPING = "stepping"
    AWAITING_COORD = "awaiting_coord"
    AWAITING_LABELS = "awaiting_labels"
    READY = "ready"


class FailureReason(str, Enum):
    NO_OUTPUT_DATA = "no_output_data"
    EMPTY_OUTPUT = "empty_output"
    ENGINE_FAULT = "engine_fault"


class OutputHandle(Protocol):
    """A model output that may still live in device memory."""

    @property
    def has_backing_data(self) -> bool: ...

    def request_readback(self) -> None: ...

    def is_readback_done(self) -> bool: ...

    def readback_clone(self) -> Tensor: ...

    def release(self) -> None: ...


class InferenceBackend(Protocol):
    """Compute graph executor consumed by the scheduler."""

    def begin_run(self, model: Any, input_tensor: Tensor) -> Iterator[Any]: ...

    def peek_output(self, model: Any, index: int) -> Optional[OutputHandle]: ...

    def release_outputs(self, model: Any) -> None: ...


@dataclass
class SchedulerConfig:
    layers_per_tick: int = 25
    input_width: int = 640
    input_height: int = 640
    channels: int = 3
    coord_output: int = 0
    label_output: int = 1

    def __post_init__(self) -> None:
        if self.layers_per_tick <= 0:
            raise ValueError("layers_per_tick must be positive")


@dataclass
class InferenceResult:
    """Outcome of one job: both tensors on success, a reason on failure."""

    job_id: int
    coords: Optional[Tensor] = None
    label_ids: Optional[Tensor] = None
    reason: Optional[FailureReason] = None
    failed_stage: Optional[SchedulerStage] = None
    steps: int = 0
    ticks: int = 0

    @property
    def succeeded(self) -> bool:
        return self.reason is None


@dataclass
class InferenceJob:
    job_id: int
    input_tensor: Tensor
    steps: Iterator[Any]
    stage: SchedulerStage = SchedulerStage.STEPPING
    pending: Optional[OutputHandle] = None
    coords: Optional[Tensor] = None
    label_ids: Optional[Tensor] = None
    result: Optional[InferenceResult] = None
    emitted: bool = False
    steps_done: int = 0
    ticks: int = 0

    def release(self) -> None:
        if self.pending is not None:
            self.pending.release()
            self.pending = None
        for tensor in (self.input_tensor, self.coords, self.label_ids):
            if tensor is not None:
                tensor.release()
        self.coords = None
        self.label_ids = None
        self.steps = iter(())


_EXHAUSTED = object()


class IncrementalScheduler:
    """Drives one inference job at a time across many ticks."""

    def __init__(
        self,
        backend: InferenceBackend,
        model: Any,
        config: Optional[SchedulerConfig] = None,
    ) -> None:
        self.backend = backend
        self.model = model
        self.config = config or SchedulerConfig()
        self._job: Optional[InferenceJob] = None
        self._job_counter = itertools.count(1)

    @property
    def stage(self) -> SchedulerStage:
        return self._job.stage if self._job else SchedulerStage.IDLE

    @property
    def current_job(self) -> Optional[InferenceJob]:
        return self._job

    def is_running(self) -> bool:
        return self._job is not None

    def submit(self, image: np.ndarray) -> bool:
        """Start a job for ``image`` when idle.

        Returns False (and does nothing) while a job is in flight. Raises
        ``InvalidImageError`` for unusable frames, in which case no job is created.
        """

        if self._job is not None:
            return False

        cfg = self.config
        input_tensor = tensor_codec.encode(image, cfg.input_width, cfg.input_height, cfg.channels)
        job = InferenceJob(
            job_id=next(self._job_counter),
            input_tensor=input_tensor,
            steps=iter(()),
        )
        self._job = job
        try:
            job.steps = iter(self.backend.begin_run(self.model, input_tensor))
        except Exception:
            LOGGER.exception("Inference job %d could not be started", job.job_id)
            self._fail(job, FailureReason.ENGINE_FAULT)
            return True
        if operator.length_hint(job.steps, -1) == 0:
            self._finish_stepping(job)
        LOGGER.debug("Job %d submitted (%dx%d frame)", job.job_id, image.shape[1], image.shape[0])
        return True

    def tick(self) -> Optional[InferenceResult]:
        """Advance the in-flight job by one scheduling cycle.

        Returns the job's result on the single tick that reports it, otherwise None.
        """

        job = self._job
        if job is None:
            return None
        job.ticks += 1

        if job.stage is SchedulerStage.READY:
            if not job.emitted:
                job.emitted = True
                result = job.result
                if result is not None:
                    result.ticks = job.ticks
                return result
            self._release(job)
            LOGGER.debug("Job %d released", job.job_id)
            return None

        try:
            if job.stage is SchedulerStage.STEPPING:
                self._step(job)
            elif job.stage is SchedulerStage.AWAITING_COORD:
                self._poll_output(job, self.config.coord_output, SchedulerStage.AWAITING_LABELS)
            elif job.stage is SchedulerStage.AWAITING_LABELS:
                self._poll_output(job, self.config.label_output, SchedulerStage.READY)
        except Exception:
            LOGGER.exception("Inference job %d aborted during %s", job.job_id, job.stage.value)
            self._fail(job, FailureReason.ENGINE_FAULT)
        return None

    def dispose(self) -> None:
        """Release every tensor held by an in-flight job and the backend outputs."""

        if self._job is not None:
            LOGGER.info("Disposing scheduler with job %d in %s", self._job.job_id, self._job.stage.value)
            self._release(self._job)
        else:
            self.backend.release_outputs(self.model)

    def _release(self, job: InferenceJob) -> None:
        job.release()
        self._job = None
        self.backend.release_outputs(self.model)

    def _step(self, job: InferenceJob) -> None:
        budget = self.config.layers_per_tick
        for _ in range(budget):
            if next(job.steps, _EXHAUSTED) is _EXHAUSTED:
                self._finish_stepping(job)
                return
            job.steps_done += 1
        if operator.length_hint(job.steps, -1) == 0:
            self._finish_stepping(job)
        else:
            LOGGER.debug("Job %d stepped %d steps so far", job.job_id, job.steps_done)

    def _finish_stepping(self, job: InferenceJob) -> None:
        LOGGER.debug("Job %d finished %d graph steps in %d ticks", job.job_id, job.steps_done, job.ticks)
        job.stage = SchedulerStage.AWAITING_COORD

    def _poll_output(self, job: InferenceJob, index: int, next_stage: SchedulerStage) -> None:
        if job.pending is None:
            handle = self.backend.peek_output(self.model, index)
            if handle is None or not handle.has_backing_data:
                LOGGER.error("Job %d: output %d has no backing data", job.job_id, index)
                self._fail(job, FailureReason.NO_OUTPUT_DATA)
                return
            handle.request_readback()
            job.pending = handle
            return

        if not job.pending.is_readback_done():
            return

        retrieved = job.pending.readback_clone()
        job.pending.release()
        job.pending = None
        if retrieved.row_count == 0:
            retrieved.release()
            if job.stage is SchedulerStage.AWAITING_COORD:
                LOGGER.debug("Job %d: coordinate output is empty", job.job_id)
            else:
                LOGGER.error("Job %d: label output is empty after non-empty coordinates", job.job_id)
            self._fail(job, FailureReason.EMPTY_OUTPUT)
            return

        if job.stage is SchedulerStage.AWAITING_COORD:
            job.coords = retrieved
        else:
            job.label_ids = retrieved
        job.stage = next_stage
        if next_stage is SchedulerStage.READY:
            job.result = InferenceResult(
                job_id=job.job_id,
                coords=job.coords,
                label_ids=job.label_ids,
                steps=job.steps_done,
            )

    def _fail(self, job: InferenceJob, reason: FailureReason) -> None:
        if job.pending is not None:
            job.pending.release()
            job.pending = None
        job.result = InferenceResult(
            job_id=job.job_id,
            reason=reason,
            failed_stage=job.stage,
            steps=job.steps_done,
        )
        job.stage = SchedulerStage.READY
