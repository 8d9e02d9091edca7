"""Multi-stage workflows: chained image stages, transition videos, auto-merge."""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable

from pydantic import BaseModel, Field

from genstudio.capabilities import supports_end_frame, supports_feature
from genstudio.errors import GenerationError, ValidationError
from genstudio.generation import GenerationService
from genstudio.jobs.state import GenerationTracker
from genstudio.schemas.models import (
    GenerationRecord,
    GenerationRequest,
    GenerationStatus,
    GenerationType,
    MergedVideoResult,
    StageOutcome,
    StagePlan,
    TransitionVideoPlan,
)
from genstudio.workflows.merge import VideoConcatenator

logger = logging.getLogger(__name__)

# (from stage, to stage) -> (prompt, title)
TransitionDescriber = Callable[[StageOutcome, StageOutcome], tuple[str, str]]


class MergeState(str, Enum):
    PENDING = "pending"
    MERGING = "merging"
    COMPLETED = "completed"
    FAILED = "failed"
    NOT_APPLICABLE = "not_applicable"


class WorkflowRun(BaseModel):
    id: str = Field(default_factory=lambda: f"run_{uuid.uuid4().hex[:12]}")
    kind: str
    reference_image_url: str
    image_model: str
    video_model: str | None = None
    stages: list[StageOutcome] = Field(default_factory=list)
    transitions: list[TransitionVideoPlan] = Field(default_factory=list)
    failed_at_stage: int | None = None
    merge_state: MergeState = MergeState.NOT_APPLICABLE
    merged: MergedVideoResult | None = None
    merge_error: str | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def succeeded(self) -> bool:
        return self.failed_at_stage is None

    @property
    def video_ids(self) -> list[str]:
        return [t.generation_id for t in self.transitions if t.generation_id]


class AutoMergeWatcher:
    """Fires the merge once, when every planned transition video has completed.

    Registered as a tracker terminal listener. A plan with a video that
    failed to submit can never satisfy the condition. Once fired it never
    fires again, even if the merge itself failed. ``on_detach`` runs once
    when the watcher stops listening, whether it fired or gave up.
    """

    def __init__(
        self,
        run: WorkflowRun,
        tracker: GenerationTracker,
        merge: Callable[[WorkflowRun], Awaitable[None]],
        on_detach: Callable[[WorkflowRun], None] | None = None,
    ):
        self.run = run
        self.tracker = tracker
        self._merge = merge
        self._on_detach = on_detach
        self._ids = set(run.video_ids)
        self.fired = False

    def attach(self) -> None:
        self.tracker.add_terminal_listener(self.on_terminal)

    def detach(self) -> None:
        self.tracker.remove_terminal_listener(self.on_terminal)
        if self._on_detach is not None:
            on_detach, self._on_detach = self._on_detach, None
            on_detach(self.run)

    def _records(self) -> list[GenerationRecord | None]:
        return [self.tracker.get(gid) for gid in self.run.video_ids]

    async def on_terminal(self, record: GenerationRecord) -> None:
        if record.id in self._ids:
            await self.check()

    async def check(self) -> None:
        if self.fired:
            return
        if len(self.run.video_ids) != len(self.run.transitions):
            self.detach()
            return
        records = self._records()
        if not all(r is not None and r.status == GenerationStatus.COMPLETED for r in records):
            if all(r is not None and r.is_terminal for r in records):
                logger.info("Run %s finished with failed videos; not merging", self.run.id)
                self.detach()
            return
        self.fired = True
        self.detach()
        await self._merge(self.run)


class WorkflowComposer:
    def __init__(
        self,
        service: GenerationService,
        concatenator: VideoConcatenator,
        *,
        video_concurrency: int = 2,
        stage_timeout_seconds: float = 600.0,
    ):
        self.service = service
        self.tracker = service.tracker
        self.concatenator = concatenator
        self.video_concurrency = max(1, video_concurrency)
        self.stage_timeout_seconds = stage_timeout_seconds
        self._runs: dict[str, WorkflowRun] = {}
        self._watchers: dict[str, AutoMergeWatcher] = {}

    def get_run(self, run_id: str) -> WorkflowRun | None:
        return self._runs.get(run_id)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def run_stages(
        self,
        plans: list[StagePlan],
        reference_image_url: str,
        *,
        image_model: str,
        aspect_ratio: str = "16:9",
        feature: str | None = None,
    ) -> list[StageOutcome]:
        """Generate stages in order, each from the previous stage's image.

        Stops at the first failure; outcomes cover every stage attempted.
        """
        outcomes: list[StageOutcome] = []
        current = reference_image_url
        for plan in sorted(plans, key=lambda p: p.order):
            request = GenerationRequest(
                prompt=plan.prompt,
                feature=feature,
                generation_type=GenerationType.IMAGE_TO_IMAGE,
                model_name=image_model,
                aspect_ratio=aspect_ratio,
                image_url=current,
                image_strength=plan.strength if plan.strength else None,
            )
            if plan.pass_through:
                record = self.service.record_pass_through(request, current)
            else:
                logger.info("Stage %d (%s) from %s", plan.order, plan.key, current[:80])
                try:
                    record = await self.service.submit_and_wait(
                        request, timeout=self.stage_timeout_seconds, raise_on_failure=False
                    )
                except GenerationError as e:
                    logger.warning("Stage %d (%s) failed: %s", plan.order, plan.key, e)
                    outcomes.append(self._outcome(plan, None, error=str(e)))
                    break

            if record.status == GenerationStatus.COMPLETED and record.image_url:
                outcomes.append(self._outcome(plan, record))
                current = record.image_url
            else:
                error = record.error_message or "Stage produced no image"
                logger.warning("Stage %d (%s) failed: %s", plan.order, plan.key, error)
                outcomes.append(self._outcome(plan, record, error=error))
                break
        return outcomes

    @staticmethod
    def _outcome(plan: StagePlan, record: GenerationRecord | None, error: str | None = None) -> StageOutcome:
        return StageOutcome(
            key=plan.key,
            order=plan.order,
            name=plan.name,
            prompt=plan.prompt,
            success=error is None,
            image_url=record.image_url if record and error is None else None,
            generation_id=record.id if record else None,
            error=error,
        )

    # ------------------------------------------------------------------
    # Transition videos
    # ------------------------------------------------------------------

    @staticmethod
    def plan_transitions(
        outcomes: list[StageOutcome],
        describe: TransitionDescriber,
        *,
        descending: bool = False,
    ) -> list[TransitionVideoPlan]:
        """One video per adjacent pair of stages where both succeeded."""
        ordered = sorted(outcomes, key=lambda o: o.order, reverse=descending)
        plans: list[TransitionVideoPlan] = []
        for start, end in zip(ordered, ordered[1:]):
            if not (start.success and end.success and start.image_url and end.image_url):
                continue
            prompt, title = describe(start, end)
            plans.append(
                TransitionVideoPlan(
                    video_number=len(plans) + 1,
                    from_stage_key=start.key,
                    to_stage_key=end.key,
                    from_stage_order=start.order,
                    to_stage_order=end.order,
                    from_image_url=start.image_url,
                    to_image_url=end.image_url,
                    prompt=prompt,
                    title=title,
                )
            )
        return plans

    async def submit_transitions(
        self,
        transitions: list[TransitionVideoPlan],
        *,
        video_model: str,
        duration: str | None = None,
        aspect_ratio: str = "16:9",
        feature: str | None = None,
    ) -> list[TransitionVideoPlan]:
        """Submit every planned video, at most ``video_concurrency`` at a time."""
        semaphore = asyncio.Semaphore(self.video_concurrency)
        with_tail = supports_end_frame(video_model)

        async def submit_one(plan: TransitionVideoPlan) -> TransitionVideoPlan:
            request = GenerationRequest(
                prompt=plan.prompt,
                feature=feature,
                generation_type=GenerationType.IMAGE_TO_VIDEO,
                model_name=video_model,
                duration=duration,
                aspect_ratio=aspect_ratio,
                image_url=plan.from_image_url,
                end_image_url=plan.to_image_url if with_tail else None,
            )
            async with semaphore:
                try:
                    record = await self.service.submit(request, raise_on_failure=False)
                except GenerationError as e:
                    logger.warning("Video %d (%s) was not submitted: %s", plan.video_number, plan.title, e)
                    return plan.model_copy(update={"error": str(e)})
            update: dict[str, str | None] = {"generation_id": record.id}
            if record.status == GenerationStatus.FAILED:
                update["error"] = record.error_message
            return plan.model_copy(update=update)

        return list(await asyncio.gather(*(submit_one(p) for p in transitions)))

    # ------------------------------------------------------------------
    # Whole runs
    # ------------------------------------------------------------------

    async def run(
        self,
        kind: str,
        plans: list[StagePlan],
        reference_image_url: str,
        *,
        image_model: str,
        describe: TransitionDescriber,
        video_model: str | None = None,
        duration: str | None = None,
        aspect_ratio: str = "16:9",
        descending: bool = False,
        auto_merge: bool = True,
    ) -> WorkflowRun:
        """Generate the stages, then the transition videos between successful neighbours.

        Auto-merge is armed only when more than one transition video is
        planned; a single clip is already the whole result and is never
        re-encoded. ``merge_now`` still works for it.
        """
        if not supports_feature(image_model, GenerationType.IMAGE_TO_IMAGE):
            raise ValidationError(f"Model {image_model!r} cannot edit images", field="imageModel")
        if video_model and not supports_feature(video_model, GenerationType.IMAGE_TO_VIDEO):
            raise ValidationError(f"Model {video_model!r} cannot animate images", field="videoModel")

        run = WorkflowRun(
            kind=kind,
            reference_image_url=reference_image_url,
            image_model=image_model,
            video_model=video_model,
        )
        self._runs[run.id] = run
        logger.info("Workflow %s (%s) started with %d stages", run.id, kind, len(plans))

        run.stages = await self.run_stages(
            plans, reference_image_url, image_model=image_model, aspect_ratio=aspect_ratio, feature=kind
        )
        failed = next((o for o in run.stages if not o.success), None)
        if failed is not None:
            run.failed_at_stage = failed.order

        if video_model:
            planned = self.plan_transitions(run.stages, describe, descending=descending)
            run.transitions = await self.submit_transitions(
                planned, video_model=video_model, duration=duration, aspect_ratio=aspect_ratio, feature=kind
            )
            if auto_merge and len(run.transitions) > 1:
                run.merge_state = MergeState.PENDING
                watcher = AutoMergeWatcher(
                    run, self.tracker, self._auto_merge, on_detach=lambda r: self._watchers.pop(r.id, None)
                )
                self._watchers[run.id] = watcher
                watcher.attach()
                # Videos may already be terminal (synchronous providers)
                await watcher.check()
        return run

    async def _auto_merge(self, run: WorkflowRun) -> None:
        await self._merge(run, allow_partial=False)

    async def _merge(self, run: WorkflowRun, *, allow_partial: bool) -> MergedVideoResult | None:
        run.merge_state = MergeState.MERGING
        try:
            run.merged = await self.concatenator.merge(run.video_ids, allow_partial=allow_partial)
        except GenerationError as e:
            logger.error("Merging videos of run %s failed: %s", run.id, e)
            run.merge_state = MergeState.FAILED
            run.merge_error = str(e)
            return None
        run.merge_state = MergeState.COMPLETED
        run.merge_error = None
        return run.merged

    async def merge_now(self, run_id: str, *, allow_partial: bool = True) -> WorkflowRun:
        """Merge whatever has completed so far, without waiting for the rest."""
        run = self._runs.get(run_id)
        if run is None:
            raise KeyError(run_id)
        if not run.video_ids:
            raise ValidationError("This run has no videos to merge")
        watcher = self._watchers.pop(run_id, None)
        if watcher is not None:
            watcher.fired = True
            watcher.detach()
        merged = await self._merge(run, allow_partial=allow_partial)
        if merged is None:
            raise GenerationError(run.merge_error or "Merge failed", code="MERGE_FAILED")
        return run
