"""Batch orchestrator - resumable, chunked campaign assignment runs.

One invocation processes at most one chunk of one batch. Everything needed to
continue lives in the batch record, so the next scheduled invocation picks up
where this one stopped.
"""
import asyncio
import logging
import secrets
import time
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, List, Optional, Tuple

from backend.app.config import get_settings
from backend.app.core.errors import (
    MAX_TRANSIENT_FAILURES, BatchNotFoundError, NothingToCancelError,
    is_lead_limit_error, is_timeout_error, is_transient_error
)
from backend.app.core.filters import group_by_platform
from backend.app.models import (
    ACTIVE_STATUSES, AssignmentBatch, AssignmentSettings, BatchResult, BatchStats, BatchStatus,
    Candidate, ChannelRun, ParallelRunResult, ProcessingResult, ResultStatus, RunOptions
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class AssignmentOrchestrator:
    """Drives selection, gate, personalization and enrollment for one batch"""

    def __init__(
        self,
        selector,
        gate,
        generator,
        enrollment,
        contacts,
        batches,
        logs,
        settings_repo,
        chunk_size: Optional[int] = None,
        lead_limit_cooldown: Optional[timedelta] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = _utcnow,
    ):
        settings = get_settings()
        self.selector = selector
        self.gate = gate
        self.generator = generator
        self.enrollment = enrollment
        self.contacts = contacts
        self.batches = batches
        self.logs = logs
        self.settings_repo = settings_repo
        self.chunk_size = chunk_size or settings.chunk_size
        self.lead_limit_cooldown = lead_limit_cooldown or timedelta(hours=settings.lead_limit_cooldown_hours)
        self.sleep = sleep
        self.clock = clock

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(self, options: Optional[RunOptions] = None) -> BatchResult:
        """Process one chunk of the current batch, creating a batch if needed"""
        options = options or RunOptions()
        settings = await self.settings_repo.get_settings()

        if not settings.is_enabled:
            logger.info("Campaign assignment is disabled, skipping run")
            return BatchResult(
                batch_id="",
                status=BatchStatus.COMPLETED,
                skipped=True,
                message="Campaign assignment is disabled",
            )

        tripped = await self._recent_lead_limit()
        if tripped is not None:
            logger.warning(
                "Lead limit reached by %s at %s, skipping run (cooldown %s)",
                tripped.batch_id, tripped.updated_at, self.lead_limit_cooldown
            )
            return BatchResult(
                batch_id=tripped.batch_id,
                status=BatchStatus.COMPLETED,
                lead_limit_reached=True,
                skipped=True,
                error=tripped.last_error,
                message="Instantly lead limit reached recently, run skipped",
            )

        batch, is_resume = await self._resume_or_create(options, settings)
        if batch.is_terminal:
            return BatchResult(
                batch_id=batch.batch_id,
                status=batch.status,
                stats=batch.stats,
                started_at=batch.started_at,
                completed_at=batch.completed_at,
                error=batch.last_error,
                is_resume=is_resume,
                message=f"Batch already {batch.status.value}" if is_resume else "No candidates found",
            )

        return await self._process_batch(batch, options, settings, is_resume)

    async def _recent_lead_limit(self) -> Optional[AssignmentBatch]:
        """Latest lead-limit batch if it is still inside the cooldown window"""
        try:
            latest = await self.batches.find_latest_lead_limit()
        except Exception as e:
            logger.warning("Could not check lead limit state: %s", e)
            return None

        if latest is None or latest.updated_at is None:
            return None
        if self.clock() - _as_utc(latest.updated_at) < self.lead_limit_cooldown:
            return latest
        return None

    def _new_batch_id(self) -> str:
        return f"batch_{self.clock().strftime('%Y%m%d_%H%M%S')}_{secrets.token_hex(3)}"

    def _new_orchestration_id(self) -> str:
        return f"orch_{int(self.clock().timestamp() * 1000)}_{secrets.token_hex(3)}"

    async def _resume_or_create(
        self,
        options: RunOptions,
        settings: AssignmentSettings
    ) -> Tuple[AssignmentBatch, bool]:
        if options.resume_batch_id:
            batch = await self.batches.get(options.resume_batch_id)
            if batch is None:
                logger.warning("Batch %s not found, starting a new one", options.resume_batch_id)
            elif batch.dry_run != options.dry_run:
                logger.warning(
                    "[%s] Batch dry_run=%s does not match requested dry_run=%s, starting a new one",
                    batch.batch_id, batch.dry_run, options.dry_run
                )
            elif batch.is_terminal:
                logger.info("[%s] Batch is already %s, not resuming", batch.batch_id, batch.status.value)
                return batch, True
            elif batch.status == BatchStatus.PROCESSING:
                if batch.pending_candidates():
                    logger.info("[%s] Resuming requested batch", batch.batch_id)
                    return batch, True
                await self._finalize_exhausted(batch)
                return batch, True
            else:
                logger.warning(
                    "[%s] Batch is still %s, starting a new one", batch.batch_id, batch.status.value
                )

        # Channel workers never pick up the shared sequential batch
        elif not options.platform_id:
            batch = await self.batches.find_active(dry_run=options.dry_run)
            if batch is not None:
                if batch.pending_candidates():
                    logger.info(
                        "[%s] Resuming batch (%d/%d processed)",
                        batch.batch_id, len(batch.processed_ids), len(batch.candidate_ids)
                    )
                    return batch, True
                await self._finalize_exhausted(batch)

        return await self._create_batch(options, settings), False

    async def _finalize_exhausted(self, batch: AssignmentBatch) -> None:
        logger.info("[%s] Active batch has nothing left, finalizing", batch.batch_id)
        await self.batches.set_status(batch.batch_id, BatchStatus.COMPLETED, completed=True)
        batch.status = BatchStatus.COMPLETED
        batch.completed_at = self.clock()

    async def _create_batch(self, options: RunOptions, settings: AssignmentSettings) -> AssignmentBatch:
        batch = AssignmentBatch(
            batch_id=self._new_batch_id(),
            status=BatchStatus.PENDING,
            orchestration_id=options.orchestration_id,
            platform_id=options.platform_id,
            dry_run=options.dry_run,
            started_at=self.clock(),
        )
        await self.batches.save(batch)

        batch.status = BatchStatus.SELECTING
        await self.batches.save(batch)

        candidates = await self.selector.select(
            options.max_total or settings.max_total_contacts,
            options.max_per_platform or settings.max_per_platform,
            platform_id=options.platform_id,
        )

        batch.candidates = candidates
        batch.candidate_ids = [c.id for c in candidates]
        batch.stats = BatchStats(total_candidates=len(candidates))

        if not candidates:
            logger.info("[%s] No candidates found", batch.batch_id)
            batch.status = BatchStatus.COMPLETED
            batch.completed_at = self.clock()
        else:
            logger.info(
                "[%s] Created batch with %d candidates", batch.batch_id, len(candidates),
                extra={"batch_id": batch.batch_id}
            )
            batch.status = BatchStatus.PROCESSING

        await self.batches.save(batch)
        return batch

    async def _process_batch(
        self,
        batch: AssignmentBatch,
        options: RunOptions,
        settings: AssignmentSettings,
        is_resume: bool
    ) -> BatchResult:
        pending = batch.pending_candidates()
        chunk_size = options.chunk_size or self.chunk_size
        chunk = pending if options.platform_id else pending[:chunk_size]
        delay_ms = settings.delay_between_contacts_ms if options.delay_ms is None else options.delay_ms

        def result(status: BatchStatus, **kwargs) -> BatchResult:
            return BatchResult(
                batch_id=batch.batch_id,
                status=status,
                stats=batch.stats,
                started_at=batch.started_at,
                is_resume=is_resume,
                **kwargs
            )

        logger.info(
            "[%s] Processing chunk of %d (%d pending, dry_run=%s)",
            batch.batch_id, len(chunk), len(pending), batch.dry_run
        )

        try:
            for index, candidate in enumerate(chunk):
                if batch.dry_run:
                    outcome = ProcessingResult(
                        contact_id=candidate.id,
                        contact_email=candidate.email,
                        company_name=candidate.company_name,
                        platform_name=candidate.platform_name,
                        status=ResultStatus.SKIPPED_DRY_RUN,
                        skip_reason="Dry run",
                    )
                else:
                    outcome = await self.process_contact(candidate, batch.batch_id)

                await self._record(batch, candidate, outcome)

                if outcome.lead_limit_reached:
                    logger.warning("[%s] Instantly lead limit reached, stopping batch", batch.batch_id)
                    await self.batches.set_status(
                        batch.batch_id, BatchStatus.LEAD_LIMIT_REACHED, error=outcome.error
                    )
                    return result(
                        BatchStatus.LEAD_LIMIT_REACHED,
                        lead_limit_reached=True,
                        error=outcome.error,
                        message="Instantly lead limit reached",
                    )

                if await self.batches.get_status(batch.batch_id) == BatchStatus.CANCELLED:
                    logger.info("[%s] Batch cancelled by operator", batch.batch_id)
                    return result(BatchStatus.CANCELLED, message="Batch cancelled")

                if delay_ms and index < len(chunk) - 1:
                    await self.sleep(delay_ms / 1000)

            remaining = len(batch.pending_candidates())
            if remaining:
                logger.info("[%s] Chunk done, %d candidates remaining", batch.batch_id, remaining)
                return result(
                    BatchStatus.PROCESSING,
                    message=f"Processed {len(chunk)} candidates, {remaining} remaining",
                )

            await self.batches.set_status(batch.batch_id, BatchStatus.COMPLETED, completed=True)
            stats = batch.stats
            logger.info(
                "[%s] Completed: %d added, %d skipped, %d errors",
                batch.batch_id, stats.added, stats.skipped, stats.errors,
                extra={"batch_id": batch.batch_id}
            )
            return result(BatchStatus.COMPLETED, completed_at=self.clock(), message="Batch completed")

        except Exception as e:
            message = f"{type(e).__name__}: {e}"
            if is_timeout_error(message):
                logger.warning("[%s] Timeout, batch stays resumable: %s", batch.batch_id, message)
                await self._safe(self.batches.record_error(batch.batch_id, message), batch.batch_id)
                return result(BatchStatus.PROCESSING, error=message, message="Timed out, will resume")

            logger.error("[%s] Batch failed: %s", batch.batch_id, message, extra={"batch_id": batch.batch_id})
            await self._safe(
                self.batches.set_status(batch.batch_id, BatchStatus.FAILED, error=message, completed=True),
                batch.batch_id,
            )
            return result(BatchStatus.FAILED, error=message, completed_at=self.clock())

    async def _record(self, batch: AssignmentBatch, candidate: Candidate, outcome: ProcessingResult) -> None:
        """Counters, audit log and processed set, in that order, after every candidate"""
        batch.stats.record(candidate.platform_name, outcome.status)

        try:
            await self.logs.insert(batch.batch_id, candidate, outcome)
        except Exception as e:
            logger.error("[%s] Could not write log for %s: %s", batch.batch_id, candidate.email, e)

        await self.batches.append_processed_id(batch.batch_id, candidate.id)
        batch.processed_ids.append(candidate.id)
        await self.batches.update_progress(batch.batch_id, batch.stats)

    @staticmethod
    async def _safe(write: Awaitable, batch_id: str) -> None:
        try:
            await write
        except Exception as e:
            logger.error("[%s] Could not persist batch state: %s", batch_id, e)

    # ------------------------------------------------------------------
    # Per contact
    # ------------------------------------------------------------------

    async def process_contact(self, candidate: Candidate, batch_id: Optional[str] = None) -> ProcessingResult:
        """Gate, personalize and enroll one candidate. Never raises."""
        outcome = ProcessingResult(
            contact_id=candidate.id,
            contact_email=candidate.email,
            company_name=candidate.company_name,
            platform_name=candidate.platform_name,
        )

        try:
            verdict = await self.gate.check(candidate)
            outcome.pipedrive_org_id = verdict.crm_org_id
            outcome.pipedrive_is_klant = verdict.crm_is_customer
            if not verdict.passed:
                outcome.status = verdict.status
                outcome.skip_reason = verdict.reason
                logger.info("[%s] Skipped %s: %s", batch_id, candidate.email, verdict.reason)
                return outcome

            started = time.monotonic()
            payload = await self.generator.generate(candidate)
            outcome.ai_processing_time_ms = int((time.monotonic() - started) * 1000)
            if payload is None:
                outcome.status = ResultStatus.SKIPPED_ENRICHMENT_FAILED
                outcome.skip_reason = "AI personalization failed"
                return outcome
            outcome.personalization = payload

            enrolled = await self.enrollment.enroll(candidate, payload)

            if not enrolled.success:
                error = enrolled.error or "Unknown Instantly error"
                outcome.error = error
                if is_lead_limit_error(error):
                    outcome.status = ResultStatus.SKIPPED_LEAD_LIMIT
                    outcome.skip_reason = "Instantly lead limit reached"
                    return outcome
                outcome.status = ResultStatus.ERROR
                await self._record_failure(candidate, error)
                return outcome

            outcome.instantly_lead_id = enrolled.lead_id
            if enrolled.skipped_as_duplicate:
                outcome.status = ResultStatus.SKIPPED_DUPLICATE
                outcome.skip_reason = "Lead already exists in Instantly"
                await self.contacts.mark_in_campaign(
                    candidate.id, candidate.instantly_campaign_id, candidate.platform_name
                )
                logger.info("[%s] %s already in Instantly, linked to campaign", batch_id, candidate.email)
                return outcome

            outcome.status = ResultStatus.ADDED
            await self.contacts.mark_enrolled(
                candidate.id, enrolled.lead_id, candidate.instantly_campaign_id, candidate.platform_name
            )
            logger.info(
                "[%s] Added %s to %s", batch_id, candidate.email, candidate.platform_name,
                extra={"batch_id": batch_id, "contact_id": candidate.id, "channel": candidate.platform_name}
            )
            return outcome

        except Exception as e:
            error = str(e) or type(e).__name__
            logger.error("[%s] Error processing %s: %s", batch_id, candidate.email, error)
            outcome.error = error
            if is_lead_limit_error(error):
                outcome.status = ResultStatus.SKIPPED_LEAD_LIMIT
                outcome.skip_reason = "Instantly lead limit reached"
                return outcome
            outcome.status = ResultStatus.ERROR
            await self._record_failure(candidate, error)
            return outcome

    async def _record_failure(self, candidate: Candidate, error: str) -> None:
        """Transient errors count towards disqualification, others disqualify at once"""
        stamp = self.clock().isoformat()
        try:
            if not is_transient_error(error):
                await self.contacts.disqualify(candidate.id, f"[{stamp}] Permanent campaign error: {error}")
                logger.warning("Disqualified %s after permanent error: %s", candidate.email, error)
                return

            count, notes = await self.contacts.get_retry_state(candidate.id)
            count += 1
            if count >= MAX_TRANSIENT_FAILURES:
                note = f"[{stamp}] Disqualified after {count} campaign failures: {error}"
                await self.contacts.save_retry_state(candidate.id, count, f"{notes}\n{note}".strip(), disqualify=True)
                logger.warning("Disqualified %s after %d transient failures", candidate.email, count)
            else:
                note = f"[{stamp}] Campaign error ({count}/{MAX_TRANSIENT_FAILURES}): {error}"
                await self.contacts.save_retry_state(candidate.id, count, f"{notes}\n{note}".strip())
                logger.info("Transient error for %s (%d/%d)", candidate.email, count, MAX_TRANSIENT_FAILURES)
        except Exception as e:
            logger.error("Could not record failure for %s: %s", candidate.email, e)

    # ------------------------------------------------------------------
    # Parallel, cancel
    # ------------------------------------------------------------------

    async def run_parallel(self, options: Optional[RunOptions] = None) -> ParallelRunResult:
        """One channel-scoped batch per channel, run concurrently"""
        options = options or RunOptions()
        settings = await self.settings_repo.get_settings()

        if not settings.is_enabled:
            return ParallelRunResult(skipped=True, message="Campaign assignment is disabled")

        if await self._recent_lead_limit() is not None:
            return ParallelRunResult(
                skipped=True,
                lead_limit_reached=True,
                message="Instantly lead limit reached recently, run skipped",
            )

        candidates = await self.selector.select(
            options.max_total or settings.max_total_contacts,
            options.max_per_platform or settings.max_per_platform,
        )
        groups = group_by_platform(candidates)
        if not groups:
            return ParallelRunResult(message="No candidates found")

        orchestration_id = self._new_orchestration_id()
        logger.info(
            "[%s] Starting %d channel workers for %d candidates",
            orchestration_id, len(groups), len(candidates),
            extra={"orchestration_id": orchestration_id}
        )

        channel_options = [
            options.model_copy(update={
                "platform_id": platform_id,
                "orchestration_id": orchestration_id,
                "resume_batch_id": None,
            })
            for platform_id in groups
        ]
        outcomes = await asyncio.gather(
            *(self.run(opts) for opts in channel_options), return_exceptions=True
        )

        channels: List[ChannelRun] = []
        for (platform_id, group), outcome in zip(groups.items(), outcomes):
            channel = ChannelRun(
                platform_id=platform_id,
                platform_name=group[0].platform_name,
                candidates=len(group),
            )
            if isinstance(outcome, BaseException):
                logger.error("[%s] Channel %s failed: %s", orchestration_id, channel.platform_name, outcome)
                channel.error = str(outcome) or type(outcome).__name__
            else:
                channel.batch_id = outcome.batch_id
                channel.status = outcome.status
                channel.added = outcome.stats.added
                channel.error = outcome.error
            channels.append(channel)

        return ParallelRunResult(
            orchestration_id=orchestration_id,
            total_candidates=len(candidates),
            channels=channels,
            lead_limit_reached=any(c.status == BatchStatus.LEAD_LIMIT_REACHED for c in channels),
            message=f"Triggered {len(channels)} channel workers",
        )

    async def cancel(self, batch_id: Optional[str] = None) -> str:
        """Flag a batch as cancelled; the running worker stops after its current candidate"""
        if batch_id is None:
            batch_id = await self.batches.find_latest_active_id()
            if batch_id is None:
                raise NothingToCancelError("No running batch to cancel")
        else:
            status = await self.batches.get_status(batch_id)
            if status is None:
                raise BatchNotFoundError(f"Batch {batch_id} not found")
            if status not in ACTIVE_STATUSES:
                raise NothingToCancelError(f"Batch {batch_id} is already {status.value}")

        await self.batches.set_status(batch_id, BatchStatus.CANCELLED, completed=True)
        logger.info("[%s] Cancelled by operator", batch_id)
        return batch_id
