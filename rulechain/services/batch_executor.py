"""Batch chain executor for concurrent chain execution.

This module provides the BatchChainExecutor class which runs many
(chain, event) jobs concurrently with controlled parallelism and
progress tracking.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable

from rulechain.rule_engine.errors import ErrorCode, ExecutionTimeoutError
from rulechain.rule_engine.models import ExecutionResult
from rulechain.services.rule_chain_service import RuleChainService
from rulechain.services.timeout_metrics import TimeoutMetrics, timeout_metrics

logger = logging.getLogger(__name__)


def _default_concurrency() -> int:
    from rulechain.core.config import settings

    return settings.RULE_ENGINE_WORKER_CONCURRENCY


@dataclass
class BatchExecutionConfig:
    """Configuration for batch execution.

    Attributes:
        max_concurrent: Maximum number of chains executing at once
        timeout_per_job: Timeout in seconds for each job (None or <= 0
            disables it)
    """

    max_concurrent: int = field(default_factory=_default_concurrency)
    timeout_per_job: float | None = 60.0


@dataclass
class BatchExecutionResult:
    """Result of a batch execution.

    Attributes:
        total: Total number of jobs attempted
        succeeded: Number of jobs that produced an ExecutionResult
        failed: Number of jobs that raised or timed out
        results: Per-job dicts with chain_id and the ExecutionResult
        failures: Per-job dicts with chain_id, error and error code
        duration_seconds: Total execution time in seconds
    """

    total: int
    succeeded: int
    failed: int
    results: list[dict] = field(default_factory=list)
    failures: list[dict] = field(default_factory=list)
    duration_seconds: float = 0.0


class BatchChainExecutor:
    """Runs rule chains for many events concurrently.

    A job is a dict with ``chain_id`` and ``event``. Filter halts count as
    successes; configuration errors, missing chains and timeouts are
    reported as failures and never abort the rest of the batch.
    """

    def __init__(
        self,
        service: RuleChainService,
        metrics: TimeoutMetrics | None = None,
    ):
        """Initialize the batch executor.

        Args:
            service: RuleChainService used for each job
            metrics: Timeout metrics sink for worker timeouts
        """
        self.service = service
        self.metrics = metrics or timeout_metrics

    async def execute_batch(
        self,
        jobs: list[dict],
        config: BatchExecutionConfig | None = None,
        progress_callback: Callable[[dict], Awaitable] | None = None,
    ) -> BatchExecutionResult:
        """Execute jobs concurrently with controlled parallelism.

        Args:
            jobs: List of job specs with chain_id and event
            config: Optional batch execution configuration
            progress_callback: Optional async callback for progress updates

        Returns:
            BatchExecutionResult with success/failure breakdown
        """
        config = config or BatchExecutionConfig()
        start_time = datetime.now()

        total = len(jobs)
        completed = 0
        results = []
        failures = []

        semaphore = asyncio.Semaphore(config.max_concurrent)

        async def process_one(job: dict) -> tuple[dict, Any]:
            async with semaphore:
                try:
                    return job, await self._run_job(job, config.timeout_per_job)
                except Exception as e:
                    return job, e

        tasks = [process_one(job) for job in jobs]

        for task in asyncio.as_completed(tasks):
            job, result_or_error = await task
            completed += 1
            chain_id = job.get("chain_id")

            if isinstance(result_or_error, Exception):
                error_msg = str(result_or_error)
                failures.append({
                    "chain_id": chain_id,
                    "error": error_msg,
                    "code": _error_code(result_or_error),
                })
                logger.warning(f"Chain {chain_id} failed in batch: {error_msg}")
                update = {"success": False, "error": error_msg}
            else:
                results.append({"chain_id": chain_id, "result": result_or_error})
                update = {"success": True, "status": result_or_error.status.value}

            if progress_callback:
                await progress_callback({
                    "type": "chain_progress",
                    "completed": completed,
                    "total": total,
                    "chain_id": chain_id,
                    **update,
                })

        duration = (datetime.now() - start_time).total_seconds()
        logger.info(
            f"Batch finished: {len(results)}/{total} succeeded in {duration:.3f}s"
        )

        return BatchExecutionResult(
            total=total,
            succeeded=len(results),
            failed=len(failures),
            results=results,
            failures=failures,
            duration_seconds=duration,
        )

    async def _run_job(self, job: dict, timeout: float | None) -> ExecutionResult:
        """Run one job under the per-job deadline.

        Raises:
            ExecutionTimeoutError: With WORKER_TIMEOUT when the job overruns
        """
        execution = self.service.execute(job["chain_id"], job.get("event") or {})
        if timeout is None or timeout <= 0:
            return await execution

        started = time.monotonic()
        try:
            return await asyncio.wait_for(execution, timeout=timeout)
        except asyncio.TimeoutError:
            elapsed_ms = (time.monotonic() - started) * 1000
            self.metrics.record_timeout(ErrorCode.WORKER_TIMEOUT, elapsed_ms)
            raise ExecutionTimeoutError(
                f"Worker timed out after {timeout}s",
                ErrorCode.WORKER_TIMEOUT,
                {"chainId": job["chain_id"], "timeout": timeout},
            ) from None


def _error_code(error: Exception) -> str:
    if isinstance(error, ExecutionTimeoutError):
        return error.code.value
    return type(error).__name__
