"""
Extraction Runner - executes registered extractors against one context
"""

import asyncio
import inspect
import time
from typing import Any, Callable, Dict, List, Optional, Sequence
import structlog
from pydantic import BaseModel, Field

from rfcbridge.core.config import settings
from rfcbridge.extraction.context import ExtractionContext
from rfcbridge.extraction.registry import ExtractorFactory, ExtractorRegistry, registry as default_registry

logger = structlog.get_logger(__name__)

SYSTEM_INFO_ID = "SYSTEM_INFO"

ProgressCallback = Callable[[Dict[str, Any]], Any]


class RunResult(BaseModel):
    """Outcome of an extraction run"""
    results: Dict[str, Any] = Field(default_factory=dict)
    errors: Dict[str, str] = Field(default_factory=dict)
    coverage: Dict[str, Any] = Field(default_factory=dict)
    skipped: List[str] = Field(default_factory=list)
    aborted: bool = False
    duration_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return not self.aborted


class ExtractionRunner:
    """
    Runs extractors concurrently against the context's shared pool.

    SYSTEM_INFO runs alone first so later extractors see the system metadata.
    A failing extractor is recorded and the run continues, unless fail_fast
    is set and the extractor is critical; then the remaining extractors are
    cancelled and the pool is drained.
    """

    def __init__(
        self,
        context: ExtractionContext,
        registry: Optional[ExtractorRegistry] = None,
        fail_fast: bool = False,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        self.context = context
        self.registry = registry if registry is not None else default_registry
        self.fail_fast = fail_fast
        self.progress_callback = progress_callback
        self._completed = 0
        self._total = 0

    def select(self, modules: Optional[Sequence[str]] = None) -> Dict[str, ExtractorFactory]:
        """Registered factories for the requested modules, SYSTEM_INFO always included"""
        factories = self.registry.get_all()
        if modules is None:
            return factories
        wanted = set(modules)
        return {
            extractor_id: factory
            for extractor_id, factory in factories.items()
            if extractor_id == SYSTEM_INFO_ID or getattr(factory, "module", None) in wanted
        }

    async def run(
        self,
        modules: Optional[Sequence[str]] = None,
        concurrency: Optional[int] = None,
        resume: bool = False,
    ) -> RunResult:
        """
        Run the selected extractors

        Args:
            modules: Module tags to run (default: every registered extractor)
            concurrency: Maximum extractors in flight
            resume: Skip extractors that already wrote a _complete checkpoint

        Returns:
            RunResult with per-extractor results, errors and coverage reports
        """
        start_time = time.monotonic()
        concurrency = concurrency or settings.EXTRACTION_CONCURRENCY
        self.registry.freeze()

        factories = self.select(modules)
        run_result = RunResult()
        self._completed = 0
        self._total = len(factories)

        logger.info("Extraction run started",
                    mode=self.context.mode,
                    extractors=self._total,
                    concurrency=concurrency,
                    resume=resume)
        await self._report("started")

        pending: List["asyncio.Task[bool]"] = []
        try:
            system_info = factories.pop(SYSTEM_INFO_ID, None)
            if system_info is not None:
                critical_failure = await self._run_one(SYSTEM_INFO_ID, system_info, run_result, resume)
                if critical_failure and self.fail_fast:
                    await self._abort(run_result, [])

            if not run_result.aborted:
                semaphore = asyncio.Semaphore(concurrency)

                async def _bounded(extractor_id: str, factory: ExtractorFactory) -> bool:
                    async with semaphore:
                        return await self._run_one(extractor_id, factory, run_result, resume)

                pending = [
                    asyncio.create_task(_bounded(extractor_id, factory), name=f"extract:{extractor_id}")
                    for extractor_id, factory in factories.items()
                ]
                for finished in asyncio.as_completed(pending):
                    critical_failure = await finished
                    if critical_failure and self.fail_fast:
                        await self._abort(run_result, pending)
                        break

        except asyncio.CancelledError:
            logger.warning("Extraction run cancelled, draining pool")
            await self._cancel(pending)
            await self._drain_pool()
            raise
        finally:
            await self._cancel(pending)

        run_result.duration_seconds = round(time.monotonic() - start_time, 3)
        await self._report("finished")
        logger.info("Extraction run finished",
                    succeeded=len(run_result.results),
                    failed=len(run_result.errors),
                    skipped=len(run_result.skipped),
                    aborted=run_result.aborted,
                    duration_seconds=run_result.duration_seconds)
        return run_result

    async def _run_one(
        self,
        extractor_id: str,
        factory: ExtractorFactory,
        run_result: RunResult,
        resume: bool
    ) -> bool:
        """Run one extractor; returns True when a critical extractor failed"""
        if resume and await self.context.checkpoint.is_complete(extractor_id):
            logger.info("Skipping completed extractor", extractor_id=extractor_id)
            run_result.skipped.append(extractor_id)
            self._completed += 1
            await self._report("skipped", extractor_id)
            return False

        try:
            extractor = factory(self.context)
        except Exception as e:
            logger.error("Extractor could not be created", extractor_id=extractor_id, error=str(e))
            run_result.errors[extractor_id] = str(e)
            self._completed += 1
            await self._report("failed", extractor_id)
            return bool(getattr(factory, "critical", False))

        try:
            run_result.results[extractor_id] = await extractor.extract()
            phase = "completed"
            critical_failure = False
        except Exception as e:
            run_result.errors[extractor_id] = str(e)
            phase = "failed"
            critical_failure = extractor.is_critical
        finally:
            run_result.coverage[extractor_id] = extractor.get_coverage_report()

        self._completed += 1
        await self._report(phase, extractor_id)
        return critical_failure

    async def _abort(self, run_result: RunResult, pending: List["asyncio.Task[bool]"]):
        logger.error("Critical extractor failed, aborting run", errors=list(run_result.errors))
        run_result.aborted = True
        await self._cancel(pending)
        await self._drain_pool()

    @staticmethod
    async def _cancel(tasks: List["asyncio.Task[bool]"]):
        for task in tasks:
            if not task.done():
                task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _drain_pool(self):
        if self.context.rfc is not None and not self.context.rfc.drained:
            await self.context.rfc.drain()

    async def _report(self, phase: str, extractor_id: Optional[str] = None):
        if self.progress_callback is None:
            return
        event = {"phase": phase, "completed": self._completed, "total": self._total}
        if extractor_id is not None:
            event["extractor_id"] = extractor_id
        try:
            outcome = self.progress_callback(event)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.warning("Progress callback failed", phase=phase, extractor_id=extractor_id, error=str(e))
