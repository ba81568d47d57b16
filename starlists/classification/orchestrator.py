import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Sequence

from ..errors import ConfigurationError
from ..models import AssignmentResult, Category, ClassificationOutcome, ClassificationTarget
from .concurrency import run_with_concurrency
from .parser import recover_response
from .retry import RetryPolicy, retry_with_backoff
from .throttle import Throttle
from .validator import resolve_default_category, validate_outcomes

logger = logging.getLogger("starlists.pipeline")

CLASSIFICATION_FAILED = "classification failed"
NO_MATCHING_CATEGORY = "No matching category"


class Oracle(Protocol):
    async def classify_batch(
        self, targets: Sequence[ClassificationTarget], categories: Sequence[Category]
    ) -> str: ...


class EnrichmentSource(Protocol):
    async def fetch_text(self, item_id: str) -> Optional[str]: ...


class MembershipBackend(Protocol):
    async def resolve_backend_id(self, item_id: str) -> str: ...

    async def set_membership(self, item_backend_id: str, list_ids: List[str]) -> Any: ...


class RunPhase(str, Enum):
    IDLE = "idle"
    FETCHING_ENRICHMENT = "fetching_enrichment"
    CLASSIFYING = "classifying"
    APPLYING = "applying"
    PACING = "pacing"
    DONE = "done"


@dataclass(frozen=True)
class PipelineConfig:
    batch_size: int = 20
    max_per_item: int = 3
    min_per_item: int = 1
    apply_concurrency: int = 5
    enrichment_concurrency: int = 20
    batch_delay: float = 2.0
    item_delay: float = 0.0
    oracle_min_interval: float = 0.0
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    default_category: Optional[str] = None

    @classmethod
    def from_settings(cls, settings) -> "PipelineConfig":
        return cls(
            batch_size=settings.classify_batch_size,
            max_per_item=settings.max_categories_per_repo,
            min_per_item=settings.min_categories_per_repo,
            apply_concurrency=settings.apply_concurrency,
            enrichment_concurrency=settings.readme_concurrency,
            batch_delay=settings.batch_delay_ms / 1000,
            item_delay=settings.github_request_delay_ms / 1000,
            oracle_min_interval=60.0 / settings.ai_rpm if settings.ai_rpm > 0 else 0.0,
            retry=RetryPolicy(
                max_retries=settings.max_retries,
                initial_delay=settings.retry_delay_ms / 1000,
                max_delay=settings.retry_max_delay_ms / 1000,
            ),
            default_category=settings.default_category or None,
        )

    def validate(self) -> None:
        if self.batch_size < 1:
            raise ConfigurationError("CLASSIFY_BATCH_SIZE must be at least 1")
        if self.max_per_item < 1:
            raise ConfigurationError("MAX_CATEGORIES_PER_REPO must be at least 1")
        if self.min_per_item < 1 or self.min_per_item > self.max_per_item:
            raise ConfigurationError("MIN_CATEGORIES_PER_REPO must be between 1 and MAX_CATEGORIES_PER_REPO")
        if self.apply_concurrency < 1 or self.enrichment_concurrency < 1:
            raise ConfigurationError("Concurrency limits must be at least 1")
        if self.batch_delay < 0 or self.item_delay < 0 or self.oracle_min_interval < 0:
            raise ConfigurationError("Delays must not be negative")
        if self.retry.max_retries < 0 or self.retry.initial_delay < 0 or self.retry.max_delay < 0:
            raise ConfigurationError("Retry settings must not be negative")


@dataclass
class RunReport:
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    batches: int = 0
    fallback_ids: int = 0
    defaulted: int = 0
    failures: List[AssignmentResult] = field(default_factory=list)

    def record(self, results: Sequence[AssignmentResult]) -> None:
        for result in results:
            self.total += 1
            if result.success:
                self.succeeded += 1
            else:
                self.failed += 1
                self.failures.append(result)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "batches": self.batches,
            "fallback_ids": self.fallback_ids,
            "defaulted": self.defaulted,
            "failures": [failure.model_dump() for failure in self.failures],
        }


ProgressCallback = Callable[[RunPhase, RunReport], Awaitable[None]]


def chunk_targets(items: Sequence[Any], size: int) -> List[List[Any]]:
    if size <= 0:
        return [list(items)]
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


class BatchOrchestrator:
    def __init__(
        self,
        oracle: Oracle,
        enrichment: EnrichmentSource,
        backend: MembershipBackend,
        config: Optional[PipelineConfig] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        progress: Optional[ProgressCallback] = None,
        stop_event: Optional[asyncio.Event] = None,
    ) -> None:
        self._oracle = oracle
        self._enrichment = enrichment
        self._backend = backend
        self._config = config or PipelineConfig()
        self._sleep = sleep or asyncio.sleep
        self._progress = progress
        self._stop_event = stop_event
        self._throttle = Throttle(self._config.oracle_min_interval, sleep=self._sleep)
        self.phase = RunPhase.IDLE
        self.report = RunReport()

    async def _set_phase(self, phase: RunPhase) -> None:
        self.phase = phase
        if self._progress is not None:
            await self._progress(phase, self.report)

    async def run(
        self,
        targets: Sequence[ClassificationTarget],
        categories: Sequence[Category],
        list_ids_by_name: Dict[str, str],
    ) -> RunReport:
        self._config.validate()
        default_category = resolve_default_category(categories, self._config.default_category)
        self.report = RunReport()

        batches = chunk_targets(targets, self._config.batch_size)
        for index, batch in enumerate(batches):
            if self._stop_event is not None and self._stop_event.is_set():
                logger.info("Stop requested; skipping %s remaining batches", len(batches) - index)
                break
            logger.info("Batch %s/%s (%s items)", index + 1, len(batches), len(batch))
            fatal = await self._process_batch(batch, categories, list_ids_by_name, default_category)
            self.report.batches += 1
            if fatal is not None:
                logger.error("Aborting run after batch %s: %s", index + 1, fatal)
                raise fatal
            if index < len(batches) - 1:
                await self._set_phase(RunPhase.PACING)
                if self._config.batch_delay > 0:
                    await self._sleep(self._config.batch_delay)

        await self._set_phase(RunPhase.DONE)
        logger.info(
            "Run finished: %s succeeded, %s failed (%s batches)",
            self.report.succeeded,
            self.report.failed,
            self.report.batches,
        )
        return self.report

    async def _process_batch(
        self,
        batch: List[ClassificationTarget],
        categories: Sequence[Category],
        list_ids_by_name: Dict[str, str],
        default_category: str,
    ) -> Optional[ConfigurationError]:
        await self._set_phase(RunPhase.FETCHING_ENRICHMENT)
        enriched = await self._fetch_enrichment(batch)

        await self._set_phase(RunPhase.CLASSIFYING)
        await self._throttle.wait()
        try:
            raw = await self._oracle.classify_batch(enriched, categories)
        except ConfigurationError:
            raise
        except Exception as exc:
            logger.warning("Classification call failed for batch of %s: %s", len(batch), exc)
            self.report.record(
                [AssignmentResult(id=target.id, success=False, error=CLASSIFICATION_FAILED) for target in batch]
            )
            return None

        recovered = recover_response(raw, [target.id for target in batch])
        outcomes = validate_outcomes(
            recovered.raw_map,
            categories,
            self._config.max_per_item,
            default_category=default_category,
            fallback_ids=recovered.fallback_ids,
        )
        self.report.fallback_ids += recovered.fallback_count
        self.report.defaulted += sum(1 for outcome in outcomes.values() if outcome.source == "default")

        await self._set_phase(RunPhase.APPLYING)
        results, fatal = await self._apply(batch, outcomes, list_ids_by_name)
        self.report.record(results)
        for result in results:
            if result.success:
                logger.info("%s -> %s", result.id, ", ".join(result.applied_categories or []))
            else:
                logger.warning("%s failed: %s", result.id, result.error)
        return fatal

    async def _fetch_enrichment(self, batch: List[ClassificationTarget]) -> List[ClassificationTarget]:
        texts = await run_with_concurrency(
            batch,
            lambda target: self._enrichment.fetch_text(target.id),
            self._config.enrichment_concurrency,
        )
        enriched: List[ClassificationTarget] = []
        for target, text in zip(batch, texts):
            if isinstance(text, BaseException):
                logger.debug("Enrichment fetch raised for %s: %s", target.id, text)
                text = None
            enriched.append(target.model_copy(update={"enrichment_text": text or None}))
        return enriched

    async def _apply(
        self,
        batch: List[ClassificationTarget],
        outcomes: Dict[str, ClassificationOutcome],
        list_ids_by_name: Dict[str, str],
    ) -> tuple[List[AssignmentResult], Optional[ConfigurationError]]:
        fatal: List[ConfigurationError] = []

        async def apply_one(target: ClassificationTarget) -> AssignmentResult:
            outcome = outcomes[target.id]
            applied = [name for name in outcome.categories if name in list_ids_by_name]
            list_ids = [list_ids_by_name[name] for name in applied]
            if not list_ids:
                return AssignmentResult(id=target.id, success=False, error=NO_MATCHING_CATEGORY)

            async def assign() -> None:
                backend_id = await self._backend.resolve_backend_id(target.id)
                await self._backend.set_membership(backend_id, list_ids)

            if self._config.item_delay > 0:
                await self._sleep(self._config.item_delay)
            try:
                await retry_with_backoff(
                    assign,
                    self._config.retry,
                    label=f"Assign {target.id}",
                    no_retry_on=(ConfigurationError,),
                    sleep=self._sleep,
                )
            except ConfigurationError as exc:
                fatal.append(exc)
                return AssignmentResult(id=target.id, success=False, error=str(exc))
            except Exception as exc:
                return AssignmentResult(id=target.id, success=False, error=str(exc) or type(exc).__name__)
            return AssignmentResult(id=target.id, success=True, applied_categories=applied)

        raw_results = await run_with_concurrency(batch, apply_one, self._config.apply_concurrency)
        results: List[AssignmentResult] = []
        for target, result in zip(batch, raw_results):
            if isinstance(result, BaseException):
                results.append(AssignmentResult(id=target.id, success=False, error=str(result)))
            else:
                results.append(result)
        return results, (fatal[0] if fatal else None)
