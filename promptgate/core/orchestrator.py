"""
Request orchestration.

Runs one prompt against its model's vendor as a single attempt:

    resolve context -> resolve credential -> apply memory -> dispatch
        success: compute cost -> charge quota -> record success -> return
        failure: record failure -> re-raise the original error

Failures before credential resolution (missing prompt, quota, model or
system context) are raised without a usage record. From credential
resolution on, every attempt produces exactly one usage record.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Protocol, Tuple

from promptgate.providers import ProviderRegistry, ProviderRequest, ProviderResponse
from promptgate.storage.models import LanguageModel, LogLevel, LogType, SourceType, UsageRecord

from .errors import ConfigNotFound
from .pricing import CostBreakdown, ModelPricing, compute_cost
from .quota import QuotaGate
from .token_counter import TokenCounts

logger = logging.getLogger(__name__)

SYSTEM_PROMPT_TAG = "system_prompt"


@dataclass(frozen=True)
class StoredPrompt:
    """A prompt as persisted, with its already-sanitized model config."""
    id: int
    instruction: str
    model_id: int
    config: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Memory:
    key: str
    value: str


@dataclass(frozen=True)
class SystemContext:
    """Organization and project that own system-level runs."""
    org_id: int
    project_id: int


@dataclass(frozen=True)
class RunDescriptor:
    """Everything a caller supplies for one run."""
    prompt: Optional[StoredPrompt]
    question: str
    org_id: int
    project_id: Optional[int] = None
    user_id: Optional[int] = None
    memory: Optional[Memory] = None
    instruction_override: Optional[str] = None
    system_level: bool = False
    source: str = SourceType.API.value
    testcase_id: Optional[int] = None
    api_key_id: Optional[int] = None


@dataclass(frozen=True)
class RunResult:
    answer: str
    tokens: TokenCounts
    cost: CostBreakdown
    response_time_ms: int
    chain_of_thoughts: Optional[str] = None
    status: Optional[str] = None


class ModelCatalog(Protocol):
    async def get_model(self, model_id: int) -> Optional[LanguageModel]: ...


class UsageRecorder(Protocol):
    """Append-only sink for usage records."""

    async def append(self, record: UsageRecord) -> None: ...


def build_instruction(descriptor: RunDescriptor) -> str:
    """Effective instruction for a run.

    The override wins over the stored instruction; memory is appended
    verbatim; system-level runs are wrapped in a delimiting envelope.
    """
    if descriptor.instruction_override is not None:
        instruction = descriptor.instruction_override
    else:
        instruction = descriptor.prompt.instruction

    if descriptor.memory is not None:
        instruction += descriptor.memory.value

    if descriptor.system_level:
        instruction = f"<{SYSTEM_PROMPT_TAG}>{instruction}</{SYSTEM_PROMPT_TAG}>"
    return instruction


class RequestOrchestrator:
    """Composes quota, dispatch, pricing and usage recording for a run.

    Runs are independent; no lock is held across them. Charging happens
    strictly after a successful dispatch and only on the success path.
    """

    def __init__(
        self,
        catalog: ModelCatalog,
        quota_gate: QuotaGate,
        providers: ProviderRegistry,
        recorder: UsageRecorder,
        system_context: Optional[SystemContext] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.catalog = catalog
        self.quota_gate = quota_gate
        self.providers = providers
        self.recorder = recorder
        self.system_context = system_context
        self._clock = clock

    def now(self) -> datetime:
        """Timestamp for usage records."""
        return self._clock()

    def _attribution(self, descriptor: RunDescriptor) -> Tuple[int, Optional[int], Optional[int]]:
        """(org_id, project_id, user_id) the usage record is written under."""
        if not descriptor.system_level:
            return descriptor.org_id, descriptor.project_id, descriptor.user_id
        if self.system_context is None:
            raise ConfigNotFound("System organization not configured")
        # User identity is never recorded for system-level runs
        return self.system_context.org_id, self.system_context.project_id, None

    async def run(self, descriptor: RunDescriptor) -> RunResult:
        """Execute a prompt run.

        Args:
            descriptor: Prompt, question and caller context

        Returns:
            RunResult with answer, tokens, cost and latency

        Raises:
            ConfigNotFound: If the prompt, quota, model or system context is missing
            Any error from credential resolution or dispatch, unmodified
        """
        prompt = descriptor.prompt
        if prompt is None:
            raise ConfigNotFound("Prompt not found")

        balance = await self.quota_gate.get_quota(descriptor.org_id)

        model = await self.catalog.get_model(prompt.model_id)
        if model is None:
            raise ConfigNotFound(f"Model with id {prompt.model_id} not found")

        org_id, project_id, user_id = self._attribution(descriptor)
        attempt_id = uuid.uuid4().hex

        try:
            credential = await self.quota_gate.resolve_credential(
                descriptor.org_id, model.vendor, balance, bound_key_id=model.api_key_id
            )

            request = ProviderRequest(
                api_key=credential.api_key,
                base_url=credential.base_url,
                model=model.name,
                instruction=build_instruction(descriptor),
                question=descriptor.question,
                parameters=dict(prompt.config or {}),
                prompt_price=model.prompt_price,
                completion_price=model.completion_price,
            )
            completion = await self.providers.dispatch(model.vendor, request)

            cost = compute_cost(
                completion.tokens.as_usage(),
                ModelPricing(
                    prompt_per_million=model.prompt_price,
                    completion_per_million=model.completion_price
                )
            )
            await self.quota_gate.charge(descriptor.org_id, credential, cost.total, attempt_id)
        except Exception as e:
            logger.error("Prompt %s run failed on %s/%s: %s", prompt.id, model.vendor, model.name, e)
            await self.record_usage(self._failure_record(
                descriptor, model, org_id, project_id, user_id, attempt_id, e
            ))
            raise

        await self.record_usage(self._success_record(
            descriptor, model, org_id, project_id, user_id, attempt_id, completion, cost
        ))

        return RunResult(
            answer=completion.answer,
            tokens=completion.tokens,
            cost=cost,
            response_time_ms=completion.response_time_ms,
            chain_of_thoughts=completion.chain_of_thoughts,
            status=completion.status,
        )

    async def record_usage(self, record: UsageRecord) -> None:
        # Telemetry is fire-and-forget; a failed write never changes the run outcome.
        try:
            await self.recorder.append(record)
        except Exception:
            logger.exception("Failed to record usage for attempt %s", record.attempt_id)

    def _success_record(
        self,
        descriptor: RunDescriptor,
        model: LanguageModel,
        org_id: int,
        project_id: Optional[int],
        user_id: Optional[int],
        attempt_id: str,
        completion: ProviderResponse,
        cost: CostBreakdown
    ) -> UsageRecord:
        return UsageRecord(
            timestamp=self.now(),
            source=descriptor.source,
            log_type=LogType.PROMPT_RUN_SUCCESS.value,
            log_level=LogLevel.SUCCESS.value,
            org_id=org_id,
            project_id=project_id,
            prompt_id=descriptor.prompt.id,
            user_id=user_id,
            vendor=model.vendor,
            model=model.name,
            tokens_in=completion.tokens.prompt,
            tokens_out=completion.tokens.completion,
            tokens_sum=completion.tokens.total,
            cost=cost.total,
            response_ms=completion.response_time_ms,
            input=descriptor.question,
            output=completion.answer,
            memory_key=descriptor.memory.key if descriptor.memory else None,
            testcase_id=descriptor.testcase_id,
            api_key_id=descriptor.api_key_id,
            attempt_id=attempt_id,
        )

    def _failure_record(
        self,
        descriptor: RunDescriptor,
        model: LanguageModel,
        org_id: int,
        project_id: Optional[int],
        user_id: Optional[int],
        attempt_id: str,
        error: Exception
    ) -> UsageRecord:
        return UsageRecord(
            timestamp=self.now(),
            source=descriptor.source,
            log_type=LogType.AI_ERROR.value,
            log_level=LogLevel.ERROR.value,
            org_id=org_id,
            project_id=project_id,
            prompt_id=descriptor.prompt.id,
            user_id=user_id,
            vendor=model.vendor,
            model=model.name,
            tokens_in=0,
            tokens_out=0,
            tokens_sum=0,
            cost=0.0,
            response_ms=0,
            input=descriptor.question,
            output="",
            memory_key=descriptor.memory.key if descriptor.memory else None,
            description=str(error) or "Error occurred",
            testcase_id=descriptor.testcase_id,
            api_key_id=descriptor.api_key_id,
            attempt_id=attempt_id,
        )
