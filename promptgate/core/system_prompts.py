"""
Internal system prompts.

Named prompts the platform runs on its own behalf (naming testcases,
auditing drafts, generating inputs). They run through the orchestrator as
system-level runs, so their usage is attributed to the system organization.
Speech-to-text goes straight to whisper but is recorded the same way.
"""

import logging
import uuid
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

from promptgate.config.loader import AiVendor
from promptgate.providers.openai_client import TRANSCRIPTION_MODEL, transcribe_audio
from promptgate.storage.models import LogLevel, LogType, SourceType, UsageRecord

from .errors import ConfigNotFound
from .orchestrator import RequestOrchestrator, RunDescriptor, RunResult, StoredPrompt, SystemContext

logger = logging.getLogger(__name__)

Transcriber = Callable[..., Awaitable[str]]


class SystemPromptName(str, Enum):
    TESTCASE_NAMER = "TESTCASE_NAMER"
    TESTCASE_ASSERTION = "TESTCASE_ASSERTION"
    PROMPT_EDITOR = "PROMPT_EDITOR"
    PROMPT_AUDITOR = "PROMPT_AUDITOR"
    CONTENT_PRETTIFY = "CONTENT_PRETTIFY"
    JSON_SCHEMA_EDITOR = "JSON_SCHEMA_EDITOR"
    TOOL_EDITOR = "TOOL_EDITOR"
    INPUT_GENERATOR = "INPUT_GENERATOR"
    ASSERTION_EDITOR = "ASSERTION_EDITOR"
    COMMIT_MESSAGE_GENERATOR = "COMMIT_MESSAGE_GENERATOR"
    SPEECH_TO_TEXT = "SPEECH_TO_TEXT"


def format_to_xml(data: Mapping[str, Any]) -> str:
    """Render a mapping as newline-separated XML-style tags.

    Nested mappings are rendered recursively inside their parent tag and
    ``None`` values are skipped.

    Example:
        >>> format_to_xml({"user_query": "make it shorter", "numeric": 3})
        '<user_query>make it shorter</user_query>\\n<numeric>3</numeric>'
    """
    parts = []
    for key, value in data.items():
        if value is None:
            continue
        if isinstance(value, Mapping):
            inner = format_to_xml(value)
        else:
            inner = str(value)
        parts.append(f"<{key}>{inner}</{key}>")
    return "\n".join(parts)


class SystemPromptRunner:
    """Runs named system prompts for a caller's organization.

    Args:
        orchestrator: Orchestrator configured with a system context
        prompts: Stored prompt for each system prompt name
        transcriber: Speech-to-text call taking (api_key, audio, base_url=...)
    """

    def __init__(
        self,
        orchestrator: RequestOrchestrator,
        prompts: Mapping[str, StoredPrompt],
        transcriber: Transcriber = transcribe_audio
    ):
        self.orchestrator = orchestrator
        self.prompts = {str(getattr(k, "value", k)): v for k, v in prompts.items()}
        self.transcriber = transcriber

    def register(self, name: Any, prompt: StoredPrompt) -> None:
        self.prompts[str(getattr(name, "value", name))] = prompt

    def get_prompt(self, name: Any) -> StoredPrompt:
        key = str(getattr(name, "value", name))
        prompt: Optional[StoredPrompt] = self.prompts.get(key)
        if prompt is None:
            raise ConfigNotFound(f"System prompt {key} not found")
        return prompt

    async def run(self, name: Any, question: str, org_id: int, project_id: Optional[int] = None) -> RunResult:
        """Run a system prompt.

        The caller's organization funds the call (quota and credential),
        while the usage record goes to the system organization.

        Raises:
            ConfigNotFound: If the system prompt is not registered
        """
        prompt = self.get_prompt(name)
        return await self.orchestrator.run(RunDescriptor(
            prompt=prompt,
            question=question,
            org_id=org_id,
            project_id=project_id,
            instruction_override=prompt.instruction,
            system_level=True,
            source=SourceType.UI.value,
        ))

    async def transcribe(
        self,
        audio: Union[str, bytes],
        org_id: int,
        user_id: Optional[int] = None,
        user_email: Optional[str] = None
    ) -> str:
        """Transcribe a caller's audio with whisper.

        The credential is resolved from the caller's quota, but nothing is
        charged. The usage record goes to the system organization without a
        user id; the caller is only named in the record's input text.

        Args:
            audio: Audio bytes or a base64 data URL
            org_id: Caller's organization
            user_id: Caller, for the record's input text
            user_email: Caller's email, for the record's input text

        Returns:
            Plain-text transcription

        Raises:
            ConfigNotFound: If speech-to-text, the system organization or the quota is missing
        """
        prompt = self.get_prompt(SystemPromptName.SPEECH_TO_TEXT)
        system_context = self.orchestrator.system_context
        if system_context is None:
            raise ConfigNotFound("System organization not configured")

        quota_gate = self.orchestrator.quota_gate
        balance = await quota_gate.get_quota(org_id)
        credential = await quota_gate.resolve_credential(org_id, AiVendor.OPENAI.value, balance)

        attempt_id = uuid.uuid4().hex
        input_text = f"**binary audio** from user {user_email}({user_id})"
        try:
            transcription = await self.transcriber(
                credential.api_key, audio, base_url=credential.base_url
            )
        except Exception as e:
            logger.error("Transcription failed for org %s: %s", org_id, e)
            await self.orchestrator.record_usage(self._transcription_record(
                prompt, system_context, attempt_id, input_text, "", error=e
            ))
            raise

        await self.orchestrator.record_usage(self._transcription_record(
            prompt, system_context, attempt_id, input_text, transcription
        ))
        return transcription

    def _transcription_record(
        self,
        prompt: StoredPrompt,
        system_context: SystemContext,
        attempt_id: str,
        input_text: str,
        output: str,
        error: Optional[Exception] = None
    ) -> UsageRecord:
        failed = error is not None
        return UsageRecord(
            timestamp=self.orchestrator.now(),
            source=SourceType.API.value,
            log_type=(LogType.AI_ERROR if failed else LogType.PROMPT_RUN_SUCCESS).value,
            log_level=(LogLevel.ERROR if failed else LogLevel.SUCCESS).value,
            org_id=system_context.org_id,
            project_id=system_context.project_id,
            prompt_id=prompt.id,
            user_id=None,
            vendor=AiVendor.OPENAI.value,
            model=TRANSCRIPTION_MODEL,
            tokens_in=0,
            tokens_out=0,
            tokens_sum=0,
            cost=0.0,
            response_ms=0,
            input=input_text,
            output=output,
            description=(str(error) or "Error occurred") if failed else None,
            attempt_id=attempt_id,
        )
