"""Tiered-fallback execution against the external analysis engine."""

from __future__ import annotations

import logging
from collections.abc import Mapping

from research_relay.config import FORBIDDEN_ENGINE_FLAGS, EngineConfig
from research_relay.engine.output import (
    StructuredOutput,
    extract_files_referenced,
    parse_engine_output,
)
from research_relay.engine.runner import (
    CommandError,
    CommandFailedError,
    CommandNotFoundError,
    CommandRunner,
)
from research_relay.errors import (
    AuthenticationMissingError,
    EngineNotFoundError,
    ExecutionFailedError,
    QuotaExhaustedError,
    RelayError,
)
from research_relay.obs.tracing import Timer
from research_relay.types import ModelTierPlan, OrchestrationResult, OutputCallback, RequestClass

logger = logging.getLogger(__name__)

SAFETY_PREAMBLE = """
You are analyzing a codebase on behalf of an AI coding agent.

CRITICAL CONSTRAINTS:
- Read-only analysis ONLY (no write, edit or shell tools are available)
- Do NOT suggest code changes, patches, or file modifications
- Do NOT attempt to use run_shell_command or write_file (not available)

OPTIMIZATION FOR TOKEN EFFICIENCY:
- The calling agent has limited context - be concise but thorough
- Prioritize KEY findings over exhaustive details
- Include file paths for all referenced code
- Use bullet points and structured formatting for clarity

OUTPUT FORMAT:
- Start with a 2-3 sentence executive summary
- Provide detailed findings with file path references
- End with a "## Files Referenced" section listing all paths examined
""".strip()

AUTO_MODEL = "auto"

_QUOTA_MARKERS = (
    "quota",
    "resource_exhausted",
    "rate limit",
    "capacity",
    "too many requests",
    "429",
)
_AUTH_MARKERS = ("auth", "login", "credential")


def build_prompt(prompt: str) -> str:
    return f"{SAFETY_PREAMBLE}\n\n---\n\nUSER REQUEST:\n{prompt}"


def failure_text(error: BaseException) -> str:
    """Lower-cased error text, including the full stderr of a failed command."""
    text = str(error)
    if isinstance(error, CommandFailedError) and error.raw_stderr:
        text = f"{text}\n{error.raw_stderr}"
    return text.lower()


def is_quota_failure(error: BaseException) -> bool:
    message = failure_text(error)
    return any(marker in message for marker in _QUOTA_MARKERS)


def is_auth_failure(error: BaseException) -> bool:
    message = failure_text(error)
    return any(marker in message for marker in _AUTH_MARKERS)


def default_tier_plans(config: EngineConfig) -> dict[RequestClass, ModelTierPlan]:
    return {
        RequestClass.FAST: ModelTierPlan(RequestClass.FAST, tuple(config.fast_tiers)),
        RequestClass.DEEP: ModelTierPlan(RequestClass.DEEP, tuple(config.deep_tiers)),
    }


class ExecutionOrchestrator:
    """Runs one prompt through the tier plan of its request class.

    Tiers are attempted strictly in order. Only quota-pattern failures advance
    to the next tier; every other failure is classified and raised at once.
    Each call keeps its own attempt state, so concurrent calls never interact.
    """

    def __init__(
        self,
        runner: CommandRunner,
        *,
        config: EngineConfig | None = None,
        tier_plans: Mapping[RequestClass, ModelTierPlan] | None = None,
    ) -> None:
        self.runner = runner
        self.config = config or EngineConfig()
        self.tier_plans = dict(tier_plans or default_tier_plans(self.config))

    def build_args(self, final_prompt: str, model: str | None) -> list[str]:
        args: list[str] = []
        if model is not None:
            args.extend([self.config.model_flag, model])
        args.extend(self.config.non_interactive_flags)
        args.extend([self.config.output_format_flag, self.config.output_format])
        args.extend([self.config.prompt_flag, final_prompt])
        _assert_read_only(args[:-1])
        return args

    async def execute(
        self,
        prompt: str,
        request_class: RequestClass,
        on_progress: OutputCallback | None = None,
    ) -> OrchestrationResult:
        plan = self.tier_plans[request_class]
        final_prompt = build_prompt(prompt)
        logger.info("Executing engine for request class: %s", request_class.value)

        with Timer() as timer:
            for attempt, model in enumerate(plan.candidates):
                tier_name = model or AUTO_MODEL
                is_last = attempt == len(plan.candidates) - 1
                logger.debug("Attempting tier %d with model: %s", attempt + 1, tier_name)
                try:
                    output = await self.runner.run(
                        self.config.binary,
                        self.build_args(final_prompt, model),
                        on_progress,
                        timeout=self.config.timeout_seconds,
                    )
                except CommandError as exc:
                    if is_quota_failure(exc) and not is_last:
                        next_name = plan.candidates[attempt + 1] or AUTO_MODEL
                        note = (
                            f"Quota exhausted for {tier_name} (tier {attempt + 1}); "
                            f"switching to fallback model {next_name}..."
                        )
                        logger.warning(note)
                        if on_progress is not None:
                            on_progress(note + "\n")
                        continue
                    raise self._classify(exc, tier_name) from exc

                result = self._normalize(output, tier_name, timer.lap_ms())
                logger.info(
                    "Engine completed in %dms with model: %s", result.latency_ms, tier_name
                )
                if attempt > 0:
                    logger.info("Fallback model completed successfully")
                return result

        raise ExecutionFailedError("Engine execution failed without a result")

    def _normalize(self, output: str, model_used: str, latency_ms: int) -> OrchestrationResult:
        parsed = parse_engine_output(output)
        if isinstance(parsed, StructuredOutput):
            return OrchestrationResult(
                text=parsed.text,
                files_referenced=extract_files_referenced(parsed.text),
                latency_ms=latency_ms,
                model_used=model_used,
                tokens_used=parsed.reply.tokens_used,
                external_call_count=parsed.reply.tool_calls,
            )
        return OrchestrationResult(
            text=parsed.text,
            files_referenced=extract_files_referenced(parsed.text),
            latency_ms=latency_ms,
            model_used=model_used,
        )

    def _classify(self, exc: CommandError, tier_name: str) -> RelayError:
        stderr = exc.stderr if isinstance(exc, CommandFailedError) else None
        details = {"model": tier_name}
        if isinstance(exc, CommandNotFoundError):
            error: RelayError = EngineNotFoundError(
                f"Engine binary '{exc.command}' was not found on PATH", details=details
            )
        elif is_quota_failure(exc):
            error = QuotaExhaustedError(
                "Quota exhausted on every model tier", stderr=stderr, details=details
            )
        elif is_auth_failure(exc):
            error = AuthenticationMissingError(
                "Engine authentication is not configured", stderr=stderr, details=details
            )
        else:
            error = ExecutionFailedError(
                f"Engine execution failed: {_headline(exc)}", stderr=stderr, details=details
            )
        logger.error("Engine failed (%s): %s", error.kind.value, error.message)
        return error


def _headline(exc: CommandError) -> str:
    if isinstance(exc, CommandFailedError):
        return f"exit code {exc.exit_code}"
    return str(exc)


def _assert_read_only(args: list[str]) -> None:
    for arg in args:
        if arg.strip().lower() in FORBIDDEN_ENGINE_FLAGS:
            raise ValueError(f"Refusing to pass write-enabling flag to engine: {arg}")
