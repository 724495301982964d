"""TestRunner: drives a stored test against one or more provider models.

Each (repetition, selection) pair becomes one run record that moves
pending -> running -> completed | failed, or pending -> dry_run for cost
estimates. Attempts are strictly sequential; a failure in one attempt never
aborts its siblings, and a rate-limit hit mid-batch returns what has been
produced so far.
"""

from __future__ import annotations

import logging
import re
import time

from pydantic import BaseModel, Field

from promptbench.adapters.base import (
    CompletionRequest,
    ProviderMessage,
    describe_error,
    elapsed_ms,
)
from promptbench.adapters.registry import AdapterRegistry
from promptbench.credentials.codec import SecretCodec, redact
from promptbench.evaluation.validation import validate_output
from promptbench.execution.cost import (
    DRY_RUN_OUTPUT_TOKENS,
    calculate_cost,
    estimate_token_count,
)
from promptbench.execution.rate_limit import RateLimiter
from promptbench.models.records import (
    ModelSelection,
    RunRecord,
    RunResult,
    RunStatus,
    StoredCredential,
    new_id,
)
from promptbench.storage.base import Store

logger = logging.getLogger(__name__)

MISSING_CREDENTIAL_MESSAGE = "API key not found or inactive"
MAX_BATCH_COUNT = 10


class RateLimitExceededError(Exception):
    """Raised when a run request is refused before any work starts."""

    def __init__(self, message: str = "") -> None:
        super().__init__(
            message or "Rate limit exceeded. Please wait a minute before running more tests."
        )


class TestNotFoundError(LookupError):
    """Raised when the requested test does not exist for this user."""

    __test__ = False

    def __init__(self, test_id: str) -> None:
        self.test_id = test_id
        super().__init__(f"Test not found: {test_id}")


class RunNotFoundError(LookupError):
    """Raised when the requested run does not exist for this user."""

    def __init__(self, run_id: str) -> None:
        self.run_id = run_id
        super().__init__(f"Run not found: {run_id}")


class NotRerunnableError(Exception):
    """Raised when rerunning a run that was not produced from a stored test."""


class CredentialInactiveError(Exception):
    """Raised when the credential a run used is gone or disabled."""


class RunOptions(BaseModel):
    """Validated input for TestRunner.run_test."""

    model_config = {"extra": "forbid"}

    test_id: str = Field(min_length=1)
    selections: list[ModelSelection] = Field(min_length=1)
    variables: dict[str, str] = Field(default_factory=dict)
    batch_count: int = Field(default=1, ge=1, le=MAX_BATCH_COUNT)
    is_dry_run: bool = False
    user_id: str = Field(min_length=1)


def substitute_variables(template: str, variables: dict[str, str]) -> str:
    """Replace each {{ key }} placeholder (whitespace tolerant) with its value.

    Values are inserted literally. Placeholders with no matching variable
    are left untouched.
    """
    result = template
    for key, value in variables.items():
        pattern = re.compile(r"\{\{\s*" + re.escape(key) + r"\s*\}\}")
        result = pattern.sub(lambda _match, v=value: v, result)
    return result


def _credential_failure(selection: ModelSelection) -> RunResult:
    return RunResult(
        id="",
        status=RunStatus.failed,
        provider=selection.provider,
        model=selection.model,
        error_message=MISSING_CREDENTIAL_MESSAGE,
    )


class TestRunner:
    """Orchestrates run records across providers for one user at a time."""

    __test__ = False

    def __init__(
        self,
        store: Store,
        registry: AdapterRegistry,
        codec: SecretCodec,
        rate_limiter: RateLimiter,
    ) -> None:
        self._store = store
        self._registry = registry
        self._codec = codec
        self._rate_limiter = rate_limiter

    async def run_test(self, options: RunOptions) -> list[RunResult]:
        """Run a stored test against every selection, batch_count times.

        Returns:
            One RunResult per attempted (repetition, selection) pair, in
            order. Shorter than the full batch when the rate limit is hit
            partway through.

        Raises:
            RateLimitExceededError: If the user is over the limit before any
                work starts (non-dry-run only).
            TestNotFoundError: If the test does not exist for this user.
        """
        if not options.is_dry_run and not self._rate_limiter.check(options.user_id).allowed:
            raise RateLimitExceededError()

        test = self._store.get_test(options.test_id, options.user_id)
        if test is None:
            raise TestNotFoundError(options.test_id)

        variables = {**test.default_variables, **options.variables}
        prompt = substitute_variables(test.prompt_template, variables)
        batch_id = new_id("batch")

        credentials = self._store.get_active_credentials(
            {s.api_key_id for s in options.selections}, options.user_id
        )

        results: list[RunResult] = []
        batch_index = 0
        for _repetition in range(options.batch_count):
            for selection in options.selections:
                if not options.is_dry_run and not self._rate_limiter.check(options.user_id).allowed:
                    logger.warning(
                        "Rate limit exceeded after %d run(s) in %s; returning partial results",
                        len(results),
                        batch_id,
                    )
                    return results

                credential = credentials.get(selection.api_key_id)
                if credential is None:
                    results.append(_credential_failure(selection))
                    continue

                record = RunRecord(
                    user_id=options.user_id,
                    test_id=test.id,
                    api_key_id=selection.api_key_id,
                    provider=selection.provider,
                    model=selection.model,
                    prompt=prompt,
                    variables=variables,
                    batch_id=batch_id,
                    batch_index=batch_index,
                    is_dry_run=options.is_dry_run,
                )
                batch_index += 1
                self._store.insert_run(record)
                results.append(
                    await self._execute(
                        record, credential, test.expected_contains, test.json_schema
                    )
                )

        return results

    async def run_adhoc_prompt(
        self,
        user_id: str,
        prompt: str,
        selection: ModelSelection,
        is_dry_run: bool = False,
    ) -> RunResult:
        """Run a one-off prompt with no stored test and no validation rules.

        Raises:
            ValueError: If prompt is empty.
            RateLimitExceededError: If the user is over the limit (non-dry-run only).
        """
        if not prompt:
            raise ValueError("Prompt is required")
        if not is_dry_run and not self._rate_limiter.check(user_id).allowed:
            raise RateLimitExceededError()

        credential = self._store.get_active_credentials([selection.api_key_id], user_id).get(
            selection.api_key_id
        )
        if credential is None:
            return _credential_failure(selection)

        record = RunRecord(
            user_id=user_id,
            test_id=None,
            api_key_id=selection.api_key_id,
            provider=selection.provider,
            model=selection.model,
            prompt=prompt,
            is_dry_run=is_dry_run,
        )
        self._store.insert_run(record)
        return await self._execute(record, credential, None, None)

    async def rerun_from_run(self, run_id: str, user_id: str) -> list[RunResult]:
        """Repeat a stored run once with its original selection and variables.

        Raises:
            RunNotFoundError: If the run does not exist for this user.
            CredentialInactiveError: If its credential is gone or disabled.
            NotRerunnableError: If the run was an ad-hoc prompt.
        """
        previous = self._store.get_run(run_id, user_id)
        if previous is None:
            raise RunNotFoundError(run_id)

        active = self._store.get_active_credentials([previous.api_key_id], user_id)
        if previous.api_key_id not in active:
            raise CredentialInactiveError("The API key used for this run is no longer active")

        if not previous.test_id:
            raise NotRerunnableError("Cannot rerun ad-hoc prompts from here")

        return await self.run_test(
            RunOptions(
                test_id=previous.test_id,
                selections=[
                    ModelSelection(
                        provider=previous.provider,
                        model=previous.model,
                        api_key_id=previous.api_key_id,
                    )
                ],
                variables=previous.variables,
                batch_count=1,
                is_dry_run=False,
                user_id=user_id,
            )
        )

    async def _execute(
        self,
        record: RunRecord,
        credential: StoredCredential,
        expected_contains: str | None,
        json_schema: str | None,
    ) -> RunResult:
        """Take one pending record to a terminal state and persist it."""
        if record.is_dry_run:
            input_tokens = estimate_token_count(record.prompt)
            estimate = calculate_cost(
                record.provider, record.model, input_tokens, DRY_RUN_OUTPUT_TOKENS
            )
            record.transition(
                RunStatus.dry_run,
                input_tokens=input_tokens,
                output_tokens=None,
                estimated_cost=estimate.cost,
                tokens_estimated=True,
                cost_estimated=True,
            )
            self._store.update_run(record)
            logger.debug("Dry run %s estimated at $%.6f", record.id, estimate.cost)
            return RunResult.from_record(record)

        record.transition(RunStatus.running)
        self._store.update_run(record)
        logger.debug("Run %s started (%s/%s)", record.id, record.provider, record.model)

        start = time.perf_counter()
        api_key: str | None = None
        try:
            adapter = self._registry.get(record.provider)
            api_key = self._codec.decrypt(credential.secret())
            request = CompletionRequest(
                messages=[ProviderMessage(role="user", content=record.prompt)],
                model=record.model,
                api_key=api_key,
                base_url=credential.base_url,
            )
            start = time.perf_counter()
            response = await adapter.complete(request)
        except Exception as exc:
            record.transition(
                RunStatus.failed,
                error_message=redact(describe_error(exc), api_key),
                latency_ms=elapsed_ms(start, time.perf_counter()),
            )
            self._store.update_run(record)
            logger.info(
                "Run %s failed (%s/%s): %s",
                record.id,
                record.provider,
                record.model,
                record.error_message,
            )
            return RunResult.from_record(record)
        finally:
            api_key = None

        latency_ms = elapsed_ms(start, time.perf_counter())
        input_tokens = (
            response.input_tokens
            if response.input_tokens is not None
            else estimate_token_count(record.prompt)
        )
        output_tokens = (
            response.output_tokens
            if response.output_tokens is not None
            else estimate_token_count(response.output)
        )
        estimate = calculate_cost(record.provider, record.model, input_tokens, output_tokens)
        validation = validate_output(response.output, expected_contains, json_schema)

        record.transition(
            RunStatus.completed,
            output=response.output,
            latency_ms=latency_ms,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
            tokens_estimated=response.tokens_estimated or response.input_tokens is None,
            estimated_cost=estimate.cost,
            cost_estimated=estimate.is_estimated,
            passed=validation.passed if validation is not None else None,
            validation_notes=validation.notes if validation is not None else None,
        )
        self._store.update_run(record)
        logger.info(
            "Run %s completed (%s/%s) in %d ms",
            record.id,
            record.provider,
            record.model,
            latency_ms,
        )
        return RunResult.from_record(record)
