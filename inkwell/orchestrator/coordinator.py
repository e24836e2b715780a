import asyncio
import logging
import time
import uuid
from typing import AsyncIterator, Optional, Union

from inkwell.core.cancel import CancelToken
from inkwell.core.exceptions import GenerationCancelled, GenerationInProgressError, InkwellError
from inkwell.core.logging import set_correlation_id
from inkwell.core.metrics import metrics
from inkwell.core.types import BackendKind, CompletionRequest, NormalizedChunk
from inkwell.interfaces.backend import ABCBackend
from inkwell.llm import create_backend
from inkwell.orchestrator.events import Event
from inkwell.orchestrator.policies import Policies
from inkwell.orchestrator.preflight import TokenizePreflight
from inkwell.orchestrator.router import EventRouter
from inkwell.orchestrator.state import ACTIVE_STATES, TERMINAL_STATES, GenerationState

logger = logging.getLogger(__name__)

class GenerationContext:
    """
    Handle on one generation, returned by CancellationCoordinator.start().

    Iterate it (once) to run the generation and receive its chunks; call
    cancel() from anywhere to stop it.
    """

    def __init__(
        self,
        coordinator: "CancellationCoordinator",
        backend: ABCBackend,
        endpoint: str,
        request: CompletionRequest,
    ):
        self.id = str(uuid.uuid4())
        self.backend = backend
        self.endpoint = endpoint
        self.request = request
        self.cancel_token = CancelToken()
        self.state = GenerationState.REQUESTING
        self.token_count = 0
        self.error: Optional[BaseException] = None
        self.request_sent = False
        self._coordinator = coordinator
        self._consumed = False
        self._cancelling = False

    @property
    def done(self) -> bool:
        return self.state in TERMINAL_STATES

    def __aiter__(self) -> AsyncIterator[NormalizedChunk]:
        if self._consumed:
            raise RuntimeError(f"Generation {self.id} has already been iterated")
        self._consumed = True
        return self._coordinator._run(self)

    async def cancel(self) -> bool:
        return await self._coordinator._cancel(self)

    def _finish(self, state: GenerationState) -> bool:
        """Enter a terminal state. Only the first call has any effect."""
        if self.done:
            return False
        logger.info(f"Generation {self.state.name} -> {state.name}",
                    extra={"old_state": self.state.name, "new_state": state.name})
        self.state = state
        return True


class CancellationCoordinator:
    """
    Owns the single in-flight generation of a client.

    start() hands out a GenerationContext and refuses a second one while the
    first is live. cancel() asks the backend to stop, fires the context's
    cancel token and arms a cooldown that delays the next generation's first
    request.
    """

    def __init__(
        self,
        router: Optional[EventRouter] = None,
        policies: Optional[Policies] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.router = router or EventRouter()
        self.policies = policies or Policies()
        self.timeout_seconds = timeout_seconds
        self.preflight = TokenizePreflight(self.router, self.policies.tokenize_debounce_seconds)
        self._active: Optional[GenerationContext] = None
        self._cooldown_until = 0.0
        self._pending_abort: Optional[asyncio.Task] = None

    @property
    def state(self) -> GenerationState:
        return self._active.state if self._active else GenerationState.IDLE

    @property
    def active(self) -> Optional[GenerationContext]:
        return self._active

    def update_prompt(self, endpoint: str, backend: Union[BackendKind, str], text: str) -> Optional[asyncio.Task]:
        """Refresh the live token count after an edit. Ignored while generating."""
        if self._active is not None:
            return None
        return self.preflight.schedule(endpoint, backend, text)

    def start(self, endpoint: str, backend: Union[BackendKind, str], request: CompletionRequest) -> GenerationContext:
        if self._active is not None:
            raise GenerationInProgressError(
                f"Generation {self._active.id} is {self._active.state.name}; cancel it first"
            )
        self.preflight.cancel()

        context = GenerationContext(self, create_backend(backend, self.timeout_seconds), endpoint, request)
        self._active = context
        logger.info(f"Generation {context.id} requested from {context.backend.kind.value} at {endpoint}")
        return context

    async def complete(self, endpoint: str, backend: Union[BackendKind, str], request: CompletionRequest) -> str:
        """Run a generation to the end and return its text (non-streaming convenience method)."""
        text = ""
        async for chunk in self.start(endpoint, backend, request):
            text += chunk.content
        return text

    async def cancel(self) -> bool:
        if self._active is None:
            logger.debug("Nothing to cancel")
            return False
        return await self._cancel(self._active)

    async def _cancel(self, context: GenerationContext) -> bool:
        if context.state not in ACTIVE_STATES or context._cancelling:
            return False
        context._cancelling = True

        try:
            # Nothing to stop on the server before the generation request is out
            if context.request_sent:
                await context.backend.abort(context.endpoint)
        finally:
            context.cancel_token.cancel()
            cancelled = self._settle(context, GenerationState.CANCELLED)
            self._arm_cooldown()
            if cancelled:
                await self.router.dispatch(Event.GENERATION_CANCELLED, context)
        return cancelled

    def _abandon(self, context: GenerationContext) -> None:
        """
        The consumer stopped iterating (aclose, break or task cancellation)
        without calling cancel(). Treat it as a cancellation: the server is
        told to stop in the background and the next start() waits for that
        call and for the cooldown.
        """
        context.cancel_token.cancel()
        if context._cancelling or not self._settle(context, GenerationState.CANCELLED):
            return
        self._arm_cooldown()
        self._pending_abort = asyncio.get_running_loop().create_task(self._abort_abandoned(context))

    async def _abort_abandoned(self, context: GenerationContext) -> None:
        if context.request_sent:
            try:
                await context.backend.abort(context.endpoint)
            except InkwellError as e:
                logger.warning(f"Abort of abandoned generation {context.id} failed: {e}")
                await self.router.dispatch(Event.ERROR_OCCURRED, e)
        await self.router.dispatch(Event.GENERATION_CANCELLED, context)

    def _arm_cooldown(self) -> None:
        self._cooldown_until = time.monotonic() + self.policies.cooldown_seconds

    def _settle(self, context: GenerationContext, state: GenerationState) -> bool:
        if not context._finish(state):
            return False
        metrics.increment("generations", {"outcome": state.name.lower()})
        if self._active is context:
            self._active = None
        return True

    async def _wait_cooldown(self, token: CancelToken) -> None:
        if self._pending_abort is not None:
            await asyncio.gather(self._pending_abort, return_exceptions=True)
            self._pending_abort = None

        delay = self._cooldown_until - time.monotonic()
        if delay > 0:
            logger.info(f"Waiting {delay:.2f}s after cancellation before starting")
            try:
                await asyncio.wait_for(token.wait(), delay)
            except asyncio.TimeoutError:
                pass

    async def _run(self, context: GenerationContext) -> AsyncIterator[NormalizedChunk]:
        token = context.cancel_token
        backend_tag = {"backend": context.backend.kind.value}
        set_correlation_id(context.id)
        try:
            if token.cancelled:
                return
            await self._wait_cooldown(token)
            if token.cancelled:
                return
            await self.router.dispatch(Event.GENERATION_STARTED, context)

            if self.policies.preflight_tokenize:
                with metrics.timed("tokenize", backend_tag):
                    result = await context.backend.tokenize(context.endpoint, context.request.prompt, token)
                context.token_count = result.token_count
                if result.token_count:
                    await self.router.dispatch(Event.TOKEN_COUNT_UPDATED, context.token_count)
            if token.cancelled:
                return

            context.state = GenerationState.STREAMING
            started = time.monotonic()
            first_chunk = True

            context.request_sent = True
            async for chunk in context.backend.stream_completion(context.endpoint, context.request, token):
                if token.cancelled:
                    break
                if first_chunk:
                    logger.info("Received first chunk")
                    metrics.record_latency("first_chunk", (time.monotonic() - started) * 1000, backend_tag)
                    first_chunk = False

                context.token_count += chunk.token_count
                await self.router.dispatch(Event.CHUNK_RECEIVED, chunk)
                yield chunk

            if token.cancelled:
                return
            if self._settle(context, GenerationState.COMPLETED):
                logger.info(f"Generation complete. Tokens: {context.token_count}")
                await self.router.dispatch(Event.GENERATION_COMPLETED, context)

        except GenerationCancelled:
            logger.debug("Generation cancelled while requesting")

        except asyncio.CancelledError:
            logger.info("Generation task cancelled")
            self._abandon(context)
            raise

        except Exception as e:
            if token.cancelled:
                logger.debug(f"Ignoring error raised during cancellation: {e}")
                return
            context.error = e
            self._settle(context, GenerationState.FAILED)
            logger.error(f"Error during generation: {e}", exc_info=True)
            await self.router.dispatch(Event.GENERATION_FAILED, context, e)
            raise

        finally:
            if not context.done:
                self._abandon(context)
            set_correlation_id(None)
