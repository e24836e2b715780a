import asyncio
import logging
from typing import Optional, Union

from inkwell.core.cancel import CancelToken
from inkwell.core.exceptions import GenerationCancelled, InkwellError
from inkwell.core.metrics import metrics
from inkwell.core.types import BackendKind, TokenizeResult
from inkwell.llm import create_backend
from inkwell.orchestrator.events import Event
from inkwell.orchestrator.router import EventRouter

logger = logging.getLogger(__name__)

class TokenizePreflight:
    """
    Keeps a live token count of the prompt while the user edits.

    Every schedule() supersedes the previous one: the pending count is
    cancelled before the new one starts, so a slow reply can never
    overwrite a newer count. Results are published as TOKEN_COUNT_UPDATED.
    """

    def __init__(self, router: Optional[EventRouter] = None, debounce_seconds: float = 0.5):
        self.router = router or EventRouter()
        self.debounce_seconds = debounce_seconds
        self._task: Optional[asyncio.Task] = None
        self._token: Optional[CancelToken] = None
        self.last_result: Optional[TokenizeResult] = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def schedule(self, endpoint: str, backend: Union[BackendKind, str], text: str) -> asyncio.Task:
        """Count the tokens of text once the debounce delay passes without another call."""
        self.cancel()
        self._token = CancelToken()
        self._task = asyncio.create_task(self._run(endpoint, backend, text, self._token))
        return self._task

    def cancel(self) -> None:
        if self._token is not None:
            self._token.cancel()
            self._token = None
        if self._task is not None and not self._task.done():
            self._task.cancel()
            logger.debug("Superseded pending token count")
        self._task = None

    async def _run(self, endpoint: str, backend: Union[BackendKind, str], text: str, token: CancelToken):
        await asyncio.sleep(self.debounce_seconds)
        if token.cancelled:
            return

        try:
            tokenizer = create_backend(backend)
            with metrics.timed("tokenize", {"backend": tokenizer.kind.value}):
                result = await tokenizer.tokenize(endpoint, text, token)
        except GenerationCancelled:
            return
        except Exception as e:
            if token.cancelled:
                return
            # Nobody awaits this task, so every failure goes to the event channel
            if isinstance(e, InkwellError):
                logger.warning(f"Token count failed: {e}")
            else:
                logger.error(f"Unexpected error while counting tokens: {e}", exc_info=True)
            await self.router.dispatch(Event.ERROR_OCCURRED, e)
            return

        if token.cancelled:
            return
        self.last_result = result
        logger.debug(f"Prompt is {result.token_count} tokens")
        await self.router.dispatch(Event.TOKEN_COUNT_UPDATED, result.token_count)
