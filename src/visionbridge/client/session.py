"""Classification session: request lifecycle and presentation state machine.

A submission moves the session from any state to ``Loading``, persists the
image through the host bridge, classifies the persisted image, and settles
into ``Success`` or ``Failed``. ``reset()`` returns to ``Idle`` from any state.

Overlapping submissions are resolved by generation: every ``submit`` and
``reset`` bumps the generation, and a submission that finishes after a newer
one started (or after a reset) discards its outcome.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from pydantic import ValidationError

from visionbridge.client.bridge import Command, MalformedResponseError
from visionbridge.client.result import ClassificationResult, ErrorPayload, parse_classify_response

if TYPE_CHECKING:
    from collections.abc import Callable

    from visionbridge.client.bridge import Invoker
    from visionbridge.client.gate import CandidateImage

logger = logging.getLogger(__name__)

GENERIC_FAILURE_MESSAGE = "Image classification failed"


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class Loading:
    pass


@dataclass(frozen=True)
class Success:
    result: ClassificationResult


@dataclass(frozen=True)
class Failed:
    message: str


SessionState = Idle | Loading | Success | Failed
Outcome = Success | Failed


class InvalidTransitionError(Exception):
    pass


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


def start_submission(state: SessionState) -> Loading:
    """Any state may start a new submission; the previous outcome is dropped."""
    return Loading()


def finish_submission(state: SessionState, outcome: Outcome) -> Outcome:
    if not isinstance(state, Loading):
        raise InvalidTransitionError(f"cannot settle a submission from {type(state).__name__}")
    return outcome


def reset_state(state: SessionState) -> Idle:
    return Idle()


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class ClassificationSession:
    """Owns the single state slot for one uploader."""

    def __init__(self, invoker: Invoker) -> None:
        self._invoker = invoker
        self._state: SessionState = Idle()
        self._generation = 0
        self._listeners: list[Callable[[SessionState], None]] = []

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_loading(self) -> bool:
        return isinstance(self._state, Loading)

    @property
    def result(self) -> ClassificationResult | None:
        return self._state.result if isinstance(self._state, Success) else None

    @property
    def error(self) -> str | None:
        return self._state.message if isinstance(self._state, Failed) else None

    def subscribe(self, listener: Callable[[SessionState], None]) -> Callable[[], None]:
        """Register a callback for every state change.

        Listener exceptions are logged and do not interrupt the session.
        Returns an unsubscribe function that is safe to call more than once.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def submit(self, candidate: CandidateImage) -> Outcome:
        """Persist and classify an accepted image.

        Never raises for bridge or backend failures; they become ``Failed``.
        Returns this submission's outcome, which is only applied to the
        session if no newer submission or reset happened meanwhile.
        """
        self._generation += 1
        generation = self._generation
        self._transition(start_submission(self._state))

        outcome: Outcome = Failed(GENERIC_FAILURE_MESSAGE)
        try:
            outcome = await self._run(candidate)
        except Exception as exc:
            message = _failure_message(exc)
            logger.warning("Classification of %s failed: %s", candidate.file_name, message, exc_info=exc)
            outcome = Failed(message)
        finally:
            self._settle(generation, outcome)
        return outcome

    def reset(self) -> None:
        """Clear result and error. An in-flight call keeps running but is discarded."""
        self._generation += 1
        self._transition(reset_state(self._state))

    async def _run(self, candidate: CandidateImage) -> Outcome:
        file_data = await asyncio.to_thread(list, candidate.data)

        image_path = await self._invoker.invoke(
            Command.SAVE_UPLOADED_IMAGE,
            {"fileData": file_data, "fileName": candidate.file_name},
        )
        if not isinstance(image_path, str):
            raise MalformedResponseError(f"expected an image path, got {type(image_path).__name__}")

        response = await self._invoker.invoke(Command.PROCESS_IMAGE, {"imagePath": image_path})
        parsed = parse_classify_response(response)
        if isinstance(parsed, ErrorPayload):
            logger.warning("Backend rejected %s: %s", candidate.file_name, parsed.error)
            return Failed(parsed.error)
        return Success(parsed)

    def _settle(self, generation: int, outcome: Outcome) -> None:
        if generation != self._generation:
            logger.debug("Discarding outcome of superseded submission %d", generation)
            return
        self._transition(finish_submission(self._state, outcome))

    def _transition(self, state: SessionState) -> None:
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("State listener %r failed on %s", listener, type(state).__name__)


def _failure_message(exc: Exception) -> str:
    if isinstance(exc, (ValidationError, MalformedResponseError)):
        return GENERIC_FAILURE_MESSAGE
    return str(exc).strip() or GENERIC_FAILURE_MESSAGE
