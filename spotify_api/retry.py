"""Bounded retry loop for Spotify API calls.

The policy is plain data (attempt bound plus which statuses refresh or retry);
``call_with_retry`` is the loop that applies it to a request-producing
coroutine function.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Iterable, Optional, Tuple

from .errors import RetriesExhaustedError, UpstreamError

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5


class Action(str, Enum):
    SUCCEED = "succeed"
    REFRESH = "refresh"
    RETRY = "retry"
    ABORT = "abort"


@dataclass(frozen=True)
class ApiErrorInfo:
    status: Optional[int]
    message: str


def extract_api_error(payload: Any) -> Optional[ApiErrorInfo]:
    """Return the error carried by a parsed response body, if any.

    Handles both shapes Spotify uses:
    - Web API: {"error": {"status": 401, "message": "..."}}
    - Accounts (OAuth): {"error": "invalid_grant", "error_description": "..."}
    """

    if not isinstance(payload, dict):
        return None

    error = payload.get("error")
    if not error:
        return None

    if isinstance(error, dict):
        status = error.get("status")
        try:
            status = int(status) if status is not None else None
        except (TypeError, ValueError):
            status = None
        return ApiErrorInfo(status=status, message=str(error.get("message") or f"Spotify API error {status}"))

    description = payload.get("error_description")
    return ApiErrorInfo(status=None, message=f"{error}: {description}" if description else str(error))


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    refresh_statuses: FrozenSet[int] = frozenset({401})
    retry_statuses: FrozenSet[int] = frozenset({403})

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "RetryPolicy":
        config = config or {}

        def _statuses(key: str, default: Iterable[int]) -> FrozenSet[int]:
            value = config.get(key)
            return frozenset(int(s) for s in (default if value is None else value))

        return cls(
            max_attempts=max(1, int(config.get("spotify_max_retries", DEFAULT_MAX_ATTEMPTS))),
            refresh_statuses=_statuses("spotify_refresh_statuses", cls.refresh_statuses),
            retry_statuses=_statuses("spotify_retry_statuses", cls.retry_statuses),
        )

    def classify(self, payload: Any) -> Tuple[Action, Optional[ApiErrorInfo]]:
        error = extract_api_error(payload)
        if error is None:
            return Action.SUCCEED, None
        if error.status in self.refresh_statuses:
            return Action.REFRESH, error
        if error.status in self.retry_statuses:
            return Action.RETRY, error
        return Action.ABORT, error


async def call_with_retry(
    send_once: Callable[[], Awaitable[Any]],
    policy: RetryPolicy,
    *,
    refresh: Optional[Callable[[], Awaitable[Any]]] = None,
    description: str = "request",
) -> Any:
    """Run ``send_once`` until it yields a non-error payload or the policy gives up.

    Exceptions raised by ``send_once`` (transport failures) and by ``refresh``
    propagate untouched. A refresh-worthy status with no ``refresh`` hook is
    terminal.
    """

    last_error: Optional[ApiErrorInfo] = None

    for attempt in range(1, policy.max_attempts + 1):
        payload = await send_once()
        action, error = policy.classify(payload)

        if action is Action.SUCCEED:
            return payload

        last_error = error

        if action is Action.REFRESH and refresh is not None:
            logger.info("%s: %s (attempt %d/%d), refreshing token", description, error.message, attempt, policy.max_attempts)
            if attempt < policy.max_attempts:
                await refresh()
            continue

        if action is Action.RETRY:
            logger.warning("%s: %s (attempt %d/%d), retrying", description, error.message, attempt, policy.max_attempts)
            continue

        raise UpstreamError(error.message, status=error.status)

    raise RetriesExhaustedError(policy.max_attempts, last_error.message if last_error else None)
