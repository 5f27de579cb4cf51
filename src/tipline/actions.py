from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional

from .errors import ExternalGatewayError, TiplineError
from .interfaces import MessagingGateway
from .models import ActionOutcome, InboundAction
from .services.error_counter import ErrorCounter

log = logging.getLogger("tipline.actions")

ActionHandler = Callable[[InboundAction], Awaitable[ActionOutcome]]


async def acknowledge(gateway: MessagingGateway, action: InboundAction, outcome: ActionOutcome) -> None:
    """Answer the button press once. Reply-commands have no action id and are answered by the router."""
    if not action.action_id:
        return
    try:
        await gateway.acknowledge_action(action.action_id, text=outcome.ack_text() or None, alert=not outcome.ok)
    except ExternalGatewayError as e:
        log.warning("Could not acknowledge action %s: %s", action.action_id, e)


async def run_action(
    handler: ActionHandler,
    action: InboundAction,
    *,
    gateway: MessagingGateway,
    error_counter: Optional[ErrorCounter] = None,
) -> ActionOutcome:
    """Run ``handler`` and acknowledge its outcome.

    Expected failures (``TiplineError``) become a failed outcome carrying the
    error's user message. Anything else propagates unacknowledged to the
    event boundary.
    """
    try:
        outcome = await handler(action)
    except TiplineError as e:
        log.info("Action %s by %s failed: %s", action.action_token, action.actor_id, e)
        if error_counter is not None:
            await error_counter.record(e.category)
        outcome = ActionOutcome(ok=False, message=e.user_message, error=e)
    await acknowledge(gateway, action, outcome)
    return outcome
