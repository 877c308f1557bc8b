"""Bugsnag error reporting.

ERROR-level log records are forwarded to Bugsnag. That covers unhandled
exceptions as well as the 5xx registry errors the exception handlers log.
Events raised inside a request carry its correlation id.
"""

import logging

import bugsnag
from bugsnag.handlers import BugsnagHandler

from x402_registry.platform.observability.logging import correlation_id_ctx


def attach_correlation_id(event) -> None:
    correlation_id = correlation_id_ctx.get()
    if correlation_id:
        event.add_tab("request", {"correlation_id": correlation_id})


async def initialize_bugsnag(api_key: str, release_stage: str, app_version: str | None = None) -> None:
    """Configure Bugsnag and attach its handler to the root logger.

    No-op for the ``local`` release stage.
    """
    if release_stage == "local":
        return

    bugsnag.configure(
        api_key=api_key,
        release_stage=release_stage,
        app_version=app_version,
        auto_notify=True,
        project_root="x402_registry",
    )
    bugsnag.before_notify(attach_correlation_id)

    handler = BugsnagHandler()
    handler.setLevel(logging.ERROR)
    logging.getLogger().addHandler(handler)
