"""
Development entrypoint.

Loads .env, preloads the flow modules so every flow is registered before the
first request, then serves that same in-process app with uvicorn. There is
no auto-reload: a reloader would serve from a child process that never sees
this preload. For reload, run ``uvicorn execution.legal_memo.api:app --reload``.

Run with: python -m execution.legal_memo.dev
"""

import os
import logging

from dotenv import load_dotenv

logger = logging.getLogger("legal_memo.dev")


def preload_flows() -> list[str]:
    """Import the flow module and log every registered flow."""
    from . import flows  # registers the memo flows

    for flow in flows.REGISTERED_FLOWS.values():
        logger.info(
            f"Flow loaded: {flow.name} "
            f"({flow.input_schema.__name__} -> {flow.output_schema.__name__})"
        )
    return list(flows.REGISTERED_FLOWS)


def main():
    load_dotenv()
    logging.basicConfig(level=logging.INFO)

    preload_flows()

    from .config import StorageConfig

    diagnostic = StorageConfig.from_env().diagnostic()
    if diagnostic:
        logger.warning(diagnostic)

    import uvicorn
    from .api import app

    uvicorn.run(
        app,
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
    )


if __name__ == "__main__":
    main()
