"""
Faucet bot entrypoint.

This module launches the Discord faucet runtime as an independent
process. It owns:

- startup configuration validation (before any network I/O)
- event loop creation
- lifecycle wiring
- orderly startup and shutdown

Exit status:
- 0 on orderly shutdown
- 1 if configuration is missing or invalid, or the runtime crashes
"""

import asyncio
import signal
import sys

from dotenv import load_dotenv

from shared.logging.logger import get_logger
from shared.config.faucet import load_faucet_config
from services.faucet.errors import ConfigInvalid, ConfigMissing
from runtime.version import as_string

log = get_logger("core.faucet_app")


# ----------------------------------------------------------------------
# MAIN ASYNC ENTRYPOINT
# ----------------------------------------------------------------------

async def main(config, stop_event: asyncio.Event) -> int:
    # Imported here so a bad config exits before web3 / discord load.
    from services.discord.runtime.supervisor import DiscordSupervisor

    log.info(f"{as_string()} booting")

    supervisor = DiscordSupervisor(config)

    # --------------------------------------------------
    # START DISCORD RUNTIME
    # --------------------------------------------------
    try:
        await supervisor.start()
    except Exception as e:
        log.error(f"Failed to start Discord supervisor: {e}")
        raise

    # --------------------------------------------------
    # BLOCK UNTIL SHUTDOWN SIGNAL OR CLIENT EXIT
    # --------------------------------------------------
    stop_task = asyncio.create_task(stop_event.wait())
    client_task = asyncio.create_task(supervisor.wait())

    done, _ = await asyncio.wait(
        {stop_task, client_task},
        return_when=asyncio.FIRST_COMPLETED,
    )

    exit_code = 0
    if client_task in done and client_task.exception() is not None:
        log.error(f"Discord runtime exited with error: {client_task.exception()}")
        exit_code = 1

    log.info("Faucet shutdown initiated")

    for task in (stop_task, client_task):
        if not task.done():
            task.cancel()

    # --------------------------------------------------
    # ORDERLY SHUTDOWN
    # --------------------------------------------------
    try:
        await supervisor.shutdown()
    except Exception as e:
        log.warning(f"Discord supervisor shutdown error ignored: {e}")

    log.info("Faucet runtime stopped")
    return exit_code


# ----------------------------------------------------------------------
# SIGNAL HANDLING (WINDOWS-SAFE)
# ----------------------------------------------------------------------

def _install_signal_handlers(
    loop: asyncio.AbstractEventLoop,
    stop_event: asyncio.Event,
):
    """
    Windows-safe Ctrl+C handler.
    Uses signal.signal + asyncio.Event to unwind cleanly.
    """

    def _handler(signum, frame):
        loop.call_soon_threadsafe(stop_event.set)

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


# ----------------------------------------------------------------------
# ENTRYPOINT
# ----------------------------------------------------------------------

def run() -> int:
    load_dotenv()

    # --------------------------------------------------
    # CONFIG FIRST: nothing connects before this passes
    # --------------------------------------------------
    try:
        config = load_faucet_config()
    except (ConfigMissing, ConfigInvalid) as e:
        log.error(f"❌ {e}")
        return 1

    stop_event = asyncio.Event()

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    _install_signal_handlers(loop, stop_event)

    exit_code = 1
    try:
        exit_code = loop.run_until_complete(main(config, stop_event))

    except KeyboardInterrupt:
        log.info("KeyboardInterrupt received, shutdown initiated")
        exit_code = 0

    finally:
        # --------------------------------------------------
        # CANCEL REMAINING TASKS (CLEANLY)
        # --------------------------------------------------
        pending = [t for t in asyncio.all_tasks(loop) if not t.done()]
        for task in pending:
            task.cancel()

        if pending:
            loop.run_until_complete(
                asyncio.gather(*pending, return_exceptions=True)
            )

        # --------------------------------------------------
        # FINAL LOOP CLEANUP
        # --------------------------------------------------
        loop.run_until_complete(loop.shutdown_asyncgens())

        asyncio.set_event_loop(None)
        loop.close()

    return exit_code


if __name__ == "__main__":
    sys.exit(run())
