"""Main entry point - runs the API and the pending-transfer reconciler."""

import asyncio
import logging
import signal

import uvicorn

from liquidesk.api.app import create_app
from liquidesk.config import get_settings
from liquidesk.container import build_services
from liquidesk.ledger.database import close_db, init_db

logger = logging.getLogger(__name__)


class Application:
    """Main application that runs the API and the reconciler loop."""

    def __init__(self):
        self.settings = get_settings()
        self.services = None
        self._shutdown_event = asyncio.Event()

    async def start(self):
        """Start all services."""
        # Configure logging
        log_level = logging.DEBUG if self.settings.debug else logging.INFO
        logging.basicConfig(
            level=log_level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )

        logger.info("Starting Liquidesk...")
        logger.info(f"Environment: {self.settings.environment}")
        if self.settings.dry_run:
            logger.warning("DRY_RUN enabled - wallets, transfers and bank lookups are simulated")

        await init_db()
        logger.info("Database initialized")

        self.services = build_services(self.settings)

        tasks = [asyncio.create_task(self._run_api())]
        logger.info("API task created")

        if self.settings.reconcile_interval_seconds > 0:
            tasks.append(asyncio.create_task(self._run_reconciler()))
            logger.info("Reconciler task created")
        else:
            logger.warning("RECONCILE_INTERVAL_SECONDS is 0 - reconciler disabled")

        # Wait for shutdown signal
        await self._shutdown_event.wait()

        # Cancel all tasks
        for task in tasks:
            task.cancel()

        # Wait for tasks to complete
        await asyncio.gather(*tasks, return_exceptions=True)

        # Cleanup
        await self._cleanup()

    async def _run_api(self):
        """Run the FastAPI server."""
        try:
            app = create_app()
            app.state.services = self.services
            config = uvicorn.Config(
                app,
                host=self.settings.api_host,
                port=self.settings.api_port,
                log_level="debug" if self.settings.debug else "info",
            )
            server = uvicorn.Server(config)
            logger.info(f"Starting API server on {self.settings.api_host}:{self.settings.api_port}")
            await server.serve()
        except asyncio.CancelledError:
            logger.info("API server cancelled")
        except Exception as e:
            logger.error(f"API error: {e}")
            raise

    async def _run_reconciler(self):
        """Periodically settle withdrawals left pending by a local timeout."""
        interval = self.settings.reconcile_interval_seconds
        try:
            while True:
                try:
                    await self.services.reconciler.run_once(
                        older_than_seconds=self.settings.reconcile_after_seconds
                    )
                except Exception as e:
                    logger.error(f"Reconciler pass failed: {e}")
                await asyncio.sleep(interval)
        except asyncio.CancelledError:
            logger.info("Reconciler cancelled")

    async def _cleanup(self):
        """Cleanup resources."""
        logger.info("Cleaning up...")
        await close_db()
        logger.info("Cleanup complete")

    def shutdown(self):
        """Signal shutdown."""
        logger.info("Shutdown requested")
        self._shutdown_event.set()


def main():
    """Main entry point."""
    app = Application()

    # Setup signal handlers
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, app.shutdown)

    try:
        loop.run_until_complete(app.start())
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
    finally:
        loop.close()


if __name__ == "__main__":
    main()
