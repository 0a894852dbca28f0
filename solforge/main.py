import asyncio
import inspect
import logging
import re
import signal
import sys
import time
import traceback
from logging.handlers import RotatingFileHandler
from typing import Callable, Optional

from aiohttp import web

from . import __version__
from .api import create_app
from .config import AGENT_WALLET_ENV_VAR, SecretSource, Settings, SettingsSecretSource, get_settings
from .wallet import AgentWallet

SECRET_ARRAY_RE = re.compile(r"\[\s*\d{1,3}(?:\s*,\s*\d{1,3}){63}\s*\]")
REDACTED = "[REDACTED]"
SECRET_REFRESH_SECONDS = 5.0

_TRACEBACK_FORMATTER = logging.Formatter()


class SecretRedactionFilter(logging.Filter):
    """
    Masks the agent wallet secret and any 64-number array in log records.

    The secret is re-read from its source at most every ``refresh_seconds``,
    so a rotated key is picked up without querying the source per record.
    Exception and stack text is redacted along with the message.
    """

    def __init__(
        self,
        source: Optional[SecretSource] = None,
        env_var: str = AGENT_WALLET_ENV_VAR,
        refresh_seconds: float = SECRET_REFRESH_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__()
        self._source = source
        self._env_var = env_var
        self._refresh_seconds = refresh_seconds
        self._clock = clock
        self._secret: Optional[str] = None
        self._loaded_at: Optional[float] = None

    def _current_secret(self) -> Optional[str]:
        if self._source is None:
            return None
        now = self._clock()
        if self._loaded_at is None or now - self._loaded_at >= self._refresh_seconds:
            self._secret = self._source.get(self._env_var)
            self._loaded_at = now
        return self._secret

    def _redact(self, text: str) -> str:
        text = SECRET_ARRAY_RE.sub(REDACTED, text)
        secret = self._current_secret()
        if secret and secret.strip():
            secret = secret.strip()
            text = text.replace(secret, REDACTED)
            compact = re.sub(r"\s+", "", secret)
            if compact != secret:
                text = text.replace(compact, REDACTED)
        return text

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = self._redact(message)
        if redacted != message:
            record.msg = redacted
            record.args = None

        if record.exc_info and not record.exc_text:
            record.exc_text = _TRACEBACK_FORMATTER.formatException(record.exc_info)
        if record.exc_text:
            record.exc_text = self._redact(record.exc_text)
        if record.stack_info:
            record.stack_info = self._redact(record.stack_info)
        return True


class GracefulShutdown:
    def __init__(self):
        self.shutdown_event = asyncio.Event()
        self.shutdown_callbacks: list[Callable] = []
        self._shutting_down = False
        self._finished = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    def register_callback(self, callback: Callable) -> None:
        self.shutdown_callbacks.append(callback)

    def request_shutdown(self) -> None:
        """Start shutdown from synchronous code such as a signal handler."""
        if self._task is None:
            self._task = asyncio.ensure_future(self.trigger_shutdown())

    async def trigger_shutdown(self) -> None:
        """Run the callbacks once; later callers wait until they have finished."""
        if self._shutting_down:
            await self._finished.wait()
            return
        self._shutting_down = True
        self.shutdown_event.set()

        try:
            for callback in reversed(self.shutdown_callbacks):
                try:
                    if inspect.iscoroutinefunction(callback):
                        await callback()
                    else:
                        callback()
                except Exception as e:
                    logging.error(f"Shutdown callback error: {e}")
        finally:
            self._finished.set()


class ApplicationLogger:
    def __init__(self, settings: Settings, source: Optional[SecretSource] = None):
        self.settings = settings
        self.source = source
        self.logger = None

    def setup(self) -> logging.Logger:
        config = self.settings.logging

        root_logger = logging.getLogger()
        root_logger.setLevel(getattr(logging, config.level.value))
        root_logger.handlers.clear()

        redaction = SecretRedactionFilter(self.source)
        formatter = logging.Formatter(config.format, datefmt=config.date_format)

        if config.file_enabled:
            config.file_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                config.file_path,
                maxBytes=config.file_max_bytes,
                backupCount=config.file_backup_count,
                encoding="utf-8"
            )
            file_handler.setFormatter(formatter)
            file_handler.addFilter(redaction)
            root_logger.addHandler(file_handler)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        console_handler.addFilter(redaction)
        root_logger.addHandler(console_handler)

        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)
        logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
        logging.getLogger("asyncio").setLevel(logging.WARNING)

        self.logger = logging.getLogger("solforge")
        return self.logger


async def main() -> int:
    exit_code = 0
    shutdown = GracefulShutdown()
    runner: Optional[web.AppRunner] = None
    logger = logging.getLogger("solforge")

    try:
        settings = get_settings()
        source = SettingsSecretSource()
        logger = ApplicationLogger(settings, source).setup()

        wallet = AgentWallet(source)
        logger.info("=" * 60)
        logger.info("SOLFORGE AGENT STARTING")
        logger.info("=" * 60)
        logger.info(f"Version: {__version__}")
        logger.info(f"Python: {sys.version.split()[0]}")
        logger.info(f"Default network: {settings.solana.default_network}")
        logger.info(f"Agent wallet: {wallet.public_key() or 'not configured'}")
        logger.info("=" * 60)

        app = create_app(settings=settings, wallet=wallet)
        runner = web.AppRunner(app)
        await runner.setup()
        site = web.TCPSite(runner, settings.server.host, settings.server.port)
        await site.start()
        shutdown.register_callback(runner.cleanup)
        logger.info(f"Listening on http://{settings.server.host}:{settings.server.port}")

        loop = asyncio.get_running_loop()

        def signal_handler(sig):
            logger.info(f"Received signal {sig.name}")
            shutdown.request_shutdown()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))
            except NotImplementedError:
                signal.signal(sig, lambda s, f, sig=sig: signal_handler(sig))

        await shutdown.shutdown_event.wait()
        logger.info("Shutdown initiated...")

    except Exception as e:
        logger.error(f"Fatal error: {e}")
        logger.error(traceback.format_exc())
        exit_code = 1
    finally:
        await shutdown.trigger_shutdown()
        logger.info("Shutdown complete")

    return exit_code


def run() -> None:
    try:
        if sys.platform == "win32":
            asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

        exit_code = asyncio.run(main())
        sys.exit(exit_code)

    except KeyboardInterrupt:
        print("\nShutdown requested...")
        sys.exit(0)


if __name__ == "__main__":
    run()
