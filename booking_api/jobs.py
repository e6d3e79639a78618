import asyncio
import logging

from sqlalchemy.orm import Session

from .database import SessionLocal
from .otp_provider import cleanup_expired_otps

logger = logging.getLogger(__name__)


def purge_expired_otps(db: Session) -> dict:
    """Delete expired OTP records and report how many went."""
    deleted = cleanup_expired_otps(db)
    if deleted:
        logger.info("Purged %s expired OTP records", deleted)
    return {"deleted_otps": deleted}


class OTPCleanupService:
    """Background loop that runs the OTP sweep outside the request path."""

    def __init__(self, interval_seconds: int, session_factory=SessionLocal):
        self.interval_seconds = interval_seconds
        self.session_factory = session_factory
        self._task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def run_once(self) -> dict:
        db = self.session_factory()
        try:
            return purge_expired_otps(db)
        finally:
            db.close()

    async def _loop(self):
        while True:
            try:
                await asyncio.to_thread(self.run_once)
            except Exception:
                logger.exception("OTP cleanup failed")
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        if self.interval_seconds <= 0:
            logger.info("OTP cleanup disabled")
            return
        if self.is_running:
            logger.warning("OTP cleanup already running")
            return
        self._task = asyncio.create_task(self._loop())
        logger.info("OTP cleanup started (every %ss)", self.interval_seconds)

    async def stop(self) -> None:
        if not self._task:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("OTP cleanup stopped")
