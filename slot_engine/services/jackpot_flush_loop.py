"""
Jackpot Flush Loop Service
Periodically persists jackpot pools from a background thread
"""

import logging
import threading

from slot_engine.exceptions import PersistenceException

logger = logging.getLogger(__name__)


class JackpotFlushLoop:
    """Saves a snapshot of every jackpot pool to the store on a fixed interval"""

    def __init__(self, jackpot_manager, store, interval_seconds=60):
        self.jackpot_manager = jackpot_manager
        self.store = store
        self.interval_seconds = interval_seconds
        self.running = False
        self.loop_thread = None
        self._stop_event = threading.Event()
        self.flush_count = 0
        self.last_error = None

    def start(self):
        """Start the flush loop in a background thread"""
        if self.running:
            logger.warning("Jackpot flush loop is already running")
            return

        self.running = True
        self._stop_event.clear()
        self.loop_thread = threading.Thread(target=self._run_loop, name="jackpot-flush", daemon=True)
        self.loop_thread.start()
        logger.info(f"Jackpot flush loop started (interval {self.interval_seconds}s)")

    def stop(self, final_flush=True):
        """Stop the loop; by default write one last snapshot so no contribution is lost"""
        self.running = False
        self._stop_event.set()
        if self.loop_thread:
            self.loop_thread.join(timeout=5)
            self.loop_thread = None
        if final_flush:
            self.flush_once()
        logger.info("Jackpot flush loop stopped")

    def flush_once(self):
        """Persist the current pools; errors are logged and kept for inspection"""
        try:
            saved = self.jackpot_manager.flush(self.store)
            self.flush_count += 1
            self.last_error = None
            logger.debug(f"Flushed {saved} jackpot pool(s)")
            return saved
        except PersistenceException as e:
            self.last_error = e
            logger.error(f"Error flushing jackpot pools: {e.status_message}", exc_info=True)
            return 0

    def _run_loop(self):
        """Main loop - runs in background thread"""
        while self.running:
            if self._stop_event.wait(self.interval_seconds):
                break
            try:
                self.flush_once()
            except Exception as e:
                self.last_error = e
                logger.error(f"Error in jackpot flush loop: {e}", exc_info=True)
