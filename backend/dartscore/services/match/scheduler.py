import logging
import threading
import time
from typing import Callable, Optional


logger = logging.getLogger(__name__)


def _spawn_thread(target, *args):
    worker = threading.Thread(target=target, args=args, daemon=True)
    worker.start()
    return worker


class AutosaveTimer:
    """Call ``callback`` every ``interval`` seconds on a background task.

    - ``spawn`` starts the worker (``socketio.start_background_task`` in the app,
      a daemon thread otherwise) and ``sleep`` is the matching sleep function
    - The worker sleeps in ``step`` sized slices so ``stop`` takes effect
      within one step
    - Each ``start`` bumps a generation counter; a worker from an older
      generation exits at its next wake-up, so at most one timer fires
    """

    def __init__(self, interval: float, callback: Callable[[], None],
                 spawn: Optional[Callable] = None, sleep: Optional[Callable[[float], None]] = None,
                 step: float = 1.0, name: str = 'autosave') -> None:
        self.interval = float(interval)
        self.callback = callback
        self._spawn = spawn or _spawn_thread
        self._sleep = sleep or time.sleep
        self.step = max(0.01, float(step or 1.0))
        self.name = name
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._generation % 2 == 1

    def start(self) -> None:
        with self._lock:
            if self.running:
                self._generation += 2
            else:
                self._generation += 1
            generation = self._generation
        logger.info(f"[timer-set] {self.name} interval={self.interval}s generation={generation}")
        self._spawn(self._worker, generation)

    def stop(self) -> None:
        with self._lock:
            if not self.running:
                return
            self._generation += 1
        logger.info(f"[timer-stop] {self.name}")

    def _alive(self, generation: int) -> bool:
        return self._generation == generation

    def _worker(self, generation: int) -> None:
        while self._alive(generation):
            slept = 0.0
            while slept < self.interval:
                if not self._alive(generation):
                    return
                step = min(self.step, self.interval - slept)
                self._sleep(step)
                slept += step
            if not self._alive(generation):
                logger.info(f"[timer-abort] {self.name} generation={generation} superseded")
                return
            logger.debug(f"[timer-fire] {self.name} generation={generation}")
            try:
                self.callback()
            except Exception:
                logger.exception(f"[timer-error] {self.name} callback failed")
