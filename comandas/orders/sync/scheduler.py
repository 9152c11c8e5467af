"""
Single-consumer dispatcher for the sync engine.

Every piece of work that touches the local cache (change-feed events, timer
expiries, remote I/O completions, UI actions) is posted onto one queue and run
one task at a time. Remote I/O runs on a thread pool; only its completion
callback comes back through the queue.
"""
import logging
import queue
import threading
from concurrent.futures import ThreadPoolExecutor

logger = logging.getLogger(__name__)


class TimerHandle:
    """Cancellable handle returned by Scheduler.call_later()."""

    def __init__(self, delay):
        self.delay = delay
        self.cancelled = False
        self._timer = None

    def cancel(self):
        self.cancelled = True
        if self._timer is not None:
            self._timer.cancel()


class Scheduler:
    def __init__(self, executor=None, timer_factory=threading.Timer, max_workers=4):
        """
        Args:
            executor: concurrent.futures-style executor for remote I/O
                (a private ThreadPoolExecutor when omitted)
            timer_factory: callable(delay, function) returning a startable,
                cancellable timer (threading.Timer by default)
            max_workers: pool size when the executor is created here
        """
        self._queue = queue.Queue()
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix='order-sync-io'
        )
        self._timer_factory = timer_factory
        self._stop_event = threading.Event()
        self._closed = False

    # ========================
    # SCHEDULING
    # ========================

    def post(self, fn, *args):
        """Queue `fn(*args)` to run on the dispatcher. Safe from any thread."""
        if self._closed:
            logger.debug(f"[Scheduler] Closed, dropping task {getattr(fn, '__name__', fn)}")
            return
        self._queue.put((fn, args))

    def call_later(self, delay, fn, *args):
        handle = TimerHandle(delay)

        def fire():
            self.post(self._run_timer, handle, fn, args)

        timer = self._timer_factory(delay, fire)
        timer.daemon = True
        handle._timer = timer
        timer.start()
        return handle

    def run_io(self, fn, callback):
        """
        Run blocking `fn()` on the I/O pool, then post `callback(result, error)`
        back onto the dispatcher.
        """
        future = self._executor.submit(fn)
        future.add_done_callback(lambda f: self.post(self._complete_io, f, callback))
        return future

    def _run_timer(self, handle, fn, args):
        if handle.cancelled:
            return
        fn(*args)

    def _complete_io(self, future, callback):
        try:
            result = future.result()
        except Exception as e:
            callback(None, e)
        else:
            callback(result, None)

    # ========================
    # RUNNING
    # ========================

    def _run_task(self, fn, args):
        try:
            fn(*args)
        except Exception as e:
            # One broken handler must not stop the dispatcher
            logger.error(
                f"💥 [Scheduler] Task {getattr(fn, '__name__', fn)} failed: {e}",
                exc_info=True
            )

    def run_once(self, timeout=None):
        """Run at most one queued task. Returns True if a task ran."""
        try:
            fn, args = self._queue.get(timeout=timeout)
        except queue.Empty:
            return False
        self._run_task(fn, args)
        return True

    def drain(self):
        """Run queued tasks (including ones they post) until the queue is empty."""
        count = 0
        while True:
            try:
                fn, args = self._queue.get_nowait()
            except queue.Empty:
                return count
            self._run_task(fn, args)
            count += 1

    def run_forever(self, poll_interval=0.5):
        logger.info("🚀 [Scheduler] Dispatcher started")
        while not self._stop_event.is_set():
            self.run_once(timeout=poll_interval)
        logger.info("🛑 [Scheduler] Dispatcher stopped")

    def stop(self):
        self._stop_event.set()

    def close(self):
        self.stop()
        self._closed = True
        if self._owns_executor:
            self._executor.shutdown(wait=False)
