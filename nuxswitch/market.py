import logging
import sched
import threading
import time
from collections import namedtuple
from types import MappingProxyType


class FeedUnavailable(Exception):
    pass


class MarketSnapshot(namedtuple('MarketSnapshot', ['rates', 'timestamp'])):
    """Pay rate per unit hashrate for each algorithm, as of timestamp."""

    __slots__ = ()

    def __new__(cls, rates, timestamp):
        return super(MarketSnapshot, cls).__new__(
            cls, MappingProxyType(dict(rates)), timestamp)

    def rate(self, algorithm):
        return self.rates.get(algorithm, 0.0)


class MarketFeed(object):
    """Poll a market source on an interval and keep the latest snapshot.

    source -- callable returning dict of algorithm name -> pay rate
    """

    POLL_PRIORITY = 1
    STOP_PRIORITY = 0

    def __init__(self, source, interval=60, stale_secs=300, max_failures=3,
                 clock=time.time):
        self._source = source
        self.interval = interval
        self.stale_secs = stale_secs
        self.max_failures = max_failures
        self._clock = clock
        self._snapshot = None
        self._failures = 0
        self._first_data = threading.Event()
        self._stop_signal = threading.Event()
        self._scheduler = sched.scheduler(
            time.time, lambda t: self._stop_signal.wait(t))
        self._thread = None

    @classmethod
    def from_settings(cls, source, nx_settings, clock=time.time):
        market = nx_settings['market']
        return cls(source, interval=market['interval'],
                   stale_secs=market['stale_secs'],
                   max_failures=market['max_failures'], clock=clock)

    @property
    def failures(self):
        """Number of consecutive failed polls."""
        return self._failures

    def poll(self):
        try:
            rates = self._source()
            snapshot = MarketSnapshot(
                {algorithm: float(rate) for algorithm, rate in rates.items()},
                self._clock())
        except Exception as err:
            self._failures += 1
            raise FeedUnavailable(str(err)) from err
        self._snapshot = snapshot
        self._failures = 0
        self._first_data.set()
        return snapshot

    def current_snapshot(self):
        return self._snapshot

    def wait_for_first_snapshot(self, timeout=None):
        """Block until one poll has succeeded; False if timeout ran out first."""
        return self._first_data.wait(timeout)

    def age(self):
        snapshot = self._snapshot
        if snapshot is None:
            return None
        return self._clock() - snapshot.timestamp

    def is_stale(self):
        snapshot = self._snapshot
        if snapshot is None:
            return True
        elif self._failures >= self.max_failures:
            return True
        else:
            return self._clock() - snapshot.timestamp > self.stale_secs

    def start(self):
        if self._thread is not None:
            return
        self._stop_signal.clear()
        self._scheduler.enter(0, MarketFeed.POLL_PRIORITY, self._poll_again)
        self._thread = threading.Thread(target=self._scheduler.run,
                                        name='market-feed', daemon=True)
        self._thread.start()

    def stop(self):
        if self._thread is None:
            return
        self._scheduler.enter(0, MarketFeed.STOP_PRIORITY, self._stop_polling)
        self._stop_signal.set()
        self._thread.join()
        self._thread = None

    def _poll_again(self):
        try:
            snapshot = self.poll()
        except FeedUnavailable as err:
            logging.warning(f'Market data: {err} ({self._failures} '
                            + 'consecutive failures)')
        else:
            logging.debug(f'Market data: {len(snapshot.rates)} algorithms')
        if not self._stop_signal.is_set():
            self._scheduler.enter(self.interval, MarketFeed.POLL_PRIORITY,
                                  self._poll_again)

    def _stop_polling(self):
        for job in self._scheduler.queue:
            self._scheduler.cancel(job)
