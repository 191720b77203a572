import logging
import threading
import time
from collections import namedtuple

from nuxswitch import events, utils
from nuxswitch.miners.miner import (HeartbeatTimeout, LaunchFailure,
                                    parse_speed, SwitchConflict,
                                    WorkerDisabled, WorkerUnrecoverable)


# check() results
OK = 'ok'
CRASHED = 'crashed'
RESTARTED = 'restarted'
UNRECOVERABLE = 'unrecoverable'


SessionInfo = namedtuple('SessionInfo', ['algorithm', 'started',
                                         'last_heartbeat', 'hashrate'])


class MiningSession(object):

    def __init__(self, algorithm, handle, started):
        self.algorithm = algorithm
        self.handle = handle
        self.started = started
        self.last_heartbeat = started
        # rolling estimate; None until the first heartbeat
        self.hashrate = None
        # identifies output from this particular process
        self.token = object()

    def info(self):
        return SessionInfo(self.algorithm, self.started, self.last_heartbeat,
                           self.hashrate)


class WorkerSupervisor(object):
    """Owns the worker process for one device.

    Lifecycle operations (start, stop, switch_to, halt, and crash recovery in
    check) are serialized by a per-device lock.
    """

    def __init__(self, device, algorithms, launcher, pool, notifier=None,
                 heartbeat_timeout=180, grace_secs=10, max_failures=3,
                 backoff_secs=5.0, backoff_max=300.0, smoothing=0.3,
                 clock=time.time):
        self.device = device
        # dict of algorithm name -> Algorithm
        self._algorithms = {algorithm.name: algorithm for algorithm in algorithms}
        self._launcher = launcher
        self._pool = pool
        self._notifier = notifier
        self.heartbeat_timeout = heartbeat_timeout
        self.grace_secs = grace_secs
        self.max_failures = max_failures
        self.backoff_secs = backoff_secs
        self.backoff_max = backoff_max
        self.smoothing = smoothing
        self._clock = clock

        self._lock = threading.RLock()
        self._switch_lock = threading.Lock()
        self._heartbeat_lock = threading.Lock()
        self._session = None
        self._last_info = None
        self._halted = False
        self._failures = 0
        self._restart_at = None
        self._restart_algorithm = None

    @classmethod
    def from_settings(cls, device, algorithms, launcher, pool, nx_settings,
                      notifier=None, clock=time.time):
        worker = nx_settings['worker']
        return cls(device, algorithms, launcher, pool, notifier=notifier,
                   heartbeat_timeout=worker['heartbeat_timeout'],
                   grace_secs=worker['grace_secs'],
                   max_failures=worker['max_failures'],
                   backoff_secs=worker['backoff_secs'],
                   backoff_max=worker['backoff_max'],
                   smoothing=worker['smoothing'], clock=clock)

    @property
    def running(self):
        return self._session is not None

    @property
    def switching(self):
        return self._switch_lock.locked()

    @property
    def halted(self):
        return self._halted

    @property
    def failures(self):
        return self._failures

    @property
    def algorithm(self):
        session = self._session
        return None if session is None else session.algorithm

    def session_info(self):
        session = self._session
        return None if session is None else session.info()

    def last_session_info(self):
        """The live session, or else the last one that ran."""
        session = self._session
        return self._last_info if session is None else session.info()

    def start(self, algorithm):
        with self._lock:
            self._check_enabled()
            self._stop_locked()
            self._reset_recovery()
            self._launch_locked(algorithm)

    def stop(self):
        with self._lock:
            self._reset_recovery()
            self._stop_locked()

    def switch_to(self, algorithm):
        """Replace the running worker; refuses to overlap another switch."""
        if not self._switch_lock.acquire(blocking=False):
            raise SwitchConflict(f'{self.device} is already switching')
        try:
            with self._lock:
                self._check_enabled()
                self._stop_locked()
                self._reset_recovery()
                self._launch_locked(algorithm)
        finally:
            self._switch_lock.release()

    def halt(self):
        """Stop the worker and refuse to start another until resume()."""
        with self._lock:
            self._halted = True
            self._reset_recovery()
            self._stop_locked()

    def resume(self):
        with self._lock:
            self._halted = False
            self._failures = 0

    def heartbeat(self, hashrate, token=None):
        session = self._session
        if session is None or (token is not None and token is not session.token):
            return
        with self._heartbeat_lock:
            session.last_heartbeat = self._clock()
            if session.hashrate is None:
                session.hashrate = hashrate
            else:
                session.hashrate = (self.smoothing*hashrate
                                    + (1.0 - self.smoothing)*session.hashrate)
            self._failures = 0
        self._notify(events.WORKER_HEARTBEAT, device=self.device.uuid,
                     algorithm=session.algorithm, hashrate=hashrate)

    def check(self):
        """Watch for a dead or silent worker and run crash recovery.

        Returns OK, CRASHED, RESTARTED, UNRECOVERABLE, or None if there is
        nothing to watch.
        """
        with self._lock:
            now = self._clock()
            session = self._session
            if session is None:
                if (self._restart_at is not None and not self._halted
                        and now >= self._restart_at):
                    algorithm = self._restart_algorithm
                    self._restart_at = self._restart_algorithm = None
                    logging.info(f'Restarting {algorithm} on {self.device}')
                    try:
                        self._launch_locked(algorithm)
                    except LaunchFailure as err:
                        logging.warning(f'{self.device}: {err}')
                        return self._crashed_locked(algorithm, now)
                    else:
                        return RESTARTED
                return None

            try:
                self._watch_locked(session, now)
            except HeartbeatTimeout as err:
                logging.warning(f'{self.device}: {err}')
                self._stop_locked()
                return self._crashed_locked(session.algorithm, now)
            else:
                return OK

    def _watch_locked(self, session, now):
        if not self._launcher.is_alive(session.handle):
            raise HeartbeatTimeout(f'{session.algorithm} exited')
        elif now - session.last_heartbeat > self.heartbeat_timeout:
            silence = utils.format_time(now - session.last_heartbeat)
            raise HeartbeatTimeout(f'{session.algorithm} has not reported in '
                                   + silence.strip())

    def _check_enabled(self):
        if self._halted and self._failures >= self.max_failures:
            raise WorkerUnrecoverable(f'{self.device} gave up after '
                                      + f'{self._failures} failures')
        elif self._halted:
            raise WorkerDisabled(f'{self.device} is disabled')

    def _reset_recovery(self):
        self._restart_at = self._restart_algorithm = None
        with self._heartbeat_lock:
            self._failures = 0

    def _launch_locked(self, algorithm):
        runnable = self._algorithms.get(algorithm)
        if runnable is None or not runnable.accepts(self.device):
            raise LaunchFailure(f'{algorithm} does not run on {self.device}')
        try:
            argv = runnable.launch_args(self.device, self._pool)
        except (KeyError, IndexError, ValueError) as err:
            raise LaunchFailure(f'bad arguments for {algorithm}: {err!r}') from err
        session = MiningSession(algorithm, None, self._clock())
        token = session.token
        def on_output(line):
            speed = parse_speed(line)
            if speed is not None:
                self.heartbeat(speed, token=token)
        try:
            session.handle = self._launcher.start(argv, on_output=on_output)
        except OSError as err:
            raise LaunchFailure(f'could not launch {argv[0]}: {err}') from err
        self._session = session
        logging.info(f'Started {algorithm} on {self.device}')

    def _stop_locked(self):
        session = self._session
        if session is None:
            return
        handle = session.handle
        try:
            self._launcher.signal(handle)
            if not self._launcher.wait(handle, self.grace_secs):
                logging.warning(f'{session.algorithm} on {self.device} did not '
                                + 'exit, killing it')
                self._launcher.kill(handle)
                self._launcher.wait(handle)
        finally:
            self._last_info = session.info()
            self._session = None
        logging.info(f'Stopped {session.algorithm} on {self.device}')

    def _crashed_locked(self, algorithm, now):
        with self._heartbeat_lock:
            self._failures += 1
            attempt = self._failures
        self._notify(events.WORKER_CRASHED, device=self.device.uuid,
                     algorithm=algorithm, attempt=attempt)
        if attempt >= self.max_failures:
            self._halted = True
            logging.error(f'{algorithm} on {self.device} failed {attempt} '
                          + 'times in a row, giving up')
            self._notify(events.WORKER_UNRECOVERABLE, device=self.device.uuid,
                         algorithm=algorithm)
            return UNRECOVERABLE
        delay = min(self.backoff_secs*2**(attempt - 1), self.backoff_max)
        self._restart_at = now + delay
        self._restart_algorithm = algorithm
        logging.info(f'Restarting {algorithm} on {self.device} in '
                     + f'{utils.format_time(delay).strip()}')
        return CRASHED

    def _notify(self, name, **kwargs):
        if self._notifier is not None:
            self._notifier.send(name, **kwargs)
