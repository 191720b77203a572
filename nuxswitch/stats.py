import threading
import time

from nuxswitch import events
from nuxswitch.switching.switcher import SWITCHING


class StatsAggregator(object):
    """Fleet-wide read-only view of every device's session."""

    def __init__(self, supervisors, decisions, calculator, notifier=None,
                 clock=time.time):
        # dict of device uuid -> WorkerSupervisor
        self._supervisors = supervisors
        self._decisions = decisions
        self._calculator = calculator
        self._notifier = notifier
        self._clock = clock
        self._lock = threading.Lock()
        # dict of device uuid -> last unrecoverable algorithm
        self._errors = {}
        if notifier is not None:
            notifier.subscribe(self._on_unrecoverable,
                               events.WORKER_UNRECOVERABLE)

    def _on_unrecoverable(self, device, algorithm):
        with self._lock:
            self._errors[device] = f'{algorithm} is unrecoverable'

    def clear_error(self, device_id):
        with self._lock:
            self._errors.pop(device_id, None)

    def snapshot(self):
        now = self._clock()
        statuses = self._decisions.statuses()
        with self._lock:
            errors = dict(self._errors)
        stats = {}
        for device_id, supervisor in self._supervisors.items():
            status = statuses[device_id]
            info = supervisor.session_info()
            if info is None and (status.state == SWITCHING
                                 or supervisor.switching):
                # Mid-switch; report what ran last.
                info = supervisor.last_session_info()
            state = SWITCHING if supervisor.switching else status.state
            if info is None:
                stats[device_id] = {
                    'algorithm': status.algorithm,
                    'hashrate': None,
                    'uptime': 0.0,
                    'state': state,
                    'payrate': 0.0,
                    'error': errors.get(device_id)
                    }
            else:
                stats[device_id] = {
                    'algorithm': info.algorithm,
                    'hashrate': info.hashrate,
                    'uptime': max(0.0, now - info.started),
                    'state': state,
                    'payrate': self._calculator.revenue(info.algorithm,
                                                        info.hashrate),
                    'error': errors.get(device_id)
                    }
        return stats

    def total_payrate(self, stats=None):
        if stats is None:
            stats = self.snapshot()
        return sum(device['payrate'] for device in stats.values())

    def publish(self):
        stats = self.snapshot()
        if self._notifier is not None:
            self._notifier.send(events.MINING_STATUS, stats=stats)
        return stats
