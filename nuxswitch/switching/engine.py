import logging
import threading
import time
from collections import namedtuple

from nuxswitch import events
from nuxswitch.switching.switcher import (Decision, IDLE, RUNNING, SELECTING,
                                          START, STOPPED, SWITCH, SWITCHING)


DeviceStatus = namedtuple('DeviceStatus', ['state', 'algorithm', 'target',
                                           'since', 'enabled', 'forced'])


class _DeviceState(object):

    def __init__(self):
        self.state = IDLE
        self.enabled = False
        # running algorithm, or the one being switched away from
        self.algorithm = None
        # algorithm being started while SWITCHING
        self.target = None
        # when algorithm began running; dwell time counts from here
        self.since = None
        # manual override
        self.forced = None

    def status(self):
        return DeviceStatus(self.state, self.algorithm, self.target, self.since,
                            self.enabled, self.forced)


class SwitchingEngine(object):
    """Per-device state machine deciding which algorithm each device runs.

    idle -> selecting -> switching -> running -> switching -> running ...
    Any state goes to stopped on disable(); enable() returns to selecting.
    Decisions are returned to the caller to carry out, which then reports back
    through confirm(), launch_failed(), or revert().
    """

    def __init__(self, registry, calculator, switcher, notifier=None,
                 clock=time.time):
        self._registry = registry
        self._calculator = calculator
        self._switcher = switcher
        self._notifier = notifier
        self._clock = clock
        self._lock = threading.Lock()
        self._devices = {device.uuid: _DeviceState() for device in registry}

    def status(self, device_id):
        with self._lock:
            return self._get(device_id).status()

    def statuses(self):
        with self._lock:
            return {device_id: device.status()
                    for device_id, device in self._devices.items()}

    def enable(self, device_id):
        changes = []
        with self._lock:
            device = self._get(device_id)
            device.enabled = True
            if device.state == STOPPED:
                self._transition(changes, device_id, device, IDLE)
            if device.state == IDLE:
                self._transition(changes, device_id, device, SELECTING)
        self._publish(changes)

    def disable(self, device_id):
        changes = []
        with self._lock:
            device = self._get(device_id)
            device.enabled = False
            device.algorithm = device.target = device.since = None
            if device.state != STOPPED:
                self._transition(changes, device_id, device, STOPPED)
        self._publish(changes)

    def force(self, device_id, algorithm):
        if not self._registry.capable(device_id, algorithm):
            raise ValueError(f'{algorithm} does not run on {device_id}')
        with self._lock:
            self._get(device_id).forced = algorithm
        logging.info(f'Forcing {algorithm} on {device_id}')

    def clear_force(self, device_id):
        with self._lock:
            self._get(device_id).forced = None

    def evaluate(self, device_id):
        """Run one decision tick for a device.

        Returns a Decision to carry out, or None to leave the device alone.
        """
        ranking = self._calculator.rank(device_id)
        stale = self._calculator.market_stale()
        now = self._clock()
        changes = []
        decision = None
        with self._lock:
            device = self._get(device_id)
            if device.state == IDLE and device.enabled:
                self._transition(changes, device_id, device, SELECTING)

            if device.state == SELECTING:
                target = (device.forced if device.forced is not None
                          else self._switcher.select(ranking))
                if target is not None:
                    device.target = target
                    self._transition(changes, device_id, device, SWITCHING)
                    decision = Decision(START, target)
            elif device.state == RUNNING:
                if device.forced is not None:
                    target = device.forced
                elif stale:
                    target = device.algorithm
                else:
                    target = self._switcher.decide(
                        device.algorithm, ranking, now - device.since)
                if target is not None and target != device.algorithm:
                    device.target = target
                    self._transition(changes, device_id, device, SWITCHING)
                    decision = Decision(SWITCH, target)
        self._publish(changes)
        return decision

    def confirm(self, device_id, algorithm):
        """The worker for algorithm is live; False if the device moved on."""
        changes = []
        with self._lock:
            device = self._get(device_id)
            if device.state != SWITCHING or device.target != algorithm:
                return False
            device.algorithm = algorithm
            device.target = None
            device.since = self._clock()
            self._transition(changes, device_id, device, RUNNING)
        self._publish(changes)
        return True

    def launch_failed(self, device_id):
        changes = []
        with self._lock:
            device = self._get(device_id)
            if device.state == SWITCHING:
                device.algorithm = device.target = device.since = None
                self._transition(changes, device_id, device, IDLE)
        self._publish(changes)

    def revert(self, device_id):
        """Abandon a switch that never reached the worker."""
        changes = []
        with self._lock:
            device = self._get(device_id)
            if device.state == SWITCHING:
                device.target = None
                self._transition(changes, device_id, device,
                                 SELECTING if device.algorithm is None
                                 else RUNNING)
        self._publish(changes)

    def _get(self, device_id):
        if device_id not in self._devices:
            self._registry.get(device_id)
        return self._devices[device_id]

    def _transition(self, changes, device_id, device, state):
        logging.debug(f'{device_id}: {device.state} -> {state}')
        device.state = state
        algorithm = device.target if state == SWITCHING else device.algorithm
        changes.append((device_id, state, algorithm))

    def _publish(self, changes):
        if self._notifier is None:
            return
        for device_id, state, algorithm in changes:
            self._notifier.send(events.SESSION_STATE, device=device_id,
                                state=state, algorithm=algorithm)
