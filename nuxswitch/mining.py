import logging
import sched
import threading
import time
from concurrent.futures import ThreadPoolExecutor

from nuxswitch import utils
from nuxswitch.miners import supervisor as worker
from nuxswitch.miners.miner import LaunchFailure, SwitchConflict, WorkerDisabled
from nuxswitch.miners.supervisor import WorkerSupervisor
from nuxswitch.profit import ProfitCalculator
from nuxswitch.stats import StatsAggregator
from nuxswitch.switching.engine import SwitchingEngine
from nuxswitch.switching.switcher import START
from nuxswitch.switching.threshold import ThresholdSwitcher


class MiningEngine(object):
    """Ties profit switching to the worker supervisors for every device.

    Decision ticks and worker checks run on one scheduler thread; the work for
    each device fans out to a thread pool so that devices proceed in parallel.
    """

    PROFIT_PRIORITY = 1
    STATUS_PRIORITY = 2
    STOP_PRIORITY = 0

    def __init__(self, registry, benchmarks, feed, algorithms, launcher, pool,
                 settings, notifier=None, clock=time.time):
        self._registry = registry
        self._feed = feed
        self._settings = settings
        self.calculator = ProfitCalculator(registry, benchmarks, feed)
        self._profit_switch = ThresholdSwitcher(settings)
        self._profit_switch.reset()
        self.decisions = SwitchingEngine(registry, self.calculator,
                                         self._profit_switch, notifier=notifier,
                                         clock=clock)
        self.supervisors = {
            device.uuid: WorkerSupervisor.from_settings(
                device, [algorithm for algorithm in algorithms
                         if algorithm.accepts(device)],
                launcher, pool, settings, notifier=notifier, clock=clock)
            for device in registry}
        self.stats = StatsAggregator(self.supervisors, self.decisions,
                                     self.calculator, notifier=notifier,
                                     clock=clock)
        self._executor = ThreadPoolExecutor(max_workers=max(1, len(registry)))
        self._stop_signal = threading.Event()
        self._scheduler = sched.scheduler(
            time.time, lambda t: self._stop_signal.wait(t))
        self._thread = None
        self._closed = False

    def start(self):
        """Begin polling the market and running decision ticks."""
        if self._thread is not None:
            return
        self._feed.start()
        self._thread = threading.Thread(target=self._run, name='mining-engine')
        self._thread.start()

    def _run(self):
        wait_secs = self._settings['market']['first_data_secs']
        if not self._wait_for_market(wait_secs):
            if self._stop_signal.is_set():
                return
            logging.warning(f'No market data after {wait_secs} s, '
                            + 'devices stay idle until it arrives')
        self._scheduler.enter(0, MiningEngine.PROFIT_PRIORITY, self._switch_algos)
        self._scheduler.enter(0, MiningEngine.STATUS_PRIORITY, self._read_status)
        self._scheduler.run()

    def _wait_for_market(self, wait_secs):
        """Wait for the first snapshot; give up early on shutdown."""
        deadline = time.time() + wait_secs
        while not self._stop_signal.is_set():
            remaining = deadline - time.time()
            if remaining <= 0:
                return False
            if self._feed.wait_for_first_snapshot(min(remaining, 0.5)):
                return True
        return False

    def _switch_algos(self):
        self.tick()
        if not self._stop_signal.is_set():
            self._scheduler.enter(self._settings['switching']['interval'],
                                  MiningEngine.PROFIT_PRIORITY,
                                  self._switch_algos)

    def _read_status(self):
        self.check_workers()
        stats = self.stats.publish()
        for device_id, device in sorted(stats.items()):
            if device['hashrate'] is not None:
                logging.debug(f"{device_id}: {device['algorithm']} "
                              + utils.format_speed(device['hashrate']))
        if not self._stop_signal.is_set():
            self._scheduler.enter(self._settings['worker']['heartbeat_interval'],
                                  MiningEngine.STATUS_PRIORITY,
                                  self._read_status)

    def _stop_scheduler(self):
        # Empty the scheduler.
        for job in self._scheduler.queue:
            self._scheduler.cancel(job)

    def tick(self):
        """Run one decision tick on every device.

        Returns dict of device uuid -> Decision (None where nothing changed).
        """
        return self._for_each_device(self._tick_device)

    def check_workers(self):
        """Run the worker watchdog on every device."""
        return self._for_each_device(self._check_device)

    def enable_device(self, device_id):
        self._registry.get(device_id)
        self.supervisors[device_id].resume()
        self.stats.clear_error(device_id)
        self.decisions.enable(device_id)
        self._tick_soon(device_id)

    def disable_device(self, device_id):
        """Stop mining on a device; returns once its worker has exited."""
        self.decisions.disable(device_id)
        self.supervisors[device_id].halt()

    def force_algorithm(self, device_id, algorithm):
        self.decisions.force(device_id, algorithm)
        self._tick_soon(device_id)

    def clear_forced_algorithm(self, device_id):
        self.decisions.clear_force(device_id)

    def start_all(self):
        """Enable every device once market data is available."""
        wait_secs = self._settings['market']['first_data_secs']
        if not self._feed.wait_for_first_snapshot(wait_secs):
            logging.warning('Market data unavailable, not starting')
            return False
        for device_id in self._registry.ids():
            self.enable_device(device_id)
        return True

    def stop_all(self):
        self._for_each_device(self.disable_device)

    def shutdown(self):
        """Stop every worker and wait until all of them have exited."""
        if self._closed:
            return
        if self._thread is not None:
            logging.info('Stopping mining')
            self._scheduler.enter(0, MiningEngine.STOP_PRIORITY,
                                  self._stop_scheduler)
            self._stop_signal.set()
            self._thread.join()
            self._thread = None
        self.stop_all()
        self._feed.stop()
        self._closed = True
        self._executor.shutdown(wait=True)

    def _tick_device(self, device_id):
        decision = self.decisions.evaluate(device_id)
        if decision is None:
            return None
        supervisor = self.supervisors[device_id]
        try:
            if decision.action == START:
                supervisor.start(decision.algorithm)
            else:
                supervisor.switch_to(decision.algorithm)
        except LaunchFailure as err:
            logging.warning(f'{device_id}: {err}')
            self.decisions.launch_failed(device_id)
        except SwitchConflict as err:
            logging.info(f'{device_id}: {err}, will retry')
            self.decisions.revert(device_id)
        except WorkerDisabled:
            # Disabled while the decision was being made.
            pass
        else:
            self.decisions.confirm(device_id, decision.algorithm)
        return decision

    def _check_device(self, device_id):
        result = self.supervisors[device_id].check()
        if result == worker.UNRECOVERABLE:
            self.decisions.disable(device_id)
        return result

    def _tick_soon(self, device_id):
        if self._thread is not None and not self._closed:
            self._executor.submit(self._tick_device, device_id)

    def _for_each_device(self, method):
        futures = {device_id: self._executor.submit(method, device_id)
                   for device_id in self._registry.ids()}
        results = {}
        for device_id, future in futures.items():
            try:
                results[device_id] = future.result()
            except Exception:
                logging.exception(f'{device_id}: unexpected error')
                results[device_id] = None
        return results
