from collections import namedtuple


IDLE = 'idle'
SELECTING = 'selecting'
RUNNING = 'running'
SWITCHING = 'switching'
STOPPED = 'stopped'

START = 'start'
SWITCH = 'switch'

Decision = namedtuple('Decision', ['action', 'algorithm'])


class ProfitSwitcher(object):

    def __init__(self, settings):
        # current state of settings
        self.settings = settings

    def reset(self):
        """(Re)initialize the profit-switching logic if necessary."""
        pass

    def select(self, ranking):
        """Pick the algorithm to start on an idle device, or None."""
        return ranking[0][0] if len(ranking) > 0 else None

    def decide(self, current, ranking, elapsed):
        """Read the running algorithm, its device's ranking, and the seconds it
        has been running.

        Return the algorithm the device should run."""
        pass
