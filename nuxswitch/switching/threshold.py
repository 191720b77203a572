import logging

from nuxswitch.switching.switcher import ProfitSwitcher


class ThresholdSwitcher(ProfitSwitcher):
    """Switch only for a large enough gain, and not before the dwell time."""

    def __init__(self, settings, **kwargs):
        super(ThresholdSwitcher, self).__init__(settings, **kwargs)

    @property
    def threshold(self):
        return self.settings['switching']['threshold']

    @property
    def dwell(self):
        return self.settings['switching']['dwell']

    def decide(self, current, ranking, elapsed):
        if len(ranking) == 0:
            return current
        switch_algo, switch_revenue = ranking[0]
        if switch_algo == current:
            return current

        stay_revenue = next((revenue for algorithm, revenue in ranking
                             if algorithm == current), 0.0)
        min_factor = 1.0 + self.threshold
        if switch_revenue <= stay_revenue*min_factor:
            return current
        elif elapsed <= self.dwell:
            logging.debug(f'Holding {current} for the dwell time '
                          + f'({elapsed:.0f}/{self.dwell} s)')
            return current
        else:
            logging.info(f'Switching from {current} to {switch_algo} '
                         + f'({stay_revenue*1e3:.3f} -> '
                         + f'{switch_revenue*1e3:.3f} mBTC/day)')
            return switch_algo
