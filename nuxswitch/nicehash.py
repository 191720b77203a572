import requests


HOST = 'https://api2.nicehash.com'
NHMP_PORT = 3200


def _get(nx_settings, path):
    response = requests.get(HOST + path,
                            timeout=nx_settings['market']['timeout'])
    response.raise_for_status()
    return response.json()


def simplemultialgo_info(nx_settings):
    """Return dict of algorithm name -> BTC/day per H/s."""
    response = _get(nx_settings, '/main/api/v2/public/simplemultialgo/info')
    pay_factor = 1e-9 # GH -> H/s/day
    return {algorithm['algorithm'].lower(): float(algorithm['paying'])*pay_factor
            for algorithm in response['miningAlgorithms']}


def stratums(nx_settings):
    response = _get(nx_settings, '/main/api/v2/mining/algorithms')
    ports = {algorithm['algorithm'].lower(): algorithm['port']
             for algorithm in response['miningAlgorithms']}
    region = nx_settings['nicehash']['region']
    return {algorithm: f'{algorithm}.{region}.nicehash.com:{port}'
            for algorithm, port in ports.items()}


class PoolConfig(object):
    """Read-only pool and wallet parameters for launching workers."""

    def __init__(self, nx_settings, stratums={}):
        self.wallet = nx_settings['nicehash']['wallet']
        self.workername = nx_settings['nicehash']['workername']
        self.region = nx_settings['nicehash']['region']
        self._stratums = dict(stratums)

    def stratum(self, algorithm):
        """Pool address for algorithm, falling back to the NHMP endpoint."""
        return self._stratums.get(
            algorithm, f'nhmp.{self.region}.nicehash.com:{NHMP_PORT}')

    def __repr__(self):
        return f'<pool {self.wallet}.{self.workername} ({self.region})>'
