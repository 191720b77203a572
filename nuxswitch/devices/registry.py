import logging

from nuxswitch.devices import cpu, nvidia


class UnknownDevice(KeyError):
    pass


class DeviceRegistry(object):
    """The devices available to this process, keyed by uuid."""

    def __init__(self, devices=[]):
        self._devices = {}
        for device in devices:
            if device.uuid in self._devices:
                raise ValueError(f'duplicate device {device.uuid}')
            self._devices[device.uuid] = device

    @classmethod
    def discover(cls, algorithms, use_cpu=True):
        devices = nvidia.enumerate_devices(algorithms)
        if use_cpu:
            devices += cpu.enumerate_devices(algorithms)
        for device in devices:
            logging.info(f'Found {device!r} '
                         + f'({len(device.algorithms)} algorithms)')
        return cls(devices)

    def get(self, device_id):
        try:
            return self._devices[device_id]
        except KeyError:
            raise UnknownDevice(device_id)

    def capable(self, device_id, algorithm_name):
        return self.get(device_id).can_run(algorithm_name)

    def ids(self):
        return sorted(self._devices.keys())

    def __iter__(self):
        return iter([self._devices[uuid] for uuid in self.ids()])

    def __len__(self):
        return len(self._devices)

    def __contains__(self, device_id):
        return device_id in self._devices
