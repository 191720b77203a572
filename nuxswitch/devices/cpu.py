import os
import platform
import uuid

from nuxswitch.devices.device import capable_algorithms, CPU, Device


def enumerate_devices(algorithms=[]):
    """Treat the host processor as a single mining device."""
    if os.cpu_count() is None:
        return []
    name = platform.processor() or platform.machine() or 'CPU'
    # Stable across restarts on the same host.
    device_uuid = str(uuid.uuid5(uuid.NAMESPACE_DNS, f'cpu.{platform.node()}'))
    return [Device(f'CPU-{device_uuid}', CPU, name, index=0,
                   algorithms=capable_algorithms(algorithms, CPU))]
