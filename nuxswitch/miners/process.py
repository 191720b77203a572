import subprocess
import threading

from nuxswitch.miners import miner


class ProcessLauncher(object):
    """Start and control external worker processes.

    Handles are opaque to callers.
    """

    def start(self, argv, on_output=lambda line: None):
        """Launch argv; raise OSError if the process cannot be created."""
        raise NotImplementedError

    def signal(self, handle):
        """Ask the process to exit."""
        raise NotImplementedError

    def kill(self, handle):
        raise NotImplementedError

    def is_alive(self, handle):
        raise NotImplementedError

    def wait(self, handle, timeout=None):
        """Wait for exit; return True if the process is gone."""
        raise NotImplementedError


class SubprocessLauncher(ProcessLauncher):

    def start(self, argv, on_output=lambda line: None):
        process = subprocess.Popen(
            argv, stdin=subprocess.DEVNULL, stderr=subprocess.STDOUT,
            stdout=subprocess.PIPE)

        # Send stdout to logger.
        log_thread = threading.Thread(
            target=miner.log_output, args=(process.stdout, on_output),
            daemon=True)
        log_thread.start()
        return process

    def signal(self, handle):
        if handle.poll() is None:
            handle.terminate()

    def kill(self, handle):
        if handle.poll() is None:
            handle.kill()

    def is_alive(self, handle):
        return handle.poll() is None

    def wait(self, handle, timeout=None):
        try:
            handle.wait(timeout)
        except subprocess.TimeoutExpired:
            return False
        else:
            return True
