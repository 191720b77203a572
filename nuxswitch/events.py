from pubsub import pub


SESSION_STATE = 'session.state'
WORKER_HEARTBEAT = 'worker.heartbeat'
WORKER_CRASHED = 'worker.crashed'
WORKER_UNRECOVERABLE = 'worker.unrecoverable'
MINING_STATUS = 'mining.status'


class Notifier(object):
    """Publishes engine events under a topic root.

    Topics and their message data:
    session.state -- device, state, algorithm
    worker.heartbeat -- device, algorithm, hashrate
    worker.crashed -- device, algorithm, attempt
    worker.unrecoverable -- device, algorithm
    mining.status -- stats
    """

    def __init__(self, root='nuxswitch', publisher=None):
        self.root = root
        self._publisher = (pub.getDefaultPublisher() if publisher is None
                           else publisher)

    def topic(self, name):
        return f'{self.root}.{name}'

    def send(self, name, **kwargs):
        self._publisher.sendMessage(self.topic(name), **kwargs)

    def subscribe(self, listener, name):
        """Listeners are weakly referenced; keep them alive yourself."""
        self._publisher.subscribe(listener, self.topic(name))

    def unsubscribe(self, listener, name):
        self._publisher.unsubscribe(listener, self.topic(name))
