class BrokerError(Exception):
    """Base class for message broker failures."""


class BrokerConnectionError(BrokerError):
    """The broker could not be reached while connecting."""


class BrokerPublishError(BrokerError):
    """A connected client failed to hand a message to the broker."""
