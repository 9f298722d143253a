class CoherenceError(Exception):
    """Base class for everything the simulator raises on purpose."""


class MalformedRequest(CoherenceError, ValueError):
    """User-supplied request text could not be turned into a request."""


class MalformedAddress(MalformedRequest):
    """Address is not `0x` followed by the configured number of hex digits."""


class MalformedPayload(MalformedRequest):
    """Write payload is missing or not exactly one block of hex digits."""


class UnknownNode(CoherenceError, LookupError):
    """
    A node id outside the configured node set.

    Inside the engine this is a contract violation: the validation layer
    should never let such a request through.
    """

    def __init__(self, node_id: object):
        super().__init__(f"unknown node {node_id!r}")
        self.node_id = node_id
