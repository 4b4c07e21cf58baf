"""
Error taxonomy for the delivery pipeline.

Every error carries ``acknowledge``: whether the message that produced it
should be deleted from the queue (terminal) or left to be redelivered.
"""


class PrintAgentError(Exception):
    acknowledge = False

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | {self.details}"
        return self.message


# -----------------------------
# Terminal: delete and drop
# -----------------------------
class MalformedNotification(PrintAgentError):
    acknowledge = True


class ForeignNamespace(PrintAgentError):
    acknowledge = True


class DuplicateDelivery(PrintAgentError):
    acknowledge = True


# -----------------------------
# Left for redelivery
# -----------------------------
class TransferError(PrintAgentError):
    pass


class UnsupportedProtocolError(PrintAgentError):
    def __init__(self, protocol: str):
        super().__init__(f"Unsupported protocol: {protocol}", protocol=protocol)
        self.protocol = protocol


class InvalidDestinationError(PrintAgentError):
    def __init__(self, identifier: str):
        super().__init__(f"Invalid printer identifier: {identifier!r}", identifier=identifier)
        self.identifier = identifier


class DispatchFailure(PrintAgentError):
    pass


# -----------------------------
# Collaborators
# -----------------------------
class PrintSubsystemError(PrintAgentError):
    def __init__(self, command, returncode: int, output: str = ""):
        super().__init__(
            f"Command failed (rc={returncode}): {' '.join(command)}",
            output=output.strip(),
        )
        self.command = list(command)
        self.returncode = returncode
        self.output = output.strip()


class QueueError(PrintAgentError):
    pass


class QueueConnectionError(QueueError):
    pass
