"""Exception types raised by the matching engine and the client."""


class PairchatError(Exception):
    """Base class for all pairchat errors."""


class DuplicateId(PairchatError):
    """A participant id was registered twice."""

    def __init__(self, participant_id: str):
        super().__init__(f"Participant {participant_id} is already registered")
        self.participant_id = participant_id


class NotFound(PairchatError):
    """No registry entry exists for the participant id."""

    def __init__(self, participant_id: str):
        super().__init__(f"Participant {participant_id} is not registered")
        self.participant_id = participant_id


class TransportError(PairchatError):
    """The local peer transport could not be created or failed an operation."""


__all__ = ["PairchatError", "DuplicateId", "NotFound", "TransportError"]
