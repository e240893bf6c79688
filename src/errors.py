"""Engine exceptions. Data/network failures degrade; configuration defects fail loudly."""


class TCFEngineError(Exception):
    """Base class for all engine errors."""


class DataUnavailable(TCFEngineError):
    """Catalog could not be fetched or parsed. Callers fall back to an empty catalog."""


class EmptyBucket(TCFEngineError):
    """Sampler asked for a weight with no questions in the catalog."""

    def __init__(self, weight):
        super().__init__(f"No questions with weight {weight} in the catalog")
        self.weight = weight


class PersistenceError(TCFEngineError):
    """A storage write failed. Reported as a warning, never rolled back."""


class BandingTableInvalid(TCFEngineError):
    """CLB banding table is empty, overlapping, or has gaps."""


class SessionStateError(TCFEngineError):
    """Operation not allowed in the session's current lifecycle state."""


class ConfirmationRequired(TCFEngineError):
    """The transition needs explicit user consent; retry with the matching confirm flag."""


class UnansweredQuestionsRemain(ConfirmationRequired):
    def __init__(self, count: int):
        super().__init__(f"You still have {count} unanswered question(s). Finish anyway?")
        self.count = count
