"""Exception hierarchy shared by the engine, the reward layer and the API."""


class DinoDivisionError(Exception):
    """Base class for every error raised by dinodivision."""


class ProblemGenerationError(DinoDivisionError):
    """No valid problem could be produced for a tier/remainder combination."""


class StepValidationError(DinoDivisionError, ValueError):
    """A validator request was malformed (programming or data error)."""


class NoActiveProblemError(DinoDivisionError):
    """Input was applied while no problem is in progress."""


class ImageGenerationError(DinoDivisionError):
    """The image provider failed or returned an unusable payload."""


class ImageGenerationTimeout(ImageGenerationError):
    pass


class ImageGenerationCancelled(ImageGenerationError):
    pass


class SessionNotFoundError(DinoDivisionError):
    pass
