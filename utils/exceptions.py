class ValidationError(ValueError):
    """A configuration value or argument was rejected before any work started."""

    pass


class ModelError(RuntimeError):
    """A model could not be loaded or released."""

    pass


class CollaboratorError(ModelError):
    """A detector, recognizer, inpainter or language model call failed, or
    returned output of an unexpected shape. Ends processing of the current page
    only."""

    pass


class TranslationError(CollaboratorError):
    """The OpenAI-compatible endpoint failed or returned an unusable answer."""

    pass


class ResourceReleaseError(ModelError):
    """A model session failed to release on an otherwise clean exit.

    When another error is already propagating, the release failure is attached
    to that error as ``secondary_errors`` instead of being raised.
    """

    pass


class FontError(RuntimeError):
    """The rendering font could not be read or loaded by Skia/HarfBuzz."""

    pass


class RenderingError(RuntimeError):
    """Drawing text layouts onto a page failed."""

    pass


class ImageProcessingError(Exception):
    """Reading, converting or writing a page image failed."""

    pass


class InputError(ImageProcessingError):
    """An input page is missing, malformed or unreadable."""

    pass
