import threading
from contextlib import ExitStack
from typing import Optional

import torch

from comictranslator.device import empty_cache
from utils.exceptions import ResourceReleaseError
from utils.logging import log_message


def attach_secondary_error(primary: BaseException, secondary: BaseException) -> None:
    """Record a cleanup failure on the error that triggered the cleanup."""
    errors = getattr(primary, "secondary_errors", None)
    if errors is None:
        errors = []
        try:
            primary.secondary_errors = errors
        except AttributeError:
            return
    errors.append(secondary)


def release_preserving_error(resource, original: Optional[BaseException]) -> None:
    """
    Close ``resource`` without letting a cleanup failure hide ``original``.

    When another error is already propagating, a failing close is logged and
    attached to that error as ``secondary_errors``. Otherwise the failure is
    raised as ResourceReleaseError.
    """
    try:
        resource.close()
    except Exception as close_error:
        name = getattr(resource, "name", type(resource).__name__)
        if original is None:
            raise ResourceReleaseError(
                f"Failed to release {name}: {close_error}"
            ) from close_error
        log_message(
            f"Failed to release {name} while handling another error: {close_error}",
            always_print=True,
        )
        attach_secondary_error(original, close_error)


class ModelSession:
    """
    A loaded model owned by one pipeline run.

    Calls against the model are serialized with ``self._lock`` since backends
    are not assumed to be thread-safe. Sessions are context managers: leaving
    the context releases the model, any temporary model files tied to it and
    cached device memory, on every exit path.
    """

    name = "model"

    def __init__(self, device: Optional[torch.device] = None, verbose: bool = False):
        self.device = device or torch.device("cpu")
        self.verbose = verbose
        self._lock = threading.Lock()
        self._resources = ExitStack()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _release(self) -> None:
        """Drop references to the loaded model. Subclasses override."""

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._release()
        finally:
            self._resources.close()
            empty_cache(self.device)
            log_message(f"Released {self.name}", verbose=self.verbose)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        release_preserving_error(self, exc)
        return False
