import os
import shutil
import tempfile
from contextlib import contextmanager
from importlib import resources
from pathlib import Path
from typing import BinaryIO, Callable, Iterator, Union

from utils.logging import log_message

ResourceReader = Callable[[], BinaryIO]
ModelSource = Union[str, os.PathLike, ResourceReader]


def package_resource_reader(package: str, resource: str) -> ResourceReader:
    """Reader for a model file shipped inside an installed package."""

    def _open() -> BinaryIO:
        return resources.files(package).joinpath(resource).open("rb")

    return _open


@contextmanager
def materialize_model_asset(
    source: ModelSource, suffix: str = "", verbose: bool = False
) -> Iterator[Path]:
    """
    Yield a filesystem path for a model asset.

    A path is checked and yielded as-is. A resource reader (a callable returning
    a binary stream) is copied to a temporary file that exists only until the
    context exits, so the caller's session decides how long the copy lives.

    Args:
        source: Path to the model file, or a callable opening the model bytes
        suffix: File suffix for the temporary copy (some loaders sniff it)
        verbose: Whether to print detailed logs

    Raises:
        FileNotFoundError: If a path source does not exist
    """
    if not callable(source):
        path = Path(source)
        if not path.is_file():
            raise FileNotFoundError(f"Model file not found: {path}")
        yield path
        return

    fd, temp_name = tempfile.mkstemp(suffix=suffix, prefix="comictranslator-")
    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "wb") as target, source() as stream:
            shutil.copyfileobj(stream, target)
        log_message(f"Extracted model asset to {temp_path}", verbose=verbose)
        yield temp_path
    finally:
        try:
            temp_path.unlink()
        except FileNotFoundError:
            pass
        log_message(f"Removed model asset {temp_path}", verbose=verbose)
