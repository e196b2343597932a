import gc
from typing import Callable, Dict, Optional, Union

import torch

DeviceLike = Union[str, torch.device, None]


def _xpu_available() -> bool:
    return hasattr(torch, "xpu") and torch.xpu.is_available()


# Accelerators in preference order: NVIDIA/ROCm, Intel ARC, Apple Silicon
_ACCELERATORS: Dict[str, Callable[[], bool]] = {
    "cuda": torch.cuda.is_available,
    "xpu": _xpu_available,
    "mps": torch.backends.mps.is_available,
}


def _cache_clearers() -> Dict[str, Callable[[], None]]:
    return {
        "cuda": torch.cuda.empty_cache,
        "xpu": lambda: torch.xpu.empty_cache(),
        "mps": lambda: torch.mps.empty_cache(),
    }


def get_best_device() -> torch.device:
    """First available accelerator, falling back to the CPU."""
    for name, is_available in _ACCELERATORS.items():
        if is_available():
            return torch.device(name)
    return torch.device("cpu")


def resolve_device(device: DeviceLike) -> torch.device:
    """Turn a configured device (name, torch.device or None) into a torch.device.

    None picks the best available device.
    """
    if device is None:
        return get_best_device()
    return device if isinstance(device, torch.device) else torch.device(device)


def empty_cache(device: Optional[torch.device] = None) -> None:
    """Run garbage collection and free cached accelerator memory.

    With a device only that backend is cleared; without one every available
    backend is.
    """
    gc.collect()

    clearers = _cache_clearers()
    if device is not None:
        names = [device.type] if device.type in clearers else []
    else:
        names = list(clearers)

    for name in names:
        if _ACCELERATORS[name]():
            clearers[name]()
