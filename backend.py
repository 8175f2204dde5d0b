"""
Process-scoped Taichi runtime setup.

ti.init() resets every field and compiled kernel in the process, so it must
run exactly once before the first field is allocated. init_taichi() is
idempotent: the first call initializes, later calls are no-ops.

Not thread-safe. Call it from the thread that owns the simulation.
"""

import logging

import taichi as ti

from config import ARCH

log = logging.getLogger(__name__)

ARCHS = {
    "cpu": ti.cpu,
    "gpu": ti.gpu,
    "cuda": ti.cuda,
    "vulkan": ti.vulkan,
    "metal": ti.metal,
}

_initialized = False


def init_taichi(arch=None, **kwargs):
    """
    Initialize Taichi once per process.

    Args:
        arch: Backend name from ARCHS (default: config.ARCH)
        **kwargs: Extra ti.init() options (only honoured on the first call)

    Returns:
        True if this call initialized the runtime, False if it already was
    """
    global _initialized
    if _initialized:
        return False

    name = arch or ARCH
    if name not in ARCHS:
        raise ValueError(f"Unknown Taichi arch {name!r} (expected one of {sorted(ARCHS)})")

    ti.init(arch=ARCHS[name], **kwargs)
    _initialized = True
    log.info("[Taichi] Initialized with backend: %s", ti.cfg.arch)
    return True


def is_initialized():
    return _initialized
