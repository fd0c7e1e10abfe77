import os

import psutil


def available_parallelism() -> int:
    """Get the number of CPUs this process may run on."""
    # Force sequential execution if NO_PARALLEL is set
    no_parallel = os.environ.get("NO_PARALLEL", "0") in ["1", "true", "True"]
    if no_parallel:
        return 1
    try:
        # Respects CPU affinity (taskset, job objects) where the OS exposes it
        affinity = psutil.Process().cpu_affinity()
    except (AttributeError, NotImplementedError, psutil.Error):
        affinity = None
    if affinity:
        return len(affinity)
    return psutil.cpu_count(logical=True) or os.cpu_count() or 1
