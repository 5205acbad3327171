import os
import platform


def is_windows() -> bool:
    return (platform.system() == 'Windows')


def cpu_count() -> int:
    """
    Returns the number of CPUs usable by this process, or 1 if unknown.
    
    Inside a container restricted to a subset of CPUs, only that subset
    is counted, so that the default number of shards fits the CPUs
    actually available.
    """
    sched_getaffinity = getattr(os, 'sched_getaffinity', None)
    if sched_getaffinity is not None:
        try:
            return max(1, len(sched_getaffinity(0)))
        except OSError:
            pass
    return os.cpu_count() or 1
