from .coordinator import CacheRefreshCoordinator
from .runner import JobRunner, classify_error
from .scheduler import Scheduler

__all__ = ["CacheRefreshCoordinator", "JobRunner", "Scheduler", "classify_error"]
