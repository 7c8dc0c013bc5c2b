from .aggregator import StatisticsAggregator, iter_dates
from .dashboard import DashboardService, growth_rate, occupancy_rate

__all__ = [
    "StatisticsAggregator",
    "DashboardService",
    "iter_dates",
    "growth_rate",
    "occupancy_rate",
]
