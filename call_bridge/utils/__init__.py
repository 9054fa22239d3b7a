from .dict_utils import deep_merge, first_present
from .time_utils import MonotonicClock

__all__ = ["MonotonicClock", "deep_merge", "first_present"]
