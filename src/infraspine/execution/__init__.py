"""Execution helpers: NotReady retry strategies and run deadlines."""

from infraspine.execution.retry import ConstantBackoff, ExponentialBackoff, NoRetry, RetryStrategy
from infraspine.execution.timeout import Deadline, DeadlineExceeded

__all__ = [
    "ConstantBackoff",
    "Deadline",
    "DeadlineExceeded",
    "ExponentialBackoff",
    "NoRetry",
    "RetryStrategy",
]
