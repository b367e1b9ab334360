"""
Queue module.
Contains the bounded task queue used to rate-limit compiler invocations.
"""

from ccbuild.queue.bounded import BoundedTaskQueue, FatalHandler

__all__ = ["BoundedTaskQueue", "FatalHandler"]
