"""Worker package exports."""

from celeryport.workers.pool import UNREGISTERED_EXC_TYPE, TaskHandler, WorkerPool

__all__ = ["TaskHandler", "UNREGISTERED_EXC_TYPE", "WorkerPool"]
