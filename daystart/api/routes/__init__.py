from . import jobs, tasks, worker

__all__ = ["jobs", "tasks", "worker"]
