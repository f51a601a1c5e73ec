from .diagnostics import HealthRunner, RunOptions, RunReport

__all__ = ["HealthRunner", "RunOptions", "RunReport"]
