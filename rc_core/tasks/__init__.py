"""
后台任务
"""
from .scheduler import TaskScheduler, build_scheduler

__all__ = ["TaskScheduler", "build_scheduler"]
