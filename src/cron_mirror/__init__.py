"""
Cron mirror - keeps a relational mirror of the executor's cron jobs and
drains the run, delete and patch command queues against it.
"""

__version__ = "0.1.0"
