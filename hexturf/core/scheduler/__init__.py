from hexturf.core.scheduler.scheduler import JobScheduler, ScheduledJob, utc_now

__all__ = ["JobScheduler", "ScheduledJob", "utc_now"]
