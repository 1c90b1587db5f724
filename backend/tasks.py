from celery_worker import celery
import rentals
from cache import clear_cache, DASHBOARD_KEYS


@celery.task
def sweep_expired_rentals():
    """
    Scheduled Task: runs hourly and marks every rental whose period has
    ended as inactive. A failed run is logged and picked up next hour.
    """
    count = rentals.run_status_sweep()
    if count is None:
        return "Sweep failed; will retry next interval."

    if count:
        clear_cache([DASHBOARD_KEYS])
    return f"Sweep complete. {count} rental(s) lapsed."
