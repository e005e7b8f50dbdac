from tripbook.tasks.celery_app import celery
from tripbook.tasks import worker_jobs


@celery.task(name="tripbook.tasks.jobs.expire_pending_bookings")
def expire_pending_bookings():
    return worker_jobs.expire_pending_bookings()
