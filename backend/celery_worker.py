# Celery entry point: `celery -A celery_worker.celery worker --beat`
from celery.schedules import crontab
from celery import Celery

from app import create_app

app = create_app()


def make_celery(app):
    """
    Build the Celery app for the rental backend. Broker and result backend
    come from the Flask config, and every task runs inside an app context.
    """
    celery = Celery(
        app.import_name,
        backend=app.config['CELERY_RESULT_BACKEND'],
        broker=app.config['CELERY_BROKER_URL'],
        include=['tasks']  # Tells Celery to look for 'tasks.py'
    )

    class ContextTask(celery.Task):
        def __call__(self, *args, **kwargs):
            with app.app_context():
                return self.run(*args, **kwargs)

    celery.Task = ContextTask

    # --- Celery Beat (Scheduler) ---
    # Lapsed rentals stay 'active' for at most one interval of this schedule
    celery.conf.beat_schedule = {
        'sweep-expired-rentals': {
            'task': 'tasks.sweep_expired_rentals',
            'schedule': crontab(minute=app.config['STATUS_SWEEP_MINUTE']),
        },
    }
    return celery


# Initialize Celery
celery = make_celery(app)
