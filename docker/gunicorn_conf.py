# Gunicorn configuration for dbkeeper
# Only one worker may own the backup ticker

import os
import logging

logger = logging.getLogger('gunicorn.error')

bind = os.environ.get('GUNICORN_BIND', '0.0.0.0:5000')
workers = int(os.environ.get('GUNICORN_WORKERS', '2'))
wsgi_app = 'dbkeeper:create_app()'


def pre_fork(server, worker):
    """
    Called in the arbiter just before a worker is forked.

    The worker becomes the ticker owner when no live worker holds it, so a
    replacement for a dead owner takes over the ticker.

    Args:
        server: Gunicorn arbiter (WORKERS maps pid -> live worker)
        worker: Worker about to be forked
    """
    worker.owns_ticker = not any(
        getattr(sibling, 'owns_ticker', False) for sibling in server.WORKERS.values()
    )


def post_fork(server, worker):
    """
    Called in the new worker before it loads the application.

    create_app() reads SCHEDULER_WORKER while the app loads, so the flag
    must be set here and not in post_worker_init.

    Args:
        server: Gunicorn arbiter
        worker: Gunicorn worker instance
    """
    owner = getattr(worker, 'owns_ticker', False)
    os.environ['SCHEDULER_WORKER'] = 'true' if owner else 'false'

    if owner:
        logger.info(f"Worker PID {worker.pid} (age={worker.age}): backup ticker owner")
    else:
        logger.info(f"Worker PID {worker.pid} (age={worker.age}): HTTP only, ticker disabled")
