# Gunicorn configuration for the Smart Library service
#
# The notification scheduler and the rate limiter keep their state in the
# worker process, so this application MUST run with a single worker or every
# reminder job would fire once per worker.
import os

workers = 1
threads = int(os.environ.get("GUNICORN_THREADS", "4"))
bind = os.environ.get("GUNICORN_BIND", "0.0.0.0:8080")
timeout = int(os.environ.get("GUNICORN_TIMEOUT_SECONDS", "60"))
graceful_timeout = int(os.environ.get("GUNICORN_GRACEFUL_TIMEOUT_SECONDS", "30"))
wsgi_app = "run:app"


def post_fork(server, worker):
    server.log.info("Worker spawned (pid: %s). Single-worker mode active.", worker.pid)
