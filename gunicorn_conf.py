import os

bind = f"0.0.0.0:{os.getenv('PORT', '8080')}"
worker_class = "uvicorn.workers.UvicornWorker"
# job manifests, their lock, the rate limiter and the single-flight registry
# live in one process; scale out with instances, not workers
workers = 1

# the sync endpoint holds the connection for the whole pipeline
timeout = 900             # hard kill after N seconds of no response
graceful_timeout = 120    # time to gracefully stop workers
keepalive = 75
threads = 2

# recycle workers to contain leaks
max_requests = int(os.getenv("MAX_REQUESTS", "1000"))
max_requests_jitter = int(os.getenv("MAX_REQUESTS_JITTER", "100"))

# stdout/stderr (Cloud Run captures them)
accesslog = "-"
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info").lower()
