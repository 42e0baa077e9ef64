import os

# Checkout requests block on the payments gateway; threads keep a worker
# responsive while one request waits on it.
bind = os.getenv("SHOP_BIND", "0.0.0.0:8000")
workers = int(os.getenv("SHOP_WORKERS", str(min(max(2, (os.cpu_count() or 1) * 2), 8))))
worker_class = "gthread"
threads = int(os.getenv("SHOP_THREADS", "4"))

timeout = int(os.getenv("SHOP_TIMEOUT", "60"))
graceful_timeout = int(os.getenv("SHOP_GRACEFUL_TIMEOUT", "30"))
keepalive = int(os.getenv("SHOP_KEEPALIVE", "5"))

wsgi_app = "shop.wsgi:application"
preload_app = True
max_requests = int(os.getenv("SHOP_MAX_REQUESTS", "2000"))
max_requests_jitter = int(os.getenv("SHOP_MAX_REQUESTS_JITTER", "200"))

accesslog = "-"
errorlog = "-"
loglevel = os.getenv("SHOP_LOGLEVEL", "info")
