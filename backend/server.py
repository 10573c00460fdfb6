import logging
import os
import socket

import uvicorn

logger = logging.getLogger(__name__)

HOST = os.getenv("HOST", "127.0.0.1")

# Proxies whose X-Forwarded-For is trusted for client addresses
FORWARDED_ALLOW_IPS = os.getenv("FORWARDED_ALLOW_IPS", "127.0.0.1")


def find_free_port(host: str | None = None) -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((host or HOST, 0))
        return sock.getsockname()[1]


def start_server(app, port: int, host: str | None = None):
    # Localhost unless HOST says otherwise (e.g. 0.0.0.0 in a container)
    host = host or HOST
    logger.info("Serving Fountain API on http://%s:%d", host, port)
    uvicorn.run(
        app,
        host=host,
        port=port,
        proxy_headers=True,
        forwarded_allow_ips=FORWARDED_ALLOW_IPS,
        log_level=os.getenv("UVICORN_LOG_LEVEL", "warning"),
    )
