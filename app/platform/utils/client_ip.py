import hashlib

from fastapi import Request

from app.platform.logger import get_logger

logger = get_logger(__name__)


def get_client_ip(request: Request) -> str:
    # Behind the hosting proxy the real client is the first X-Forwarded-For hop
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        first_hop = forwarded_for.split(",")[0].strip()
        if first_hop:
            return first_hop
    return request.client.host if request.client else "unknown"


def generate_ip_fingerprint(request: Request) -> str:
    """Stable guest key derived from the client IP. The raw IP is never stored."""
    client_ip = get_client_ip(request)

    ip_hash = hashlib.sha256(f"{client_ip}:ux-audit-salt".encode()).hexdigest()[:16]

    logger.debug(f"Guest key ip-{ip_hash} for client_ip={client_ip}")

    return f"ip-{ip_hash}"
