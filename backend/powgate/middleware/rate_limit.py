from slowapi import Limiter
from starlette.requests import Request

from powgate.config import settings

FORWARDED_HEADER = "X-Forwarded-For"


def client_key(request: Request, trust_forwarded_for: bool | None = None) -> str:
    """Rate-limit key for a request.

    Challenge issuance is the cheap side of the protocol, so it is what an
    abusive client hammers. With a trusted proxy in front the originating
    address is the first X-Forwarded-For hop; otherwise the header is client
    controlled and only the socket peer counts.
    """
    if trust_forwarded_for is None:
        trust_forwarded_for = settings.rate_limit_trust_forwarded_for

    if trust_forwarded_for:
        origin = request.headers.get(FORWARDED_HEADER, "").split(",")[0].strip()
        if origin:
            return origin

    if request.client is None:
        return "unknown"
    return request.client.host


limiter = Limiter(key_func=client_key)
