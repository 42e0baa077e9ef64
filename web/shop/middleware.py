"""Request-scoped middleware for the shop project.

``RequestIdMiddleware`` gives every request an identifier: the incoming
``X-Request-Id`` header when the client sends one, a fresh UUIDv4
otherwise. The id is stored on ``request.request_id`` and in
``REQUEST_ID_CTX`` so log records (see ``shop.logging_filters``) and the
remote payments gateway can pick it up without it being passed around.
It is echoed back in the ``X-Request-ID`` response header.

``ApiSizeLimitMiddleware`` rejects API request bodies larger than
``settings.API_MAX_BYTES`` before they reach a view.
"""

import contextvars
import uuid

from django.conf import settings
from django.http import JsonResponse

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")


class RequestIdMiddleware:
    HEADER = "HTTP_X_REQUEST_ID"
    RESPONSE_HEADER = "X-Request-ID"

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        rid = request.META.get(self.HEADER) or str(uuid.uuid4())
        request.request_id = rid
        token = REQUEST_ID_CTX.set(rid)
        try:
            response = self.get_response(request)
        finally:
            REQUEST_ID_CTX.reset(token)
        response[self.RESPONSE_HEADER] = rid
        return response


class ApiSizeLimitMiddleware:
    def __init__(self, get_response):
        self.get_response = get_response
        self.max_bytes = getattr(settings, "API_MAX_BYTES", 1024 * 1024)

    def __call__(self, request):
        if request.path.startswith("/api/"):
            clen = request.META.get("CONTENT_LENGTH")
            if clen and clen.isdigit() and int(clen) > self.max_bytes:
                return JsonResponse({"detail": "PAYLOAD_TOO_LARGE"}, status=413)
        return self.get_response(request)
