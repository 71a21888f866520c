# tac_broker/middleware/logging.py
import time
import uuid
from starlette.types import ASGIApp, Message, Receive, Scope, Send
from starlette.datastructures import MutableHeaders
from starlette.requests import Request
import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars

logger = structlog.get_logger("http")

class RequestIdMiddleware:
    """
    Binds request_id/path/method into structlog's contextvars for everything logged while
    the request runs, and echoes the id back in the response headers.
    """

    def __init__(self, app: ASGIApp, header_name: str = "X-Request-ID"):
        self.app = app
        self.header_name = header_name

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope, receive=receive)
        start = time.perf_counter()
        req_id = request.headers.get(self.header_name.lower()) or str(uuid.uuid4())
        status_code = 500
        clear_contextvars()
        bind_contextvars(request_id=req_id, path=request.url.path, method=request.method)

        async def send_with_request_id(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                MutableHeaders(scope=message)[self.header_name] = req_id
            await send(message)

        try:
            await self.app(scope, receive, send_with_request_id)
        except Exception as exc:
            logger.exception("http_request_exception", error=str(exc))
            raise
        finally:
            duration_ms = int((time.perf_counter() - start) * 1000)
            logger.info("http_request_finished", status=status_code, duration_ms=duration_ms)
            clear_contextvars()
