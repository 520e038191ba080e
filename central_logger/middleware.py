import asyncio
import logging

from central_logger.enricher import request_metadata
from central_logger.mongo_logger import MongoLogger

logger = logging.getLogger(__name__)


class CentralLoggerMiddleware:
    """
    ASGI middleware writing one log document per HTTP request.

    Everything logged through ``mongo_logger`` while the request is handled
    lands in that document, together with the request metadata, the
    response status and the runtime. Usage:

        app.add_middleware(CentralLoggerMiddleware, mongo_logger=mongo_logger)
    """

    def __init__(self, app, mongo_logger: MongoLogger):
        self.app = app
        self.mongo_logger = mongo_logger

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            return await self.app(scope, receive, send)

        unit = self.mongo_logger.begin(**request_metadata(scope))
        status_holder = {"code": None}

        async def _send_wrapper(message):
            if message["type"] == "http.response.start":
                status_holder["code"] = message.get("status")
            await send(message)

        try:
            await self.app(scope, receive, _send_wrapper)
        except Exception as exc:
            self.mongo_logger.error(exc)
            if status_holder["code"] is None:
                status_holder["code"] = 500
            raise
        finally:
            self.mongo_logger.add_metadata(status=status_holder["code"])
            record = self.mongo_logger.end(unit)
            # pymongo blocks; keep the insert off the event loop
            await asyncio.to_thread(self.mongo_logger.emit, record)
