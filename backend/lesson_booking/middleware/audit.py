# one JSON line per request: method / path / status; IP / UA; processing time
# health checks (/health, /checkServerSetup) are not logged; never touches the DB

import json
import logging
import time

from fastapi import Request

logger = logging.getLogger("lesson_booking.audit")

SKIP_PATHS = {"/health", "/checkServerSetup"}


async def audit_middleware(request: Request, call_next):
    if request.url.path in SKIP_PATHS:
        return await call_next(request)

    started = time.perf_counter()
    response = await call_next(request)

    record = {
        "ts": int(time.time()),
        "method": request.method,
        "path": request.url.path,
        "status": response.status_code,
        "ip": request.headers.get("X-Real-IP") or (request.client.host if request.client else ""),
        "ua": request.headers.get("User-Agent", ""),
        "duration_ms": int((time.perf_counter() - started) * 1000),
    }

    # 4xx/5xx at WARNING
    level = logging.INFO if response.status_code < 400 else logging.WARNING
    logger.log(level, json.dumps(record, ensure_ascii=False))

    return response
