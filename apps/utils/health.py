from django.core.cache import cache
from django.db import connection, DatabaseError
from django.http import JsonResponse


def health_check(request):
    status = {"db": "unknown", "cache": "unknown"}
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
        status["db"] = "ok"
    except DatabaseError as e:
        status["db"] = "error"
        return JsonResponse(
            {"status": "error", "detail": str(e), "components": status},
            status=503
        )

    # Cache backend ignores connection errors (IGNORE_EXCEPTIONS), so a
    # failed round-trip shows up as a missing value rather than an exception.
    cache.set("health:ping", "pong", timeout=5)
    status["cache"] = "ok" if cache.get("health:ping") == "pong" else "degraded"

    return JsonResponse({"status": "ok", "components": status}, status=200)
