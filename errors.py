# errors.py
"""
Типизированные ошибки ядра чата.

Каждая ошибка знает свой HTTP-статус, обработчик в main.py превращает её
в JSON-ответ вида {"error": ..., "detail": ...}.
"""


class ChatError(Exception):
    status_code = 500
    kind = "error"

    def __init__(self, detail: str = ""):
        super().__init__(detail)
        self.detail = detail or self.kind


class Unauthenticated(ChatError):
    status_code = 401
    kind = "unauthenticated"


class ValidationError(ChatError):
    status_code = 400
    kind = "validation_error"


class ForbiddenError(ChatError):
    status_code = 403
    kind = "forbidden"


class NotFoundError(ChatError):
    status_code = 404
    kind = "not_found"


class ConflictError(ChatError):
    status_code = 409
    kind = "conflict"


class StoreUnavailable(ChatError):
    """Временный сбой хранилища: запрос можно повторить."""
    status_code = 503
    kind = "store_unavailable"
