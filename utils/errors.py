"""Исключения ядра бронирования

ValidationError и NotFoundError возникают до открытия транзакции.
SlotTakenError - ожидаемый исход коммита: клиенту нужно заново
запросить слоты и выбрать другое время.
"""


class BookingError(Exception):
    """Базовое исключение"""

    code = "BOOKING_ERROR"
    retryable = False

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class ValidationError(BookingError):
    """Некорректные входные данные (дата, минуты, длительность)"""

    code = "VALIDATION_ERROR"


class InvalidTransitionError(ValidationError):
    """Недопустимый переход статуса записи"""

    code = "INVALID_TRANSITION"


class NotFoundError(BookingError):
    """Мастер или услуга не найдены либо неактивны"""

    code = "NOT_FOUND"


class SlotTakenError(BookingError):
    """Выбранное окно пересекается с активной записью"""

    code = "SLOT_TAKEN"
    retryable = True

    def __init__(self, message: str = "Selected time is already taken"):
        super().__init__(message)


ConflictError = SlotTakenError


class InternalError(BookingError):
    """Непредвиденная ошибка хранилища. Детали только в логах."""

    code = "INTERNAL_ERROR"

    def __init__(self, message: str = "Internal error"):
        super().__init__(message)
