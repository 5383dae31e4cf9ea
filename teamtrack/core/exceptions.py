# teamtrack/core/exceptions.py

class BaseAppException(Exception):
    """Базовый класс для всех исключений ядра TeamTrack."""
    def __init__(self, message: str = "App exception"):
        super().__init__(message)

# ==== Валидация ====

class ValidationError(BaseAppException):
    """Общая ошибка валидации входных данных."""
    def __init__(self, message: str = "Validation error"):
        super().__init__(message)

class TaskValidationError(ValidationError):
    """Ошибка валидации задачи."""
    def __init__(self, message: str = "Task validation error"):
        super().__init__(message)

class MemberValidationError(ValidationError):
    """Ошибка валидации профиля участника."""
    def __init__(self, message: str = "Member validation error"):
        super().__init__(message)

class CommentValidationError(ValidationError):
    """Ошибка валидации комментария или реакции."""
    def __init__(self, message: str = "Comment validation error"):
        super().__init__(message)

# ==== Авторизация и роли ====

class NotAuthorized(BaseAppException):
    """Проверка роли или назначения не пройдена."""
    def __init__(self, message: str = "Not authorized"):
        super().__init__(message)

class LastOwnerViolation(BaseAppException):
    """Операция оставила бы workspace без активного Owner."""
    def __init__(self, message: str = "Workspace must keep at least one active Owner"):
        super().__init__(message)

class AccountDeactivated(BaseAppException):
    """Профиль помечен как удалённый (soft-delete) и не может действовать."""
    def __init__(self, message: str = "Account is deactivated"):
        super().__init__(message)

class AuthError(BaseAppException):
    """Ошибка аутентификации (вход, создание учётной записи)."""
    def __init__(self, message: str = "Authentication error"):
        super().__init__(message)

# ==== NotFound ====

class NotFoundError(BaseAppException):
    """Ошибка отсутствия ресурса."""
    def __init__(self, message: str = "Resource not found"):
        super().__init__(message)

class MemberNotFound(NotFoundError):
    """Ошибка: участник не найден."""
    def __init__(self, message: str = "Member not found"):
        super().__init__(message)

class TaskNotFound(NotFoundError):
    """Ошибка: задача не найдена."""
    def __init__(self, message: str = "Task not found"):
        super().__init__(message)

class CommentNotFound(NotFoundError):
    """Ошибка: комментарий не найден."""
    def __init__(self, message: str = "Comment not found"):
        super().__init__(message)

# ==== Хранилище ====

class StoreError(BaseAppException):
    """Сбой внешнего хранилища. Причина доступна через __cause__."""
    def __init__(self, message: str = "Document store error"):
        super().__init__(message)
