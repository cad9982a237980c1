class AppError(Exception):
    def __init__(self, message: str, kind: str = "error"):
        """
        Базовая ошибка приложения.

        Args:
            message (str): текст, который показывается оператору как есть.
            kind (str): категория ошибки ("remote", "busy", ...).
        """
        super().__init__(message)
        self.message = message
        self.kind = kind


class RemoteError(AppError):
    """Сбой удалённого хранилища (сеть, RLS, схема)"""

    def __init__(self, message: str):
        super().__init__(message, kind="remote")


class OperationInProgress(AppError):
    """Повторный запуск операции, которая ещё выполняется"""

    def __init__(self, key: str):
        super().__init__(f"{key} already in progress", kind="busy")
        self.key = key
