"""
Custom exceptions for the kingdom data layer.
Provides specific exception types for better error handling and recovery.
"""


class KingdomException(Exception):
    """Base exception for kingdom application"""
    pass


class RecordNotFoundException(KingdomException):
    """Raised when a record is not found in a table"""
    def __init__(self, table: str, record_id: str):
        self.table = table
        self.record_id = record_id
        super().__init__(f"{table} record with ID {record_id} not found")


class RemoteStoreException(KingdomException):
    """Raised when a remote store operation fails"""
    def __init__(self, operation: str, details: str):
        self.operation = operation
        self.details = details
        super().__init__(f"Remote {operation} failed: {details}")


class MirrorWriteException(KingdomException):
    """Raised when the local mirror cannot be written"""
    def __init__(self, key: str, details: str):
        self.key = key
        self.details = details
        super().__init__(f"Local mirror write for {key} failed: {details}")


class FetchTimeoutException(KingdomException):
    """Raised when a remote fetch does not finish in time"""
    def __init__(self, query_key: tuple, timeout: float):
        self.query_key = query_key
        self.timeout = timeout
        super().__init__(f"Fetch for {query_key} timed out after {timeout}s")


class InsufficientPointsException(KingdomException):
    """Raised when a profile cannot afford a purchase"""
    def __init__(self, profile_id: str, required: int, available: int):
        self.profile_id = profile_id
        self.required = required
        self.available = available
        super().__init__(
            f"Profile {profile_id} has {available} points, {required} required"
        )


class OutOfStockException(KingdomException):
    """Raised when a reward has no supply left"""
    def __init__(self, reward_id: str, title: str):
        self.reward_id = reward_id
        super().__init__(f"{title} is out of stock")


class CompletionLimitReachedException(KingdomException):
    """Raised when a task was already completed as often as allowed today"""
    def __init__(self, task_id: str, frequency_count: int):
        self.task_id = task_id
        self.frequency_count = frequency_count
        super().__init__(
            f"Task {task_id} already completed {frequency_count} time(s) today"
        )


class ValidationException(KingdomException):
    """Raised when data validation fails"""
    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"Validation error for {field}: {message}")
