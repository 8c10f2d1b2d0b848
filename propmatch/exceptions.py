# =========================================================================
# CUSTOM EXCEPTIONS
# =========================================================================

class PropmatchError(Exception):
    """Base exception for propmatch errors"""
    pass

class ConfigurationError(PropmatchError):
    """Backend credentials are missing"""
    pass

class RecordStoreError(PropmatchError):
    """Record store request failed"""

    def __init__(self, message, status_code=None, details=None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details

class RateLimitExceeded(RecordStoreError):
    """Rate limit still exceeded after all retries"""
    pass

class CacheNotFound(PropmatchError):
    """No snapshot stored for a cache key"""

    def __init__(self, cache_key):
        super().__init__(f"Cache not found: {cache_key}")
        self.cache_key = cache_key

class DuplicateRecordError(PropmatchError):
    """Record already exists"""

    def __init__(self, message, record_id=None):
        super().__init__(message)
        self.record_id = record_id

class ValidationError(PropmatchError):
    """Request is missing or has malformed fields"""

    def __init__(self, message, fields=None):
        super().__init__(message)
        self.fields = fields or []
