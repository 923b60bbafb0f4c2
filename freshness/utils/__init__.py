from .retry import RetryConfig, retry_async

__all__ = ["RetryConfig", "retry_async"]
