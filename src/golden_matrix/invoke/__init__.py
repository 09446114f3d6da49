from .adapter import CallableInvocationAdapter, InvocationAdapter, SubprocessInvocationAdapter

__all__ = [
    "CallableInvocationAdapter",
    "InvocationAdapter",
    "SubprocessInvocationAdapter",
]
