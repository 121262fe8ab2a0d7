from .__main__ import EXIT_FATAL, EXIT_PARTIAL, EXIT_SUCCESS, EXIT_TERMINATED, describe_conflict, main

__all__ = [
    "main",
    "describe_conflict",
    "EXIT_SUCCESS",
    "EXIT_FATAL",
    "EXIT_PARTIAL",
    "EXIT_TERMINATED",
]
