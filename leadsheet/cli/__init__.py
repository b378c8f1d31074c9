from .__main__ import EXIT_BATCH_PENDING, EXIT_FATAL, EXIT_SUCCESS, main

__all__ = [
    "EXIT_SUCCESS",
    "EXIT_FATAL",
    "EXIT_BATCH_PENDING",
    "main",
]
