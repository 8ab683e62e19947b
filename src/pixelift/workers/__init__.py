"""Background workers for async processing tasks."""

from pixelift.workers.recovery_worker import run_recovery_cycle, run_recovery_worker

__all__ = [
    "run_recovery_cycle",
    "run_recovery_worker",
]
