"""Error taxonomy for the sniper engine."""


class SniperError(RuntimeError):
    """Base class for engine errors."""


class TransientError(SniperError):
    """Network, timeout or slot-miss failure; safe to retry."""


class ExecutionRejected(SniperError):
    """Execution failure that retrying cannot fix."""


class InvalidTransition(SniperError):
    def __init__(self, token: str, current: str, target: str) -> None:
        super().__init__(f"Illegal transition for {token}: {current} -> {target}")
        self.token = token
        self.current = current
        self.target = target


class StartupValidationError(SniperError):
    """Pre-flight check failed; the engine must not start."""
