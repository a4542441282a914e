"""
Generic result container for all pytimecourse computations.

The Result class is the envelope every domain-specific result uses: a
typed parameter payload plus metadata, timings and warnings. Domains wrap
it in a Solution class that adds accessors and summaries.

Design decisions:
    - Generic over parameter payload P for type safety
    - info dict for flexible metadata (call arguments, smoothing parameter)
    - timing is optional (don't burden unit tests)
    - Immutable (frozen=True) for reproducibility
"""

from dataclasses import dataclass, field, replace
from typing import TypeVar, Generic, Any

P = TypeVar('P')  # Parameter payload type


@dataclass(frozen=True)
class Result(Generic[P]):
    """
    Immutable result envelope.

    Type Parameters:
        P: The domain-specific parameter payload type

    Attributes:
        params: Domain-specific payload (fitted curve, interval table, ...)
        info: Structured metadata (method, formula, call arguments)
        timing: Execution timing breakdown, or None if not measured
        backend_name: Identifier of the component that produced this result
        warnings: Non-fatal issues encountered during computation

    Examples:
        >>> Result(
        ...     params=SSANOVAParams(...),
        ...     info={'method': 'ssanova', 'gcv': 0.41},
        ...     timing={'total_seconds': 0.02},
        ...     backend_name='cpu_ssanova'
        ... )
    """
    params: P
    info: dict[str, Any]
    timing: dict[str, float] | None
    backend_name: str
    warnings: tuple[str, ...] = field(default_factory=tuple)

    def has_warning(self, substring: str) -> bool:
        """Check if any warning contains the given substring."""
        return any(substring in w for w in self.warnings)

    def with_warnings(self, *messages: str) -> 'Result[P]':
        """Return a copy with additional warnings appended."""
        return replace(self, warnings=self.warnings + tuple(messages))
