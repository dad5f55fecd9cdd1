"""Pay stub generation and wage statement compliance engine."""

__version__ = "0.1.0"
