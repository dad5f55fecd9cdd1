"""HTTP interface for the pay stub engine."""
