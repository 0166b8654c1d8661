"""Exceptions raised across vpbs."""

from typing import Sequence


class MalformedInputError(ValueError):
  """Raised when objects built under inconsistent dimensions are combined.

  Shapes are checked when containers are constructed; inputs are never padded
  or truncated to make them fit.
  """


class ProtocolViolation(Exception):
  """Raised when a produced proof fails one or more verification checks."""

  def __init__(self, failed_checks: Sequence[str], message: str = ''):
    self.failed_checks = tuple(failed_checks)
    details = ', '.join(self.failed_checks)
    suffix = f': {message}' if message else ''
    super().__init__(f'Verification rejected ({details}){suffix}')


class BackendFailure(RuntimeError):
  """Raised when the proving backend cannot satisfy a circuit for a witness.

  This covers undersized circuits, unassigned wires, conflicting assignments
  and unsatisfied constraints. It is deterministic, so the same witness will
  fail again.
  """


class InvalidProofError(Exception):
  """Raised by the backend verifier when a proof does not verify."""
