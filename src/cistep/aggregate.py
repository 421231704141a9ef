from __future__ import annotations

"""Exit-code aggregation.

CONTRACT
- Inputs: exit codes of commands that have all already run to completion
- Outputs:
  - aggregate_exit_code() -> 0 if every code is 0, else 1
  - failed_names() -> names of the commands that exited non-zero, in run order
- Invariants:
  - Pure functions; callers collect every code first, then aggregate
  - An empty sequence aggregates to success
"""

from collections.abc import Iterable, Sequence

FAILURE_EXIT = 1


def aggregate_exit_code(codes: Iterable[int]) -> int:
    return FAILURE_EXIT if any(code != 0 for code in codes) else 0


def failed_names(results: Sequence[tuple[str, int]]) -> list[str]:
    return [name for name, code in results if code != 0]
