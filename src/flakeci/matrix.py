# matrix.py
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Sequence

from .config.subflake import SubflakesConfig
from .errors import UnknownSubflake


@dataclass(frozen=True)
class MatrixRow:
    """One CI job: a subflake built on a system."""
    system: str
    subflake: str


def matrix(
    systems: Sequence[str],
    subflakes: SubflakesConfig,
    only: Optional[str] = None,
    strict_selection: bool = True,
) -> List[MatrixRow]:
    """
    Every (system, subflake) pair worth a CI job.

    Rows are ordered by system (as given), then subflake name. A subflake
    appears for a system when the system is in its whitelist (or it has
    none); `skip` is a property of runs, not of the matrix.

    Raises:
        UnknownSubflake: If `only` names no subflake and `strict_selection` is set
    """
    if only is not None and only not in subflakes and strict_selection:
        raise UnknownSubflake(only, subflakes.names())

    rows: List[MatrixRow] = []
    for system in systems:
        for name, subflake in subflakes.items():
            if only is not None and name != only:
                continue
            if not subflake.can_run_on([system]):
                continue
            rows.append(MatrixRow(system=system, subflake=name))
    return rows


def matrix_json(rows: Sequence[MatrixRow]) -> Dict[str, Any]:
    """The `include` form GitHub Actions' `strategy.matrix` accepts."""
    return {"include": [asdict(r) for r in rows]}
