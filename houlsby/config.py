"""
Solver configuration: defaults, and loading overrides from simple YAML files.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Dict


LOGGER = logging.getLogger("houlsby.config")

RUN_SETTING_KEYS = ("guess", "guess_mode")  # read by the CLI, not solver options


@dataclass(frozen=True)
class SolverOptions:
    xatol: float = 1e-10  # Nelder-Mead abscissa tolerance, u2 and u2/u1 passes
    fatol: float = 1e-12  # Nelder-Mead residual tolerance
    forecast_xatol: float = 1e-12  # abscissa tolerance for the V0 forecast pass
    max_iter: int = 2000  # iteration cap per reconciliation
    max_fev: int = 4000  # function-evaluation cap per reconciliation
    tolerance: float = 1e-6  # residual above which a converged sample is flagged


def _parse_value(text: str) -> float | str:
    """Numbers become floats; anything else, quoted or bare, stays a string."""
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "'\"":
        return text[1:-1]
    try:
        return float(text)
    except ValueError:
        return text


def _read_simple_yaml(path: Path) -> Dict[str, float | str]:
    """
    Flat `key: value` settings, one per line, with `#` comments.

    Bare words are kept as strings because run settings such as guess_mode
    are enumerations; numeric keys reject them in `load_options`.
    """
    data: Dict[str, float | str] = {}
    with path.open("r", encoding="utf-8") as fh:
        for line in fh:
            content = line.split(" #", 1)[0].strip()
            if not content or content.startswith("#") or ":" not in content:
                continue
            key, _, value = content.partition(":")
            data[key.strip()] = _parse_value(value.strip())
    return data


def load_options(path: Path | str, base: SolverOptions | None = None) -> SolverOptions:
    """
    Read solver settings from a `key: value` file.

    Keys matching SolverOptions fields override `base`. RUN_SETTING_KEYS are
    left for the caller; anything else is ignored with a warning.
    """
    raw = _read_simple_yaml(Path(path))
    known = {f.name for f in fields(SolverOptions)}
    updates: Dict[str, float | int] = {}
    for key, value in raw.items():
        if key in RUN_SETTING_KEYS:
            continue
        if key not in known:
            LOGGER.warning("Ignoring unknown solver option '%s' in %s", key, path)
            continue
        if isinstance(value, str):
            LOGGER.warning("Skipping unparsable option value '%s' for key '%s'", value, key)
            continue
        updates[key] = int(value) if key in ("max_iter", "max_fev") else float(value)
    return replace(base or SolverOptions(), **updates)


def read_settings(path: Path | str) -> Dict[str, float | str]:
    """All entries of a settings file, including non-solver keys such as guess_mode."""
    return _read_simple_yaml(Path(path))
