"""
Parameter Recovery Module

Converts the output vector of a normalized hardening search into physical
Armstrong-Frederick parameters (combined nonlinear kinematic / isotropic
hardening), and persists them for the deck writers.

Normalized search vector layout:
    [Fy, total hardening, C0, b, gamma_1, f_1, gamma_2, f_2, ...]

where f_n is the fraction of the total hardening budget saturated by
backstress n. Whatever is left over goes to isotropic hardening (Qinf).

Physical (solver) layout:
    [Fy, Qinf, b, C0, gamma_0, C_1, gamma_1, C_2, gamma_2, ...]

gamma_0 is the rate slot of the linear kinematic term and is always 0 for
parameters recovered from a normalized vector.
"""

from __future__ import annotations

import json
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Sequence, Tuple, Union

import numpy as np
from scipy.io import loadmat, savemat


PARAMETER_FILE = "AF_parameters.json"


class ShapeAmbiguityWarning(UserWarning):
    """Optimizer vector kind was inferred from its length."""


# ============================================================================
# TAGGED INPUT VECTORS
# ============================================================================

@dataclass(frozen=True)
class NormalizedVector:
    """Output of a normalized search: [Fy, total, C0, b, gamma_1, f_1, ...]"""
    values: Tuple[float, ...]

    def __post_init__(self):
        object.__setattr__(self, "values", tuple(float(v) for v in self.values))
        n = len(self.values)
        if n < 6 or n % 2:
            raise ValueError(
                f"Normalized vector needs an even length >= 6, got {n}"
            )


@dataclass(frozen=True)
class PhysicalParameterSet:
    """Vector that is already in the physical solver layout."""
    values: Tuple[float, ...]

    def __post_init__(self):
        object.__setattr__(self, "values", tuple(float(v) for v in self.values))
        n = len(self.values)
        if n < 5 or n % 2 == 0:
            raise ValueError(
                f"Physical parameter vector needs an odd length >= 5, got {n}"
            )


OptimizerVector = Union[NormalizedVector, PhysicalParameterSet, Sequence[float], np.ndarray]


def classify_vector(values: Sequence[float]) -> Union[NormalizedVector, PhysicalParameterSet]:
    """
    Tag an untagged optimizer vector by its length.

    Even lengths are read as normalized search output. Odd lengths are read
    as physical parameters, with a ShapeAmbiguityWarning because in almost
    all cases that is not what the caller meant.
    """
    values = np.asarray(values, dtype=float).ravel()
    if len(values) % 2 == 0:
        return NormalizedVector(tuple(values))

    # Fy, Qinf, b, C0, gamma_0 at least
    physical = PhysicalParameterSet(tuple(values))
    warnings.warn(
        "Input is inconsistent with normalized parameters; "
        f"assuming a pre-defined physical parameter set of length {len(values)}. "
        "Pass NormalizedVector or PhysicalParameterSet to state the kind explicitly.",
        ShapeAmbiguityWarning,
        stacklevel=3,
    )
    return physical


# ============================================================================
# PHYSICAL PARAMETERS
# ============================================================================

@dataclass(frozen=True)
class MaterialParameterSet:
    """Armstrong-Frederick parameters (stress units follow the input vector)"""
    fy: float  # Yield stress
    q_inf: float  # Isotropic saturation stress
    b: float  # Isotropic rate
    c0: float  # Linear kinematic modulus
    backstresses: Tuple[Tuple[float, float], ...] = field(default_factory=tuple)  # (C_n, gamma_n)
    gamma0: float = 0.0

    @property
    def n_backstresses(self) -> int:
        """Number of backstress terms in the solver input, linear term included."""
        return len(self.backstresses) + 1

    @property
    def saturated_hardening(self) -> float:
        """Qinf + sum(C_n / gamma_n) over the nonlinear kinematic terms (inf if one never saturates)."""
        total = self.q_inf
        for c, gamma in self.backstresses:
            if gamma == 0.0:
                if c != 0.0:
                    return float(np.inf)
                continue
            total += c / gamma
        return total

    def as_vector(self) -> np.ndarray:
        """Flat solver layout [Fy, Qinf, b, C0, gamma_0, C_1, gamma_1, ...]"""
        flat = [self.fy, self.q_inf, self.b, self.c0, self.gamma0]
        for c, gamma in self.backstresses:
            flat.extend((c, gamma))
        return np.array(flat, dtype=float)

    @classmethod
    def from_vector(cls, values: Sequence[float]) -> 'MaterialParameterSet':
        """Inverse of as_vector()"""
        values = PhysicalParameterSet(tuple(np.asarray(values, dtype=float).ravel())).values
        pairs = tuple(
            (values[i], values[i + 1]) for i in range(5, len(values), 2)
        )
        return cls(
            fy=values[0],
            q_inf=values[1],
            b=values[2],
            c0=values[3],
            gamma0=values[4],
            backstresses=pairs,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fy": self.fy,
            "q_inf": self.q_inf,
            "b": self.b,
            "c0": self.c0,
            "gamma0": self.gamma0,
            "backstresses": [[c, gamma] for c, gamma in self.backstresses],
            "params": self.as_vector().tolist(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MaterialParameterSet':
        if "params" in data:
            return cls.from_vector(data["params"])
        return cls(
            fy=float(data["fy"]),
            q_inf=float(data["q_inf"]),
            b=float(data["b"]),
            c0=float(data["c0"]),
            gamma0=float(data.get("gamma0", 0.0)),
            backstresses=tuple((float(c), float(g)) for c, g in data.get("backstresses", [])),
        )


# ============================================================================
# RECOVERY
# ============================================================================

def recover_parameters(vector: OptimizerVector) -> MaterialParameterSet:
    """
    Recover physical Armstrong-Frederick parameters from an optimizer vector.

    Parameters
    ----------
    vector : NormalizedVector, PhysicalParameterSet or sequence of float
        Optimizer output. Untagged sequences are classified by length
        (see classify_vector).

    Returns
    -------
    params : MaterialParameterSet
        For normalized input, C_n = total * f_n * gamma_n and
        Qinf = total * (1 - sum(f_n)), so that Qinf + sum(C_n / gamma_n)
        equals the total hardening. Physical input is returned unchanged.

    Notes
    -----
    No bounds are enforced: fractions summing above 1 give a negative Qinf,
    and non-positive rates are passed through as is.
    """
    if not isinstance(vector, (NormalizedVector, PhysicalParameterSet)):
        vector = classify_vector(vector)

    if isinstance(vector, PhysicalParameterSet):
        return MaterialParameterSet.from_vector(vector.values)

    v = np.asarray(vector.values, dtype=float)
    fy, total, c0, b = v[:4]
    gammas = v[4::2]
    fractions = v[5::2]

    c_n = total * fractions * gammas
    q_inf = total * (1.0 - np.sum(fractions))

    return MaterialParameterSet(
        fy=float(fy),
        q_inf=float(q_inf),
        b=float(b),
        c0=float(c0),
        gamma0=0.0,
        backstresses=tuple((float(c), float(g)) for c, g in zip(c_n, gammas)),
    )


# ============================================================================
# PERSISTENCE
# ============================================================================

def save_parameters(params: MaterialParameterSet, path: Union[str, Path] = PARAMETER_FILE) -> Path:
    """
    Save a parameter set under its well-known name.

    A ``.mat`` suffix writes a MATLAB file with a single ``params`` row
    vector; anything else is written as JSON.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    if path.suffix.lower() == ".mat":
        savemat(str(path), {"params": params.as_vector()[np.newaxis, :]})
    else:
        with open(path, "w") as f:
            json.dump(params.to_dict(), f, indent=2)

    return path


def load_parameters(path: Union[str, Path] = PARAMETER_FILE) -> MaterialParameterSet:
    """Load a parameter set written by save_parameters()."""
    path = Path(path)
    if path.suffix.lower() == ".mat":
        data = loadmat(str(path))
        return MaterialParameterSet.from_vector(np.asarray(data["params"]).ravel())

    with open(path, "r") as f:
        return MaterialParameterSet.from_dict(json.load(f))


def parameter_labels(params: MaterialParameterSet) -> List[str]:
    """Labels matching as_vector(), for reports."""
    labels = ["Fy", "Qinf", "b", "C0", "gamma0"]
    for n in range(1, len(params.backstresses) + 1):
        labels.extend((f"C{n}", f"gamma{n}"))
    return labels
