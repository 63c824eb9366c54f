"""
Test collection loading, selection and validation.

A test collection maps test names to loosely typed records, as stored in
the MATLAB struct files the calibration tools work with. Records are turned
into typed TestCase objects here, and anything missing is rejected before
any deck is written or any job is submitted.

Required record keys:
    template   : path of the template input deck
    rxNodeSet  : assembly-level node set whose reaction force is measured
    symmetric  : whether the model is a symmetric half of the specimen
    displ      : measured displacement series
    force      : measured force series
"""

from __future__ import annotations

import json
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

import numpy as np
import yaml
from scipy.io import loadmat


REQUIRED_FIELDS = ("template", "rxNodeSet", "symmetric", "displ", "force")

TestCollection = Mapping[str, Mapping[str, Any]]
Selection = Union[str, None, Sequence[Union[int, str]]]


class MissingFieldError(ValueError):
    """A selected test record lacks a required field."""

    def __init__(self, test_name: str, field_name: str):
        self.test_name = test_name
        self.field_name = field_name
        super().__init__(
            f"Test '{test_name}' is missing required field '{field_name}'"
        )


@dataclass(frozen=True)
class TestCase:
    """One physical test and how to model it"""
    __test__ = False  # not a pytest class

    name: str
    template: str
    rx_node_set: str
    symmetric: bool
    displ: np.ndarray
    force: np.ndarray

    @classmethod
    def from_record(cls, name: str, record: Mapping[str, Any]) -> 'TestCase':
        """Build a typed test case, raising MissingFieldError on the first gap."""
        for key in REQUIRED_FIELDS:
            if _is_missing(record.get(key)):
                raise MissingFieldError(name, key)

        displ = np.asarray(record["displ"], dtype=float).ravel()
        force = np.asarray(record["force"], dtype=float).ravel()
        if len(displ) != len(force):
            raise ValueError(
                f"Test '{name}' has {len(displ)} displacement values "
                f"but {len(force)} force values"
            )

        return cls(
            name=name,
            template=str(record["template"]),
            rx_node_set=str(record["rxNodeSet"]),
            symmetric=bool(np.asarray(record["symmetric"]).item()),
            displ=displ,
            force=force,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "template": self.template,
            "rxNodeSet": self.rx_node_set,
            "symmetric": self.symmetric,
            "displ": self.displ.tolist(),
            "force": self.force.tolist(),
        }


# ============================================================================
# SELECTION & VALIDATION
# ============================================================================

def select_tests(collection: TestCollection, selection: Selection = "all") -> List[str]:
    """
    Resolve a selection to an ordered list of test names.

    Parameters
    ----------
    collection : mapping
        Test name -> record, in natural order
    selection : "all", None, or sequence of int / str
        "all" (any case) or None selects every test in natural order.
        Otherwise an ordered sequence of 0-based positions or test names.

    Returns
    -------
    names : list of str

    Raises
    ------
    ValueError
        If a position is out of range or a name is unknown
    """
    names = list(collection.keys())

    if selection is None or (isinstance(selection, str) and selection.lower() == "all"):
        return names
    if isinstance(selection, str):
        selection = [selection]

    selected = []
    for item in selection:
        if isinstance(item, str):
            if item not in collection:
                raise ValueError(f"Unknown test '{item}'. Available: {', '.join(names)}")
            selected.append(item)
            continue

        idx = int(item)
        if idx < 0 or idx >= len(names):
            raise ValueError(
                f"Test position {idx} out of range for {len(names)} tests"
            )
        selected.append(names[idx])

    return selected


def validate_tests(collection: TestCollection, names: Iterable[str]) -> "OrderedDict[str, TestCase]":
    """
    Check every selected record and convert it to a TestCase.

    Raises
    ------
    MissingFieldError
        Naming the first test and field found missing
    """
    tests = OrderedDict()
    for name in names:
        if name not in collection:
            raise ValueError(f"Unknown test '{name}'")
        tests[name] = TestCase.from_record(name, collection[name])
    return tests


# ============================================================================
# LOADING
# ============================================================================

def load_test_collection(path: Union[str, Path], variable: Optional[str] = None) -> "OrderedDict[str, Dict[str, Any]]":
    """
    Load a test collection from a .mat, .yaml/.yml or .json file.

    For MATLAB files the collection is either a single struct variable whose
    fields are the tests (``variable`` picks it when there are several), or
    the file's top-level struct variables themselves.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Test collection not found: {path}")

    suffix = path.suffix.lower()
    if suffix == ".mat":
        return _load_mat_collection(path, variable)

    with open(path, "r") as f:
        if suffix in (".yaml", ".yml"):
            raw = yaml.safe_load(f) or {}
        elif suffix == ".json":
            raw = json.load(f, object_pairs_hook=OrderedDict)
        else:
            raise ValueError(f"Unsupported test collection format: {path.suffix}")

    if variable is not None:
        raw = raw[variable]
    if not isinstance(raw, Mapping):
        raise ValueError(f"{path} does not hold a mapping of test name -> record")

    return OrderedDict((str(name), dict(record or {})) for name, record in raw.items())


def _load_mat_collection(path: Path, variable: Optional[str]) -> "OrderedDict[str, Dict[str, Any]]":
    data = loadmat(str(path), squeeze_me=True, struct_as_record=False)
    variables = OrderedDict((k, v) for k, v in data.items() if not k.startswith("__"))

    if variable is not None:
        root = variables[variable]
    elif len(variables) == 1:
        root = next(iter(variables.values()))
    else:
        root = None

    if root is not None and _is_struct(root) and all(
        _is_struct(getattr(root, name)) for name in root._fieldnames
    ):
        items = [(name, getattr(root, name)) for name in root._fieldnames]
    else:
        items = [(k, v) for k, v in variables.items() if _is_struct(v)]

    return OrderedDict(
        (name, {f: getattr(struct, f) for f in struct._fieldnames})
        for name, struct in items
    )


def _is_struct(value: Any) -> bool:
    return hasattr(value, "_fieldnames")


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, np.ndarray):
        return value.size == 0
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False
