"""Lennard-Jones table builders."""

from __future__ import annotations

from typing import List, Sequence, Tuple

import numpy as np

from respbsa.errors import InputParseError
from respbsa.model.state import NonbondedTypeTable

LJ_ONE_SIXTH = 1.0 / 6.0


def build_type_table(
    c6_values: Sequence[float], c12_values: Sequence[float], ntypes: int
) -> NonbondedTypeTable:
    """Build the square C6/C12 table from row-major pair values.

    Parameters
    ----------
    c6_values
        C6 coefficients for every (i, j) type pair, row-major.
    c12_values
        C12 coefficients for every (i, j) type pair, row-major.
    ntypes
        Number of van der Waals types.

    Returns
    -------
    NonbondedTypeTable
        Table with ``ntypes`` x ``ntypes`` matrices.

    Raises
    ------
    InputParseError
        If the value counts do not match ``ntypes**2`` or the matrices are
        not symmetric.
    """

    expected = ntypes * ntypes
    if len(c6_values) != expected or len(c12_values) != expected:
        raise InputParseError(
            "lj_table_size",
            f"Expected {expected} LJ pair entries for {ntypes} types",
            {"c6": len(c6_values), "c12": len(c12_values)},
        )
    c6 = np.asarray(c6_values, dtype=float).reshape(ntypes, ntypes)
    c12 = np.asarray(c12_values, dtype=float).reshape(ntypes, ntypes)
    c6.setflags(write=False)
    c12.setflags(write=False)
    table = NonbondedTypeTable(c6=c6, c12=c12)
    if not table.is_symmetric():
        raise InputParseError("lj_table_asymmetric", "LJ pair table is not symmetric")
    return table


def derive_lj_by_type(
    table: NonbondedTypeTable, default_radius: float
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Compute sigma, epsilon and radius from each type's self term.

    Parameters
    ----------
    table
        Nonbonded coefficient table (C6 in kJ/mol nm^6, C12 in kJ/mol nm^12).
    default_radius
        Radius (A) for types whose C6 or C12 self term is zero.

    Returns
    -------
    tuple
        ``(sigma, epsilon, radius)`` arrays; sigma and radius in A.
    """

    ntypes = table.ntypes
    sigma = np.zeros(ntypes, dtype=float)
    epsilon = np.zeros(ntypes, dtype=float)
    radius = np.full(ntypes, float(default_radius), dtype=float)
    for type_index in range(ntypes):
        c6 = float(table.c6[type_index, type_index])
        c12 = float(table.c12[type_index, type_index])
        if c6 != 0.0 and c12 != 0.0:
            sigma[type_index] = 10.0 * pow(c12 / c6, LJ_ONE_SIXTH)
            epsilon[type_index] = c6 * c6 / (4.0 * c12)
            radius[type_index] = 0.5 * sigma[type_index]
    return sigma, epsilon, radius


def format_table_rows(table: NonbondedTypeTable) -> List[str]:
    """Format table rows as ``<i> c6 c12 c6 c12 ...`` lines."""

    rows: List[str] = []
    for i in range(table.ntypes):
        values = " ".join(
            f"{float(table.c6[i, j])!r} {float(table.c12[i, j])!r}"
            for j in range(table.ntypes)
        )
        rows.append(f"{i:6d} {values}")
    return rows


def parse_table_rows(rows: Sequence[str], ntypes: int) -> NonbondedTypeTable:
    """Parse rows written by :func:`format_table_rows`.

    Parameters
    ----------
    rows
        Table lines.
    ntypes
        Number of types.

    Returns
    -------
    NonbondedTypeTable
        Reconstructed table.

    Raises
    ------
    InputParseError
        If a row is malformed.
    """

    c6_values: List[float] = []
    c12_values: List[float] = []
    for row_index, row in enumerate(rows):
        fields = row.split()
        if len(fields) != 1 + 2 * ntypes:
            raise InputParseError(
                "lj_row_malformed",
                f"LJ table row {row_index} has {len(fields)} fields, expected {1 + 2 * ntypes}",
            )
        try:
            values = [float(value) for value in fields[1:]]
        except ValueError as exc:
            raise InputParseError(
                "lj_row_malformed", f"LJ table row {row_index} is not numeric", str(exc)
            ) from exc
        c6_values.extend(values[0::2])
        c12_values.extend(values[1::2])
    return build_type_table(c6_values, c12_values, ntypes)
