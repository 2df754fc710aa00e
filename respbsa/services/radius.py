"""Element radius tables used for the solver's dielectric boundary."""

from __future__ import annotations

import logging
from typing import Dict, Optional

from respbsa.model.state import AtomRecord

logger = logging.getLogger(__name__)

# Atomic number -> element symbol for the elements seen in biomolecular systems.
ELEMENTS_BY_NUMBER = {
    1: "H",
    3: "Li",
    5: "B",
    6: "C",
    7: "N",
    8: "O",
    9: "F",
    11: "Na",
    12: "Mg",
    13: "Al",
    14: "Si",
    15: "P",
    16: "S",
    17: "Cl",
    19: "K",
    20: "Ca",
    25: "Mn",
    26: "Fe",
    27: "Co",
    28: "Ni",
    29: "Cu",
    30: "Zn",
    35: "Br",
    53: "I",
}

BONDI_RADII = {
    "H": 1.2,
    "C": 1.7,
    "N": 1.55,
    "O": 1.5,
    "F": 1.5,
    "Si": 2.1,
    "P": 1.85,
    "S": 1.8,
    "Cl": 1.7,
    "Br": 1.85,
    "I": 1.98,
}

# mBondi: hydrogen radius depends on its bonding partner.
MBONDI_HYDROGEN = {"C": 1.3, "N": 1.3, "O": 0.8, "S": 0.8}

RADIUS_TABLES: Dict[str, Dict[str, float]] = {
    "bondi": BONDI_RADII,
    "mbondi": BONDI_RADII,
}

_TWO_LETTER = {
    "CL",
    "BR",
    "NA",
    "MG",
    "ZN",
    "FE",
    "LI",
    "SI",
    "AL",
    "CU",
    "MN",
    "CO",
    "NI",
}


def element_from_number(atomnumber: Optional[int]) -> Optional[str]:
    if atomnumber is None or atomnumber <= 0:
        return None
    return ELEMENTS_BY_NUMBER.get(int(atomnumber))


def guess_element(atom_name: str) -> Optional[str]:
    """Guess an element symbol from an atom name.

    Two-letter symbols are only taken for names that are exactly the
    symbol (ions such as ``NA`` or ``CL``); ``CA`` stays a carbon.

    Parameters
    ----------
    atom_name
        Atom name as written in the topology.

    Returns
    -------
    str or None
        Element symbol, or None for an empty name.
    """

    name = (atom_name or "").strip()
    i = 0
    while i < len(name) and name[i].isdigit():
        i += 1
    name = name[i:]
    if not name:
        return None
    upper = name.upper()
    if upper in _TWO_LETTER:
        return upper[0] + upper[1].lower()
    return upper[0]


def lookup_radius(atom: AtomRecord, policy: str, default_radius: float) -> float:
    """Return the radius (A) for an atom under a radius policy.

    Parameters
    ----------
    atom
        Atom record (element and hydrogen partner are used when known).
    policy
        ``lj``, ``bondi`` or ``mbondi``.
    default_radius
        Fallback radius for elements missing from the table.

    Returns
    -------
    float
        Atom radius in A.

    Raises
    ------
    ValueError
        If the policy is unknown.
    """

    if policy == "lj":
        return float(atom.radius)
    table = RADIUS_TABLES.get(policy)
    if table is None:
        raise ValueError(f"Unknown radius policy: {policy}")
    element = atom.element or guess_element(atom.name)
    if element == "H" and policy == "mbondi":
        partner = atom.bonded_element
        if partner is None and atom.resolved_name:
            partner = guess_element(atom.resolved_name[1:])
        if partner in MBONDI_HYDROGEN:
            return MBONDI_HYDROGEN[partner]
    radius = table.get(element or "")
    if radius is None:
        logger.debug(
            "No %s radius for atom %s (element %s); using %.3f",
            policy,
            atom.name,
            element,
            default_radius,
        )
        return float(default_radius)
    return radius
