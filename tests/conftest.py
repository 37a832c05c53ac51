"""Shared fixtures: small lattices with hand-checkable anchors."""

import logging

import pytest

from qbc.lattice import Lattice, Rules, generate_square_lattice, get_lattice, lattice_from_anchors
from qbc.logging import ROOT_LOGGER


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop handlers a test installed through setup_logging()."""
    yield
    root = logging.getLogger(ROOT_LOGGER)
    for handler in list(root.handlers):
        handler.close()
    root.handlers.clear()
    root.setLevel(logging.NOTSET)


@pytest.fixture()
def square() -> Lattice:
    """A-Z + space on a 6x5 grid: A=(0,0), C=(0.4,0), T=(0.2,0.75), X=(1,0.75)."""
    return generate_square_lattice()


@pytest.fixture()
def grid() -> Lattice:
    """Shared 7x7x7 lattice over the extended charset."""
    return get_lattice("grid")


@pytest.fixture()
def twin() -> Lattice:
    """Two symbols sharing one anchor, one elsewhere."""
    return lattice_from_anchors("twin", {"A": (0.5, 0.5), "B": (0.5, 0.5), "C": (0.1, 0.9)})


@pytest.fixture()
def rules() -> Rules:
    return Rules(enable_tick=True, tick_length_factor=0.08, inside_boundary_preference=True)
