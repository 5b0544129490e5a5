"""
Time grids, trinomial trees and the lattices built on them.
"""

from .time_grid import TimeGrid, merge_times
from .trinomial_tree import Branching, TrinomialTree, build_trinomial_tree
from .tree_lattice import TreeLattice, TreeLattice1D, TreeLattice2D, rollback
from .black_scholes_lattice import BlackScholesLattice

__all__ = [
    "TimeGrid",
    "merge_times",
    "Branching",
    "TrinomialTree",
    "build_trinomial_tree",
    "TreeLattice",
    "TreeLattice1D",
    "TreeLattice2D",
    "rollback",
    "BlackScholesLattice",
]
