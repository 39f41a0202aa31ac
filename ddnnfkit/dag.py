"""Shared state, base node and branches of a compiled decision DAG."""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import contextmanager
from enum import IntEnum
from typing import Any, Iterable, Iterator, Optional, TextIO

from .literals import LBool, readable_lit, sign_of, var_of


class Assignment(IntEnum):
    """The value a user fixed for a variable."""

    NOT_ASSIGNED = 0
    TRUE = 1
    FALSE = 2

    @classmethod
    def of_literal(cls, lit: int) -> "Assignment":
        """Return the assignment that makes ``lit`` true."""
        return cls.FALSE if sign_of(lit) else cls.TRUE


class DagContext:
    """State shared by every node of one DAG.

    ``solver`` is optional; when present it must offer
    ``new_decision_level()``, ``decision_level()``, ``value(lit)`` returning
    an :class:`LBool`, ``unchecked_enqueue(lit)``, ``propagate()`` returning
    ``None`` when no conflict arises, and ``cancel_until(level)``.
    """

    def __init__(self, nb_vars: int = 0, solver: Optional[Any] = None) -> None:
        if nb_vars < 0:
            raise ValueError(f"number of variables must be non-negative, got {nb_vars}")
        self.nb_vars = nb_vars
        self.solver = solver
        self.global_stamp = 1
        self.nb_nodes = 0
        self.nb_edges = 0
        self.idx_output_struct = 0
        self.fixed_value = [Assignment.NOT_ASSIGNED] * nb_vars
        self.weights = [1] * (2 * nb_vars)
        self.weights_var = [2] * nb_vars
        self.var_projected = [True] * nb_vars

    def next_stamp(self) -> int:
        """Start a new traversal and return its stamp."""
        self.global_stamp += 1
        return self.global_stamp

    def record_units(self, units: Iterable[int]) -> tuple[int, ...]:
        """Store the unit literals of a branch and account for them."""
        stored = tuple(units)
        self.nb_nodes += len(stored)
        self.nb_edges += len(stored)
        return stored

    def record_free_vars(self, free_vars: Iterable[int]) -> tuple[int, ...]:
        """Store the free variables of a branch."""
        return tuple(free_vars)

    def conflicts(self, lit: int) -> bool:
        """Return True when a fixed value makes ``lit`` false."""
        fixed = self.fixed_value[var_of(lit)]
        return fixed != Assignment.NOT_ASSIGNED and fixed != Assignment.of_literal(lit)

    @contextmanager
    def fixed(self, literals: Iterable[int]) -> Iterator[None]:
        """Fix the given literals for the duration of the block."""
        literals = list(literals)
        for lit in literals:
            self.fixed_value[var_of(lit)] = Assignment.of_literal(lit)
        try:
            yield
        finally:
            for lit in literals:
                self.fixed_value[var_of(lit)] = Assignment.NOT_ASSIGNED


class Node(ABC):
    """A node of the DAG."""

    def __init__(self, context: DagContext) -> None:
        self.context = context
        self.stamp = 0
        context.nb_nodes += 1

    def size(self) -> int:
        """Return the number of nodes reachable from this one."""
        self.context.next_stamp()
        return self._size()

    def _size(self) -> int:
        return 1

    def _visited(self) -> bool:
        return self.stamp == self.context.global_stamp

    def _mark(self) -> None:
        self.stamp = self.context.global_stamp

    def _claim_index(self) -> Optional[int]:
        """Give the node its output index, or None if it already has one."""
        ctx = self.context
        if self.stamp >= ctx.global_stamp:
            return None
        ctx.idx_output_struct += 1
        self.stamp = ctx.global_stamp + ctx.idx_output_struct
        return ctx.idx_output_struct

    def index(self) -> int:
        """Return the output index given during the current printing pass."""
        if self.stamp < self.context.global_stamp:
            raise LookupError("node has not been printed in the current pass")
        return self.stamp - self.context.global_stamp

    @abstractmethod
    def print_nnf(self, out: TextIO, certified: bool = False) -> None:
        """Write the node and its descendants to ``out``."""

    @abstractmethod
    def count_models(self) -> Any:
        """Return the (weighted) model count of the node."""

    def is_sat(self, units: list[int]) -> bool:
        """Return whether the node is satisfiable under the branch units."""
        return False

    def count_models_conditioning(self, literals: Iterable[int]) -> Any:
        """Count models with the given literals fixed."""
        with self.context.fixed(literals):
            return self.count_models()

    def is_sat_conditioning(self, literals: Iterable[int]) -> bool:
        """Decide satisfiability with the given literals fixed."""
        literals = list(literals)
        solver = self.context.solver
        with self.context.fixed(literals):
            result = True
            if solver is not None:
                if solver.decision_level() != 0:
                    raise RuntimeError("conditioning requires the solver at level 0")
                solver.new_decision_level()
                for lit in literals:
                    if not result:
                        break
                    value = solver.value(lit)
                    if value is LBool.UNDEF:
                        solver.unchecked_enqueue(lit)
                    elif value is LBool.FALSE:
                        result = False
                result = result and solver.propagate() is None
            try:
                result = result and self.is_sat(list(literals))
            finally:
                if solver is not None:
                    solver.cancel_until(0)
        return result


class Branch:
    """An edge to a node, labelled with unit literals and free variables."""

    def __init__(
        self,
        node: Node,
        units: Iterable[int] = (),
        free_vars: Iterable[int] = (),
    ) -> None:
        context = node.context
        self.node = node
        self.units = context.record_units(units)
        self.free_vars = context.record_free_vars(free_vars)

    def nb_unit(self) -> int:
        """Return the number of unit literals on the edge."""
        return len(self.units)

    def nb_free(self) -> int:
        """Return the number of free variables on the edge."""
        return len(self.free_vars)

    def print_nnf(self, out: TextIO, certified: bool = False) -> None:
        """Write the target node to ``out``."""
        self.node.print_nnf(out, certified)

    def edge_line(self, parent_index: int, from_cache: Optional[bool] = None) -> str:
        """Return the output line of this edge, optionally with a cache flag."""
        parts = [str(parent_index), str(self.node.index())]
        if from_cache is not None:
            parts.append("1" if from_cache else "2")
        parts.extend(str(readable_lit(lit)) for lit in self.units)
        parts.append("0")
        return " ".join(parts)

    def is_sat(self, units: list[int]) -> bool:
        """Decide satisfiability along this edge; ``units`` is left unchanged."""
        context = self.context
        if any(context.conflicts(lit) for lit in self.units):
            return False

        pending = [
            lit
            for lit in self.units
            if context.fixed_value[var_of(lit)] == Assignment.NOT_ASSIGNED
        ]
        solver = context.solver
        result = True
        if solver is not None:
            solver.new_decision_level()
            for lit in pending:
                value = solver.value(lit)
                if value is LBool.UNDEF:
                    solver.unchecked_enqueue(lit)
                elif value is LBool.FALSE:
                    result = False
                    break
            result = result and solver.propagate() is None

        try:
            if result:
                saved = len(units)
                units.extend(pending)
                try:
                    result = self.node.is_sat(units)
                finally:
                    del units[saved:]
        finally:
            if solver is not None:
                solver.cancel_until(solver.decision_level() - 1)
        return result

    def count_models(self) -> Any:
        """Return the weighted model count of the target times the edge weight."""
        context = self.context
        weight = 1
        for lit in self.units:
            if not context.var_projected[var_of(lit)]:
                continue
            if context.conflicts(lit):
                return 0
            weight *= context.weights[lit]

        count = self.node.count_models()

        for var in self.free_vars:
            if not context.var_projected[var]:
                continue
            fixed = context.fixed_value[var]
            if fixed == Assignment.FALSE:
                weight *= context.weights[(var << 1) | 1]
            elif fixed == Assignment.TRUE:
                weight *= context.weights[var << 1]
            else:
                weight *= context.weights_var[var]
        return count * weight

    @property
    def context(self) -> DagContext:
        return self.node.context