"""Backbone, at-most-one and equivalence tools, DIMACS output and trace formatting."""

from __future__ import annotations

from typing import Iterable, Optional, Sequence, TextIO

from .literals import LBool, mk_lit, negate, readable_lit, sign_of, var_of
from .solver import Solver
from .solver_core import Clause


def compute_backbone(solver: Solver, variables: Optional[Iterable[int]] = None) -> list[int]:
    """Find the literals of ``variables`` true in every model and assign them.

    Without ``variables`` the variables of the current component are used.
    Returns the backbone literals that were found by search; variables
    already assigned before the search are skipped.
    """
    if variables is None:
        component = [
            var for var in range(solver.n_vars)
            if solver.in_the_heap[var] == solver.stamp_in_the_heap
        ]
    else:
        component = list(variables)

    solver.need_model = True
    try:
        if not solver.solve_with_assumptions():
            raise RuntimeError("the formula is unsatisfiable")

        model = solver.model
        first_model = [model[var] for var in component]
        for var in component:
            solver.save_free[var] = 1 + model[var].value
            if solver.value_var(var) is not LBool.UNDEF:
                solver.save_free[var] = 3

        found: list[int] = []
        current_level = solver.decision_level()
        for position, var in enumerate(component):
            if solver.value_var(var) is not LBool.UNDEF or solver.save_free[var] == 3:
                continue

            lit = mk_lit(var, solver.save_free[var] == LBool.FALSE.value + 1)
            solver.assumptions.append(negate(lit))
            for later in component[position + 1:]:
                solver.polarity[later] = not solver.polarity[later]
            satisfiable = solver.solve_with_assumptions()
            solver.assumptions.pop()

            if satisfiable:
                for offset, later in enumerate(component[position + 1:], start=position + 1):
                    if first_model[offset] is not solver.model[later]:
                        solver.save_free[later] |= 1 + solver.model[later].value
            else:
                found.append(lit)
            solver.cancel_until(current_level)

        for var in component:
            solver.save_free[var] = 0
        for lit in found:
            if solver.value(lit) is LBool.UNDEF:
                solver.unchecked_enqueue(lit)
        return found
    finally:
        solver.need_model = False


def search_at_most_one(solver: Solver, literals: Sequence[int]) -> tuple[list[int], list[int]]:
    """Search an at-most-one constraint starting from ``literals``.

    ``literals[0]`` must imply every other literal of the sequence.
    Returns the literals of the constraint (the start literal first) and
    the literals found able to be true.
    """
    if not literals:
        raise ValueError("at least one literal is required")
    first = literals[0]
    candidates = [negate(lit) for lit in literals[1:]]
    can_be_true = [first]
    if candidates:
        candidates = [candidates[-1]] + candidates[:-1]
    candidates.sort(key=lambda lit: -solver.activity[var_of(lit)])

    position = 0
    while position < len(candidates):
        lit = candidates[position]
        solver.new_decision_level()
        solver.unchecked_enqueue(lit)
        if solver.propagate() is None:
            can_be_true.append(lit)
            candidates[position + 1:] = [
                other for other in candidates[position + 1:]
                if solver.value(other) is LBool.FALSE
            ]
        solver.back_track()
        position += 1

    return [can_be_true[0]] + candidates, can_be_true


def create_equiv_classes(pairs: Iterable[Sequence[int]],
                         equiv: Sequence[int]) -> tuple[list[list[int]], list[int]]:
    """Group equivalent literals into classes.

    Each pair states that its two literals are equivalent; ``equiv`` maps
    every variable to the literal it is equal to.  Returns the classes and
    the updated mapping.
    """
    pending: list[Optional[tuple[int, int]]] = [
        (pair[0], pair[1]) if len(pair) else None for pair in pairs
    ]
    mapping = list(equiv)
    classes: list[list[int]] = []

    for start, pair in enumerate(pending):
        if pair is None:
            continue
        root = pair[0]
        if sign_of(root):
            root = negate(root)
        if var_of(mapping[var_of(root)]) != var_of(root):
            continue

        members: list[int] = []
        classes.append(members)
        stack = [var_of(root)]
        while stack:
            var = stack.pop()
            members.append(mk_lit(var, sign_of(mapping[var])))
            for index in range(start, len(pending)):
                current = pending[index]
                if current is None:
                    continue
                if var != var_of(current[0]) and var != var_of(current[1]):
                    continue
                pos = 0 if var == var_of(current[0]) else 1
                other, same = current[1 - pos], current[pos]
                if sign_of(other):
                    other, same = negate(other), negate(same)
                if var_of(mapping[var_of(other)]) != var_of(other):
                    continue
                if var_of(other) == var_of(root):
                    raise ValueError("inconsistent equivalence pairs")
                target = mapping[var_of(same)]
                mapping[var_of(other)] = negate(target) if sign_of(same) else target
                stack.append(var_of(other))
                pending[index] = None

    return classes, mapping


def _substitute(solver: Solver, clause: Clause, mapping: list[int]) -> Optional[list[int]]:
    """Rewrite a clause through ``mapping``; None when it becomes satisfied."""
    rewritten = []
    for lit in clause.literals:
        var = var_of(lit)
        if var_of(mapping[var]) != var:
            lit = negate(mapping[var]) if sign_of(lit) else mapping[var]
        rewritten.append(lit)

    kept: list[int] = []
    seen: dict[int, int] = {}
    for lit in rewritten:
        value = solver.value(lit)
        if value is not LBool.UNDEF:
            if value is LBool.TRUE:
                return None
            continue
        previous = seen.get(var_of(lit))
        if previous is None:
            seen[var_of(lit)] = lit
            kept.append(lit)
        elif previous == negate(lit):
            return None
    return kept


def replace_equivalences(solver: Solver, pairs: Iterable[Sequence[int]]) -> None:
    """Replace equivalent variables by a class representative in every clause."""
    pair_list = [list(pair) for pair in pairs]
    if not pair_list:
        return

    mapping = [mk_lit(var, False) for var in range(solver.n_vars)]
    solver.need_model = True
    try:
        if not solver.solve():
            raise RuntimeError("the formula is unsatisfiable")
        solver.remove_satisfied(solver.clauses)

        for pair in pair_list:
            for k in (0, 1):
                if solver.model[var_of(pair[k])] is LBool.FALSE:
                    pair[k] = negate(pair[k])

        classes, mapping = create_equiv_classes(pair_list, mapping)

        for clause in solver.clauses:
            solver._detach_clause(clause, strict=True)

        kept_clauses: list[Clause] = []
        for clause in solver.clauses:
            literals = _substitute(solver, clause, mapping)
            if literals is not None and len(literals) > 1:
                clause.literals = literals
                kept_clauses.append(clause)
                continue
            clause.deleted = True
            if literals is None:
                continue
            if not literals:
                solver.ok = False
            elif solver.value(literals[0]) is LBool.UNDEF:
                solver.unchecked_enqueue(literals[0])
        solver.clauses[:] = kept_clauses

        for clause in solver.clauses:
            solver._attach_clause(clause)

        for members in classes:
            head = members[0]
            for member in members[1:]:
                solver.add_clause([negate(head), member])
                solver.add_clause([head, negate(member)])
    finally:
        solver.need_model = False


def to_dimacs(solver: Solver, out: TextIO, assumptions: Iterable[int] = ()) -> None:
    """Write the unsatisfied part of the formula to ``out`` in DIMACS format.

    Variables are renumbered in order of appearance; assumptions become
    unit clauses.
    """
    if not solver.ok:
        out.write("p cnf 1 2\n1 0\n-1 0\n")
        return

    assumptions = list(assumptions)
    numbering: dict[int, int] = {}

    def number(var: int) -> int:
        if var not in numbering:
            numbering[var] = len(numbering)
        return numbering[var]

    open_clauses = [c for c in solver.clauses if not solver.clause_is_sat(c)]
    for clause in open_clauses:
        for lit in clause:
            if solver.value(lit) is not LBool.FALSE:
                number(var_of(lit))

    count = len(open_clauses) + len(assumptions)
    out.write(f"p cnf {len(numbering)} {count}\n")

    for lit in assumptions:
        if solver.value(lit) is LBool.FALSE:
            raise ValueError(f"assumption {readable_lit(lit)} is false")
        prefix = "-" if sign_of(lit) else ""
        out.write(f"{prefix}{number(var_of(lit)) + 1} 0\n")

    for clause in open_clauses:
        parts = [
            f"{'-' if sign_of(lit) else ''}{number(var_of(lit)) + 1} "
            for lit in clause
            if solver.value(lit) is not LBool.FALSE
        ]
        out.write("".join(parts) + "0\n")

    if solver.verbosity > 0:
        print(f"Wrote {count} clauses with {len(numbering)} variables.")


def write_dimacs(solver: Solver, path: str, assumptions: Iterable[int] = ()) -> None:
    """Write the formula to the file at ``path`` in DIMACS format."""
    with open(path, "w", encoding="ascii") as handle:
        to_dimacs(solver, handle, assumptions)


def format_simplified_clause(solver: Solver, clause: Iterable[int]) -> str:
    """Return the unassigned literals of a clause, or "0" when it is satisfied."""
    literals = list(clause)
    if solver.clause_is_sat(literals):
        return "0"
    parts = [str(readable_lit(lit)) for lit in literals if solver.value(lit) is LBool.UNDEF]
    return " ".join(parts + ["0"])


def format_trail(solver: Solver) -> str:
    """Return the trail with the level of every assignment."""
    entries = " ".join(
        f"{readable_lit(lit)}({solver.level(var_of(lit))})" for lit in solver.trail
    )
    return f"--> {solver.decision_level()}: {entries}"