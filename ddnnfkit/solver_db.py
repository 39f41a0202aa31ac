"""Clause database management: removal, simplification and phantom clauses."""

from __future__ import annotations

from typing import Iterable, Optional

from .literals import LBool, mk_lit, negate, var_of
from .solver_core import Clause, SolverCore


def _reduce_key(clause: Clause) -> tuple[bool, float]:
    # Binary clauses sort last; longer clauses by increasing activity.
    if len(clause) > 2:
        return (False, clause.activity)
    return (True, 0.0)


class ManagedSolver(SolverCore):
    """A solver core that can prune, simplify and extend its clause database."""

    def __init__(self, certificate=None, options=None) -> None:
        super().__init__(certificate, options)
        self.phantom_mode = False
        self.phantom_lit: Optional[int] = None

    # ------------------------------------------------------------------ removal

    def remove_clause(self, clause: Clause, strict: bool = False) -> None:
        """Detach a clause from the watches and mark it deleted."""
        if self.certificate is not None:
            self._cert_write("d " + self._cert_clause(clause))
        self._detach_clause(clause, strict)
        if self._locked(clause):
            self.reasons[var_of(clause[0])] = None
        clause.deleted = True

    def remove_satisfied(self, clauses: list[Clause]) -> None:
        """Remove, in place, every clause that is satisfied at the current level."""
        kept = []
        for clause in clauses:
            if self.clause_is_sat(clause):
                self.remove_clause(clause)
            else:
                kept.append(clause)
        clauses[:] = kept

    def rebuild_order_heap(self) -> None:
        """Rebuild the decision heap from the unassigned decision variables."""
        self.order_heap.build(
            var
            for var in range(self.n_vars)
            if self.decision[var]
            and self.assigns[var] is LBool.UNDEF
            and self.in_the_heap[var] == self.stamp_in_the_heap
        )

    def simplify(self) -> bool:
        """Remove clauses satisfied at level 0; return False if unsatisfiable."""
        if self.decision_level() != 0:
            raise RuntimeError("simplify requires decision level 0")
        if not self.ok or self.propagate() is not None:
            self.ok = False
            return False
        if len(self.trail) == self.simp_db_assigns or self.simp_db_props > 0:
            return True

        self.remove_satisfied(self.learnts)
        if self.remove_satisfied_clauses:
            self.remove_satisfied(self.clauses)
        self.rebuild_order_heap()

        self.simp_db_assigns = len(self.trail)
        self.simp_db_props = self.clauses_literals + self.learnts_literals
        return True

    def reduce_db(self) -> None:
        """Remove about half of the learnt clauses, keeping binary and locked ones."""
        if not self.learnts:
            return
        extra_lim = self.cla_inc / len(self.learnts)
        self.learnts.sort(key=_reduce_key)
        half = len(self.learnts) // 2
        kept = []
        for position, clause in enumerate(self.learnts):
            if (len(clause) > 2 and not self._locked(clause)
                    and (position < half or clause.activity < extra_lim)):
                self.remove_clause(clause)
            else:
                kept.append(clause)
        self.learnts[:] = kept

    def remove_learnt(self) -> None:
        """Remove every learnt clause that is not the reason of an assignment."""
        kept = []
        for clause in self.learnts:
            if self._locked(clause):
                kept.append(clause)
            else:
                self.remove_clause(clause, strict=True)
        self.learnts[:] = kept

    # ------------------------------------------------------------------ insertion

    def insert_clause_and_propagate(self, literals: Iterable[int]) -> None:
        """Learn a clause whose first literal is asserted, then propagate.

        Every literal but the first must be false; the solver backtracks to
        the highest level among them and replays the assumptions afterwards.
        """
        lits = list(literals)
        if not lits:
            raise ValueError("cannot insert an empty clause")
        self._cert_write(self._cert_clause(lits))
        self.idx_clauses_cpt += 1

        if len(lits) > 1:
            highest = max(range(1, len(lits)), key=lambda k: (self.level(var_of(lits[k])), -k))
            lits[1], lits[highest] = lits[highest], lits[1]
            self.cancel_until(self.level(var_of(lits[1])))
            clause = Clause(lits, learnt=True)
            self.learnts.append(clause)
            self._attach_clause(clause)
            self.unchecked_enqueue(lits[0], clause)
            clause.idx_reason = self.idx_clauses_cpt
        else:
            self.cancel_until(0)
            self.unchecked_enqueue(lits[0])

        self.propagate()

        while self.decision_level() < len(self.assumptions):
            assumption = self.assumptions[self.decision_level()]
            self.new_decision_level()
            if self.value(assumption) is LBool.UNDEF:
                self.unchecked_enqueue(assumption)
            self.propagate()

    # ------------------------------------------------------------------ phantoms

    def start_phantom_mode(self) -> None:
        """Create the phantom selector variable, once."""
        if self.phantom_mode:
            return
        self.phantom_mode = True
        self.phantom_lit = mk_lit(self.new_var(), False)

    def add_phantom_clause(self, literals: Iterable[int]) -> bool:
        """Add a clause guarded by the phantom literal; False once unsatisfiable."""
        if self.phantom_lit is None:
            raise RuntimeError("phantom mode has not been started")
        if self.decision_level() != 0:
            raise RuntimeError("phantom clauses can only be added at decision level 0")
        lits = list(literals) + [negate(self.phantom_lit)]

        kept: list[int] = []
        previous: Optional[int] = None
        for lit in lits:
            value = self.value(lit)
            if value is LBool.TRUE or (previous is not None and lit == negate(previous)):
                return True
            if value is not LBool.FALSE and lit != previous:
                kept.append(lit)
                previous = lit

        if not kept:
            self.ok = False
            return False
        if len(kept) == 1:
            self.unchecked_enqueue(kept[0])
            self.ok = self.propagate() is None
            return self.ok

        clause = Clause(kept, learnt=False)
        self.phantoms.append(clause)
        self._attach_clause(clause)
        return True

    def _remove_phantom_trail(self) -> None:
        self.cancel_until(0)
        phantom_var = var_of(self.phantom_lit)
        kept = []
        for lit in self.trail:
            var = var_of(lit)
            if var == phantom_var:
                self.assigns[var] = LBool.UNDEF
                self._insert_var_order(var)
            else:
                kept.append(lit)
        self.trail[:] = kept
        self.qhead = min(self.qhead, len(self.trail))
        if self.trail_lim:
            self.trail_lim[0] = len(self.trail)

    def _remove_phantom_clauses_from_learnt(self) -> None:
        guard = negate(self.phantom_lit)
        kept = []
        for clause in self.learnts:
            if guard in clause.literals:
                self.remove_clause(clause, strict=True)
            else:
                kept.append(clause)
        self.learnts[:] = kept

    def _remove_phantoms(self) -> None:
        for clause in self.phantoms:
            self.remove_clause(clause, strict=True)
        self.phantoms.clear()

    def remove_phantom_trace(self) -> None:
        """Drop the phantom assignment, the learnt clauses it guards and the phantoms."""
        if self.phantom_lit is None:
            raise RuntimeError("phantom mode has not been started")
        self._remove_phantom_trail()
        self._remove_phantom_clauses_from_learnt()
        self._remove_phantoms()

    # ------------------------------------------------------------------ trail

    def cancel_until_old_zero_level_trail(self, size: int) -> None:
        """Backtrack to level 0 and drop level-0 assignments beyond ``size``."""
        self.cancel_until(0)
        if size < 0 or size > len(self.trail):
            raise ValueError(f"trail size {size} out of range 0..{len(self.trail)}")
        for lit in reversed(self.trail[size:]):
            var = var_of(lit)
            self.assigns[var] = LBool.UNDEF
            self._insert_var_order(var)
        self.qhead = size
        del self.trail[size:]
        if self.trail_lim:
            self.trail_lim[0] = size