"""Conflict-driven search on top of the managed clause database."""

from __future__ import annotations

from typing import Iterable, Optional

from .literals import LBool, mk_lit, negate, var_of
from .solver_core import Clause
from .solver_db import ManagedSolver


def luby(y: float, x: int) -> float:
    """Return ``y`` raised to the ``x``-th term of the Luby sequence."""
    size, seq = 1, 0
    while size < x + 1:
        seq += 1
        size = 2 * size + 1
    while size - 1 != x:
        size = (size - 1) >> 1
        seq -= 1
        x = x % size
    return y ** seq


class Solver(ManagedSolver):
    """A CDCL solver with restarts, clause learning and assumptions."""

    def __init__(self, certificate=None, options=None) -> None:
        super().__init__(certificate, options)
        self._analyze_toclear: list[int] = []

    # ------------------------------------------------------------------ analysis

    def _abstract_level(self, var: int) -> int:
        return 1 << (self.levels[var] & 31)

    def _lit_redundant(self, lit: int, abstract_levels: int) -> bool:
        stack = [lit]
        top = len(self._analyze_toclear)
        while stack:
            reason = self.reasons[var_of(stack.pop())]
            if reason is None:
                raise RuntimeError("redundancy check reached a decision literal")
            for q in reason.literals[1:]:
                v = var_of(q)
                if self.seen[v] or self.levels[v] <= 0:
                    continue
                if self.reasons[v] is not None and self._abstract_level(v) & abstract_levels:
                    self.seen[v] = True
                    stack.append(q)
                    self._analyze_toclear.append(q)
                else:
                    for cleared in self._analyze_toclear[top:]:
                        self.seen[var_of(cleared)] = False
                    del self._analyze_toclear[top:]
                    return False
        return True

    def _minimize(self, learnt: list[int]) -> int:
        """Shrink ``learnt`` in place and return the backtrack level."""
        self._analyze_toclear = list(learnt)
        before = len(learnt)
        if self.ccmin_mode == 2:
            abstract = 0
            for q in learnt[1:]:
                abstract |= self._abstract_level(var_of(q))
            learnt[1:] = [
                q for q in learnt[1:]
                if self.reasons[var_of(q)] is None or not self._lit_redundant(q, abstract)
            ]
        elif self.ccmin_mode == 1:
            kept = []
            for q in learnt[1:]:
                reason = self.reasons[var_of(q)]
                if reason is None or any(
                    not self.seen[var_of(r)] and self.levels[var_of(r)] > 0
                    for r in reason.literals[1:]
                ):
                    kept.append(q)
            learnt[1:] = kept

        self.max_literals += before
        self.tot_literals += len(learnt)

        if len(learnt) == 1:
            level = 0
        else:
            max_i = 1
            for k in range(2, len(learnt)):
                if self.levels[var_of(learnt[k])] > self.levels[var_of(learnt[max_i])]:
                    max_i = k
            learnt[1], learnt[max_i] = learnt[max_i], learnt[1]
            level = self.levels[var_of(learnt[1])]

        for q in self._analyze_toclear:
            self.seen[var_of(q)] = False
        return level

    def _next_seen(self, index: int) -> tuple[int, int]:
        while not self.seen[var_of(self.trail[index])]:
            index -= 1
        return self.trail[index], index - 1

    def analyze(self, conflict: Clause) -> tuple[list[int], int]:
        """Derive the first-UIP clause of a conflict; return it and the backtrack level."""
        path_c = 0
        p: Optional[int] = None
        learnt: list[int] = [0]
        index = len(self.trail) - 1
        confl: Optional[Clause] = conflict
        while True:
            if confl is None:
                raise RuntimeError("conflict analysis reached a literal without reason")
            if confl.learnt:
                self._cla_bump_activity(confl)
            for q in confl.literals[0 if p is None else 1:]:
                v = var_of(q)
                if not self.seen[v] and self.levels[v] > 0:
                    self._var_bump_activity(v)
                    self.seen[v] = True
                    if self.levels[v] >= self.decision_level():
                        path_c += 1
                    else:
                        learnt.append(q)
            p, index = self._next_seen(index)
            confl = self.reasons[var_of(p)]
            self.seen[var_of(p)] = False
            path_c -= 1
            if path_c <= 0:
                break
        learnt[0] = negate(p)
        return learnt, self._minimize(learnt)

    def analyze_last_uip(self, conflict: Clause) -> tuple[list[int], int]:
        """Derive the last-UIP clause of a conflict; return it and the backtrack level."""
        p: Optional[int] = None
        learnt: list[int] = [0]
        index = len(self.trail) - 1
        confl: Optional[Clause] = conflict
        while True:
            if confl.learnt:
                self._cla_bump_activity(confl)
            for q in confl.literals[0 if p is None else 1:]:
                v = var_of(q)
                if not self.seen[v] and self.levels[v] > 0:
                    self._var_bump_activity(v)
                    self.seen[v] = True
                    if self.levels[v] < self.decision_level():
                        learnt.append(q)
            p, index = self._next_seen(index)
            confl = self.reasons[var_of(p)]
            self.seen[var_of(p)] = False
            if confl is None:
                break
        learnt[0] = negate(p)
        return learnt, self._minimize(learnt)

    def analyze_final(self, lit: int) -> list[int]:
        """Express the assignment of ``lit`` in terms of the assumptions."""
        result = [lit]
        if self.decision_level() == 0:
            return result
        self.seen[var_of(lit)] = True
        for position in range(len(self.trail) - 1, self.trail_lim[0] - 1, -1):
            q = self.trail[position]
            v = var_of(q)
            if not self.seen[v]:
                continue
            reason = self.reasons[v]
            if reason is None:
                result.append(negate(q))
            else:
                for r in reason.literals[1:]:
                    if self.levels[var_of(r)] > 0:
                        self.seen[var_of(r)] = True
            self.seen[v] = False
        self.seen[var_of(lit)] = False
        return result

    def progress_estimate(self) -> float:
        """Return a rough measure of how much of the search space is done."""
        n = self.n_vars
        if n == 0:
            return 0.0
        factor = 1.0 / n
        progress = 0.0
        level = self.decision_level()
        for i in range(level + 1):
            begin = 0 if i == 0 else self.trail_lim[i - 1]
            end = len(self.trail) if i == level else self.trail_lim[i]
            progress += factor ** i * (end - begin)
        return progress / n

    # ------------------------------------------------------------------ search

    def _learn(self, literals: list[int]) -> Clause:
        clause = Clause(list(literals), learnt=True)
        self.learnts.append(clause)
        self._attach_clause(clause)
        self._cla_bump_activity(clause)
        return clause

    def _search(self, nof_conflicts: int) -> LBool:
        if not self.ok:
            raise RuntimeError("search on an unsatisfiable solver")
        conflict_c = 0
        self.starts += 1
        while True:
            confl = self.propagate()
            if confl is not None:
                self.conflicts += 1
                conflict_c += 1
                if self.decision_level() == 0:
                    self._cert_write(self._cert_clause([confl[0]]))
                    return LBool.FALSE

                learnt, backtrack = self.analyze(confl)
                self.cancel_until(backtrack)
                self._cert_write(self._cert_clause(learnt))
                self.idx_clauses_cpt += 1
                if len(learnt) == 1:
                    self.cancel_until(0)
                    self.unchecked_enqueue(learnt[0])
                else:
                    clause = self._learn(learnt)
                    self.unchecked_enqueue(learnt[0], clause)
                    clause.idx_reason = self.idx_clauses_cpt

                self._var_decay_activity()
                self._cla_decay_activity()
                self.learntsize_adjust_cnt -= 1
                if self.learntsize_adjust_cnt == 0:
                    self.learntsize_adjust_confl *= self.learntsize_adjust_inc
                    self.learntsize_adjust_cnt = int(self.learntsize_adjust_confl)
                    self.max_learnts *= self.learntsize_inc
                continue

            n_assumptions = len(self.assumptions)
            if (self.decision_level() > n_assumptions and nof_conflicts >= 0
                    and (conflict_c >= nof_conflicts or not self.within_budget())):
                self.progress = self.progress_estimate()
                self.cancel_until(n_assumptions)
                return LBool.UNDEF

            if self.decision_level() == 0 and not self.simplify():
                return LBool.FALSE
            if (self.decision_level() >= n_assumptions
                    and len(self.learnts) - len(self.trail) >= self.max_learnts):
                self.reduce_db()

            next_lit: Optional[int] = None
            while self.decision_level() < n_assumptions:
                p = self.assumptions[self.decision_level()]
                value = self.value(p)
                if value is LBool.TRUE:
                    self.new_decision_level()
                elif value is LBool.FALSE:
                    self.conflict = self.analyze_final(negate(p))
                    self._cert_write(self._cert_clause(self.conflict))
                    self.idx_clauses_cpt += 1
                    if len(self.conflict) == 1:
                        self.cancel_until(0)
                        self.idx_reason_final = -1
                    else:
                        clause = self._learn(self.conflict)
                        clause.idx_reason = self.idx_clauses_cpt
                        self.idx_reason_final = clause.idx_reason
                    return LBool.FALSE
                else:
                    next_lit = p
                    break

            if next_lit is None:
                self.decisions += 1
                next_lit = self.pick_branch_lit()
                if next_lit is None:
                    return LBool.TRUE

            self.new_decision_level()
            self.unchecked_enqueue(next_lit)

    def _solve(self, rebuild_heap: bool = True, conflict_limit: int = 0) -> LBool:
        self.model = []
        self.conflict = []
        if not self.ok:
            return LBool.FALSE
        if rebuild_heap:
            self.rebuild_order_heap()
        self.solves += 1
        if self.solves == 1:
            self.max_learnts = len(self.clauses) * self.learntsize_factor
            self.learntsize_adjust_confl = self.learntsize_adjust_start_confl
            self.learntsize_adjust_cnt = int(self.learntsize_adjust_confl)

        status = LBool.UNDEF
        restarts = 0
        initial_conflicts = self.conflicts
        while status is LBool.UNDEF and (
                not conflict_limit or self.conflicts - initial_conflicts < conflict_limit):
            if self.luby_restart:
                base = luby(self.restart_inc, restarts)
            else:
                base = self.restart_inc ** restarts
            if conflict_limit:
                status = self._search(conflict_limit)
            else:
                status = self._search(int(base * self.restart_first))
            if not self.within_budget():
                break
            restarts += 1

        if self.need_model and status is LBool.TRUE:
            self.model = [self.value_var(v) for v in range(self.n_vars)]
        self.cancel_until(len(self.assumptions))
        return status

    # ------------------------------------------------------------------ public solving

    def solve(self, assumptions: Iterable[int] = ()) -> bool:
        """Search for a model under the given assumptions, without budget."""
        self.budget_off()
        self.assumptions = list(assumptions)
        return self._solve() is LBool.TRUE

    def solve_limited(self, assumptions: Iterable[int] = (),
                      conflict_limit: Optional[int] = None) -> LBool:
        """Search within the current budget, or for at most ``conflict_limit`` conflicts."""
        self.assumptions = list(assumptions)
        if conflict_limit is None:
            return self._solve()
        return self._solve(False, conflict_limit)

    def solve_with_assumptions(self, assumptions: Optional[Iterable[int]] = None,
                               need_model: bool = False) -> bool:
        """Solve under assumptions and return to level 0.

        With no assumptions given, the stored assumptions and model setting
        are used and the solver is left at the assumption levels.
        """
        if assumptions is None:
            self.budget_off()
            return self._solve(False) is LBool.TRUE
        self.cancel_until(0)
        self.assumptions = list(assumptions)
        saved = self.need_model
        self.need_model = need_model
        result = self.solve_with_assumptions()
        self.need_model = saved
        self.cancel_until(0)
        return result

    def solve_collect_units(self, assumptions: Iterable[int],
                            need_model: bool = False) -> Optional[list[int]]:
        """Solve under assumptions; return the literals implied by them, or None if unsatisfiable."""
        assumptions = list(assumptions)
        self.cancel_until(0)
        self.assumptions = list(assumptions)
        saved = self.need_model
        self.need_model = need_model
        result = self.solve_with_assumptions()
        self.need_model = saved

        units: Optional[list[int]] = None
        if result:
            if assumptions and len(assumptions) < len(self.trail_lim):
                limit = self.trail_lim[len(assumptions)]
            else:
                limit = len(self.trail)
            units = self.trail[:limit]
        self.cancel_until(0)
        return units

    def refill_assumptions(self) -> None:
        """Re-enter every assumption level that was backtracked over."""
        while self.decision_level() < len(self.assumptions):
            p = self.assumptions[self.decision_level()]
            value = self.value(p)
            if value is LBool.FALSE:
                raise RuntimeError("an assumption is falsified")
            self.new_decision_level()
            if value is not LBool.TRUE:
                self.unchecked_enqueue(p)
                if self.propagate() is not None:
                    raise RuntimeError("assumptions lead to a conflict")

    def collect_unit(self, variables: Iterable[int],
                     decision: Optional[int] = None) -> list[int]:
        """Return the assigned literals of the given variables, decision first."""
        units = [] if decision is None else [decision]
        for var in variables:
            if decision is not None and var_of(decision) == var:
                continue
            value = self.value_var(var)
            if value is not LBool.UNDEF:
                units.append(mk_lit(var, value is LBool.FALSE))
        return units

    def compute_lit_propagate(self, lit: int) -> list[int]:
        """Return the literals implied by ``lit`` (itself first), or [] on conflict."""
        implied: list[int] = []
        self.new_decision_level()
        self.unchecked_enqueue(lit)
        if self.propagate() is None:
            implied = self.trail[self.trail_lim[-1]:]
        self.back_track()
        return implied