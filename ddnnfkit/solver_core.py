"""Clause storage, watched-literal propagation and the decision heap."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterable, Optional, TextIO

from .literals import LBool, mk_lit, negate, readable_lit, sign_of, var_of


def _check_range(name: str, value: float, low: float, low_inclusive: bool,
                 high: float, high_inclusive: bool) -> None:
    above = value >= low if low_inclusive else value > low
    below = value <= high if high_inclusive else value < high
    if not (above and below):
        raise ValueError(f"{name} out of range: {value}")


@dataclass
class SolverOptions:
    """Tunable parameters of the solver."""

    var_decay: float = 0.95
    clause_decay: float = 0.999
    random_var_freq: float = 0.0
    random_seed: float = 91648253.0
    ccmin_mode: int = 2
    phase_saving: int = 2
    rnd_init_act: bool = False
    luby_restart: bool = True
    restart_first: int = 100
    restart_inc: float = 2.0
    garbage_frac: float = 0.20

    def __post_init__(self) -> None:
        _check_range("var_decay", self.var_decay, 0, False, 1, False)
        _check_range("clause_decay", self.clause_decay, 0, False, 1, False)
        _check_range("random_var_freq", self.random_var_freq, 0, True, 1, True)
        _check_range("random_seed", self.random_seed, 0, False, math.inf, False)
        _check_range("ccmin_mode", self.ccmin_mode, 0, True, 2, True)
        _check_range("phase_saving", self.phase_saving, 0, True, 2, True)
        _check_range("restart_first", self.restart_first, 1, True, 2**31 - 1, True)
        _check_range("restart_inc", self.restart_inc, 1, False, math.inf, False)
        _check_range("garbage_frac", self.garbage_frac, 0, False, math.inf, False)


@dataclass(eq=False)
class Clause:
    """A clause held by the solver; compared by identity."""

    literals: list[int]
    learnt: bool = False
    activity: float = 0.0
    attached: bool = False
    deleted: bool = False
    idx_reason: int = 0

    def __len__(self) -> int:
        return len(self.literals)

    def __getitem__(self, index: int) -> int:
        return self.literals[index]

    def __iter__(self):
        return iter(self.literals)

    def dimacs(self) -> list[int]:
        """Return the clause as DIMACS integers."""
        return [readable_lit(lit) for lit in self.literals]


class _VarHeap:
    """A binary heap of variables, most active first."""

    def __init__(self, activity: list[float]) -> None:
        self._activity = activity
        self._heap: list[int] = []
        self._indices: list[int] = []

    def _lt(self, a: int, b: int) -> bool:
        return self._activity[a] > self._activity[b]

    def _place(self, var: int, position: int) -> None:
        self._heap[position] = var
        self._indices[var] = position

    def _grow(self, var: int) -> None:
        if var >= len(self._indices):
            self._indices.extend([-1] * (var + 1 - len(self._indices)))

    def _up(self, position: int) -> None:
        var = self._heap[position]
        while position > 0:
            parent = (position - 1) >> 1
            if not self._lt(var, self._heap[parent]):
                break
            self._place(self._heap[parent], position)
            position = parent
        self._place(var, position)

    def _down(self, position: int) -> None:
        var = self._heap[position]
        size = len(self._heap)
        while 2 * position + 1 < size:
            child = 2 * position + 1
            if child + 1 < size and self._lt(self._heap[child + 1], self._heap[child]):
                child += 1
            if not self._lt(self._heap[child], var):
                break
            self._place(self._heap[child], position)
            position = child
        self._place(var, position)

    def __len__(self) -> int:
        return len(self._heap)

    def empty(self) -> bool:
        return not self._heap

    def in_heap(self, var: int) -> bool:
        return var < len(self._indices) and self._indices[var] >= 0

    def insert(self, var: int) -> None:
        self._grow(var)
        self._heap.append(var)
        self._indices[var] = len(self._heap) - 1
        self._up(len(self._heap) - 1)

    def decrease(self, var: int) -> None:
        self._up(self._indices[var])

    def remove_min(self) -> int:
        top = self._heap[0]
        last = self._heap.pop()
        self._indices[top] = -1
        if self._heap:
            self._place(last, 0)
            self._down(0)
        return top

    def build(self, variables: Iterable[int]) -> None:
        for var in self._heap:
            self._indices[var] = -1
        self._heap = []
        for var in variables:
            self._grow(var)
            self._heap.append(var)
            self._indices[var] = len(self._heap) - 1
        for position in reversed(range(len(self._heap) // 2)):
            self._down(position)


class SolverCore:
    """Variables, clauses, assignment trail and unit propagation."""

    def __init__(self, certificate: Optional[TextIO] = None,
                 options: Optional[SolverOptions] = None) -> None:
        self.certificate = certificate
        self.options = options if options is not None else SolverOptions()
        opts = self.options
        self.verbosity = 0
        self.var_decay = opts.var_decay
        self.clause_decay = opts.clause_decay
        self.random_var_freq = opts.random_var_freq
        self.random_seed = opts.random_seed
        self.luby_restart = opts.luby_restart
        self.ccmin_mode = opts.ccmin_mode
        self.phase_saving = opts.phase_saving
        self.rnd_init_act = opts.rnd_init_act
        self.garbage_frac = opts.garbage_frac
        self.restart_first = opts.restart_first
        self.restart_inc = opts.restart_inc
        self.learntsize_factor = 1.0 / 3.0
        self.learntsize_inc = 1.1
        self.learntsize_adjust_start_confl = 100
        self.learntsize_adjust_inc = 1.5
        self.max_learnts = 0.0
        self.learntsize_adjust_confl = 0.0
        self.learntsize_adjust_cnt = 0

        self.solves = self.starts = self.decisions = self.rnd_decisions = 0
        self.propagations = self.conflicts = 0
        self.dec_vars = self.clauses_literals = self.learnts_literals = 0
        self.max_literals = self.tot_literals = 0

        self.ok = True
        self.cla_inc = 1.0
        self.var_inc = 1.0
        self.clauses: list[Clause] = []
        self.learnts: list[Clause] = []
        self.phantoms: list[Clause] = []
        self.watches: list[list[tuple[Clause, int]]] = []
        self._dirty: set[int] = set()
        self.assigns: list[LBool] = []
        self.reasons: list[Optional[Clause]] = []
        self.levels: list[int] = []
        self.activity: list[float] = []
        self.score_activity: list[float] = []
        self.polarity: list[bool] = []
        self.decision: list[bool] = []
        self.seen: list[bool] = []
        self.trail: list[int] = []
        self.trail_lim: list[int] = []
        self.qhead = 0
        self.simp_db_assigns = -1
        self.simp_db_props = 0
        self.assumptions: list[int] = []
        self.order_heap = _VarHeap(self.activity)
        self.progress = 0.0
        self.remove_satisfied_clauses = True

        self.model: list[LBool] = []
        self.conflict: list[int] = []
        self.need_model = False
        self.is_tautology = False
        self.idx_clauses_cpt = 0
        self.idx_reason_final = 0

        self.conflict_budget = -1
        self.propagation_budget = -1
        self.asynch_interrupt = False

        self.in_the_heap: list[int] = []
        self.stamp_in_the_heap = 0
        self.insist_true_polarity: list[bool] = []
        self.already_considered: list[bool] = []
        self.must_be_considered: list[int] = []
        self.to_un_considered: list[bool] = []
        self.was_considered_occ: list[bool] = []
        self.kind_of_variable: list[str] = []
        self.save_free: list[int] = []
        self.current_model: list[LBool] = []

    # ------------------------------------------------------------------ variables

    @property
    def n_vars(self) -> int:
        return len(self.assigns)

    def _drand(self) -> float:
        seed = self.random_seed * 1389796
        q = int(seed / 2147483647)
        seed -= q * 2147483647
        self.random_seed = seed
        return seed / 2147483647

    def new_var(self, polarity: bool = True, decision: bool = True) -> int:
        """Create a variable and return its index."""
        var = self.n_vars
        self.watches.append([])
        self.watches.append([])
        self.assigns.append(LBool.UNDEF)
        self.reasons.append(None)
        self.levels.append(0)
        self.score_activity.append(0.0)
        self.activity.append(self._drand() * 0.00001 if self.rnd_init_act else 0.0)
        self.seen.append(False)
        self.polarity.append(bool(polarity))
        self.decision.append(False)
        self.in_the_heap.append(0)
        self.set_decision_var(var, decision)
        self.already_considered.append(False)
        self.to_un_considered.append(False)
        self.was_considered_occ.append(False)
        self.kind_of_variable.append("v")
        self.save_free.append(0)
        self.current_model.append(LBool.FALSE)
        self.insist_true_polarity.append(False)
        return var

    def set_polarity(self, var: int, value: bool) -> None:
        """Set the preferred polarity (True picks the negative literal)."""
        self.polarity[var] = bool(value)

    def set_decision_var(self, var: int, value: bool) -> None:
        """Declare whether the variable may be chosen as a decision."""
        value = bool(value)
        if value and not self.decision[var]:
            self.dec_vars += 1
        elif not value and self.decision[var]:
            self.dec_vars -= 1
        self.decision[var] = value
        self._insert_var_order(var)

    # ------------------------------------------------------------------ reading state

    def value(self, lit: int) -> LBool:
        """Return the current value of a literal."""
        return self.assigns[var_of(lit)].xor(sign_of(lit))

    def value_var(self, var: int) -> LBool:
        """Return the current value of a variable."""
        return self.assigns[var]

    def model_value(self, lit: int) -> LBool:
        """Return the value of a literal in the last model."""
        return self.model[var_of(lit)].xor(sign_of(lit))

    def decision_level(self) -> int:
        return len(self.trail_lim)

    def level(self, var: int) -> int:
        return self.levels[var]

    def reason(self, var: int) -> Optional[Clause]:
        return self.reasons[var]

    def clause_is_sat(self, clause: Iterable[int]) -> bool:
        """Return True when some literal of the clause is true."""
        return any(self.value(lit) is LBool.TRUE for lit in clause)

    def _locked(self, clause: Clause) -> bool:
        first = clause[0]
        return self.value(first) is LBool.TRUE and self.reasons[var_of(first)] is clause

    # ------------------------------------------------------------------ certificate

    def _cert_write(self, text: str) -> None:
        if self.certificate is not None:
            self.certificate.write(text)

    def _cert_clause(self, literals: Iterable[int]) -> str:
        return "".join(f"{readable_lit(lit)} " for lit in literals) + "0\n"

    # ------------------------------------------------------------------ clauses

    def add_clause(self, literals: Iterable[int]) -> bool:
        """Add a problem clause at level 0; return False once unsatisfiable."""
        if self.decision_level() != 0:
            raise RuntimeError("clauses can only be added at decision level 0")
        if not self.ok:
            return False
        self.is_tautology = False

        original = sorted(literals)
        kept: list[int] = []
        previous: Optional[int] = None
        for lit in original:
            value = self.value(lit)
            if value is LBool.TRUE or (previous is not None and lit == negate(previous)):
                self.is_tautology = True
                return True
            if value is not LBool.FALSE and lit != previous:
                kept.append(lit)
                previous = lit

        if self.certificate is not None:
            self._cert_write(self._cert_clause(kept)[:-1] + "\nd ")
            self._cert_write(self._cert_clause(original))
            self.idx_clauses_cpt += 1

        if not kept:
            self.ok = False
            return False
        if len(kept) == 1:
            self.unchecked_enqueue(kept[0])
            conflict = self.propagate()
            if conflict is not None:
                self._cert_write(f"{readable_lit(conflict[0])} 0\n")
            self.ok = conflict is None
            return self.ok

        clause = Clause(kept, learnt=False)
        self.clauses.append(clause)
        self._attach_clause(clause)
        clause.idx_reason = self.idx_clauses_cpt
        return True

    def _attach_clause(self, clause: Clause) -> None:
        if clause.attached:
            raise ValueError("clause is already attached")
        if len(clause) < 2:
            raise ValueError("only clauses of two or more literals are watched")
        clause.attached = True
        self.watches[negate(clause[0])].append((clause, clause[1]))
        self.watches[negate(clause[1])].append((clause, clause[0]))
        if clause.learnt:
            self.learnts_literals += len(clause)
        else:
            self.clauses_literals += len(clause)

    def _detach_clause(self, clause: Clause, strict: bool = False) -> None:
        if not clause.attached:
            raise ValueError("clause is not attached")
        clause.attached = False
        for watched in (negate(clause[0]), negate(clause[1])):
            if strict:
                self.watches[watched] = [w for w in self.watches[watched] if w[0] is not clause]
            else:
                self._dirty.add(watched)
        if clause.learnt:
            self.learnts_literals -= len(clause)
        else:
            self.clauses_literals -= len(clause)

    def _clean_watches(self) -> None:
        for lit in self._dirty:
            self.watches[lit] = [w for w in self.watches[lit] if not w[0].deleted]
        self._dirty.clear()

    # ------------------------------------------------------------------ activity

    def _insert_var_order(self, var: int) -> None:
        if (not self.order_heap.in_heap(var) and self.decision[var]
                and self.in_the_heap[var] == self.stamp_in_the_heap):
            self.order_heap.insert(var)

    def _var_decay_activity(self) -> None:
        self.var_inc *= 1 / self.var_decay

    def _var_bump_activity(self, var: int, inc: Optional[float] = None) -> None:
        self.score_activity[var] += 1
        self.activity[var] += self.var_inc if inc is None else inc
        if self.activity[var] > 1e100:
            self.activity[:] = [act * 1e-100 for act in self.activity]
            self.var_inc *= 1e-100
        if self.order_heap.in_heap(var):
            self.order_heap.decrease(var)

    def _cla_decay_activity(self) -> None:
        self.cla_inc *= 1 / self.clause_decay

    def _cla_bump_activity(self, clause: Clause) -> None:
        clause.activity += self.cla_inc
        if clause.activity > 1e20:
            for learnt in self.learnts:
                learnt.activity *= 1e-20
            self.cla_inc *= 1e-20

    def rebuild_with_connected_component(self, variables: Iterable[int]) -> None:
        """Restrict decisions to the given variables."""
        variables = list(variables)
        self.stamp_in_the_heap += 1
        for var in variables:
            self.in_the_heap[var] = self.stamp_in_the_heap
        self.order_heap.build(variables)

    def _is_in_the_heap(self, var: int) -> bool:
        return self.in_the_heap[var] == self.stamp_in_the_heap

    # ------------------------------------------------------------------ trail

    def new_decision_level(self) -> None:
        self.trail_lim.append(len(self.trail))

    def unchecked_enqueue(self, lit: int, reason: Optional[Clause] = None) -> None:
        """Assign an unassigned literal true at the current level."""
        if self.value(lit) is not LBool.UNDEF:
            raise ValueError(f"literal {readable_lit(lit)} is already assigned")
        var = var_of(lit)
        self.assigns[var] = LBool.from_bool(not sign_of(lit))
        self.reasons[var] = reason
        self.levels[var] = self.decision_level()
        self.trail.append(lit)

        if not self.already_considered[var] and self.levels[var] <= len(self.assumptions):
            self.must_be_considered.append(lit)
            self.already_considered[var] = True

        if self.certificate is not None and not self.decision_level():
            self.idx_clauses_cpt += 1
            self._cert_write(f"{readable_lit(lit)} 0\n")

    def enqueue(self, lit: int, reason: Optional[Clause] = None) -> bool:
        """Assign the literal unless it is already false; return False then."""
        value = self.value(lit)
        if value is not LBool.UNDEF:
            return value is not LBool.FALSE
        self.unchecked_enqueue(lit, reason)
        return True

    def propagate(self) -> Optional[Clause]:
        """Propagate enqueued literals; return a conflicting clause or None."""
        conflict: Optional[Clause] = None
        num_props = 0
        self._clean_watches()

        while self.qhead < len(self.trail):
            p = self.trail[self.qhead]
            self.qhead += 1
            ws = self.watches[p]
            false_lit = negate(p)
            num_props += 1
            i = j = 0
            end = len(ws)
            while i < end:
                clause, blocker = ws[i]
                if self.value(blocker) is LBool.TRUE:
                    ws[j] = ws[i]
                    i += 1
                    j += 1
                    continue

                lits = clause.literals
                if lits[0] == false_lit:
                    lits[0], lits[1] = lits[1], false_lit
                i += 1

                first = lits[0]
                watcher = (clause, first)
                if first != blocker and self.value(first) is LBool.TRUE:
                    ws[j] = watcher
                    j += 1
                    continue

                for k in range(2, len(lits)):
                    if self.value(lits[k]) is not LBool.FALSE:
                        lits[1], lits[k] = lits[k], false_lit
                        self.watches[negate(lits[1])].append(watcher)
                        break
                else:
                    ws[j] = watcher
                    j += 1
                    if self.value(first) is LBool.FALSE:
                        conflict = clause
                        self.qhead = len(self.trail)
                        while i < end:
                            ws[j] = ws[i]
                            i += 1
                            j += 1
                    else:
                        self.unchecked_enqueue(first, clause)
            del ws[j:]

        self.propagations += num_props
        self.simp_db_props -= num_props
        return conflict

    def cancel_until(self, level: int) -> None:
        """Undo every assignment above ``level``."""
        if self.decision_level() <= level:
            return
        limit = self.trail_lim[level]
        for lit in reversed(self.trail[limit:]):
            var = var_of(lit)
            self.to_un_considered[var] = self.was_considered_occ[var]
            self.assigns[var] = LBool.UNDEF
            self.polarity[var] = sign_of(lit)
            self._insert_var_order(var)
        self.qhead = limit
        del self.trail[limit:]
        del self.trail_lim[level:]

    def back_track(self) -> None:
        """Undo the last decision level."""
        self.cancel_until(self.decision_level() - 1)

    def pick_branch_lit(self) -> Optional[int]:
        """Return the next decision literal, or None when none is left."""
        while True:
            if self.order_heap.empty():
                return None
            var = self.order_heap.remove_min()
            if (self.assigns[var] is LBool.UNDEF and self.decision[var]
                    and self._is_in_the_heap(var)):
                break
        if self.insist_true_polarity[var]:
            return mk_lit(var, False)
        return mk_lit(var, self.polarity[var])

    # ------------------------------------------------------------------ budgets

    def set_conf_budget(self, budget: int) -> None:
        self.conflict_budget = self.conflicts + budget

    def set_prop_budget(self, budget: int) -> None:
        self.propagation_budget = self.propagations + budget

    def budget_off(self) -> None:
        self.conflict_budget = self.propagation_budget = -1

    def interrupt(self) -> None:
        self.asynch_interrupt = True

    def clear_interrupt(self) -> None:
        self.asynch_interrupt = False

    def within_budget(self) -> bool:
        return (not self.asynch_interrupt
                and (self.conflict_budget < 0 or self.conflicts < self.conflict_budget)
                and (self.propagation_budget < 0 or self.propagations < self.propagation_budget))