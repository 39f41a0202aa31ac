import io

import pytest

from ddnnfkit.literals import LBool, mk_lit, negate
from ddnnfkit.solver_core import Clause, SolverCore, SolverOptions


def make(n, **kwargs):
    solver = SolverCore(**kwargs)
    for _ in range(n):
        solver.new_var()
    return solver


def test_options_defaults_follow_source():
    opts = SolverOptions()
    assert opts.var_decay == 0.95
    assert opts.restart_first == 100
    assert opts.ccmin_mode == 2


@pytest.mark.parametrize("kwargs", [{"var_decay": 1.0}, {"ccmin_mode": 3}, {"restart_inc": 1.0}])
def test_options_out_of_range(kwargs):
    with pytest.raises(ValueError):
        SolverOptions(**kwargs)


def test_new_var_indices_and_values():
    solver = SolverCore()
    assert [solver.new_var() for _ in range(3)] == [0, 1, 2]
    assert all(solver.value_var(v) is LBool.UNDEF for v in range(3))
    assert solver.dec_vars == 3


def test_unit_clause_assigns_at_level_zero():
    solver = make(2)
    assert solver.add_clause([mk_lit(1, True)])
    assert solver.value(mk_lit(1, True)) is LBool.TRUE
    assert solver.value(mk_lit(1)) is LBool.FALSE
    assert solver.level(1) == 0
    assert solver.reason(1) is None


def test_tautology_is_dropped():
    solver = make(2)
    assert solver.add_clause([mk_lit(0), mk_lit(0, True), mk_lit(1)])
    assert solver.is_tautology
    assert solver.clauses == []


def test_empty_clause_makes_solver_unsat():
    solver = make(1)
    assert solver.add_clause([]) is False
    assert solver.ok is False
    assert solver.add_clause([mk_lit(0)]) is False


def test_contradicting_units():
    solver = make(1)
    assert solver.add_clause([mk_lit(0)])
    assert solver.add_clause([mk_lit(0, True)]) is False
    assert solver.ok is False


def test_duplicates_and_false_literals_removed():
    solver = make(3)
    solver.add_clause([mk_lit(0, True)])
    solver.add_clause([mk_lit(0), mk_lit(1), mk_lit(1), mk_lit(2)])
    assert len(solver.clauses) == 1
    assert sorted(solver.clauses[0].literals) == [mk_lit(1), mk_lit(2)]


def test_propagation_sets_reason():
    solver = make(2)
    solver.add_clause([mk_lit(0, True), mk_lit(1)])
    solver.new_decision_level()
    solver.unchecked_enqueue(mk_lit(0))
    assert solver.propagate() is None
    assert solver.value(mk_lit(1)) is LBool.TRUE
    assert solver.reason(1) is solver.clauses[0]
    assert solver.level(1) == 1


def test_propagation_conflict():
    solver = make(2)
    solver.add_clause([mk_lit(0, True), mk_lit(1)])
    solver.add_clause([mk_lit(0, True), mk_lit(1, True)])
    solver.new_decision_level()
    solver.unchecked_enqueue(mk_lit(0))
    conflict = solver.propagate()
    assert conflict in solver.clauses
    assert all(solver.value(lit) is LBool.FALSE for lit in conflict)


def test_long_clause_watch_moves():
    solver = make(4)
    solver.add_clause([mk_lit(0), mk_lit(1), mk_lit(2), mk_lit(3)])
    solver.new_decision_level()
    for v in (0, 1, 2):
        solver.unchecked_enqueue(mk_lit(v, True))
        assert solver.propagate() is None
    assert solver.value(mk_lit(3)) is LBool.TRUE


def test_cancel_until_restores_state():
    solver = make(2)
    solver.add_clause([mk_lit(0, True), mk_lit(1)])
    solver.new_decision_level()
    solver.unchecked_enqueue(mk_lit(0))
    solver.propagate()
    solver.cancel_until(0)
    assert solver.trail == []
    assert solver.decision_level() == 0
    assert solver.value_var(0) is LBool.UNDEF
    assert solver.polarity[0] is False


def test_back_track_removes_one_level():
    solver = make(2)
    solver.new_decision_level()
    solver.unchecked_enqueue(mk_lit(0))
    solver.new_decision_level()
    solver.unchecked_enqueue(mk_lit(1))
    solver.back_track()
    assert solver.decision_level() == 1
    assert solver.value_var(1) is LBool.UNDEF
    assert solver.value_var(0) is LBool.TRUE


def test_add_clause_above_level_zero_raises():
    solver = make(2)
    solver.new_decision_level()
    with pytest.raises(RuntimeError):
        solver.add_clause([mk_lit(0), mk_lit(1)])


def test_unchecked_enqueue_assigned_raises():
    solver = make(1)
    solver.unchecked_enqueue(mk_lit(0))
    with pytest.raises(ValueError):
        solver.unchecked_enqueue(mk_lit(0, True))


def test_enqueue_reports_contradiction():
    solver = make(1)
    assert solver.enqueue(mk_lit(0))
    assert solver.enqueue(mk_lit(0))
    assert solver.enqueue(mk_lit(0, True)) is False


def test_pick_branch_lit_prefers_activity():
    solver = make(3)
    solver.activity[2] = 5.0
    solver.rebuild_with_connected_component([0, 1, 2])
    lit = solver.pick_branch_lit()
    assert lit == mk_lit(2, True)


def test_pick_branch_lit_respects_component():
    solver = make(3)
    solver.rebuild_with_connected_component([1])
    lit = solver.pick_branch_lit()
    assert lit is not None and lit >> 1 == 1
    solver.new_decision_level()
    solver.unchecked_enqueue(lit)
    assert solver.pick_branch_lit() is None


def test_non_decision_var_never_picked():
    solver = make(2)
    solver.set_decision_var(0, False)
    picked = []
    while (lit := solver.pick_branch_lit()) is not None:
        picked.append(lit >> 1)
    assert picked == [1]
    assert solver.dec_vars == 1


def test_insist_true_polarity_and_set_polarity():
    solver = make(2)
    solver.set_polarity(0, False)
    solver.rebuild_with_connected_component([0])
    assert solver.pick_branch_lit() == mk_lit(0)
    solver.insist_true_polarity[1] = True
    solver.rebuild_with_connected_component([1])
    assert solver.pick_branch_lit() == mk_lit(1)


def test_budgets():
    solver = make(1)
    assert solver.within_budget()
    solver.set_conf_budget(0)
    assert not solver.within_budget()
    solver.budget_off()
    assert solver.within_budget()
    solver.set_prop_budget(0)
    assert not solver.within_budget()
    solver.budget_off()
    solver.interrupt()
    assert not solver.within_budget()
    solver.clear_interrupt()
    assert solver.within_budget()


def test_clause_is_sat():
    solver = make(2)
    clause = Clause([mk_lit(0), mk_lit(1)])
    assert not solver.clause_is_sat(clause)
    solver.unchecked_enqueue(mk_lit(1))
    assert solver.clause_is_sat(clause)
    assert clause.dimacs() == [1, 2]


def test_certificate_output_for_unit_clause():
    out = io.StringIO()
    solver = make(1, certificate=out)
    solver.add_clause([mk_lit(0)])
    assert out.getvalue() == "1 0\nd 1 0\n1 0\n"


def test_model_value_uses_model():
    solver = make(1)
    solver.model = [LBool.TRUE]
    assert solver.model_value(mk_lit(0)) is LBool.TRUE
    assert solver.model_value(negate(mk_lit(0))) is LBool.FALSE