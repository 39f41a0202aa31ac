import itertools
import random

import pytest

from ddnnfkit.literals import LBool, from_dimacs, int_to_lits, mk_lit, negate
from ddnnfkit.solver import Solver, luby


def make_solver(nb_vars, clauses):
    solver = Solver()
    for _ in range(nb_vars):
        solver.new_var()
    for clause in clauses:
        solver.add_clause(int_to_lits(clause))
    return solver


def brute_force_sat(nb_vars, clauses):
    for values in itertools.product([False, True], repeat=nb_vars):
        if all(any(values[abs(x) - 1] == (x > 0) for x in cl) for cl in clauses):
            return True
    return False


def model_satisfies(solver, clauses):
    return all(
        any(solver.model_value(from_dimacs(x)) is LBool.TRUE for x in cl)
        for cl in clauses
    )


def test_luby_sequence_matches_documented_prefix():
    assert [luby(2, i) for i in range(7)] == [1, 1, 2, 1, 1, 2, 4]


def test_luby_base_one_is_constant():
    assert all(luby(1, i) == 1 for i in range(20))


def test_satisfiable_formula_gives_model():
    clauses = [[1, 2], [-1, 3], [-2, -3], [2, 3]]
    solver = make_solver(3, clauses)
    solver.need_model = True
    assert solver.solve() is True
    assert len(solver.model) == 3
    assert model_satisfies(solver, clauses)


def test_unsatisfiable_formula():
    solver = make_solver(2, [[1, 2], [1, -2], [-1, 2], [-1, -2]])
    assert solver.solve() is False


def test_pigeonhole_three_into_two_is_unsat():
    # p(i, h) -> variable 2*i + h + 1
    def p(i, h):
        return 2 * i + h + 1

    clauses = [[p(i, 0), p(i, 1)] for i in range(3)]
    for h in range(2):
        for i, j in itertools.combinations(range(3), 2):
            clauses.append([-p(i, h), -p(j, h)])
    solver = make_solver(6, clauses)
    assert solver.solve() is False
    assert solver.conflicts > 0


@pytest.mark.parametrize("seed", range(12))
def test_random_formulas_agree_with_enumeration(seed):
    rng = random.Random(seed)
    nb_vars = 6
    clauses = []
    for _ in range(rng.randint(10, 30)):
        vs = rng.sample(range(1, nb_vars + 1), 3)
        clauses.append([v if rng.random() < 0.5 else -v for v in vs])
    solver = make_solver(nb_vars, clauses)
    solver.need_model = True
    result = solver.ok and solver.solve()
    assert result == brute_force_sat(nb_vars, clauses)
    if result:
        assert model_satisfies(solver, clauses)


def test_failed_assumptions_give_final_conflict():
    solver = make_solver(2, [[1, 2]])
    x1, x2 = from_dimacs(1), from_dimacs(2)
    assert solver.solve([negate(x1), negate(x2)]) is False
    assert set(solver.conflict) == {x1, x2}


def test_solve_with_assumptions_returns_to_level_zero():
    solver = make_solver(2, [[1, 2]])
    assert solver.solve_with_assumptions([from_dimacs(-1)], need_model=True) is True
    assert solver.decision_level() == 0
    assert solver.model_value(from_dimacs(2)) is LBool.TRUE
    assert solver.need_model is False


def test_solve_limited_returns_lbool():
    solver = make_solver(2, [[1, 2]])
    assert solver.solve_limited([]) is LBool.TRUE
    assert solver.solve_limited([from_dimacs(-1), from_dimacs(-2)], 10) is LBool.FALSE


def test_solve_collect_units_lists_implied_literals():
    solver = make_solver(3, [[-1, 2], [-2, 3]])
    units = solver.solve_collect_units([from_dimacs(1)])
    assert set(int_to_lits([1, 2, 3])) <= set(units)
    assert solver.decision_level() == 0


def test_solve_collect_units_unsat_gives_none():
    solver = make_solver(2, [[-1, 2], [-1, -2]])
    assert solver.solve_collect_units([from_dimacs(1)]) is None


def test_compute_lit_propagate_chain():
    solver = make_solver(3, [[-1, 2], [-2, 3]])
    assert solver.compute_lit_propagate(from_dimacs(1)) == int_to_lits([1, 2, 3])
    assert solver.decision_level() == 0
    assert solver.value(from_dimacs(2)) is LBool.UNDEF


def test_compute_lit_propagate_conflict_is_empty():
    solver = make_solver(2, [[-1, 2], [-1, -2]])
    assert solver.compute_lit_propagate(from_dimacs(1)) == []
    assert solver.decision_level() == 0


def test_collect_unit_reports_assigned_variables():
    solver = make_solver(3, [[1], [-1, -2]])
    assert solver.collect_unit([0, 1, 2]) == int_to_lits([1, -2])
    decision = from_dimacs(3)
    assert solver.collect_unit([0, 2], decision) == [decision, from_dimacs(1)]


def _conflict_setup():
    solver = make_solver(4, [[-1, 2], [-1, 3], [-2, -3]])
    solver.new_decision_level()
    solver.unchecked_enqueue(from_dimacs(4))
    assert solver.propagate() is None
    solver.new_decision_level()
    solver.unchecked_enqueue(from_dimacs(1))
    conflict = solver.propagate()
    assert conflict is not None
    return solver, conflict


def test_analyze_first_uip():
    solver, conflict = _conflict_setup()
    learnt, level = solver.analyze(conflict)
    assert learnt == [from_dimacs(-1)]
    assert level == 0
    assert not any(solver.seen)


def test_analyze_last_uip():
    solver, conflict = _conflict_setup()
    learnt, level = solver.analyze_last_uip(conflict)
    assert learnt == [from_dimacs(-1)]
    assert level == 0
    assert not any(solver.seen)


def test_analyze_final_at_level_zero():
    solver = make_solver(1, [])
    lit = mk_lit(0)
    assert solver.analyze_final(lit) == [lit]


def test_progress_estimate():
    solver = make_solver(2, [])
    assert solver.progress_estimate() == 0.0
    solver.add_clause([from_dimacs(1)])
    assert solver.progress_estimate() == 0.5


def test_refill_assumptions_reenters_levels():
    solver = make_solver(2, [[-1, 2]])
    solver.assumptions = [from_dimacs(1)]
    solver.refill_assumptions()
    assert solver.decision_level() == 1
    assert solver.value(from_dimacs(2)) is LBool.TRUE


def test_refill_assumptions_rejects_false_assumption():
    solver = make_solver(1, [[-1]])
    solver.assumptions = [from_dimacs(1)]
    with pytest.raises(RuntimeError):
        solver.refill_assumptions()