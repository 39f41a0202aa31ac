# ddnnfkit

`ddnnfkit` is a pure-Python toolkit with two parts:

- a conflict-driven clause-learning SAT solver with watched literals, restarts
  that follow the Luby sequence, learnt-clause reduction, assumptions and an
  optional certificate stream;
- the shared base of decision-DNNF circuits: a `DagContext` that holds the
  weights, projected variables and fixed values of one circuit, an abstract
  `Node` class, and `Branch` edges labelled with unit literals and free
  variables, on which weighted model counting and satisfiability tests run.

It has no dependencies outside the standard library.

## Installation

```
pip install .
```

## Literals

Variables are numbered from 0. A literal is an integer `2 * var + sign`, where
sign `1` means negated. `ddnnfkit.literals` converts between that encoding and
DIMACS integers, and defines `LBool` (`TRUE`, `FALSE`, `UNDEF`):

```python
from ddnnfkit.literals import mk_lit, negate, readable_lit, from_dimacs, int_to_lits

lit = mk_lit(0, False)           # x1
assert readable_lit(negate(lit)) == -1
assert from_dimacs(-3) == mk_lit(2, True)
lits = int_to_lits([1, -2, 3])
```

`from_dimacs(0)` and `mk_lit` with a negative variable raise `ValueError`.

## Solving

```python
from ddnnfkit.literals import int_to_lits
from ddnnfkit.solver import Solver

solver = Solver()
for _ in range(3):
    solver.new_var()
solver.add_clause(int_to_lits([1, 2]))
solver.add_clause(int_to_lits([-1, 3]))

print(solver.solve())                                            # True
print(solver.solve_with_assumptions(int_to_lits([-2, -3])))      # False
```

The solver is built in layers:

- `ddnnfkit.solver_core.SolverCore` keeps variables, clauses, the trail and the
  decision heap, and does unit propagation (`propagate` returns the
  conflicting `Clause` or `None`). Parameters live in `SolverOptions`, which
  checks their ranges.
- `ddnnfkit.solver_db.ManagedSolver` adds clause removal, `simplify`,
  `reduce_db`, `insert_clause_and_propagate` and phantom clauses guarded by a
  selector literal (`start_phantom_mode`, `add_phantom_clause`,
  `remove_phantom_trace`).
- `ddnnfkit.solver.Solver` adds conflict analysis and search: `solve`,
  `solve_limited` (returns an `LBool`, `UNDEF` when the limit is reached),
  `solve_with_assumptions`, `solve_collect_units` (the literals implied by the
  assumptions, or `None` when unsatisfiable), `collect_unit` and
  `compute_lit_propagate`.

Pass a text stream as `certificate` to `Solver(certificate, options)` to
receive the added, learnt and deleted clauses in DIMACS-style lines.

### Extra tools

`ddnnfkit.solver_tools` works on a `Solver`:

- `compute_backbone(solver, variables)` finds and assigns the literals that hold
  in all models;
- `search_at_most_one(solver, literals)` looks for an at-most-one constraint;
- `create_equiv_classes(pairs, equiv)` and `replace_equivalences(solver, pairs)`
  group and substitute equivalent variables;
- `to_dimacs(solver, out, assumptions)` and `write_dimacs(solver, path,
  assumptions)` write the unsatisfied part of the formula in DIMACS form;
- `format_simplified_clause` and `format_trail` render solver state as text.

## Circuits

`ddnnfkit.dag.Node` is abstract: a node type implements `print_nnf(out,
certified)` and `count_models()`, and may override `is_sat(units)`. A `Branch`
multiplies the count of its target by the weights of its unit literals and
free variables; by default every literal weighs 1 and every free variable 2.

```python
from ddnnfkit.dag import DagContext, Branch, Node
from ddnnfkit.literals import int_to_lits


class Top(Node):
    def print_nnf(self, out, certified=False):
        out.write("t\n")

    def count_models(self):
        return 1

    def is_sat(self, units):
        return True


ctx = DagContext(2, None)
edge = Branch(Top(ctx), int_to_lits([1]), [1])
print(edge.count_models())        # 2: x1 fixed, x2 free

with ctx.fixed(int_to_lits([-1])):
    print(edge.count_models())    # 0: x1 contradicts the fixed value
```

`Node.count_models_conditioning(literals)` and
`Node.is_sat_conditioning(literals)` fix literals for one query; when the
context holds a solver, the conditioning is also propagated through it.

## What the package does not do

The package has no concrete circuit node types: no true or false leaves, no
root node and no deterministic OR or decomposable AND nodes. A user who wants
to count models of a compiled circuit must define those as `Node` subclasses.
It also has no compiler that builds a circuit from a CNF formula, no DIMACS
reader, and no command-line program.

## Tests

```
pip install .[test]
pytest
```