"""CDCL SAT solving and the shared base of decision-DNNF circuits."""

__version__ = "0.1.0"
__all__ = ["literals", "dag", "solver_core", "solver_db", "solver", "solver_tools"]