"""Nonlinear least-squares driver for :class:`LeastSquaresProblem` instances."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional

import numpy as np
import scipy.sparse as sp
import scipy.sparse.linalg as spla

from .errors import NumericError
from .problem import LeastSquaresProblem
from .utils import TunableParameter, get_logger


Callback = Callable[[int, float, np.ndarray, float], None]


@dataclass
class _IterationStats:
    iteration: int
    cost: float
    step_norm: float


class LevenbergMarquardtSolver:
    """Damped Gauss-Newton iterations on the stacked residual ``[e; w c]``.

    Constraints are enforced as a weighted least-squares term. A
    :class:`NumericError` raised while refreshing the current iterate aborts
    the run; one raised at a trial point rejects that step and increases the
    damping.
    """

    def __init__(self, problem: LeastSquaresProblem, *, logger: Optional[Any] = None) -> None:
        if not problem.is_initialized():
            problem.initialize()
        self.problem = problem
        self.logger = logger or get_logger(__name__)
        self.callbacks: List[Callback] = []
        self.solver_parameters: Dict[str, TunableParameter] = {
            "max_iterations": TunableParameter(100, dtype="int", min_value=1, description="Maximum number of iterations."),
            "tolerance": TunableParameter(1e-10, dtype="float", min_value=0.0, description="Stopping tolerance on step norm and cost decrease."),
            "constraint_weight": TunableParameter(1e3, dtype="float", min_value=0.0, description="Weight of the constraint residual."),
            "initial_damping": TunableParameter(1e-4, dtype="float", min_value=0.0, description="Initial Levenberg-Marquardt damping."),
            "max_damping": TunableParameter(1e12, dtype="float", min_value=0.0, description="Damping at which the run gives up."),
        }

    # ------------------------------------------------------------------
    def add_callback(self, callback: Callback) -> None:
        self.callbacks.append(callback)

    def set_solver_parameter(self, name: str, value: Any) -> None:
        if name not in self.solver_parameters:
            raise KeyError(name)
        self.solver_parameters[name].update(value)

    def get_solver_parameter(self, name: str) -> TunableParameter:
        return self.solver_parameters[name]

    # ------------------------------------------------------------------
    def solve(
        self,
        *,
        max_iterations: Optional[int] = None,
        tolerance: Optional[float] = None,
        callbacks: Optional[Iterable[Callback]] = None,
        verbose: bool = True,
    ) -> Dict[str, Any]:
        """Run the optimization and return a summary dictionary."""
        opts = {name: param.value for name, param in self.solver_parameters.items()}
        if max_iterations is not None:
            opts["max_iterations"] = int(max_iterations)
        if tolerance is not None:
            opts["tolerance"] = float(tolerance)
        return self._run_optimization(opts, callbacks=list(callbacks or []) + self.callbacks, enable_logging=verbose)

    # ------------------------------------------------------------------
    def _residual(self, weight: float) -> np.ndarray:
        return np.concatenate((self.problem.e_vec, weight * self.problem.c_vec))

    def _evaluate(self, x: np.ndarray, weight: float) -> float:
        self.problem.update_energy(x)
        self.problem.update_constraints(x)
        r = self._residual(weight)
        return float(r @ r)

    def _step(self, weight: float, damping: float) -> np.ndarray:
        J = sp.vstack((self.problem.energy_jacobian(), weight * self.problem.constraint_jacobian())).tocsr()
        r = self._residual(weight)
        JtJ = (J.T @ J).tocsc()
        diag = JtJ.diagonal()
        scale = np.where(diag > 0.0, diag, 1.0)
        lhs = JtJ + damping * sp.diags(scale, format="csc")
        return np.asarray(spla.spsolve(lhs, -(J.T @ r))).ravel()

    def _run_optimization(
        self,
        options: Dict[str, Any],
        *,
        callbacks: Iterable[Callback],
        enable_logging: bool,
    ) -> Dict[str, Any]:
        problem = self.problem
        problem.require_initialized()
        max_iters = int(options.get("max_iterations", 100))
        tol = float(options.get("tolerance", 1e-10))
        weight = float(options.get("constraint_weight", 1e3))
        damping = float(options.get("initial_damping", 1e-4))
        max_damping = float(options.get("max_damping", 1e12))

        x = np.asarray(problem.initial_solution(), dtype=np.float64).copy()
        status = "max_iterations"
        stats = _IterationStats(iteration=0, cost=float("nan"), step_norm=float("inf"))

        for iteration in range(1, max_iters + 1):
            problem.pre_iteration(x)
            try:
                problem.update_energy(x)
                problem.update_jacobian(x)
                problem.update_constraints(x)
            except NumericError as exc:
                self.logger.error("iter %d | %s", iteration, exc)
                status = "numeric_error"
                break
            residual = self._residual(weight)
            cost = float(residual @ residual)

            delta = self._step(weight, damping)
            step_norm = float(np.linalg.norm(delta))
            trial = x + delta
            try:
                if not np.all(np.isfinite(delta)):
                    raise NumericError("step", np.flatnonzero(~np.isfinite(delta)))
                trial_cost = self._evaluate(trial, weight)
            except NumericError as exc:
                self.logger.warning("iter %d | rejected step: %s", iteration, exc)
                trial_cost = float("inf")

            if trial_cost < cost:
                x = trial
                damping = damping / 3.0
                decrease = cost - trial_cost
                cost = trial_cost
            else:
                damping = max(damping, 1e-12) * 4.0
                decrease = 0.0

            stats = _IterationStats(iteration=iteration, cost=cost, step_norm=step_norm)
            if enable_logging:
                self.logger.info("iter %d | cost=%.6g | step=%.3e | damping=%.1e", iteration, cost, step_norm, damping)
            for cb in callbacks:
                cb(iteration, cost, x, step_norm)

            if problem.post_iteration(x):
                status = "stopped"
                break
            if step_norm < tol or cost < tol or 0.0 < decrease < tol * max(cost, 1.0):
                status = "converged"
                break
            if damping > max_damping:
                status = "stalled"
                break

        success = problem.post_optimization(x) and status != "numeric_error"
        return {
            "iterations": stats.iteration,
            "cost": stats.cost,
            "step_norm": stats.step_norm,
            "damping": damping,
            "status": status,
            "success": bool(success),
            "x": x,
        }
