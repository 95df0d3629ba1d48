"""Equality-constrained quadratic programs with fixed unknowns."""
from __future__ import annotations

from typing import Optional

import numpy as np
import scipy.sparse as sp
import scipy.sparse.linalg as spla

from .errors import InvalidTopologyError, PreconditionError


def _as_columns(array: Optional[np.ndarray], rows: int, cols: int) -> np.ndarray:
    if array is None:
        return np.zeros((rows, cols), dtype=np.float64)
    out = np.asarray(array, dtype=np.float64)
    if out.ndim == 1:
        out = out[:, None]
    if out.shape[0] != rows:
        raise PreconditionError(f"expected {rows} rows, got {out.shape[0]}")
    if out.shape[1] != cols:
        out = np.broadcast_to(out, (rows, cols))
    return out


class QuadraticSolver:
    """Minimize ``0.5 zᵀQz + zᵀB`` subject to ``z[known] = Y`` and ``Aeq z = Beq``.

    The system matrix is factorized once in the constructor; :meth:`solve`
    can then be called with many right-hand sides. Columns of ``B``, ``Y`` and
    ``Beq`` are solved independently against the same factorization.

    With ``constraints_on_rhs`` (the default) the equality constraints are
    kept as Lagrange multiplier rows of a KKT system and their targets enter
    through the right-hand side. The multiplier block carries a small negative
    diagonal ``regularization`` so that redundant, consistent constraint rows
    do not make the factorization singular. Otherwise the constraints are
    folded into the objective as a quadratic penalty of ``penalty_weight``.
    """

    def __init__(
        self,
        Q: sp.spmatrix,
        known: np.ndarray,
        Aeq: Optional[sp.spmatrix] = None,
        *,
        constraints_on_rhs: bool = True,
        regularization: float = 1e-10,
        penalty_weight: float = 1e8,
    ) -> None:
        Q = sp.csr_matrix(Q, dtype=np.float64)
        if Q.shape[0] != Q.shape[1]:
            raise ValueError(f"Q must be square, got shape {Q.shape}")
        n = Q.shape[0]
        if Aeq is None:
            Aeq = sp.csr_matrix((0, n), dtype=np.float64)
        Aeq = sp.csr_matrix(Aeq, dtype=np.float64)
        if Aeq.shape[1] != n:
            raise ValueError(f"Aeq must have {n} columns, got {Aeq.shape[1]}")

        known = np.asarray(known, dtype=np.int64).ravel()
        if known.size and (known.min() < 0 or known.max() >= n):
            raise InvalidTopologyError(f"fixed unknowns must lie in [0, {n})")
        if np.unique(known).size != known.size:
            raise PreconditionError("fixed unknowns must be unique")

        free_mask = np.ones(n, dtype=bool)
        free_mask[known] = False
        self.size = n
        self.known = known
        self.unknown = np.flatnonzero(free_mask)
        self.constraints_on_rhs = bool(constraints_on_rhs)
        self.penalty_weight = float(penalty_weight)

        Q_csc = Q.tocsc()
        A_csc = Aeq.tocsc()
        self._Q_uu = Q_csc[:, self.unknown].tocsr()[self.unknown, :]
        self._Q_uk = Q_csc[:, known].tocsr()[self.unknown, :]
        self._A_u = A_csc[:, self.unknown].tocsr()
        self._A_k = A_csc[:, known].tocsr()
        self.num_constraints = Aeq.shape[0]

        if self.num_constraints == 0:
            system = self._Q_uu
        elif self.constraints_on_rhs:
            m = self.num_constraints
            col1 = sp.vstack((self._Q_uu, self._A_u))
            col2 = sp.vstack((self._A_u.T, -regularization * sp.identity(m, format="csr")))
            system = sp.hstack((col1, col2))
        else:
            system = self._Q_uu + self.penalty_weight * (self._A_u.T @ self._A_u)
        try:
            self._factor = spla.splu(sp.csc_matrix(system))
        except RuntimeError as exc:
            raise PreconditionError(
                "quadratic system is singular; every connected component needs a fixed unknown"
            ) from exc

    def solve(
        self,
        B: Optional[np.ndarray],
        Y: np.ndarray,
        Beq: Optional[np.ndarray] = None,
    ) -> np.ndarray:
        """Return the full ``(n, k)`` solution, fixed values included."""
        Y = np.asarray(Y, dtype=np.float64)
        if Y.ndim == 1:
            Y = Y[:, None]
        if Y.shape[0] != self.known.size:
            raise PreconditionError(f"expected {self.known.size} fixed values, got {Y.shape[0]}")
        k = Y.shape[1]
        B = _as_columns(B, self.size, k)
        Beq = _as_columns(Beq, self.num_constraints, k)

        rhs_u = -B[self.unknown] - self._Q_uk @ Y
        rhs_c = Beq - self._A_k @ Y
        if self.num_constraints == 0:
            rhs = rhs_u
        elif self.constraints_on_rhs:
            rhs = np.vstack((rhs_u, rhs_c))
        else:
            rhs = rhs_u + self.penalty_weight * (self._A_u.T @ rhs_c)
        sol = self._factor.solve(np.ascontiguousarray(rhs))
        if sol.ndim == 1:
            sol = sol[:, None]

        Z = np.zeros((self.size, k), dtype=np.float64)
        Z[self.unknown] = sol[: self.unknown.size]
        Z[self.known] = Y
        return Z
