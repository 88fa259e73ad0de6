"""Numerical integrators advancing a DynamicSystem across one interval.

All integrators share one capability, :meth:`Integrator.advance`, which
moves the state from ``t0`` to ``t_end`` while evaluating the inputs at
every stage time. The available methods form a closed set selected by
:class:`IntegratorType`:

- ``RK4``: classic fixed-step explicit Runge-Kutta
- ``RK12``, ``RK23``, ``RK45``: embedded adaptive Runge-Kutta pairs
  (Heun-Euler, Bogacki-Shampine, Dormand-Prince). ``RK45`` is the default.
- ``BDF``: adaptive implicit backward differentiation (orders 1-2) for
  stiff systems and semi-explicit index-1 DAEs

Algebraic states are kept consistent by solving ``0 = h(t, x, xa, ...)``
with Newton's method wherever the differential state is known.
"""

import enum
import logging
import math
from dataclasses import dataclass
from typing import Callable, NamedTuple, Optional, Union

import numpy as np
import scipy.linalg

from process_sim.exceptions import (
    DimensionError,
    IntegrationDivergedError,
    NonFiniteError,
    NonFiniteStateError,
    StepSizeUnderflowError,
)
from process_sim.inputs import InputSignals
from process_sim.model import DynamicSystem

logger = logging.getLogger(__name__)

StepCallback = Callable[[float, np.ndarray, np.ndarray], None]


class IntegratorType(enum.Enum):
    """Integration method variants."""

    RK4 = "rk4"
    RK12 = "rk12"
    RK23 = "rk23"
    RK45 = "rk45"
    BDF = "bdf"

    @classmethod
    def parse(cls, value: Union["IntegratorType", str]) -> "IntegratorType":
        """Accept a member, its name or value, with an optional INT_ prefix.

        >>> IntegratorType.parse("INT_RK45")
        <IntegratorType.RK45: 'rk45'>
        """
        if isinstance(value, cls):
            return value
        key = str(value).strip().upper()
        if key.startswith("INT_"):
            key = key[4:]
        try:
            return cls[key]
        except KeyError:
            raise ValueError(
                f"Unknown integrator type {value!r}. Choose from "
                f"{[m.name for m in cls]}"
            ) from None


@dataclass(frozen=True)
class IntegratorSettings:
    """Integrator configuration.

    Parameters
    ----------
    method : IntegratorType, default=RK45
        Integration method
    abs_tol : float, default=1e-6
        Absolute error tolerance
    rel_tol : float, default=1e-6
        Relative error tolerance
    initial_step : float, default=1e-3
        First step size tried by adaptive methods, and the step size of
        fixed-step methods
    max_step : float, default=inf
        Upper bound on the step size
    min_step : float, default=1e-12
        Step sizes below this fail with StepSizeUnderflowError
    max_num_steps : int, default=100000
        Maximum number of step attempts in one call to advance
    max_retries : int, default=10
        Maximum consecutive rejections of one step
    safety : float, default=0.9
        Safety factor of the step size controller
    max_growth : float, default=5.0
        Maximum step size growth factor after an accepted step
    min_shrink : float, default=0.1
        Minimum step size shrink factor
    """

    method: IntegratorType = IntegratorType.RK45
    abs_tol: float = 1e-6
    rel_tol: float = 1e-6
    initial_step: float = 1e-3
    max_step: float = math.inf
    min_step: float = 1e-12
    max_num_steps: int = 100000
    max_retries: int = 10
    safety: float = 0.9
    max_growth: float = 5.0
    min_shrink: float = 0.1

    def __post_init__(self):
        """Validate settings."""
        object.__setattr__(self, "method", IntegratorType.parse(self.method))
        if self.abs_tol < 0 or self.rel_tol < 0:
            raise ValueError("tolerances must be >= 0")
        if self.abs_tol == 0 and self.rel_tol == 0:
            raise ValueError("abs_tol and rel_tol cannot both be zero")
        if not 0 < self.min_step <= self.initial_step:
            raise ValueError("require 0 < min_step <= initial_step")
        if self.max_step < self.min_step:
            raise ValueError("max_step must be >= min_step")
        if self.max_num_steps < 1 or self.max_retries < 0:
            raise ValueError("max_num_steps >= 1 and max_retries >= 0")
        if not 0 < self.safety <= 1:
            raise ValueError("safety must be in (0, 1]")
        if self.max_growth < 1 or not 0 < self.min_shrink < 1:
            raise ValueError("require max_growth >= 1, 0 < min_shrink < 1")


class StepResult(NamedTuple):
    x: np.ndarray
    xa: np.ndarray
    time: float


# ============================================================================
# Newton iteration
# ============================================================================


def finite_difference_jacobian(residual_fn, z, r0=None):
    """Forward-difference Jacobian of residual_fn at z."""
    if r0 is None:
        r0 = residual_fn(z)
    J = np.empty((len(r0), len(z)))
    sqrt_eps = math.sqrt(np.finfo(float).eps)
    for j in range(len(z)):
        dz = sqrt_eps * max(1.0, abs(z[j]))
        z_pert = z.copy()
        z_pert[j] += dz
        J[:, j] = (residual_fn(z_pert) - r0) / dz
    return J


def newton_solve(
    residual_fn: Callable[[np.ndarray], np.ndarray],
    z0: np.ndarray,
    scale: Callable[[np.ndarray], np.ndarray],
    max_iter: int = 10,
) -> tuple[np.ndarray, bool]:
    """Newton's method with a finite-difference Jacobian.

    Args:
        residual_fn: Function computing residual r(z)
        z0: Initial guess
        scale: Function giving per-component update tolerances at z;
            iteration stops when every |dz_i| <= scale(z)_i
        max_iter: Maximum iterations

    Returns:
        z: Last iterate
        converged: Whether the update fell below the tolerance
    """
    z = np.array(z0, dtype=float)
    if len(z) == 0:
        return z, True

    for iteration in range(max_iter):
        try:
            r = residual_fn(z)
            J = finite_difference_jacobian(residual_fn, z, r)
        except NonFiniteError:
            return z, False

        try:
            lu = scipy.linalg.lu_factor(J)
            dz = scipy.linalg.lu_solve(lu, -r)
        except (ValueError, np.linalg.LinAlgError):
            return z, False
        if not np.all(np.isfinite(dz)):
            return z, False

        z = z + dz
        if np.all(np.abs(dz) <= scale(z)):
            return z, True

    return z, False


# ============================================================================
# Integrator interface
# ============================================================================


class Integrator:
    """Base class of all integrators.

    Subclasses implement :meth:`_integrate`; the base class validates
    arguments and keeps algebraic states consistent.

    Parameters
    ----------
    settings : IntegratorSettings, optional
        Tolerances and step size limits. Defaults are used if None.
    """

    method: IntegratorType

    #: Newton update tolerance (relative) for algebraic states
    algebraic_tol = 1e-10

    def __init__(self, settings: Optional[IntegratorSettings] = None):
        self.settings = settings or IntegratorSettings(method=self.method)

    def advance(
        self,
        model: DynamicSystem,
        t0: float,
        x0,
        xa0,
        inputs: InputSignals,
        t_end: float,
        on_step: Optional[StepCallback] = None,
    ) -> StepResult:
        """Advance the state from t0 to t_end.

        Parameters
        ----------
        model : DynamicSystem
            System to integrate
        t0 : float
            Start time
        x0 : array-like
            Differential states at t0, shape (n_x,)
        xa0 : array-like
            Algebraic states at t0 (initial guess), shape (n_xa,)
        inputs : InputSignals
            Controls, parameters and disturbances as functions of time
        t_end : float
            Target time, must not be before t0
        on_step : callable, optional
            Called as on_step(t, x, xa) after every accepted step

        Returns
        -------
        result : StepResult
            States at ``result.time == t_end``

        Raises
        ------
        DimensionError
            If x0 or xa0 do not match the model
        NonFiniteStateError
            If the state becomes NaN or infinite
        IntegrationDivergedError
            If error control fails within the retry or step budget
        StepSizeUnderflowError
            If the step size falls below the minimum step
        """
        x0 = np.asarray(x0, dtype=float).reshape(-1)
        xa0 = np.asarray(xa0, dtype=float).reshape(-1)
        if len(x0) != model.n_x:
            raise DimensionError("x0", model.n_x, len(x0))
        if len(xa0) != model.n_xa:
            raise DimensionError("xa0", model.n_xa, len(xa0))
        if t_end < t0:
            raise ValueError(f"t_end={t_end} is before t0={t0}")

        xa0 = self.consistent_algebraic_state(model, t0, x0, xa0, inputs)
        if t_end == t0:
            return StepResult(x0.copy(), xa0, t0)

        return self._integrate(model, t0, x0, xa0, inputs, t_end, on_step)

    def consistent_algebraic_state(self, model, t, x, xa_guess, inputs):
        """Solve 0 = h(t, x, xa, u, p, w) for xa starting at xa_guess.

        Raises
        ------
        IntegrationDivergedError
            If Newton's method does not converge
        """
        xa, converged = self._solve_algebraic(model, t, x, xa_guess, inputs)
        if not converged:
            raise IntegrationDivergedError(
                "could not find consistent algebraic states", t, 0.0
            )
        return xa

    def _solve_algebraic(self, model, t, x, xa_guess, inputs):
        if model.n_xa == 0:
            return np.zeros(0), True
        u, p, w = inputs(t)

        def residual(xa):
            return model.evaluate_algebraic(t, x, xa, u, p, w)

        return newton_solve(
            residual,
            xa_guess,
            scale=lambda z: self.algebraic_tol * (1.0 + np.abs(z)),
        )

    def _rhs(self, model, t, x, xa, inputs):
        u, p, w = inputs(t)
        return model.evaluate_rhs(t, x, xa, u, p, w)

    def _integrate(self, model, t0, x0, xa0, inputs, t_end, on_step):
        raise NotImplementedError

    def __repr__(self):
        return f"{type(self).__name__}(method='{self.method.name}')"


class AdaptiveIntegrator(Integrator):
    """Shared step size control for adaptive methods.

    Subclasses implement :meth:`_begin` and :meth:`_attempt`. An attempt
    returns the candidate states and an error estimate, or None when the
    step could not be computed (e.g. Newton failure). A NonFiniteError
    raised by a trial stage rejects the step the same way; it surfaces as
    NonFiniteStateError only if it exhausts the retries.
    """

    #: Upper bound on the ratio of consecutive step sizes
    max_ratio = math.inf

    def error_norm(self, err, x_old, x_new) -> float:
        """Scaled RMS error norm; a step is acceptable if <= 1."""
        if len(err) == 0:
            return 0.0
        scale = self.settings.abs_tol + self.settings.rel_tol * np.maximum(
            np.abs(x_old), np.abs(x_new)
        )
        return float(np.sqrt(np.mean((err / scale) ** 2)))

    def _begin(self, model, t0, x0, xa0, inputs):
        """Reset per-call state before the first step."""

    def _attempt(self, model, t, x, xa, h, inputs):
        raise NotImplementedError

    def _accepted(self, model, t_old, x_old, t, x, xa, inputs, attempt):
        """Hook called after a step from (t_old, x_old) to t is accepted."""

    def _order(self) -> int:
        """Order of the error estimate (lower order of the pair)."""
        raise NotImplementedError

    def _integrate(self, model, t0, x0, xa0, inputs, t_end, on_step):
        s = self.settings
        t, x, xa = t0, x0.copy(), xa0.copy()
        time_eps = 64 * np.finfo(float).eps * max(1.0, abs(t_end))
        h = min(s.initial_step, s.max_step, t_end - t0)
        n_attempts = 0

        self._begin(model, t0, x0, xa0, inputs)

        while t_end - t > time_eps:
            retries = 0
            exponent = 1.0 / (self._order() + 1)
            while True:
                remaining = t_end - t
                h = min(h, s.max_step)
                last = h >= remaining - time_eps
                if last:
                    h = remaining
                elif h < s.min_step:
                    raise StepSizeUnderflowError(
                        "step size fell below the minimum step", t, h
                    )

                n_attempts += 1
                if n_attempts > s.max_num_steps:
                    raise IntegrationDivergedError(
                        f"exceeded {s.max_num_steps} steps", t, h
                    )

                non_finite = False
                try:
                    attempt = self._attempt(model, t, x, xa, h, inputs)
                except NonFiniteError as exc:
                    # Rejected like any failed error test
                    logger.debug("Non-finite trial step at t=%g: %s", t, exc)
                    attempt = None
                    non_finite = True
                if attempt is None:
                    norm = math.inf
                else:
                    x_new, xa_new, err = attempt[:3]
                    if not (
                        np.all(np.isfinite(x_new))
                        and np.all(np.isfinite(err))
                    ):
                        non_finite = True
                        norm = math.inf
                    else:
                        norm = self.error_norm(err, x, x_new)

                if norm <= 1.0:
                    break

                retries += 1
                logger.debug(
                    "Rejected step t=%g h=%g error norm=%g", t, h, norm
                )
                if retries > s.max_retries:
                    if non_finite:
                        raise NonFiniteStateError(t + h)
                    raise IntegrationDivergedError(
                        f"error test failed {retries} times in a row", t, h
                    )
                if math.isfinite(norm):
                    factor = s.safety * norm ** (-exponent)
                else:
                    factor = s.min_shrink
                h *= min(1.0, max(s.min_shrink, factor))

            t_old, x_old = t, x
            t = t_end if last else t + h
            x, xa = x_new, xa_new
            if not np.all(np.isfinite(x)):
                raise NonFiniteStateError(t)
            self._accepted(model, t_old, x_old, t, x, xa, inputs, attempt)
            if on_step is not None:
                on_step(t, x.copy(), xa.copy())

            if norm == 0.0:
                factor = s.max_growth
            else:
                factor = s.safety * norm ** (-exponent)
            if retries > 0:
                factor = min(1.0, factor)
            growth = max(s.min_shrink, factor)
            h *= min(s.max_growth, self.max_ratio, growth)

        return StepResult(x, xa, t_end)


# ============================================================================
# Explicit Runge-Kutta methods
# ============================================================================


class RungeKutta4(Integrator):
    """Classic 4th-order Runge-Kutta with a fixed step size.

    The interval is split into ``ceil((t_end - t0) / h)`` equal steps
    where ``h = min(initial_step, max_step)``.

    Examples
    --------
    >>> model = DynamicSystem(lambda t, x, xa, u, p, w: -x, n_x=1)
    >>> integrator = RungeKutta4(IntegratorSettings(method="RK4"))
    >>> result = integrator.advance(
    ...     model, 0.0, [1.0], [], InputSignals.zeros(), 1.0
    ... )
    """

    method = IntegratorType.RK4

    def _integrate(self, model, t0, x0, xa0, inputs, t_end, on_step):
        h_max = min(self.settings.initial_step, self.settings.max_step)
        n_steps = max(1, math.ceil((t_end - t0) / h_max - 1e-9))
        if n_steps > self.settings.max_num_steps:
            raise IntegrationDivergedError(
                f"{n_steps} fixed steps exceed max_num_steps", t0, h_max
            )
        h = (t_end - t0) / n_steps

        x, xa = x0, xa0
        for i in range(n_steps):
            t = t0 + i * h
            t_next = t_end if i == n_steps - 1 else t0 + (i + 1) * h
            x, xa = self._step(model, t, x, xa, t_next - t, inputs)
            if not np.all(np.isfinite(x)):
                raise NonFiniteStateError(t_next)
            if on_step is not None:
                on_step(t_next, x.copy(), xa.copy())

        return StepResult(x, xa, t_end)

    def _stage(self, model, t, x, xa, inputs):
        if model.n_xa > 0:
            xa = self.consistent_algebraic_state(model, t, x, xa, inputs)
        return self._rhs(model, t, x, xa, inputs), xa

    def _step(self, model, t, x, xa, dt, inputs):
        k1, xa = self._stage(model, t, x, xa, inputs)
        k2, _ = self._stage(model, t + dt / 2, x + dt / 2 * k1, xa, inputs)
        k3, _ = self._stage(model, t + dt / 2, x + dt / 2 * k2, xa, inputs)
        k4, _ = self._stage(model, t + dt, x + dt * k3, xa, inputs)
        x_next = x + dt / 6 * (k1 + 2 * k2 + 2 * k3 + k4)
        if model.n_xa > 0 and np.all(np.isfinite(x_next)):
            xa = self.consistent_algebraic_state(
                model, t + dt, x_next, xa, inputs
            )
        return x_next, xa


@dataclass(frozen=True)
class ButcherTableau:
    """Coefficients of an embedded explicit Runge-Kutta pair.

    ``b`` propagates the solution, ``b_hat`` gives the embedded estimate;
    their difference is the local error estimate. ``order`` is the lower
    of the two orders. With ``fsal`` the last stage is evaluated at the
    new solution and reused as the first stage of the next step.
    """

    c: np.ndarray
    a: np.ndarray
    b: np.ndarray
    b_hat: np.ndarray
    order: int
    fsal: bool = False

    @property
    def n_stages(self) -> int:
        return len(self.c)


def heun_euler() -> ButcherTableau:
    """Heun-Euler 1(2) pair."""
    return ButcherTableau(
        c=np.array([0.0, 1.0]),
        a=np.array([[0.0, 0.0], [1.0, 0.0]]),
        b=np.array([0.5, 0.5]),
        b_hat=np.array([1.0, 0.0]),
        order=1,
    )


def bogacki_shampine() -> ButcherTableau:
    """Bogacki-Shampine 2(3) pair."""
    return ButcherTableau(
        c=np.array([0.0, 1 / 2, 3 / 4, 1.0]),
        a=np.array(
            [
                [0.0, 0.0, 0.0, 0.0],
                [1 / 2, 0.0, 0.0, 0.0],
                [0.0, 3 / 4, 0.0, 0.0],
                [2 / 9, 1 / 3, 4 / 9, 0.0],
            ]
        ),
        b=np.array([2 / 9, 1 / 3, 4 / 9, 0.0]),
        b_hat=np.array([7 / 24, 1 / 4, 1 / 3, 1 / 8]),
        order=2,
        fsal=True,
    )


def dormand_prince() -> ButcherTableau:
    """Dormand-Prince 4(5) pair (six new stages per step with FSAL)."""
    return ButcherTableau(
        c=np.array([0.0, 1 / 5, 3 / 10, 4 / 5, 8 / 9, 1.0, 1.0]),
        a=np.array(
            [
                [0, 0, 0, 0, 0, 0, 0],
                [1 / 5, 0, 0, 0, 0, 0, 0],
                [3 / 40, 9 / 40, 0, 0, 0, 0, 0],
                [44 / 45, -56 / 15, 32 / 9, 0, 0, 0, 0],
                [
                    19372 / 6561,
                    -25360 / 2187,
                    64448 / 6561,
                    -212 / 729,
                    0,
                    0,
                    0,
                ],
                [
                    9017 / 3168,
                    -355 / 33,
                    46732 / 5247,
                    49 / 176,
                    -5103 / 18656,
                    0,
                    0,
                ],
                [35 / 384, 0, 500 / 1113, 125 / 192, -2187 / 6784, 11 / 84, 0],
            ],
            dtype=float,
        ),
        b=np.array(
            [35 / 384, 0, 500 / 1113, 125 / 192, -2187 / 6784, 11 / 84, 0]
        ),
        b_hat=np.array(
            [
                5179 / 57600,
                0,
                7571 / 16695,
                393 / 640,
                -92097 / 339200,
                187 / 2100,
                1 / 40,
            ]
        ),
        order=4,
        fsal=True,
    )


TABLEAUS = {
    IntegratorType.RK12: heun_euler,
    IntegratorType.RK23: bogacki_shampine,
    IntegratorType.RK45: dormand_prince,
}


class EmbeddedRungeKutta(AdaptiveIntegrator):
    """Adaptive explicit Runge-Kutta with an embedded error estimate.

    Parameters
    ----------
    settings : IntegratorSettings, optional
        ``settings.method`` selects the tableau (RK12, RK23 or RK45)

    Examples
    --------
    >>> model = DynamicSystem(lambda t, x, xa, u, p, w: -x, n_x=1)
    >>> integrator = EmbeddedRungeKutta(IntegratorSettings(abs_tol=1e-8))
    >>> result = integrator.advance(
    ...     model, 0.0, [1.0], [], InputSignals.zeros(), 1.0
    ... )
    >>> abs(result.x[0] - np.exp(-1.0)) < 1e-6
    True
    """

    method = IntegratorType.RK45

    def __init__(self, settings: Optional[IntegratorSettings] = None):
        super().__init__(settings)
        if self.settings.method not in TABLEAUS:
            raise ValueError(
                f"{self.settings.method.name} is not an embedded "
                "Runge-Kutta method"
            )
        self.method = self.settings.method
        self.tableau = TABLEAUS[self.method]()
        self._f0 = None

    def _order(self):
        return self.tableau.order

    def _begin(self, model, t0, x0, xa0, inputs):
        self._f0 = self._rhs(model, t0, x0, xa0, inputs)

    def _attempt(self, model, t, x, xa, h, inputs):
        tab = self.tableau
        K = np.empty((tab.n_stages, len(x)))
        K[0] = self._f0
        xa_stage = xa
        for i in range(1, tab.n_stages):
            t_i = t + tab.c[i] * h
            x_i = x + h * (tab.a[i, :i] @ K[:i])
            if not np.all(np.isfinite(x_i)):
                raise NonFiniteStateError(t_i)
            if model.n_xa > 0:
                xa_stage, converged = self._solve_algebraic(
                    model, t_i, x_i, xa_stage, inputs
                )
                if not converged:
                    return None
            K[i] = self._rhs(model, t_i, x_i, xa_stage, inputs)

        x_new = x + h * (tab.b @ K)
        err = h * ((tab.b - tab.b_hat) @ K)

        if tab.fsal:
            # Last stage was evaluated at (t + h, x_new)
            return x_new, xa_stage, err, K[-1]

        xa_new = xa_stage
        if model.n_xa > 0 and np.all(np.isfinite(x_new)):
            xa_new, converged = self._solve_algebraic(
                model, t + h, x_new, xa_stage, inputs
            )
            if not converged:
                return None
        return x_new, xa_new, err, None

    def _accepted(self, model, t_old, x_old, t, x, xa, inputs, attempt):
        f_last = attempt[3]
        if f_last is None:
            f_last = self._rhs(model, t, x, xa, inputs)
        self._f0 = f_last


# ============================================================================
# Implicit backward differentiation
# ============================================================================


class BackwardDifferentiation(AdaptiveIntegrator):
    """Variable step BDF of order 1-2 for stiff systems and DAEs.

    The first step of every call to :meth:`advance` uses BDF1 (implicit
    Euler), later steps use variable-coefficient BDF2. Differential and
    algebraic unknowns are solved together by Newton's method; a step
    whose Newton iteration does not converge is rejected. The local error
    is estimated from the corrector-predictor difference (Milne's device).

    Notes
    -----
    The predictor is explicit Euler for BDF1 and the quadratic through
    (t_{n-1}, x_{n-1}) and (t_n, x_n) with slope f_n for BDF2. The error
    constants are 1/2 and 2/5.
    """

    method = IntegratorType.BDF

    #: Newton tolerance as a fraction of the error tolerance
    newton_tol = 0.01

    # Variable step BDF2 is zero-stable for ratios below 1 + sqrt(2)
    max_ratio = 2.0

    def __init__(self, settings: Optional[IntegratorSettings] = None):
        super().__init__(settings)
        if self.settings.method is not IntegratorType.BDF:
            raise ValueError("BackwardDifferentiation requires method BDF")
        self._history = None
        self._f0 = None

    def _order(self):
        return 1 if self._history is None else 2

    def _begin(self, model, t0, x0, xa0, inputs):
        self._history = None
        self._f0 = self._rhs(model, t0, x0, xa0, inputs)

    def _attempt(self, model, t, x, xa, h, inputs):
        t_new = t + h
        f_n = self._f0

        if self._history is None:
            x_pred = x + h * f_n
            history_term = x
            beta, c_err = 1.0, 0.5
        else:
            t_prev, x_prev = self._history
            h_prev = t - t_prev
            omega = h / h_prev
            curv = (x_prev - x + h_prev * f_n) / h_prev**2
            x_pred = x + h * f_n + curv * h**2
            denom = 1.0 + 2.0 * omega
            alpha = (1.0 + omega) ** 2 / denom
            beta = (1.0 + omega) / denom
            history_term = alpha * x - omega**2 / denom * x_prev
            c_err = 0.4

        u, p, w = inputs(t_new)
        n_x = model.n_x

        def residual(z):
            x_new, xa_new = z[:n_x], z[n_x:]
            r_x = x_new - history_term - beta * h * model.evaluate_rhs(
                t_new, x_new, xa_new, u, p, w
            )
            r_a = model.evaluate_algebraic(t_new, x_new, xa_new, u, p, w)
            return np.concatenate([r_x, r_a])

        s = self.settings

        def scale(z):
            return self.newton_tol * (s.abs_tol + s.rel_tol * np.abs(z))

        z0 = np.concatenate([x_pred, xa])
        if not np.all(np.isfinite(z0)):
            return None
        z, converged = newton_solve(residual, z0, scale)
        if not converged:
            logger.debug("Newton iteration failed at t=%g h=%g", t_new, h)
            return None

        x_new, xa_new = z[:n_x], z[n_x:]
        err = c_err * (x_new - x_pred)
        return x_new, xa_new, err

    def _accepted(self, model, t_old, x_old, t, x, xa, inputs, attempt):
        self._history = (t_old, x_old)
        self._f0 = self._rhs(model, t, x, xa, inputs)


INTEGRATORS = {
    IntegratorType.RK4: RungeKutta4,
    IntegratorType.RK12: EmbeddedRungeKutta,
    IntegratorType.RK23: EmbeddedRungeKutta,
    IntegratorType.RK45: EmbeddedRungeKutta,
    IntegratorType.BDF: BackwardDifferentiation,
}


def make_integrator(
    settings: Optional[IntegratorSettings] = None,
) -> Integrator:
    """Create the integrator selected by ``settings.method``."""
    settings = settings or IntegratorSettings()
    return INTEGRATORS[settings.method](settings)
