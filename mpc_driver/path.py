"""Reference path fitting and tracking error extraction.

The reference path is a polynomial y = c0 + c1*x + ... + ck*x^k fitted to the
waypoints in the vehicle body frame. Coefficients are stored in increasing
order of power.
"""

import math
from typing import Sequence, Tuple, Union

import numpy as np
import numpy.typing as npt
from numpy.polynomial import polynomial as P

from .errors import DegenerateFit

ArrayOrFloat = Union[float, npt.NDArray[np.float64]]


def polyfit(xs: Sequence[float], ys: Sequence[float], order: int) -> npt.NDArray[np.float64]:
    """Least-squares polynomial fit via Householder QR.

    Builds the Vandermonde matrix A (columns 1, x, ..., x^order), factors
    A = QR and solves R c = Q^T y. The normal equations are never formed, so
    the conditioning of A is not squared.

    Args:
        xs: Sample x coordinates
        ys: Sample y coordinates
        order: Polynomial order k

    Returns:
        Coefficients c0..ck

    Raises:
        DegenerateFit: If the inputs differ in length, there are no more than
            `order` distinct x values, or A is rank-deficient.
    """
    x = np.asarray(xs, dtype=float)
    y = np.asarray(ys, dtype=float)

    if x.shape != y.shape:
        raise DegenerateFit(f"x and y differ in length: {x.size} vs {y.size}")

    distinct = np.unique(x).size
    if distinct <= order:
        raise DegenerateFit(
            f"{distinct} distinct waypoints cannot determine an order-{order} curve"
        )

    A = np.vander(x, order + 1, increasing=True)
    Q, R = np.linalg.qr(A)

    diag = np.abs(np.diag(R))
    tol = diag.max() * max(A.shape) * np.finfo(float).eps
    if np.any(diag <= tol):
        raise DegenerateFit("Waypoint design matrix is rank-deficient")

    return np.linalg.solve(R, Q.T @ y)


def polyeval(coeffs: Sequence[float], x: ArrayOrFloat) -> ArrayOrFloat:
    """Evaluate the polynomial at x (scalar or array)."""
    return P.polyval(x, coeffs)


def polyderiv(coeffs: Sequence[float], x: ArrayOrFloat) -> ArrayOrFloat:
    """Evaluate the polynomial's first derivative dy/dx at x."""
    return P.polyval(x, P.polyder(coeffs))


def tangent_heading(coeffs: Sequence[float], x: ArrayOrFloat) -> ArrayOrFloat:
    """Heading of the reference path tangent at x (radians)."""
    return np.arctan(polyderiv(coeffs, x))


def tracking_errors(coeffs: Sequence[float]) -> Tuple[float, float]:
    """Cross-track and heading error of a vehicle sitting at the body-frame origin.

    With the vehicle at the origin pointing along +x:
    - cte is the curve's y-intercept c0 (path minus vehicle, >0 when the
      path lies to the left)
    - epsi = psi - atan(f'(0)) = -atan(c1)

    Both are small-angle approximations; they keep the optimizer's model
    differentiable in closed form.

    Returns:
        Tuple of (cte, epsi)
    """
    c0 = float(coeffs[0])
    c1 = float(coeffs[1]) if len(coeffs) > 1 else 0.0
    return c0, -math.atan(c1)


def reference_samples(
    coeffs: Sequence[float], spacing: float, count: int
) -> Tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]:
    """Sample the reference curve ahead of the vehicle for the diagnostic overlay.

    Args:
        coeffs: Curve coefficients
        spacing: Distance between samples along the body x-axis (m)
        count: Samples are taken at spacing * i for i = 1..count-1

    Returns:
        Tuple of (x, y) arrays in the body frame
    """
    xs = spacing * np.arange(1, count, dtype=float)
    return xs, np.asarray(polyeval(coeffs, xs), dtype=float)
