"""
AC Branch Flow Formulas Module
==============================

Closed-form branch flows of the pi-model and their partial derivatives.

Every function accepts scalars or numpy arrays of identical shape, so the
same code evaluates one branch (scalar equation terms) or all branches at
once (AcBranchVector). The two evaluation paths therefore share one formula set.

Conventions (side 2 has ratio 1 and no phase shift)::

    theta1 = ksi - a1 + ph2 - ph1
    theta2 = ksi + a1 + ph1 - ph2

    p1 = r1 v1 (g1 r1 v1 + y r1 v1 sin(ksi) - y v2 sin(theta1))
    q1 = r1 v1 (-b1 r1 v1 + y r1 v1 cos(ksi) - y v2 cos(theta1))
    p2 = v2 (g2 v2 - y r1 v1 sin(theta2) + y v2 sin(ksi))
    q2 = v2 (-b2 v2 - y r1 v1 cos(theta2) + y v2 cos(ksi))

Flows are counted positive when leaving the bus.

Author: Manuel Schwenke
Date: 2025-02-05
"""

from typing import NamedTuple, Union

import numpy as np
from numpy.typing import NDArray

ArrayLike = Union[float, NDArray[np.float64]]

A2 = 0.0
R2 = 1.0


class BranchFlow(NamedTuple):
    """Value of a branch quantity with its partial derivatives."""
    value: ArrayLike
    dv1: ArrayLike
    dv2: ArrayLike
    dph1: ArrayLike
    dph2: ArrayLike
    da1: ArrayLike
    dr1: ArrayLike


def theta1(ksi: ArrayLike, ph1: ArrayLike, a1: ArrayLike, ph2: ArrayLike) -> ArrayLike:
    return ksi - a1 + A2 - ph1 + ph2


def theta2(ksi: ArrayLike, ph1: ArrayLike, a1: ArrayLike, ph2: ArrayLike) -> ArrayLike:
    return ksi + a1 - A2 + ph1 - ph2


# =============================================================================
# Closed branch
# =============================================================================

def closed_p1(y, ksi, g1, v1, ph1, r1, a1, v2, ph2) -> BranchFlow:
    sin_ksi = np.sin(ksi)
    th = theta1(ksi, ph1, a1, ph2)
    sin_th = np.sin(th)
    cos_th = np.cos(th)
    value = r1 * v1 * (g1 * r1 * v1 + y * r1 * v1 * sin_ksi - y * R2 * v2 * sin_th)
    dv1 = r1 * (2 * g1 * r1 * v1 + 2 * y * r1 * v1 * sin_ksi - y * R2 * v2 * sin_th)
    dv2 = -y * r1 * R2 * v1 * sin_th
    dph1 = y * r1 * R2 * v1 * v2 * cos_th
    dr1 = v1 * (2 * g1 * r1 * v1 + 2 * y * r1 * v1 * sin_ksi - y * R2 * v2 * sin_th)
    return BranchFlow(value, dv1, dv2, dph1, -dph1, dph1, dr1)


def closed_q1(y, ksi, b1, v1, ph1, r1, a1, v2, ph2) -> BranchFlow:
    cos_ksi = np.cos(ksi)
    th = theta1(ksi, ph1, a1, ph2)
    sin_th = np.sin(th)
    cos_th = np.cos(th)
    value = r1 * v1 * (-b1 * r1 * v1 + y * r1 * v1 * cos_ksi - y * R2 * v2 * cos_th)
    dv1 = r1 * (-2 * b1 * r1 * v1 + 2 * y * r1 * v1 * cos_ksi - y * R2 * v2 * cos_th)
    dv2 = -y * r1 * R2 * v1 * cos_th
    dph1 = -y * r1 * R2 * v1 * v2 * sin_th
    dr1 = v1 * (-2 * b1 * r1 * v1 + 2 * y * r1 * v1 * cos_ksi - y * R2 * v2 * cos_th)
    return BranchFlow(value, dv1, dv2, dph1, -dph1, dph1, dr1)


def closed_p2(y, ksi, g2, v1, ph1, r1, a1, v2, ph2) -> BranchFlow:
    sin_ksi = np.sin(ksi)
    th = theta2(ksi, ph1, a1, ph2)
    sin_th = np.sin(th)
    cos_th = np.cos(th)
    value = R2 * v2 * (g2 * R2 * v2 - y * r1 * v1 * sin_th + y * R2 * v2 * sin_ksi)
    dv1 = -y * r1 * R2 * v2 * sin_th
    dv2 = R2 * (2 * g2 * R2 * v2 - y * r1 * v1 * sin_th + 2 * y * R2 * v2 * sin_ksi)
    dph1 = -y * r1 * R2 * v1 * v2 * cos_th
    dr1 = -y * R2 * v1 * v2 * sin_th
    return BranchFlow(value, dv1, dv2, dph1, -dph1, dph1, dr1)


def closed_q2(y, ksi, b2, v1, ph1, r1, a1, v2, ph2) -> BranchFlow:
    cos_ksi = np.cos(ksi)
    th = theta2(ksi, ph1, a1, ph2)
    sin_th = np.sin(th)
    cos_th = np.cos(th)
    value = R2 * v2 * (-b2 * R2 * v2 - y * r1 * v1 * cos_th + y * R2 * v2 * cos_ksi)
    dv1 = -y * r1 * R2 * v2 * cos_th
    dv2 = R2 * (-2 * b2 * R2 * v2 - y * r1 * v1 * cos_th + 2 * y * R2 * v2 * cos_ksi)
    dph1 = y * r1 * R2 * v1 * v2 * sin_th
    dr1 = -y * R2 * v1 * v2 * cos_th
    return BranchFlow(value, dv1, dv2, dph1, -dph1, dph1, dr1)


def _series_admittance(y, ksi):
    # 1 / (r + jx) expressed with |y| and ksi = atan2(r, x)
    return y * (np.sin(ksi) - 1j * np.cos(ksi))


def _magnitude(current, dcurrents):
    """|I| and d|I|/dx = Re(conj(I) dI/dx) / |I|, with 0 where |I| = 0."""
    magnitude = np.abs(current)
    safe = np.where(magnitude > 0, magnitude, 1.0)
    derivatives = [np.where(magnitude > 0, np.real(np.conj(current) * d) / safe, 0.0)
                   for d in dcurrents]
    return magnitude, derivatives


def closed_i1(y, ksi, g1, b1, v1, ph1, r1, a1, v2, ph2) -> BranchFlow:
    """
    Current magnitude at side 1.

    ``I1 = r1^2 (y1 + ys) V1 - r1 exp(-j a1) ys V2``. The r1 derivative is
    not available and returned as NaN.
    """
    ys = _series_admittance(y, ksi)
    w1 = r1 * r1 * (g1 + 1j * b1 + ys)
    w2 = -r1 * np.exp(-1j * a1) * ys
    e1 = np.exp(1j * ph1)
    e2 = np.exp(1j * ph2)
    current = w1 * v1 * e1 + w2 * v2 * e2
    magnitude, (dv1, dv2, dph1, dph2) = _magnitude(
        current, (w1 * e1, w2 * e2, 1j * w1 * v1 * e1, 1j * w2 * v2 * e2))
    return BranchFlow(magnitude, dv1, dv2, dph1, dph2, -dph2, np.full_like(magnitude, np.nan))


def closed_i2(y, ksi, g2, b2, v1, ph1, r1, a1, v2, ph2) -> BranchFlow:
    """
    Current magnitude at side 2.

    ``I2 = (y2 + ys) V2 - r1 exp(j a1) ys V1``. The r1 derivative is not
    available and returned as NaN.
    """
    ys = _series_admittance(y, ksi)
    w1 = -r1 * np.exp(1j * a1) * ys
    w2 = g2 + 1j * b2 + ys
    e1 = np.exp(1j * ph1)
    e2 = np.exp(1j * ph2)
    current = w1 * v1 * e1 + w2 * v2 * e2
    magnitude, (dv1, dv2, dph1, dph2) = _magnitude(
        current, (w1 * e1, w2 * e2, 1j * w1 * v1 * e1, 1j * w2 * v2 * e2))
    return BranchFlow(magnitude, dv1, dv2, dph1, dph2, dph1, np.full_like(magnitude, np.nan))


# =============================================================================
# Branch open at one side
# =============================================================================

def _equivalent_shunt(y, ksi, g_near, b_near, g_far, b_far):
    """Admittance seen from the connected side: near shunt plus series ys + far shunt."""
    ys = _series_admittance(y, ksi)
    y_far = g_far + 1j * b_far
    return g_near + 1j * b_near + ys * y_far / (ys + y_far)


def _open_flow(value, dv, dr1) -> BranchFlow:
    zero = np.zeros_like(value)
    return BranchFlow(value, dv, zero, zero, zero, zero, dr1)


def open_side2_p1(y, ksi, g1, b1, g2, b2, v1, r1) -> BranchFlow:
    """Active flow at side 1 of a branch open at side 2 (depends on v1 only)."""
    shunt = np.real(_equivalent_shunt(y, ksi, g1, b1, g2, b2))
    value = r1 * r1 * v1 * v1 * shunt
    return _open_flow(value, 2 * r1 * r1 * v1 * shunt, 2 * r1 * v1 * v1 * shunt)


def open_side2_q1(y, ksi, g1, b1, g2, b2, v1, r1) -> BranchFlow:
    shunt = -np.imag(_equivalent_shunt(y, ksi, g1, b1, g2, b2))
    value = r1 * r1 * v1 * v1 * shunt
    return _open_flow(value, 2 * r1 * r1 * v1 * shunt, 2 * r1 * v1 * v1 * shunt)


def open_side2_i1(y, ksi, g1, b1, g2, b2, v1, r1) -> BranchFlow:
    shunt = np.abs(_equivalent_shunt(y, ksi, g1, b1, g2, b2))
    value = r1 * r1 * v1 * shunt
    return _open_flow(value, r1 * r1 * shunt, np.full_like(value, np.nan))


def open_side1_p2(y, ksi, g1, b1, g2, b2, v2) -> BranchFlow:
    """Active flow at side 2 of a branch open at side 1 (depends on v2 only)."""
    shunt = np.real(_equivalent_shunt(y, ksi, g2, b2, g1, b1))
    value = R2 * R2 * v2 * v2 * shunt
    return BranchFlow(value, np.zeros_like(value), 2 * R2 * R2 * v2 * shunt,
                      np.zeros_like(value), np.zeros_like(value), np.zeros_like(value), np.zeros_like(value))


def open_side1_q2(y, ksi, g1, b1, g2, b2, v2) -> BranchFlow:
    shunt = -np.imag(_equivalent_shunt(y, ksi, g2, b2, g1, b1))
    value = R2 * R2 * v2 * v2 * shunt
    return BranchFlow(value, np.zeros_like(value), 2 * R2 * R2 * v2 * shunt,
                      np.zeros_like(value), np.zeros_like(value), np.zeros_like(value), np.zeros_like(value))


def open_side1_i2(y, ksi, g1, b1, g2, b2, v2) -> BranchFlow:
    shunt = np.abs(_equivalent_shunt(y, ksi, g2, b2, g1, b1))
    value = R2 * R2 * v2 * shunt
    return BranchFlow(value, np.zeros_like(value), R2 * R2 * shunt,
                      np.zeros_like(value), np.zeros_like(value), np.zeros_like(value), np.zeros_like(value))


# =============================================================================
# Bus elements
# =============================================================================

def shunt_p(g, v):
    """Active power consumed by a shunt and its v derivative."""
    return g * v * v, 2 * g * v


def shunt_q(b, v):
    """Reactive power consumed by a shunt, with its v and b derivatives."""
    return -b * v * v, -2 * b * v, -v * v


def load_model_power(target, exp_terms, v):
    """``target * sum(c * v**n)`` and its v derivative."""
    value = 0.0
    dv = 0.0
    for c, n in exp_terms:
        value = value + c * v ** n
        if n != 0:
            dv = dv + c * n * v ** (n - 1)
    return target * value, target * dv
