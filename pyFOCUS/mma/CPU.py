import numpy as np
from numpy.linalg import solve
import logging
logger = logging.getLogger(__name__)


def mmasub(m, n, iter, xval, xmin, xmax, xold1, xold2, f0val, df0dx, fval, dfdx, low, upp, a0, a, c, d,
           move=0.5, sub_maxiter=100, sub_tol=1e-7):
    """
    One MMA sub-problem (Svanberg, 1987) for

        min  f_0(x) + a0 z + sum_i (c_i y_i + d_i y_i^2 / 2)
        s.t. f_i(x) - a_i z - y_i <= 0,  xmin <= x <= xmax,  y, z >= 0

    Parameters
    ----------
    m, n : int
        Number of constraints and variables
    iter : int
        Iteration counter, starting at 1
    xval, xold1, xold2 : ndarray
        Current and two previous iterates, shape (n, 1)
    xmin, xmax : ndarray
        Variable bounds, shape (n, 1)
    f0val : float
        Objective value (not used by the update)
    df0dx : ndarray
        Objective gradient, shape (n, 1)
    fval : ndarray
        Constraint values, shape (m, 1)
    dfdx : ndarray
        Constraint gradients, shape (m, n)
    low, upp : ndarray
        Asymptotes of the previous iteration, shape (n, 1)
    a0 : float
    a, c, d : ndarray
        Shape (m, 1)
    move : float, optional
        Move limit as a fraction of xmax - xmin (default: 0.5)
    sub_maxiter : int, optional
        Newton iterations per barrier level (default: 100)
    sub_tol : float, optional
        Final barrier parameter of the primal-dual solve (default: 1e-7)

    Returns
    -------
    xmma, ymma, zmma, lam, xsi, eta, mu, zet, s, low, upp
        New iterate, sub-problem slack and dual variables, new asymptotes
    """
    raa0 = 0.00001
    albefa = 0.1
    asyinit = 0.5
    asyincr = 1.2
    asydecr = 0.7
    eeen = np.ones((n, 1))
    eeem = np.ones((m, 1))

    if iter <= 2:
        low = xval - asyinit * (xmax - xmin)
        upp = xval + asyinit * (xmax - xmin)
    else:
        zzz = (xval - xold1) * (xold1 - xold2)
        factor = eeen.copy()
        factor[zzz > 0] = asyincr
        factor[zzz < 0] = asydecr
        low = xval - factor * (xold1 - low)
        upp = xval + factor * (upp - xold1)
        lowmin = xval - 10 * (xmax - xmin)
        lowmax = xval - 0.01 * (xmax - xmin)
        uppmin = xval + 0.01 * (xmax - xmin)
        uppmax = xval + 10 * (xmax - xmin)
        low = np.minimum(np.maximum(low, lowmin), lowmax)
        upp = np.maximum(np.minimum(upp, uppmax), uppmin)

    # move limits
    alfa = np.maximum(np.maximum(low + albefa * (xval - low), xval - move * (xmax - xmin)), xmin)
    beta = np.minimum(np.minimum(upp - albefa * (upp - xval), xval + move * (xmax - xmin)), xmax)

    xmami = np.maximum(xmax - xmin, 0.00001 * eeen)
    xmamiinv = eeen / xmami
    ux1 = upp - xval
    ux2 = ux1 * ux1
    xl1 = xval - low
    xl2 = xl1 * xl1
    uxinv = eeen / ux1
    xlinv = eeen / xl1

    p0 = np.maximum(df0dx, 0)
    q0 = np.maximum(-df0dx, 0)
    pq0 = 0.001 * (p0 + q0) + raa0 * xmamiinv
    p0 = (p0 + pq0) * ux2
    q0 = (q0 + pq0) * xl2

    P = np.maximum(dfdx, 0)
    Q = np.maximum(-dfdx, 0)
    PQ = 0.001 * (P + Q) + raa0 * np.dot(eeem, xmamiinv.T)
    P = ux2.T * (P + PQ)
    Q = xl2.T * (Q + PQ)

    b = np.dot(P, uxinv) + np.dot(Q, xlinv) - fval

    xmma, ymma, zmma, lam, xsi, eta, mu, zet, s = subsolv(m, n, sub_tol, low, upp, alfa, beta,
                                                          p0, q0, P, Q, a0, a, b, c, d,
                                                          maxiter=sub_maxiter)

    return xmma, ymma, zmma, lam, xsi, eta, mu, zet, s, low, upp


def _residual(x, y, z, lam, xsi, eta, mu, zet, s, epsi, low, upp, alfa, beta, p0, q0, P, Q, a0, a, b, c, d):
    ux1 = upp - x
    xl1 = x - low
    plam = p0 + np.dot(P.T, lam)
    qlam = q0 + np.dot(Q.T, lam)
    gvec = np.dot(P, 1 / ux1) + np.dot(Q, 1 / xl1)

    rex = plam / ux1**2 - qlam / xl1**2 - xsi + eta
    rey = c + d * y - mu - lam
    rez = a0 - zet - np.dot(a.T, lam)
    relam = gvec - a * z - y + s - b
    rexsi = xsi * (x - alfa) - epsi
    reeta = eta * (beta - x) - epsi
    remu = mu * y - epsi
    rezet = zet * z - epsi
    res = lam * s - epsi

    return np.concatenate((rex, rey, rez, relam, rexsi, reeta, remu, rezet, res), axis=0)


def subsolv(m, n, epsimin, low, upp, alfa, beta, p0, q0, P, Q, a0, a, b, c, d, maxiter=100):
    """
    Primal-dual interior point solve of the MMA sub-problem.

    The barrier parameter epsi starts at 1 and is divided by 10 until it
    reaches epsimin; each level runs damped Newton steps with a backtracking
    line search on the residual norm.

    Returns
    -------
    x, y, z, lam, xsi, eta, mu, zet, s
        Primal and dual solution of the sub-problem
    """
    een = np.ones((n, 1))
    eem = np.ones((m, 1))
    epsi = 1.0
    x = 0.5 * (alfa + beta)
    y = eem.copy()
    z = np.array([[1.0]])
    lam = eem.copy()
    xsi = np.maximum(een / (x - alfa), een)
    eta = np.maximum(een / (beta - x), een)
    mu = np.maximum(eem, 0.5 * c)
    zet = np.array([[1.0]])
    s = eem.copy()

    args = (low, upp, alfa, beta, p0, q0, P, Q, a0, a, b, c, d)

    while epsi > epsimin:
        residu = _residual(x, y, z, lam, xsi, eta, mu, zet, s, epsi, *args)
        residunorm = np.linalg.norm(residu)
        residumax = np.max(np.abs(residu))

        ittt = 0
        while residumax > 0.9 * epsi and ittt < maxiter:
            ittt += 1

            ux1 = upp - x
            xl1 = x - low
            ux2 = ux1 * ux1
            xl2 = xl1 * xl1
            plam = p0 + np.dot(P.T, lam)
            qlam = q0 + np.dot(Q.T, lam)
            gvec = np.dot(P, 1 / ux1) + np.dot(Q, 1 / xl1)
            GG = (1 / ux2).T * P - (1 / xl2).T * Q

            dpsidx = plam / ux2 - qlam / xl2
            delx = dpsidx - epsi / (x - alfa) + epsi / (beta - x)
            dely = c + d * y - lam - epsi / y
            delz = a0 - np.dot(a.T, lam) - epsi / z
            dellam = gvec - a * z - y - b + epsi / lam
            diagx = 2 * (plam / (ux1 * ux2) + qlam / (xl1 * xl2)) + xsi / (x - alfa) + eta / (beta - x)
            diagy = d + mu / y
            diaglamyi = s / lam + 1 / diagy

            if m < n:
                blam = dellam + dely / diagy - np.dot(GG, delx / diagx)
                bb = np.concatenate((blam, delz), axis=0)
                Alam = np.diag(diaglamyi.flatten()) + ((1 / diagx).T * GG).dot(GG.T)
                AA = np.concatenate((np.concatenate((Alam, a), axis=1),
                                     np.concatenate((a, -zet / z), axis=0).T), axis=0)
                solut = solve(AA, bb)
                dlam = solut[0:m]
                dz = solut[m:m + 1]
                dx = -delx / diagx - np.dot(GG.T, dlam) / diagx
            else:
                dellamyi = dellam + dely / diagy
                Axx = np.diag(diagx.flatten()) + ((1 / diaglamyi) * GG).T.dot(GG)
                azz = zet / z + np.dot(a.T, a / diaglamyi)
                axz = np.dot(-GG.T, a / diaglamyi)
                bx = delx + np.dot(GG.T, dellamyi / diaglamyi)
                bz = delz - np.dot(a.T, dellamyi / diaglamyi)
                AA = np.concatenate((np.concatenate((Axx, axz), axis=1),
                                     np.concatenate((axz.T, azz), axis=1)), axis=0)
                solut = solve(AA, np.concatenate((-bx, -bz), axis=0))
                dx = solut[0:n]
                dz = solut[n:n + 1]
                dlam = np.dot(GG, dx) / diaglamyi - dz * (a / diaglamyi) + dellamyi / diaglamyi

            dy = -dely / diagy + dlam / diagy
            dxsi = -xsi + epsi / (x - alfa) - (xsi * dx) / (x - alfa)
            deta = -eta + epsi / (beta - x) + (eta * dx) / (beta - x)
            dmu = -mu + epsi / y - (mu * dy) / y
            dzet = -zet + epsi / z - zet * dz / z
            ds = -s + epsi / lam - (s * dlam) / lam

            xx = np.concatenate((y, z, lam, xsi, eta, mu, zet, s), axis=0)
            dxx = np.concatenate((dy, dz, dlam, dxsi, deta, dmu, dzet, ds), axis=0)

            # largest step keeping every positive variable positive
            stmxx = np.max(-1.01 * dxx / xx)
            stmalfa = np.max(-1.01 * dx / (x - alfa))
            stmbeta = np.max(1.01 * dx / (beta - x))
            steg = 1.0 / max(stmalfa, stmbeta, stmxx, 1.0)

            old = (x, y, z, lam, xsi, eta, mu, zet, s)
            step = (dx, dy, dz, dlam, dxsi, deta, dmu, dzet, ds)

            itto = 0
            resinew = 2 * residunorm
            while resinew > residunorm and itto < 50:
                itto += 1
                x, y, z, lam, xsi, eta, mu, zet, s = (v + steg * dv for v, dv in zip(old, step))
                residu = _residual(x, y, z, lam, xsi, eta, mu, zet, s, epsi, *args)
                resinew = np.linalg.norm(residu)
                steg = steg / 2

            residunorm = resinew
            residumax = np.max(np.abs(residu))

        if ittt == maxiter:
            logger.debug(f"subsolv: Newton iteration limit reached at epsi={epsi:.1e}")
        epsi = 0.1 * epsi

    return x, y, z, lam, xsi, eta, mu, zet, s
