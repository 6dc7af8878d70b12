import pytest


SCALAR_HEADER = (
    "x  y  z  time  Temp.  Pressure  Sat.  Phase\n"
    "(km)  (km)  (km)  (yr)  (Deg.C)  (dyne/cm^2)  (-)  (-)\n"
)

VECTOR_HEADER = (
    "x  y  z  time  Xw  .  Zw  Xs  .  Zs\n"
    "(km)  (km)  (km)  (yr)  (m/s)  (m/s)  (m/s)  (m/s)  (m/s)  (m/s)\n"
)


def scalar_row(x, z, t, temp, pres=1e8, sat=0.5, phase=1.0):
    return f"{x:.6E} 0.000000E+00 {z:.6E} {t:.6E} {temp:.6E} {pres:.6E} {sat:.6E} {phase:.6E}\n"


def vector_row(x, z, t, wu, wv, su, sv):
    return (f"{x:.6E} 0.0 {z:.6E} {t:.6E} {wu:.6E} 9.9 {wv:.6E} "
            f"{su:.6E} 9.9 {sv:.6E}\n")


def make_scalar_text(times=(0.0, 1.0, 2.0), xs=(1.0, 2.0), zs=(-1.0, 0.0)):
    """2x2 grid per time step; temperature = 100*t + 10*x + z."""
    out = [SCALAR_HEADER]
    for t in times:
        for z in zs:
            for x in xs:
                out.append(scalar_row(x, z, t, 100 * t + 10 * x + z))
    return "".join(out)


def make_vector_text(times=(0.0, 5.0, 10.0), xs=(1.0, 2.0), zs=(-1.0, 0.0)):
    out = [VECTOR_HEADER]
    for t in times:
        for z in zs:
            for x in xs:
                out.append(vector_row(x, z, t, 10.0, 0.0, 0.0, 100.0))
    return "".join(out)


SPEC_SCENARIO = (
    "x  y  z  ... \n"
    "1.0 0.0 0.0 0.0 100 1e8 0.5 1\n"
    "2.0 0.0 0.0 0.0 110 1.1e8 0.6 1\n"
    "1.0 0.0 0.0 1.0 120 1.2e8 0.7 1\n"
)


@pytest.fixture
def scenario_text():
    return SPEC_SCENARIO


@pytest.fixture
def scalar_text():
    return make_scalar_text()


@pytest.fixture
def vector_text():
    return make_vector_text()
