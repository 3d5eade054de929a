import pytest

from mixed_sequence import UINT32_MAX, MixedSequence
from mt64_generator import MT64Generator, MT64Param, Topology
from mt_algorithms import RecursionSearch, temper_generator


@pytest.fixture(scope="session")
def full_period_521() -> MT64Param:
    """An untempered mexp=521 parameter set with full period."""
    g = MT64Generator(521, 1, Topology.SINGLE)
    ars = RecursionSearch(g, MixedSequence(UINT32_MAX, 1))
    assert ars.start(100_000)
    return g.param()


@pytest.fixture(scope="session")
def tempered_521(full_period_521) -> MT64Param:
    g = MT64Generator.from_param(full_period_521)
    g.seed(1)
    temper_generator(g)
    return g.param()
