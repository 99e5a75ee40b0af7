import pytest

from keysig.params import Parameters
from keysig.sig import SymbolGraph

import synthetic


@pytest.fixture
def scale():
    return synthetic.scale()


@pytest.fixture
def params(scale):
    return Parameters(scale)


@pytest.fixture
def sig():
    return SymbolGraph()


@pytest.fixture
def classifier():
    return synthetic.StubClassifier()
