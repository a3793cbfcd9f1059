import pytest
from conf import ensureDefaults
from fakes import FakeNet, FakeEnv

@pytest.fixture
def dconf ():
  return ensureDefaults({})

@pytest.fixture
def net ():
  return FakeNet()

@pytest.fixture
def env ():
  return FakeEnv()
