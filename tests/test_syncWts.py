import numpy as np
import pytest
from errs import CollaboratorError, ConfigurationError, CommunicationError
from fakes import runParallel
from syncWts import SyncCoordinator, LocalGroup, makeGroup, wtDigest

def test_singleProcessPassthrough ():
  sync = SyncCoordinator()
  buf = np.arange(5.0)
  assert sync.reduce(buf) is buf
  assert np.array_equal(buf, np.arange(5.0))
  assert sync.gatherRows([{'a':1}]) == [{'a':1}]
  assert sync.checkReplicas('x') and not sync.anyFlag(False)
  assert isinstance(makeGroup(False), LocalGroup)

@pytest.mark.parametrize('n', [2, 3, 5])
def test_reduceIsMean (n):
  nsyn = 17
  lbuf = [np.random.RandomState(i).randn(nsyn) for i in range(n)]
  def work (group):
    sync = SyncCoordinator(group)
    buf = lbuf[group.rank()].copy()
    out = sync.reduce(buf)
    assert out is buf # written in place
    return out
  lout = runParallel(n, work)
  mean = np.mean(lbuf, axis=0)
  for out in lout:
    assert np.allclose(out, mean)

def test_reduceListBuffer ():
  lout = runParallel(2, lambda group: SyncCoordinator(group).reduce([1.0 + group.rank(), 4.0]))
  for out in lout: assert np.allclose(out, [1.5, 4.0])

def test_lengthMismatch ():
  def work (group):
    return SyncCoordinator(group).reduce(np.ones(10 + group.rank()))
  lout = runParallel(3, work)
  for e in lout:
    assert isinstance(e, ConfigurationError)
    assert 'rank 0: 10' in str(e) and 'rank 2: 12' in str(e)

class BrokenGroup (LocalGroup):
  def nhost (self): return 2
  def allgather (self, obj): return [obj, obj]
  def allreduce (self, buf): raise RuntimeError('link down')

def test_commFailure ():
  with pytest.raises(CommunicationError) as ei:
    SyncCoordinator(BrokenGroup()).reduce(np.ones(4))
  assert 'link down' in str(ei.value)

def test_gatherRowsAndFlags ():
  def work (group):
    sync = SyncCoordinator(group)
    rows = sync.gatherRows([{'Rank': group.rank(), 'Trial': t} for t in range(2)])
    return rows, sync.anyFlag(group.rank() == 1)
  for rows, flag in runParallel(3, work):
    assert [(d['Rank'], d['Trial']) for d in rows] == [(r, t) for r in range(3) for t in range(2)]
    assert flag

def test_checkReplicas ():
  same = runParallel(2, lambda group: SyncCoordinator(group).checkReplicas(wtDigest(np.ones(3))))
  assert same == [True, True]
  diff = runParallel(2, lambda group: SyncCoordinator(group).checkReplicas(wtDigest(np.ones(3) * group.rank())))
  assert all(isinstance(e, CommunicationError) for e in diff)

def test_failureVoteInReduce ():
  # rank 1 failed its trial: every rank aborts together, none waits in the allreduce
  def work (group):
    sync = SyncCoordinator(group)
    failed = CollaboratorError('net down') if group.rank() == 1 else None
    return sync.reduce(np.ones(8), failed)
  lout = runParallel(3, work)
  assert all(isinstance(e, CollaboratorError) for e in lout)
  assert str(lout[1]) == 'net down'
  assert 'rank 1' in str(lout[0]) and 'net down' in str(lout[2])

def test_agree ():
  assert runParallel(2, lambda group: SyncCoordinator(group).agree(None)) == [None, None]
  lout = runParallel(2, lambda group: SyncCoordinator(group).agree(CollaboratorError('x') if group.rank() == 0 else None))
  assert all(isinstance(e, CollaboratorError) for e in lout)
  with pytest.raises(CollaboratorError):
    SyncCoordinator().agree(CollaboratorError('local'))
  with pytest.raises(CollaboratorError):
    SyncCoordinator().reduce(np.ones(2), CollaboratorError('local'))

def test_neuronGroupSingleHost ():
  pytest.importorskip('neuron')
  from syncWts import NEURONGroup
  group = NEURONGroup()
  assert group.nhost() == 1 and group.rank() == 0
  assert np.allclose(group.allreduce([1.0, 2.5]), [1.0, 2.5])
  assert group.allgather(5) == [5]
  group.barrier()
  sync = SyncCoordinator(group)
  buf = np.arange(3.0)
  assert sync.reduce(buf) is buf
