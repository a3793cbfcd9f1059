# averaging of weight deltas across processes (data-parallel training on disjoint trial shards)
import hashlib
import logging
import numpy as np
from errs import CollaboratorError, ConfigurationError, CommunicationError

logger = logging.getLogger(__name__)

class LocalGroup:
  """ single-process group -- all collectives are identities """
  def nhost (self): return 1
  def rank (self): return 0
  def allreduce (self, buf): return buf
  def allgather (self, obj): return [obj]
  def barrier (self): pass
  def done (self): pass

class NEURONGroup:
  """ process group on NEURON's ParallelContext (MPI when launched with mpiexec ... -mpi) """
  def __init__ (self):
    from neuron import h
    h.nrnmpi_init()
    self.h = h
    self.pc = h.ParallelContext()
    logger.debug('ParallelContext rank %d of %d' % (self.rank(), self.nhost()))

  def nhost (self): return int(self.pc.nhost())
  def rank (self): return int(self.pc.id())

  def allreduce (self, buf):
    vec = self.h.Vector()
    self.pc.allreduce(vec.from_python(buf), 1) # sum
    return np.array(vec.to_python())

  def allgather (self, obj): return self.pc.py_allgather(obj)
  def barrier (self): self.pc.barrier() # wait for other nodes

  def done (self): self.pc.done()

def wtDigest (buf):
  # hash of a weight buffer -- equal on every replica when the replicas are in sync
  return hashlib.sha256(np.ascontiguousarray(buf, dtype=np.float64).tobytes()).hexdigest()

class SyncCoordinator:
  def __init__ (self, group=None):
    if group is None: group = LocalGroup()
    self.group = group
    self.nhost = group.nhost()
    self.rank = group.rank()
    self.nreduce = 0

  def _collective (self, nm, *args):
    try:
      return getattr(self.group, nm)(*args)
    except (ConfigurationError, CommunicationError):
      raise
    except Exception as e:
      raise CommunicationError('%s failed on rank %d of %d: %s' % (nm, self.rank, self.nhost, e)) from e

  def _failStatus (self, failed):
    return ('failed', '%s: %s' % (type(failed).__name__, failed))

  def _raiseFailed (self, lstat, failed):
    # a failure on any rank aborts the step on every rank
    lfail = [(i, s[1]) for i, s in enumerate(lstat) if isinstance(s, tuple)]
    if len(lfail) == 0: return
    if failed is not None: raise failed
    raise CollaboratorError('aborted on every rank after a failure on ' + \
                            ', '.join('rank %d (%s)' % (i, msg) for i, msg in lfail))

  def agree (self, failed=None):
    """ vote on a local step: returns if it succeeded on every process, otherwise raises on every process """
    if self.nhost == 1:
      if failed is not None: raise failed
      return
    lstat = self._collective('allgather', None if failed is None else self._failStatus(failed))
    self._raiseFailed(lstat, failed)

  def reduce (self, dwt, failed=None):
    """ replace the local weight-delta buffer by the mean over all processes;
        blocks until every process has contributed its buffer.
        failed: the local trial failed -- the other processes are told so in the length exchange
    """
    if self.nhost == 1:
      if failed is not None: raise failed
      return dwt
    buf = None if failed is not None else np.asarray(dwt, dtype=np.float64)
    llen = self._collective('allgather', len(buf) if failed is None else self._failStatus(failed))
    self._raiseFailed(llen, failed)
    if len(set(llen)) != 1:
      raise ConfigurationError('weight-delta buffer lengths differ across processes (divergent builds): ' + \
                               ', '.join('rank %d: %d' % (i, n) for i, n in enumerate(llen)))
    tot = np.asarray(self._collective('allreduce', buf), dtype=np.float64)
    if len(tot) != len(buf):
      raise CommunicationError('allreduce returned %d values for a buffer of %d' % (len(tot), len(buf)))
    avg = tot / self.nhost
    self.nreduce += 1
    if isinstance(dwt, np.ndarray) and dwt.dtype.kind == 'f':
      dwt[:] = avg # in place
      return dwt
    return avg

  def gatherRows (self, lrow):
    # merge per-trial stat rows of all processes (rank order)
    if self.nhost == 1: return list(lrow)
    lall = []
    for l in self._collective('allgather', list(lrow)): lall.extend(l)
    return lall

  def checkReplicas (self, digest):
    if self.nhost == 1: return True
    ldig = self._collective('allgather', digest)
    if len(set(ldig)) != 1:
      raise CommunicationError('model replicas diverged: ' + ', '.join('rank %d: %s' % (i, d[:12]) for i, d in enumerate(ldig)))
    return True

  def anyFlag (self, flag):
    # true on every process if any process raised flag (keeps ranks stepping the same trials)
    if self.nhost == 1: return bool(flag)
    return any(self._collective('allgather', bool(flag)))

  def barrier (self): self._collective('barrier')

  def done (self): self._collective('done')

def makeGroup (useMPI):
  if useMPI: return NEURONGroup()
  return LocalGroup()
