# stand-ins for the network and environment collaborators, and an in-memory process group
import threading
import numpy as np

class FakeNet:
  """ records every call; errFn(clock) gives the Err stat of a trial, dwtVal the delta of every synapse """
  def __init__ (self, nsyn=8, dwtVal=1.0, errFn=None, failAt=None):
    self.nsyn = nsyn
    self.dwtVal = dwtVal
    self.errFn = errFn
    self.failAt = failAt # (run, epoch, trial) at which advanceCycle raises
    self.calls = []
    self.wts = np.zeros(nsyn)
    self.seeds = []
    self.lapplied = []
    self.clock = None
    self.built = None

  def build (self, graph): self.built = graph

  def advanceCycle (self, clock):
    self.clock = clock
    if self.failAt is not None and (clock.run, clock.epoch, clock.trial) == tuple(self.failAt):
      raise RuntimeError('cycle blew up')
    self.calls.append(('cycle', clock.phase))

  def commitMinusPhaseStats (self): self.calls.append('minus')
  def commitPlusPhaseStats (self): self.calls.append('plus')

  def computeWeightDeltas (self):
    self.calls.append('dwt')
    return np.full(self.nsyn, float(self.dwtVal))

  def applyWeightDeltas (self, buf):
    self.calls.append('apply')
    self.lapplied.append(np.array(buf))
    self.wts += buf

  def resetWeights (self, seed):
    self.calls.append('reset')
    self.seeds.append(seed)
    self.wts = np.zeros(self.nsyn)

  def applyInputs (self, inputs, target): self.calls.append('inputs')
  def updateParams (self, graph): self.calls.append('params')
  def weights (self): return self.wts

  def trialStats (self):
    self.calls.append('stats')
    err = 1 if self.errFn is None else self.errFn(self.clock)
    return {'Err': err, 'SSE': float(err), 'ActAvg': 0.5}

  def count (self, c): return sum(1 for x in self.calls if x == c)

class FakeEnv:
  def __init__ (self):
    self.runs = []
    self.nstep = 0

  def init (self, run): self.runs.append(run)

  def step (self):
    self.nstep += 1
    return {'V1m16': np.zeros(4)}, np.zeros(2)

  def currentEpoch (self): return 0
  def currentTrialIndexWithinEpoch (self): return self.nstep

class ThreadGroup:
  """ one of n in-memory ranks; collectives meet at a shared barrier """
  def __init__ (self, shared, rank):
    self.shared = shared
    self.r = rank

  def nhost (self): return self.shared['n']
  def rank (self): return self.r

  def allgather (self, obj):
    slots, bar = self.shared['slots'], self.shared['barrier']
    slots[self.r] = obj
    bar.wait()
    lout = list(slots)
    bar.wait()
    return lout

  def allreduce (self, buf):
    return np.sum([np.asarray(b, dtype=np.float64) for b in self.allgather(np.array(buf))], axis=0)

  def barrier (self): self.shared['barrier'].wait()
  def done (self): pass

def makeThreadGroups (n):
  shared = {'n': n, 'slots': [None] * n, 'barrier': threading.Barrier(n, timeout=10)}
  return [ThreadGroup(shared, i) for i in range(n)]

def runParallel (n, fn):
  """ run fn(group) on n threads; returns the per-rank results (exceptions are returned, not raised) """
  lgroup = makeThreadGroups(n)
  lout = [None] * n
  def work (i):
    try:
      lout[i] = fn(lgroup[i])
    except Exception as e:
      lout[i] = e
  lthr = [threading.Thread(target=work, args=(i,)) for i in range(n)]
  for t in lthr: t.start()
  for t in lthr: t.join()
  return lout

# factories named in test configs as fakes:makeNet / fakes:makeEnv
lnet = []

def makeNet (graph, dconf):
  net = FakeNet(errFn=lambda clock: 0)
  lnet.append(net)
  return net

def makeFailingNet (graph, dconf):
  net = FakeNet(failAt=(0, 0, 0))
  lnet.append(net)
  return net

def makeEnv (dconf, rank, nhost): return FakeEnv()
