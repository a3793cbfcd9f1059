# run / epoch / trial loop for lvis training
import logging
import random
import numpy as np
import pandas as pd
from errs import CollaboratorError, ConfigurationError
from params import parseSchedule
from phaseCycle import PhaseCycle
from syncWts import wtDigest

logger = logging.getLogger(__name__)

lidcol = ['Run', 'Epoch', 'Trial', 'Rank']

def _call (obj, nm, *args):
  # call a collaborator method, converting its failures to CollaboratorError
  try:
    return getattr(obj, nm)(*args)
  except CollaboratorError:
    raise
  except Exception as e:
    raise CollaboratorError('%s.%s failed: %s' % (type(obj).__name__, nm, e)) from e

def epochStats (lrow, run, epoch):
  """ aggregate trial rows of one epoch (all processes): PctErr, PctCor and the mean of every numeric stat """
  d = {'Run':run, 'Epoch':epoch, 'NTrials':len(lrow)}
  if len(lrow) == 0:
    d['PctErr'] = d['PctCor'] = np.nan
    return d
  df = pd.DataFrame(lrow)
  if 'Err' in df.columns:
    err = df['Err'].astype(float)
  elif 'SSE' in df.columns:
    err = (df['SSE'] > 0).astype(float)
  else:
    err = None
  d['PctErr'] = np.nan if err is None else float(err.mean())
  d['PctCor'] = np.nan if err is None else 1.0 - d['PctErr']
  for c in df.select_dtypes(include=[np.number, bool]).columns:
    if c in lidcol or c == 'Err': continue
    d[c] = float(df[c].astype(float).mean())
  return d

class RunScheduler:
  """ drives runs of epochs of trials; each process trains its own shard of
      ceil(nTrials / nhost) trials per epoch and weight deltas are averaged every trial
  """
  def __init__ (self, dconf, graph, sheets, net, env, sync, testEnv=None, cycle=None):
    drun, dsim = dconf['run'], dconf['sim']
    self.graph = graph
    self.sheets = sheets
    self.net = net
    self.env = env
    self.testEnv = testEnv
    self.sync = sync
    self.startRun = drun['startRun']
    self.nRuns = drun['nRuns']
    self.nEpochs = drun['nEpochs']
    self.nTrials = drun['nTrials']
    self.nTestTrials = drun['nTestTrials']
    self.testInterval = drun['testInterval']
    self.nZeroStop = drun['nZeroStop']
    self.continueOnError = bool(drun['continueOnError'])
    self.checkReplicas = bool(drun['checkReplicas'])
    self.seeds = [i + 1 for i in range(drun['nSeeds'])] # seed table: identical across processes and invocations
    self.schedule = parseSchedule(dconf['schedule'], sheets)
    if cycle is None: cycle = PhaseCycle(net, sync, dsim['minusCycles'], dsim['plusCycles'], dsim['cycleHookInterval'])
    self.cycle = cycle
    self.clock = cycle.clock
    self.dhook = {'EpochEnd':[], 'TestEnd':[], 'RunEnd':[]}
    self.stopFlag = False
    self.lepoch, self.ltest, self.lrun, self.ltrial = [], [], [], []
    self.firstZero, self.nZero = -1, 0

  def addHook (self, event, fn):
    if event in self.dhook: self.dhook[event].append(fn)
    else: self.cycle.addHook(event, fn)

  def stop (self): self.stopFlag = True # honored at the next trial boundary

  def _stopRequested (self):
    # a stop on any process stops every process at the same trial
    if self.sync.anyFlag(self.stopFlag): self.stopFlag = True
    return self.stopFlag

  def _shard (self, n): return -(-n // self.sync.nhost) # ceil

  @property
  def trialsPerEpoch (self): return self._shard(self.nTrials)

  def seedFor (self, run):
    if run >= len(self.seeds): raise ConfigurationError('run %d has no seed (seed table has %d)' % (run, len(self.seeds)))
    return self.seeds[run]

  def _together (self, fn, *args):
    # run a local collaborator step; a failure on any process aborts it on every process
    failed, out = None, None
    try:
      out = fn(*args)
    except CollaboratorError as e:
      failed = e
    self.sync.agree(failed)
    return out

  def _resetCollaborators (self, run, seed):
    _call(self.net, 'updateParams', self.graph)
    _call(self.net, 'resetWeights', seed)
    _call(self.env, 'init', run)
    if self.testEnv is not None: _call(self.testEnv, 'init', run)

  def newRun (self, run):
    seed = self.seedFor(run)
    random.seed(seed)
    np.random.seed(seed)
    self.clock.run, self.clock.epoch, self.clock.trial = run, 0, 0
    if 'Base' in self.sheets: self.sheets.apply(self.graph, 'Base')
    if 0 in self.schedule: self._applySheets(self.schedule[0])
    self._together(self._resetCollaborators, run, seed)
    self.firstZero, self.nZero = -1, 0
    self.ltrial = []
    logger.info('run %d: seed %d, %d trials/epoch on each of %d processes' % (run, seed, self.trialsPerEpoch, self.sync.nhost))

  def _applySheets (self, lname):
    for name in lname:
      logger.info('epoch %d: applying parameter sheet %s' % (self.clock.epoch, name))
      self.sheets.apply(self.graph, name)

  def runTrial (self, trial, train=True, env=None):
    if env is None: env = self.env
    failed = None
    try:
      inputs, target = _call(env, 'step')
      _call(self.net, 'applyInputs', inputs, target)
    except CollaboratorError as e:
      failed = e
    self.cycle.run(trial, train, failed) # processes vote on the trial before learning
    drow = {'Run':self.clock.run, 'Epoch':self.clock.epoch, 'Trial':trial, 'Rank':self.sync.rank}
    drow.update(self._together(_call, self.net, 'trialStats'))
    return drow

  def runEpoch (self, epoch):
    """ returns the epoch stats dict, or None when a stop was requested before the epoch finished """
    self.clock.epoch = epoch
    if self.checkReplicas: self.sync.checkReplicas(wtDigest(self._together(_call, self.net, 'weights')))
    lrow = []
    for trial in range(self.trialsPerEpoch):
      if self._stopRequested(): return None
      lrow.append(self.runTrial(trial, True))
    self.ltrial.extend(lrow)
    dstat = epochStats(self.sync.gatherRows(lrow), self.clock.run, epoch)
    if dstat['PctErr'] == 0:
      if self.firstZero < 0: self.firstZero = epoch
      self.nZero += 1
    else:
      self.nZero = 0
    dstat['FirstZero'], dstat['NZero'] = self.firstZero, self.nZero
    self.lepoch.append(dstat)
    logger.info('run %d epoch %d: PctErr=%.3f NZero=%d' % (self.clock.run, epoch, dstat['PctErr'], self.nZero))
    for fn in self.dhook['EpochEnd']: fn(dstat)
    if epoch + 1 in self.schedule:
      self.clock.epoch = epoch + 1
      self._applySheets(self.schedule[epoch + 1])
      self.clock.epoch = epoch
      self._together(_call, self.net, 'updateParams', self.graph)
    if self.testInterval > 0 and (epoch + 1) % self.testInterval == 0: self.testPass(epoch)
    return dstat

  def testPass (self, epoch):
    # evaluation over nTestTrials (sharded like training), no learning
    env = self.testEnv if self.testEnv is not None else self.env
    lrow = [self.runTrial(trial, False, env) for trial in range(self._shard(self.nTestTrials))]
    dstat = epochStats(self.sync.gatherRows(lrow), self.clock.run, epoch)
    self.ltest.append(dstat)
    logger.info('run %d epoch %d test: PctErr=%.3f' % (self.clock.run, epoch, dstat['PctErr']))
    for fn in self.dhook['TestEnd']: fn(dstat)
    return dstat

  def runOne (self, run):
    self.newRun(run)
    nepoch = 0
    for epoch in range(self.nEpochs):
      dstat = self.runEpoch(epoch)
      if dstat is None: break
      nepoch += 1
      if self.nZeroStop > 0 and self.nZero >= self.nZeroStop:
        logger.info('run %d: %d zero-error epochs, stopping' % (run, self.nZero))
        break
    dsum = {'Run':run, 'Epochs':nepoch, 'FirstZero':self.firstZero, 'Stopped':self.stopFlag,
            'PctErr':self.lepoch[-1]['PctErr'] if nepoch > 0 else np.nan, 'Error':''}
    return dsum

  def runAll (self):
    """ all runs of the batch; a collaborator failure ends the current run and,
        unless continueOnError, the batch (configuration/communication errors always propagate)
    """
    for run in range(self.startRun, self.startRun + self.nRuns):
      if self.stopFlag: break
      try:
        dsum = self.runOne(run)
      except CollaboratorError as e:
        logger.error('run %d aborted: %s' % (run, e))
        self.lrun.append({'Run':run, 'Epochs':self.clock.epoch, 'FirstZero':self.firstZero,
                          'Stopped':False, 'PctErr':np.nan, 'Error':str(e)})
        if not self.continueOnError: raise
        continue
      self.lrun.append(dsum)
      for fn in self.dhook['RunEnd']: fn(dsum)
    return self.runStats()

  def epochLog (self): return pd.DataFrame(self.lepoch)
  def testLog (self): return pd.DataFrame(self.ltest)
  def runStats (self): return pd.DataFrame(self.lrun)
