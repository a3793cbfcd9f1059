# minus/plus phase state machine driving one trial of the opaque network
import logging
from errs import CollaboratorError, ConfigurationError, TransientCallbackError

logger = logging.getLogger(__name__)

class PhaseState:
  Idle = 'Idle'
  MinusPhase = 'MinusPhase'
  PhaseBoundary = 'PhaseBoundary'
  PlusPhase = 'PlusPhase'
  TrialDone = 'TrialDone'

HookEvents = ('Cycle', 'PhaseBoundary', 'TrialEnd')

class TrialClock:
  def __init__ (self):
    self.run = 0
    self.epoch = 0
    self.trial = 0
    self.cycle = 0 # cycle within the trial, reset each trial
    self.phase = 0 # 0 = minus, 1 = plus

  def __repr__ (self):
    return 'TrialClock(run=%d, epoch=%d, trial=%d, cycle=%d, phase=%d)' % (self.run, self.epoch, self.trial, self.cycle, self.phase)

class PhaseCycle:
  """ runs a trial as minusCycles settling cycles, a phase boundary, then plusCycles target-clamped cycles;
      when training the weight deltas are computed, synchronized via sync.reduce and applied before run returns
  """
  def __init__ (self, net, sync, minusCycles=150, plusCycles=50, cycleHookInterval=1):
    if minusCycles <= 0 or plusCycles <= 0:
      raise ConfigurationError('minusCycles and plusCycles must be positive, got %s, %s' % (minusCycles, plusCycles))
    self.net = net
    self.sync = sync
    self.minusCycles = int(minusCycles)
    self.plusCycles = int(plusCycles)
    self.cycleHookInterval = max(1, int(cycleHookInterval))
    self.clock = TrialClock()
    self.state = PhaseState.Idle
    self.dhook = {k:[] for k in HookEvents}

  def addHook (self, event, fn):
    if event not in self.dhook: raise ValueError('unknown hook event %s' % event)
    self.dhook[event].append(fn)

  def _netCall (self, nm, *args):
    try:
      return getattr(self.net, nm)(*args)
    except Exception as e:
      raise CollaboratorError('network %s failed at %r: %s' % (nm, self.clock, e)) from e

  def _cycleHooks (self):
    for fn in self.dhook['Cycle']:
      try:
        fn(self.clock)
      except Exception as e:
        # view hooks never stall training
        logger.warning('%s' % TransientCallbackError('cycle hook %r failed at %r: %s' % (fn, self.clock, e)))

  def _fire (self, event):
    for fn in self.dhook[event]:
      try:
        fn(self.clock)
      except Exception as e:
        raise CollaboratorError('%s hook %r failed at %r: %s' % (event, fn, self.clock, e)) from e

  def _cycles (self, n):
    for i in range(n):
      self._netCall('advanceCycle', self.clock)
      self.clock.cycle += 1
      if self.dhook['Cycle'] and self.clock.cycle % self.cycleHookInterval == 0: self._cycleHooks()

  def _settle (self, train):
    # local part of the trial: both phases and, when training, the weight deltas
    if self.net is None: raise CollaboratorError('no network to run trial %d' % self.clock.trial)
    self.state = PhaseState.MinusPhase
    self._cycles(self.minusCycles)
    self.state = PhaseState.PhaseBoundary
    self._netCall('commitMinusPhaseStats')
    self._fire('PhaseBoundary')
    self.state = PhaseState.PlusPhase
    self.clock.phase = 1
    self._cycles(self.plusCycles)
    self.state = PhaseState.TrialDone
    self._netCall('commitPlusPhaseStats')
    self._fire('TrialEnd')
    if train: return self._netCall('computeWeightDeltas')
    return None

  def run (self, trial, train=True, failed=None):
    """ failed: the trial already failed locally (e.g. the inputs could not be applied); the
        processes still vote so every process aborts the trial together
    """
    self.clock.trial = trial
    self.clock.cycle = 0
    self.clock.phase = 0
    dwt = None
    try:
      if failed is None:
        try:
          dwt = self._settle(train)
        except CollaboratorError as e:
          failed = e
      if train:
        dwt = self.sync.reduce(dwt, failed) # barrier across processes
        self._netCall('applyWeightDeltas', dwt)
      else:
        self.sync.agree(failed)
    finally:
      self.state = PhaseState.Idle
