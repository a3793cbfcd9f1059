import json
import sys
from errs import ConfigurationError

fnjsonDefault = 'lvis.json'

def getfnjson (argv=None):
  # any .json on the command line selects the config file
  if argv is None: argv = sys.argv
  fnjson = fnjsonDefault
  for s in argv:
    if s.endswith('.json'): fnjson = s
  return fnjson

def readconf (fnjson):
  try:
    with open(fnjson,'r') as fp:
      dconf = json.load(fp)
  except (OSError, ValueError) as e:
    raise ConfigurationError('could not read config %s: %s' % (fnjson, e))
  return dconf

def checkDefVal (d, k, val):
  # check if k is in d, if not, set d[k] = val
  if k not in d: d[k] = val

def ensureDefaults (dconf):
  # make sure default values are present so dont have to check for them throughout rest of code
  for k in ['sim', 'net', 'run', 'params', 'schedule']: checkDefVal(dconf, k, {})
  dsim, dnet, drun = dconf['sim'], dconf['net'], dconf['run']
  checkDefVal(dsim, 'name', 'lvis')
  checkDefVal(dsim, 'outDir', 'data')
  checkDefVal(dsim, 'logFile', '')
  checkDefVal(dsim, 'verbose', 0)
  checkDefVal(dsim, 'minusCycles', 150)
  checkDefVal(dsim, 'plusCycles', 50)
  checkDefVal(dsim, 'cycleHookInterval', 1)
  checkDefVal(dnet, 'name', 'LVis')
  for k in ['subPools', 'lateralInhib']: checkDefVal(dnet, k, True)
  checkDefVal(dnet, 'colorDoG', False)
  checkDefVal(dnet, 'v1Shortcuts', True)
  checkDefVal(dnet, 'shortcutPCon', 0.1)
  checkDefVal(dnet, 'shortcutSeed', 1)
  checkDefVal(dnet, 'topoMin', 0.8)
  checkDefVal(dnet, 'gaussSigma', 1.5)
  checkDefVal(dnet, 'outSize', [10, 10])
  checkDefVal(dnet, 'nOutPer', 5)
  checkDefVal(dnet, 'factory', '')
  checkDefVal(dconf, 'env', {})
  checkDefVal(dconf['env'], 'factory', '')
  checkDefVal(dconf['env'], 'testFactory', '')
  checkDefVal(drun, 'mpi', False)
  checkDefVal(drun, 'startRun', 0)
  checkDefVal(drun, 'nRuns', 1)
  checkDefVal(drun, 'nEpochs', 1000)
  checkDefVal(drun, 'nTrials', 512)
  checkDefVal(drun, 'nTestTrials', 500)
  checkDefVal(drun, 'testInterval', 20)
  checkDefVal(drun, 'nZeroStop', -1)
  checkDefVal(drun, 'nSeeds', 100)
  for k in ['continueOnError', 'checkReplicas']: checkDefVal(drun, k, False)
  if drun['startRun'] < 0 or drun['nRuns'] < 0 or drun['startRun'] + drun['nRuns'] > drun['nSeeds']:
    raise ConfigurationError('runs %d..%d outside the seed table of %d' % (drun['startRun'], drun['startRun'] + drun['nRuns'] - 1, drun['nSeeds']))
  if drun['nTrials'] <= 0: raise ConfigurationError('nTrials must be positive, got %s' % drun['nTrials'])
  return dconf
