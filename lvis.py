# lvis: train the ventral-stream object recognition hierarchy, optionally data-parallel over MPI
# usage: python lvis.py [config.json] [--runs N] [--epochs N] [--mpi] ...
#        mpiexec -n 4 nrniv -python -mpi lvis.py lvis.json --mpi
import argparse
import importlib
import logging
import os
import sys
from conf import getfnjson, readconf, ensureDefaults
from errs import ConfigurationError, CollaboratorError, CommunicationError
from netGraph import buildLVisGraph
from params import ParamSheets
from runSched import RunScheduler
from syncWts import SyncCoordinator, makeGroup
from utils import setlog, safemkdir, backupcfg

logger = logging.getLogger(__name__)

def loadFactory (spec):
  """ 'module:callable' -> the callable """
  if not spec or ':' not in spec: raise ConfigurationError('factory must be module:callable, got %r' % (spec,))
  mod, fn = spec.split(':', 1)
  try:
    return getattr(importlib.import_module(mod), fn)
  except (ImportError, AttributeError) as e:
    raise ConfigurationError('could not load factory %s: %s' % (spec, e))

def parseArgs (argv):
  parser = argparse.ArgumentParser(description='lvis object recognition training')
  parser.add_argument('config', nargs='?', default=None, help='JSON config file')
  parser.add_argument('--mpi', action='store_true', help='average weight deltas across MPI processes')
  parser.add_argument('--startRun', type=int, default=None)
  parser.add_argument('--runs', type=int, default=None, help='number of runs')
  parser.add_argument('--epochs', type=int, default=None, help='max epochs per run')
  parser.add_argument('--trials', type=int, default=None, help='trials per epoch, over all processes')
  parser.add_argument('--subpools', type=int, choices=[0,1], default=None, help='use sub-pooled layers and tilings')
  parser.add_argument('--continueOnError', action='store_true', help='go on to the next run after a failed run')
  parser.add_argument('--report', action='store_true', help='print the network size report and exit')
  return parser.parse_args(argv)

def loadConfig (args, argv):
  fnjson = args.config if args.config else getfnjson(argv)
  dconf = readconf(fnjson)
  ensureDefaults(dconf)
  drun = dconf['run']
  if args.mpi: drun['mpi'] = True
  if args.startRun is not None: drun['startRun'] = args.startRun
  if args.runs is not None: drun['nRuns'] = args.runs
  if args.epochs is not None: drun['nEpochs'] = args.epochs
  if args.trials is not None: drun['nTrials'] = args.trials
  if args.continueOnError: drun['continueOnError'] = True
  if args.subpools is not None: dconf['net']['subPools'] = bool(args.subpools)
  ensureDefaults(dconf) # recheck run range after overrides
  return fnjson, dconf

def setup (dconf, group):
  """ build the layer graph, parameter sheets and collaborators; returns a ready RunScheduler """
  sync = SyncCoordinator(group)
  graph = buildLVisGraph(dconf)
  sheets = ParamSheets(dconf['params'])
  if 'Base' in sheets: sheets.apply(graph, 'Base')
  logger.info(graph.sizeReport())
  failed, net, env, testEnv = None, None, None, None
  try:
    net = loadFactory(dconf['net']['factory'])(graph, dconf)
    net.build(graph)
    env = loadFactory(dconf['env']['factory'])(dconf, sync.rank, sync.nhost)
    if dconf['env']['testFactory']: testEnv = loadFactory(dconf['env']['testFactory'])(dconf, sync.rank, sync.nhost)
  except (ConfigurationError, CollaboratorError) as e:
    failed = e
  except Exception as e:
    failed = CollaboratorError('could not create network/environment: %s' % e)
    failed.__cause__ = e
  sync.agree(failed) # every process gets past setup or none does
  return RunScheduler(dconf, graph, sheets, net, env, sync, testEnv)

def main (argv=None):
  if argv is None: argv = sys.argv[1:]
  args = parseArgs(argv)
  group = None
  try:
    fnjson, dconf = loadConfig(args, argv)
    if args.report:
      setlog(verbose=dconf['sim']['verbose'])
      print(buildLVisGraph(dconf).sizeReport())
      return 0
    group = makeGroup(dconf['run']['mpi'])
    dsim = dconf['sim']
    fnlog = None
    if group.rank() == 0 and dsim['outDir']:
      safemkdir(dsim['outDir'])
      backupcfg(dsim['name'], fnjson, os.path.join(dsim['outDir'], 'backupcfg'))
      if dsim['logFile']: fnlog = os.path.join(dsim['outDir'], dsim['logFile'])
    setlog(fn=fnlog, rank=group.rank(), verbose=dsim['verbose'])
    sched = setup(dconf, group)
    drs = sched.runAll()
    if group.rank() == 0 and dsim['outDir']:
      fnb = os.path.join(dsim['outDir'], dsim['name'])
      sched.epochLog().to_csv(fnb + '_epoch.csv', index=False)
      sched.testLog().to_csv(fnb + '_test.csv', index=False)
      drs.to_csv(fnb + '_run.csv', index=False)
    return 0
  except (ConfigurationError, CommunicationError) as e:
    logger.error('%s: %s' % (type(e).__name__, e))
    return 1
  except CollaboratorError as e:
    logger.error('batch ended: %s' % e)
    return 2
  finally:
    if group is not None: group.done()

if __name__ == '__main__':
  sys.exit(main())
