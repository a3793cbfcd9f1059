import os
import shutil
import logging

def safemkdir (dn):
  # make a directory (dn), catch any exceptions; return True/False on success/failure
  try:
    os.mkdir(dn)
    return True
  except OSError:
    if not os.path.exists(dn):
      logging.getLogger(__name__).warning('could not create %s' % dn)
      return False
    else:
      return True

def backupcfg (name, fnjson, dn='backupcfg'):
  # backup the config file to backupcfg subdirectory
  safemkdir(dn)
  fout = os.path.join(dn, name + 'sim.json')
  if os.path.exists(fout): os.remove(fout)
  shutil.copyfile(fnjson, fout)
  return fout

def setlog (name=None, fn=None, rank=0, verbose=0):
  # configure the named (default root) logger: rank 0 logs at INFO (DEBUG if verbose), other ranks only warnings
  logger = logging.getLogger(name)
  if rank == 0: level = logging.DEBUG if verbose else logging.INFO
  else: level = logging.WARNING
  logger.setLevel(level)
  formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
  for h in list(logger.handlers):
    logger.removeHandler(h)
    h.close()
  stream_handler = logging.StreamHandler()
  stream_handler.setFormatter(formatter)
  logger.addHandler(stream_handler)
  if fn:
    file_handler = logging.FileHandler(fn, mode='w')
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)
  return logger
