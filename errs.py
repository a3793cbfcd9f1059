# error types raised by the lvis training core

class LVisError (Exception):
  pass

class ConfigurationError (LVisError):
  """ invalid geometry, unknown parameter keys, buffer length mismatch across processes
      -- fatal, never retried
  """
  pass

class CollaboratorError (LVisError):
  """ the network (or environment) failed to build, advance or learn -- fatal to the current run """
  pass

class TransientCallbackError (LVisError):
  """ a view/logging hook failed -- logged and swallowed """
  pass

class CommunicationError (LVisError):
  """ collective operation failed or replicas diverged -- fatal to the whole distributed run """
  pass
