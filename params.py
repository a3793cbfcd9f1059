# named parameter sheets applied to a LayerGraph through a fixed key -> setter registry
from collections import OrderedDict
import logging
from errs import ConfigurationError

logger = logging.getLogger(__name__)

def toBool (v):
  if isinstance(v, bool): return v
  if isinstance(v, (int, float)) and v in (0, 1): return bool(v)
  if isinstance(v, str) and v.lower() in ('true', 'false'): return v.lower() == 'true'
  raise ValueError('not a boolean: %r' % (v,))

def toFloat (v):
  if isinstance(v, bool): raise ValueError('not a number: %r' % (v,))
  return float(v)

# key -> (target kind, converter, attribute)
dsetter = {
  'Layer.Inhib.Layer.Gi': ('Layer', toFloat, 'inhibGi'),
  'Layer.Inhib.Pool.Gi': ('Layer', toFloat, 'poolGi'),
  'Layer.Inhib.Pool.On': ('Layer', toBool, 'poolInhib'),
  'Layer.Inhib.ActAvg.Init': ('Layer', toFloat, 'actAvgInit'),
  'Prjn.WtScale.Rel': ('Prjn', toFloat, 'wtScaleRel'),
  'Prjn.WtScale.Abs': ('Prjn', toFloat, 'wtScaleAbs'),
  'Prjn.Learn.Lrate': ('Prjn', toFloat, 'lrate'),
  'Prjn.Learn.Learn': ('Prjn', toBool, 'learn'),
  'Prjn.PrjnScale.LoTol': ('Prjn', toFloat, 'loTol'),
}

class ParamSel:
  """ one sheet entry: a selector (Layer, Prjn, .Class or #Name) and its converted values """
  def __init__ (self, sel, dval, sheet=''):
    self.sel = sel
    self.dval = OrderedDict()
    if not isinstance(sel, str) or len(sel) == 0:
      raise ConfigurationError('sheet %s: bad selector %r' % (sheet, sel))
    if sel[0] not in '.#' and sel not in ('Layer', 'Prjn'):
      raise ConfigurationError('sheet %s: selector %r must be Layer, Prjn, .Class or #Name' % (sheet, sel))
    for k, v in dval.items():
      if k not in dsetter:
        raise ConfigurationError('sheet %s, sel %s: unknown parameter key %s' % (sheet, sel, k))
      kind, conv, attr = dsetter[k]
      if sel in ('Layer', 'Prjn') and sel != kind:
        raise ConfigurationError('sheet %s: key %s applies to %s, not to selector %s' % (sheet, k, kind, sel))
      try:
        self.dval[k] = conv(v)
      except (TypeError, ValueError) as e:
        raise ConfigurationError('sheet %s, sel %s: bad value for %s: %s' % (sheet, sel, k, e))

  def matches (self, obj, kind):
    if self.sel == kind: return True
    if self.sel[0] == '.': return obj.hasClass(self.sel[1:])
    if self.sel[0] == '#': return obj.name == self.sel[1:]
    return False

  def apply (self, graph):
    # returns number of (object, key) settings made
    n = 0
    for k, v in self.dval.items():
      kind, conv, attr = dsetter[k]
      lobj = graph.layers if kind == 'Layer' else graph.prjns
      for obj in lobj:
        if self.matches(obj, kind):
          setattr(obj, attr, v)
          n += 1
    return n

class ParamSheets:
  """ dsheets: {sheetName: [{"Sel": selector, "Params": {key: value}}, ...]}
      all entries are validated when constructed
  """
  def __init__ (self, dsheets):
    self.dsheet = OrderedDict()
    for name, lsel in dsheets.items():
      if not isinstance(lsel, list):
        raise ConfigurationError('sheet %s must be a list of {Sel, Params} entries' % name)
      lps = []
      for d in lsel:
        if 'Sel' not in d or 'Params' not in d:
          raise ConfigurationError('sheet %s: entry %r needs Sel and Params' % (name, d))
        lps.append(ParamSel(d['Sel'], d['Params'], name))
      self.dsheet[name] = lps

  def names (self): return list(self.dsheet.keys())

  def __contains__ (self, name): return name in self.dsheet

  def apply (self, graph, name):
    if name not in self.dsheet: raise ConfigurationError('no parameter sheet named %s' % name)
    n = 0
    for ps in self.dsheet[name]:
      m = ps.apply(graph)
      if m == 0: logger.warning('sheet %s: selector %s matched nothing' % (name, ps.sel))
      n += m
    logger.debug('applied sheet %s: %d settings' % (name, n))
    return n

def parseSchedule (dsched, sheets=None):
  """ epoch schedule from config: {"500": ["ToOutTol"]} -> {500: ["ToOutTol"]}
      a single sheet name may be given instead of a list
  """
  dout = {}
  for k, v in dsched.items():
    try:
      epoch = int(k)
    except (TypeError, ValueError):
      raise ConfigurationError('schedule: epoch %r is not an integer' % (k,))
    if epoch < 0: raise ConfigurationError('schedule: negative epoch %d' % epoch)
    lname = [v] if isinstance(v, str) else list(v)
    if sheets is not None:
      for name in lname:
        if name not in sheets: raise ConfigurationError('schedule: epoch %d names unknown sheet %s' % (epoch, name))
    dout[epoch] = lname
  return dout
