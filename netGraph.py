# layers and projections of the lvis ventral-stream hierarchy (V1 -> V2 -> V4 -> TEO -> TE -> Output)
import numpy as np
from collections import OrderedDict
from connUtils import TileSpec, ConnPattern, tilePattern, recipPattern, unitConnList, rndPattern
from errs import ConfigurationError

LayerTypes = ('Input', 'Hidden', 'Target')
PrjnTypes = ('Forward', 'Back', 'Inhib')

def _classes (classes):
  if classes is None: return []
  if isinstance(classes, str): return classes.split()
  return list(classes)

class Layer:
  """ a 4-D layer: (poolsY, poolsX, unitsY, unitsX); 2-D layers are a single 1x1 pool """
  def __init__ (self, name, shape, typ='Hidden', classes=None):
    if typ not in LayerTypes: raise ConfigurationError('layer %s: unknown type %s' % (name, typ))
    if len(shape) != 4 or min(shape) <= 0:
      raise ConfigurationError('layer %s: shape must be 4 positive ints, got %s' % (name, shape))
    self.name = name
    self.shape = tuple(int(s) for s in shape)
    self.typ = typ
    self.classes = _classes(classes)
    # parameters set through param sheets (see params.py)
    self.inhibGi = 1.1
    self.poolGi = 1.1
    self.poolInhib = False
    self.actAvgInit = 0.15

  @property
  def pools (self): return self.shape[0:2]

  @property
  def nUnitsPerPool (self): return self.shape[2] * self.shape[3]

  @property
  def nUnits (self): return self.pools[0] * self.pools[1] * self.nUnitsPerPool

  def hasClass (self, cls): return cls in self.classes

  def __repr__ (self): return 'Layer(%s, %s, %s)' % (self.name, self.shape, self.typ)

class Projection:
  """ directed edge between two layers carrying one pool-level connection pattern """
  def __init__ (self, send, recv, pattern, typ='Forward', classes=None, learn=None):
    if typ not in PrjnTypes: raise ConfigurationError('projection %s->%s: unknown type %s' % (send.name, recv.name, typ))
    if pattern.sendPools != tuple(send.pools) or pattern.recvPools != tuple(recv.pools):
      raise ConfigurationError('projection %s->%s: pattern %r does not fit layer pools %s -> %s' % \
                               (send.name, recv.name, pattern, send.pools, recv.pools))
    self.send = send
    self.recv = recv
    self.pattern = pattern
    self.typ = typ
    self.classes = _classes(classes)
    if learn is None: learn = typ != 'Inhib' # lateral inhibition is fixed unless marked learnable
    self.learn = bool(learn)
    self.name = send.name + 'To' + recv.name
    # parameters set through param sheets (see params.py)
    self.wtScaleRel = 1.0
    self.wtScaleAbs = 1.0
    self.lrate = 0.04
    self.loTol = 0.8

  def hasClass (self, cls):
    # the projection type acts as a class too (.Forward, .Back, .Inhib)
    return cls in self.classes or cls == self.typ

  @property
  def nSyn (self): return self.pattern.nEdges * self.send.nUnitsPerPool * self.recv.nUnitsPerPool

  def __repr__ (self): return 'Projection(%s, %s, %d pool edges)' % (self.name, self.typ, self.pattern.nEdges)

class LayerGraph:
  def __init__ (self, name='LVis'):
    self.name = name
    self.dlayer = OrderedDict()
    self.dprjn = OrderedDict()

  @property
  def layers (self): return list(self.dlayer.values())

  @property
  def prjns (self): return list(self.dprjn.values())

  def layer (self, name):
    if name not in self.dlayer: raise ConfigurationError('no layer named %s' % name)
    return self.dlayer[name]

  def prjn (self, name):
    if name not in self.dprjn: raise ConfigurationError('no projection named %s' % name)
    return self.dprjn[name]

  def layersByType (self, *ltyp): return [ly for ly in self.layers if ly.typ in ltyp]

  def addLayer (self, name, shape, typ='Hidden', classes=None):
    if name in self.dlayer: raise ConfigurationError('duplicate layer %s' % name)
    ly = Layer(name, shape, typ, classes)
    self.dlayer[name] = ly
    return ly

  def _addPrjn (self, pj):
    if pj.name in self.dprjn: raise ConfigurationError('duplicate projection %s' % pj.name)
    self.dprjn[pj.name] = pj
    return pj

  def _pattern (self, send, recv, pat):
    if isinstance(pat, TileSpec): return tilePattern(pat, send.pools, recv.pools)
    if isinstance(pat, ConnPattern): return pat
    raise ConfigurationError('%s->%s: expected a TileSpec or ConnPattern, got %r' % (send.name, recv.name, pat))

  def connectLayers (self, send, recv, pat, typ='Forward', classes=None, learn=None):
    return self._addPrjn(Projection(send, recv, self._pattern(send, recv, pat), typ, classes, learn))

  def bidirConnectLayers (self, low, high, pat, fwdClasses=None, backClasses=None):
    """ forward low->high using pat, and high->low using the reciprocal (transpose) of the same wires """
    fwd = self.connectLayers(low, high, pat, 'Forward', fwdClasses)
    back = self.connectLayers(high, low, recipPattern(fwd.pattern), 'Back', backClasses)
    return fwd, back

  def lateralConnectLayer (self, ly, pat, classes=None, learn=False):
    return self.connectLayers(ly, ly, pat, 'Inhib', classes, learn)

  def synOffsets (self):
    # fixed enumeration of learnable synapses: prjn name -> (start, n), in build order
    doff = OrderedDict()
    start = 0
    for pj in self.prjns:
      if not pj.learn: continue
      doff[pj.name] = (start, pj.nSyn)
      start += pj.nSyn
    return doff

  def nSyn (self, pj):
    if isinstance(pj, str): pj = self.prjn(pj)
    return pj.nSyn

  def totalSyn (self): return sum(pj.nSyn for pj in self.prjns if pj.learn)

  def signature (self):
    # topology fingerprint: identical for identical builds
    lly = tuple((ly.name, ly.shape, ly.typ) for ly in self.layers)
    lpj = tuple((pj.name, pj.typ, pj.learn, pj.pattern.sendPools, pj.pattern.recvPools,
                 tuple(pj.pattern.edges.ravel().tolist())) for pj in self.prjns)
    return (lly, lpj)

  def sizeReport (self):
    lines = ['%s: %d layers, %d projections, %d learnable synapses' % (self.name, len(self.dlayer), len(self.dprjn), self.totalSyn())]
    for ly in self.layers:
      lines.append('  %-8s %-7s shape=%s units=%d' % (ly.name, ly.typ, ly.shape, ly.nUnits))
    for pj in self.prjns:
      lines.append('  %-18s %-7s pool edges=%d synapses=%d' % (pj.name, pj.typ, pj.pattern.nEdges, pj.nSyn))
    return '\n'.join(lines)

  def toNetParams (self):
    """ export as NetPyNE network parameters: one population per layer, one connList per projection
        (units numbered pool-major within each population)
    """
    from netpyne import specs # only needed for export
    netParams = specs.NetParams()
    for ly in self.layers:
      netParams.popParams[ly.name] = {'cellType': ly.typ, 'numCells': ly.nUnits}
    for pj in self.prjns:
      nsu, nru = pj.send.nUnitsPerPool, pj.recv.nUnitsPerPool
      connList = unitConnList(pj.pattern, nsu, nru)
      weight = pj.wtScaleAbs * pj.wtScaleRel
      if pj.pattern.scales is not None: # topographic scales repeat over the unit pairs of each pool edge
        weight = (weight * np.repeat(pj.pattern.scales, nsu * nru)).tolist()
      netParams.connParams[pj.name] = {
        'preConds': {'pop': pj.send.name},
        'postConds': {'pop': pj.recv.name},
        'connList': connList.tolist(),
        'weight': weight,
        'delay': 1,
        'synMech': 'GABA' if pj.typ == 'Inhib' else 'AMPA'}
    return netParams

#
def makePrjnSpecs (dnet):
  """ named tilings used to wire the hierarchy -- variants are derived by copying a base spec """
  topoMin = dnet['topoMin']
  sigma = dnet['gaussSigma']
  d = OrderedDict()
  d['4x4Skp2'] = TileSpec((4,4), (2,2), (-1,-1), gaussSigma=sigma, topoMin=topoMin, name='4x4Skp2') # recv = 1/2 send size
  d['4x4Skp2Sub2'] = d['4x4Skp2'].copy(subPools=(2,2), name='4x4Skp2Sub2')
  d['4x4Skp2Sub2Send'] = d['4x4Skp2Sub2'].copy(sendSubs=True, name='4x4Skp2Sub2Send')
  d['2x2Skp1'] = TileSpec((2,2), (1,1), (0,0), gaussSigma=sigma, topoMin=topoMin, name='2x2Skp1') # same-size
  d['2x2Skp1Sub2'] = d['2x2Skp1'].copy(subPools=(2,2), name='2x2Skp1Sub2')
  d['2x2Skp1Sub2Send'] = d['2x2Skp1Sub2'].copy(sendSubs=True, name='2x2Skp1Sub2Send')
  d['2x2Skp2'] = TileSpec((2,2), (2,2), (0,0), subPools=(2,2), name='2x2Skp2') # lateral inhib within sub-pool blocks
  d['4x4Skp0'] = TileSpec((4,4), (0,0), (0,0), gaussSigma=sigma, topoMin=topoMin, name='4x4Skp0') # V4 <-> TEO
  d['4x4Skp0Sub2'] = d['4x4Skp0'].copy(subPools=(2,2), sendSubs=True, name='4x4Skp0Sub2')
  d['1x1Skp1'] = TileSpec((1,1), (1,1), (0,0), name='1x1Skp1') # pool one-to-one
  return d

def fullSpec (send):
  # every sender pool to every receiver pool
  return TileSpec(send.pools, (0,0), (0,0), name='Full')

def buildLVisGraph (dconf):
  """ build the lvis layer graph; net.subPools selects the sub-pooled layer sizes and tilings """
  dnet = dconf['net']
  subPools = bool(dnet['subPools'])
  cdog = bool(dnet['colorDoG'])
  v1nrows = 5
  v2mNp, v2lNp, v2Nu, v4Np, v4Nu = 8, 4, 8, 4, 10
  if subPools: v2mNp, v2lNp, v2Nu, v4Np, v4Nu = 16, 8, 6, 8, 7
  outY, outX = dnet['outSize']
  net = LayerGraph(dnet['name'])

  v1m16 = net.addLayer('V1m16', (16,16,v1nrows,4), 'Input', 'V1m')
  v1l16 = net.addLayer('V1l16', (8,8,v1nrows,4), 'Input', 'V1l')
  v1m8 = net.addLayer('V1m8', (16,16,v1nrows,4), 'Input', 'V1m')
  v1l8 = net.addLayer('V1l8', (8,8,v1nrows,4), 'Input', 'V1l')
  lv1 = [(v1m16, v1l16, v1m8, v1l8)]
  if cdog: # color difference-of-gaussian inputs, wired like the luminance ones
    v1cm16 = net.addLayer('V1Cm16', (16,16,2,2), 'Input', 'V1Cm')
    v1cl16 = net.addLayer('V1Cl16', (8,8,2,2), 'Input', 'V1Cl')
    v1cm8 = net.addLayer('V1Cm8', (16,16,2,2), 'Input', 'V1Cm')
    v1cl8 = net.addLayer('V1Cl8', (8,8,2,2), 'Input', 'V1Cl')
    lv1.append((v1cm16, v1cl16, v1cm8, v1cl8))

  v2m16 = net.addLayer('V2m16', (v2mNp,v2mNp,v2Nu,v2Nu), 'Hidden', 'V2m V2')
  v2l16 = net.addLayer('V2l16', (v2lNp,v2lNp,v2Nu,v2Nu), 'Hidden', 'V2l V2')
  v2m8 = net.addLayer('V2m8', (v2mNp,v2mNp,v2Nu,v2Nu), 'Hidden', 'V2m V2')
  v2l8 = net.addLayer('V2l8', (v2lNp,v2lNp,v2Nu,v2Nu), 'Hidden', 'V2l V2')
  v4f16 = net.addLayer('V4f16', (v4Np,v4Np,v4Nu,v4Nu), 'Hidden', 'V4')
  v4f8 = net.addLayer('V4f8', (v4Np,v4Np,v4Nu,v4Nu), 'Hidden', 'V4')
  teo16 = net.addLayer('TEOf16', (2,2,15,15), 'Hidden', 'TEO')
  teo8 = net.addLayer('TEOf8', (2,2,15,15), 'Hidden', 'TEO')
  te = net.addLayer('TE', (2,2,15,15), 'Hidden', 'TE')
  out = net.addLayer('Output', (1,1,outY,outX*dnet['nOutPer']), 'Target', 'Output')

  dspec = makePrjnSpecs(dnet)
  p4x4s2, p2x2s1 = dspec['4x4Skp2'], dspec['2x2Skp1']
  p4x4s2send, p2x2s1send = dspec['4x4Skp2'], dspec['2x2Skp1']
  v4toteo = dspec['4x4Skp0']
  if subPools:
    p4x4s2, p2x2s1 = dspec['4x4Skp2Sub2'], dspec['2x2Skp1Sub2']
    p4x4s2send, p2x2s1send = dspec['4x4Skp2Sub2Send'], dspec['2x2Skp1Sub2Send']
    v4toteo = dspec['4x4Skp0Sub2']

  for m16, l16, m8, l8 in lv1:
    net.connectLayers(m16, v2m16, p4x4s2, 'Forward', 'V1V2')
    net.connectLayers(l16, v2m16, p2x2s1, 'Forward', 'V1V2fmSm V1V2')
    net.connectLayers(l16, v2l16, p4x4s2, 'Forward', 'V1V2')
    net.connectLayers(m8, v2m8, p4x4s2, 'Forward', 'V1V2')
    net.connectLayers(l8, v2m8, p2x2s1, 'Forward', 'V1V2fmSm V1V2')
    net.connectLayers(l8, v2l8, p4x4s2, 'Forward', 'V1V2')

  net.bidirConnectLayers(v2m16, v4f16, p4x4s2send, 'V2V4', 'V4V2')
  net.bidirConnectLayers(v2l16, v4f16, p2x2s1send, 'V2V4sm', 'V4V2')
  net.bidirConnectLayers(v2m8, v4f8, p4x4s2send, 'V2V4', 'V4V2')
  net.bidirConnectLayers(v2l8, v4f8, p2x2s1send, 'V2V4sm', 'V4V2')

  net.bidirConnectLayers(v4f16, teo16, v4toteo, 'V4TEO', 'TEOV4')
  net.connectLayers(v4f8, teo16, v4toteo, 'Forward', 'V4TEOoth')
  net.bidirConnectLayers(v4f8, teo8, v4toteo, 'V4TEO', 'TEOV4')
  net.connectLayers(v4f16, teo8, v4toteo, 'Forward', 'V4TEOoth')

  net.bidirConnectLayers(teo16, te, fullSpec(teo16), 'TEOTE', 'TETEO')
  net.bidirConnectLayers(teo8, te, fullSpec(teo8), 'TEOTE', 'TETEO')

  net.bidirConnectLayers(teo16, out, fullSpec(teo16), 'TEOOut ToOut', 'OutTEO FmOut')
  net.bidirConnectLayers(teo8, out, fullSpec(teo8), 'TEOOut ToOut', 'OutTEO FmOut')
  net.bidirConnectLayers(te, out, fullSpec(te), 'ToOut', 'FmOut')

  if dnet['v1Shortcuts']: # fixed random V1 shortcuts to every higher level
    lsc = [(v1l16, v4f16), (v1l8, v4f8), (v1l16, teo16), (v1l8, teo8), (v1l16, te), (v1l8, te)]
    for i, (snd, rcv) in enumerate(lsc):
      pat = rndPattern(snd.pools, rcv.pools, dnet['shortcutPCon'], dnet['shortcutSeed'] + i, 'V1SC')
      net.connectLayers(snd, rcv, pat, 'Forward', 'V1SC')

  if dnet['lateralInhib']:
    inhib = dspec['2x2Skp2'] if subPools else dspec['1x1Skp1']
    for ly in (v2m16, v2l16, v2m8, v2l8, v4f16, v4f8):
      net.lateralConnectLayer(ly, inhib, 'LatInhib')
    for ly in (teo16, teo8, te):
      net.lateralConnectLayer(ly, dspec['1x1Skp1'], 'LatInhib')
  return net
