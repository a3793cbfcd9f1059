# topographic pool-tiling connection functions
import numpy as np
from errs import ConfigurationError

#
def idx2pos (idx, npools):
  # flat (row-major) pool index -> (y,x) pool coordinate in a grid of npools=(ny,nx)
  y = int(idx / npools[1])
  x = idx % npools[1]
  return (y,x)

def pos2idx (pos, npools):
  # (y,x) pool coordinate -> flat (row-major) pool index
  return pos[0] * npools[1] + pos[1]

def _pair (v, nm):
  try:
    y, x = v
    return (int(y), int(x))
  except (TypeError, ValueError):
    raise ConfigurationError('%s must be a (y,x) pair, got %r' % (nm, v))

def _clipRange (origin, size, n):
  # sender positions covered by a receptive field, clipped to [0,n)
  return range(max(origin, 0), min(origin + size, n))

class TileSpec:
  """ parameters of a receptive-field tiling of sender pools onto receiver pools
      size: receptive field extent in (nominal) pools
      skip: stride between the fields of adjacent receivers (0 = all receivers share one field)
      start: offset of the first field, typically negative to center overlap at the border
      subPools: receiver pools are (pY,pX) sub-pools of a nominal pool
      sendSubs: the sender is sub-pooled too and all sub-pools of a nominal sender pool connect
      gaussSigma: if set, per-connection weight scales fall off with distance from the field center
      topoMin: scale given to the farthest connection when gaussSigma is set
  """
  def __init__ (self, size, skip, start=(0,0), subPools=None, sendSubs=False, gaussSigma=None, topoMin=1.0, name=''):
    self.size = _pair(size, 'size')
    self.skip = _pair(skip, 'skip')
    self.start = _pair(start, 'start')
    self.subPools = None if subPools is None else _pair(subPools, 'subPools')
    self.sendSubs = bool(sendSubs)
    self.gaussSigma = gaussSigma
    self.topoMin = topoMin
    self.name = name

  def copy (self, **kw):
    # derive a variant (e.g. Sub2 / Sub2Send) -- self is left unchanged
    d = dict(size=self.size, skip=self.skip, start=self.start, subPools=self.subPools, sendSubs=self.sendSubs,
             gaussSigma=self.gaussSigma, topoMin=self.topoMin, name=self.name)
    d.update(kw)
    return TileSpec(**d)

  def subs (self):
    if self.subPools is None: return (1,1)
    return self.subPools

  def validate (self, sendPools, recvPools):
    nm = self.name or repr(self)
    if self.size[0] <= 0 or self.size[1] <= 0:
      raise ConfigurationError('%s: size must be positive, got %s' % (nm, self.size))
    if self.skip[0] < 0 or self.skip[1] < 0:
      raise ConfigurationError('%s: skip must be >= 0, got %s' % (nm, self.skip))
    psy, psx = self.subs()
    if psy <= 0 or psx <= 0:
      raise ConfigurationError('%s: subPools must be positive, got %s' % (nm, self.subPools))
    if self.sendSubs and self.subPools is None:
      raise ConfigurationError('%s: sendSubs requires subPools' % nm)
    for gnm, g in (('send', sendPools), ('recv', recvPools)):
      if g[0] <= 0 or g[1] <= 0:
        raise ConfigurationError('%s: %s grid must be non-empty, got %s' % (nm, gnm, g))
    if recvPools[0] % psy or recvPools[1] % psx:
      raise ConfigurationError('%s: subPools %s do not evenly divide recv pools %s' % (nm, self.subPools, recvPools))
    if self.sendSubs and (sendPools[0] % psy or sendPools[1] % psx):
      raise ConfigurationError('%s: subPools %s do not evenly divide send pools %s' % (nm, self.subPools, sendPools))
    if self.gaussSigma is not None and self.gaussSigma <= 0:
      raise ConfigurationError('%s: gaussSigma must be positive, got %s' % (nm, self.gaussSigma))
    if not 0.0 <= self.topoMin <= 1.0:
      raise ConfigurationError('%s: topoMin must be in [0,1], got %s' % (nm, self.topoMin))

  def fieldScales (self):
    """ weight scale for every position of the (unclipped) receptive field:
        exp(-d^2/(2 sigma^2)) renormalized so the nearest position is 1.0 and the farthest topoMin
    """
    sy, sx = self.size
    if self.gaussSigma is None: return np.ones((sy, sx))
    fy, fx = np.mgrid[0:sy, 0:sx]
    d2 = (fy - (sy - 1) / 2.0) ** 2 + (fx - (sx - 1) / 2.0) ** 2
    g = np.exp(-d2 / (2.0 * self.gaussSigma ** 2))
    gmin, gmax = g.min(), g.max()
    if gmax - gmin <= 0.0: return np.ones((sy, sx))
    return self.topoMin + (1.0 - self.topoMin) * (g - gmin) / (gmax - gmin)

  def __eq__ (self, other):
    if not isinstance(other, TileSpec): return NotImplemented
    return (self.size, self.skip, self.start, self.subPools, self.sendSubs, self.gaussSigma, self.topoMin) == \
           (other.size, other.skip, other.start, other.subPools, other.sendSubs, other.gaussSigma, other.topoMin)

  def __repr__ (self):
    s = 'TileSpec(size=%s, skip=%s, start=%s' % (self.size, self.skip, self.start)
    if self.subPools is not None: s += ', subPools=%s, sendSubs=%s' % (self.subPools, self.sendSubs)
    if self.gaussSigma is not None: s += ', gaussSigma=%g, topoMin=%g' % (self.gaussSigma, self.topoMin)
    return s + ')'

class ConnPattern:
  """ materialized pool-level connectivity: edges[i] = [sendIdx, recvIdx] (flat pool indices),
      ordered receiver-major with ascending sender index; scales[i] is the topographic weight
      scale of edge i (None when no gaussian falloff was requested)
  """
  def __init__ (self, sendPools, recvPools, edges, scales=None, isRecip=False, spec=None):
    self.sendPools = tuple(sendPools)
    self.recvPools = tuple(recvPools)
    self.edges = np.asarray(edges, dtype=np.int64).reshape(-1, 2)
    self.scales = None if scales is None else np.asarray(scales, dtype=np.float64)
    self.isRecip = isRecip
    self.spec = spec

  @property
  def nEdges (self): return len(self.edges)

  @property
  def blist (self):
    # list of [presynaptic pool, postsynaptic pool]
    return self.edges.tolist()

  @property
  def coords (self):
    # list of [sy,sx,ry,rx] -- coordinates of the sender and receiver pools of each edge
    lc = []
    for s, r in self.edges:
      sy, sx = idx2pos(int(s), self.sendPools)
      ry, rx = idx2pos(int(r), self.recvPools)
      lc.append([sy,sx,ry,rx])
    return lc

  def sendersOf (self, ry, rx):
    ridx = pos2idx((ry,rx), self.recvPools)
    return [idx2pos(int(s), self.sendPools) for s in self.edges[self.edges[:,1] == ridx, 0]]

  def scalesOf (self, ry, rx):
    if self.scales is None: return None
    ridx = pos2idx((ry,rx), self.recvPools)
    return self.scales[self.edges[:,1] == ridx].tolist()

  def fanIn (self):
    # number of sender pools per receiver pool, as a (recvY,recvX) array
    n = self.recvPools[0] * self.recvPools[1]
    return np.bincount(self.edges[:,1], minlength=n).reshape(self.recvPools)

  def edgeSet (self):
    return set((int(s), int(r)) for s, r in self.edges)

  def __eq__ (self, other):
    if not isinstance(other, ConnPattern): return NotImplemented
    if self.sendPools != other.sendPools or self.recvPools != other.recvPools: return False
    if not np.array_equal(self.edges, other.edges): return False
    if (self.scales is None) != (other.scales is None): return False
    return self.scales is None or np.array_equal(self.scales, other.scales)

  def __repr__ (self):
    return 'ConnPattern(%s -> %s, %d edges%s)' % (self.sendPools, self.recvPools, self.nEdges, ', recip' if self.isRecip else '')

def _canonical (edges, scales):
  # sort receiver-major, then by sender
  order = np.lexsort((edges[:,0], edges[:,1]))
  return edges[order], (None if scales is None else scales[order])

def tilePattern (spec, sendPools, recvPools):
  """ apply TileSpec spec to a sender grid of sendPools=(ny,nx) pools and a receiver grid of recvPools
      receptive fields are clipped at the sender borders (no connections past the edge)
  """
  sendPools = _pair(sendPools, 'sendPools')
  recvPools = _pair(recvPools, 'recvPools')
  spec.validate(sendPools, recvPools)
  psy, psx = spec.subs()
  ssy, ssx = (psy, psx) if spec.sendSubs else (1, 1) # sender sub-pools per nominal pool
  nsy, nsx = sendPools[0] // ssy, sendPools[1] // ssx # nominal sender grid
  fsc = spec.fieldScales()
  ledge, lscale = [], []
  for ry in range(recvPools[0]):
    oy = spec.start[0] + (ry // psy) * spec.skip[0]
    for rx in range(recvPools[1]):
      ox = spec.start[1] + (rx // psx) * spec.skip[1]
      ridx = ry * recvPools[1] + rx
      for sy in _clipRange(oy, spec.size[0], nsy):
        for sx in _clipRange(ox, spec.size[1], nsx):
          sc = fsc[sy - oy, sx - ox]
          for uy in range(ssy):
            for ux in range(ssx):
              sidx = (sy * ssy + uy) * sendPools[1] + sx * ssx + ux
              ledge.append((sidx, ridx))
              lscale.append(sc)
  if len(ledge) == 0:
    raise ConfigurationError('%s produces no connections from %s to %s pools' % (spec.name or repr(spec), sendPools, recvPools))
  edges = np.array(ledge, dtype=np.int64)
  scales = np.array(lscale) if spec.gaussSigma is not None else None
  edges, scales = _canonical(edges, scales)
  return ConnPattern(sendPools, recvPools, edges, scales, spec=spec)

def recipPattern (pat):
  """ reciprocal of pat: the exact edge transpose (s->r becomes r->s), scales preserved
      computed structurally from the edge list, never re-derived from a TileSpec
  """
  edges, scales = _canonical(pat.edges[:, ::-1].copy(), None if pat.scales is None else pat.scales.copy())
  return ConnPattern(pat.recvPools, pat.sendPools, edges, scales, isRecip=not pat.isRecip, spec=pat.spec)

def unitConnList (pat, nSendUnits, nRecvUnits):
  # expand pool-level edges into unit-level [preUnit, postUnit] pairs (units numbered pool-major);
  # per edge: every sender unit in turn, to every receiver unit
  if pat.nEdges == 0: return np.zeros((0,2), dtype=np.int64)
  npair = nSendUnits * nRecvUnits
  pre = np.repeat(pat.edges[:,0] * nSendUnits, npair) + np.tile(np.repeat(np.arange(nSendUnits), nRecvUnits), pat.nEdges)
  post = np.repeat(pat.edges[:,1] * nRecvUnits, npair) + np.tile(np.arange(nRecvUnits), pat.nEdges * nSendUnits)
  return np.stack([pre, post], axis=1)

def rndPattern (sendPools, recvPools, pcon, seed, name='UnifRnd'):
  """ uniform random pool connectivity: each sender pool connects to each receiver pool with probability pcon
      (at least one sender per receiver); the seed is fixed at build time so every process gets the same wires
  """
  sendPools = _pair(sendPools, 'sendPools')
  recvPools = _pair(recvPools, 'recvPools')
  if not 0.0 < pcon <= 1.0: raise ConfigurationError('%s: pcon must be in (0,1], got %s' % (name, pcon))
  for gnm, g in (('send', sendPools), ('recv', recvPools)):
    if g[0] <= 0 or g[1] <= 0: raise ConfigurationError('%s: %s grid must be non-empty, got %s' % (name, gnm, g))
  nsend, nrecv = sendPools[0] * sendPools[1], recvPools[0] * recvPools[1]
  rng = np.random.RandomState(seed)
  conn = rng.rand(nrecv, nsend) < pcon
  for r in np.where(~conn.any(axis=1))[0]: conn[r, rng.randint(nsend)] = True
  lr, ls = np.nonzero(conn) # receiver-major, ascending sender
  return ConnPattern(sendPools, recvPools, np.stack([ls, lr], axis=1))
