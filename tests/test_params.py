import os
import pytest
from conf import readconf, ensureDefaults
from errs import ConfigurationError
from netGraph import buildLVisGraph
from params import ParamSheets, parseSchedule

fnjson = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'lvis.json')

@pytest.fixture
def graph (dconf):
  return buildLVisGraph(dconf)

def test_selectors (graph):
  sheets = ParamSheets({'Base': [
    {'Sel': 'Prjn', 'Params': {'Prjn.Learn.Lrate': 0.02}},
    {'Sel': '.Back', 'Params': {'Prjn.WtScale.Rel': 0.15}},
    {'Sel': '#Output', 'Params': {'Layer.Inhib.Layer.Gi': 1.4}},
    {'Sel': '.V4', 'Params': {'Layer.Inhib.Pool.On': 'true'}}]})
  assert sheets.apply(graph, 'Base') > 0
  for pj in graph.prjns:
    assert pj.lrate == 0.02
    assert pj.wtScaleRel == (0.15 if pj.typ == 'Back' else 1.0)
  assert graph.layer('Output').inhibGi == 1.4
  assert graph.layer('TE').inhibGi != 1.4
  assert graph.layer('V4f8').poolInhib is True and graph.layer('V2m8').poolInhib is False

def test_laterEntriesWin (graph):
  sheets = ParamSheets({'Base': [
    {'Sel': 'Prjn', 'Params': {'Prjn.WtScale.Abs': 2.0}},
    {'Sel': '#TEToOutput', 'Params': {'Prjn.WtScale.Abs': 0.5}}]})
  sheets.apply(graph, 'Base')
  assert graph.prjn('TEToOutput').wtScaleAbs == 0.5
  assert graph.prjn('OutputToTE').wtScaleAbs == 2.0

@pytest.mark.parametrize('dsheet', [
  {'Base': [{'Sel': 'Prjn', 'Params': {'Prjn.WtScale.Bogus': 1}}]},
  {'Base': [{'Sel': 'Layer', 'Params': {'Prjn.WtScale.Rel': 1}}]},
  {'Base': [{'Sel': 'Prjn', 'Params': {'Prjn.WtScale.Rel': 'abc'}}]},
  {'Base': [{'Sel': 'Prjn', 'Params': {'Prjn.WtScale.Rel': True}}]},
  {'Base': [{'Sel': 'Layer', 'Params': {'Layer.Inhib.Pool.On': 'maybe'}}]},
  {'Base': [{'Sel': 'Foo', 'Params': {'Prjn.WtScale.Rel': 1}}]},
  {'Base': [{'Sel': '', 'Params': {}}]},
  {'Base': [{'Params': {'Prjn.WtScale.Rel': 1}}]},
  {'Base': {'Sel': 'Prjn'}},
])
def test_invalidSheets (dsheet):
  with pytest.raises(ConfigurationError):
    ParamSheets(dsheet)

def test_unknownSheet (graph):
  with pytest.raises(ConfigurationError):
    ParamSheets({}).apply(graph, 'Base')

def test_parseSchedule ():
  sheets = ParamSheets({'ToOutTol': [], 'OutAdapt': []})
  assert parseSchedule({'500': ['ToOutTol'], '200': 'OutAdapt'}, sheets) == {500: ['ToOutTol'], 200: ['OutAdapt']}
  assert parseSchedule({}) == {}
  with pytest.raises(ConfigurationError): parseSchedule({'500': ['Nope']}, sheets)
  with pytest.raises(ConfigurationError): parseSchedule({'late': ['ToOutTol']}, sheets)
  with pytest.raises(ConfigurationError): parseSchedule({'-1': ['ToOutTol']}, sheets)

def test_shippedConfig ():
  dconf = ensureDefaults(readconf(fnjson))
  sheets = ParamSheets(dconf['params'])
  assert sheets.names() == ['Base', 'ToOutTol', 'OutAdapt']
  assert parseSchedule(dconf['schedule'], sheets) == {500: ['ToOutTol']}
  graph = buildLVisGraph(dconf)
  sheets.apply(graph, 'Base')
  assert graph.prjn('V4f16ToV2m16').wtScaleRel == 0.02
  assert graph.prjn('TEOf16ToV4f16').wtScaleRel == 0.15
  assert graph.prjn('V2m16ToV4f16').wtScaleAbs == 1.2
  assert graph.prjn('TEOf8ToOutput').loTol == 0.8
  sheets.apply(graph, 'ToOutTol')
  assert graph.prjn('TEOf8ToOutput').loTol == 0.5
