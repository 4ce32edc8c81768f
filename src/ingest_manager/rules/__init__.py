"""
Rules engine package for the Data Ingest Manager
"""
from .engine import CancellationToken, RuleOutcome, RulesEngine, RunResult
from .schema import HandlingMode, Method, Rule, RuleResult, RulesConfig, RuleStatus
from .sheet_modes import SheetModeResolver
from .strategies import build_strategies

__all__ = [
    'CancellationToken',
    'HandlingMode',
    'Method',
    'Rule',
    'RuleOutcome',
    'RuleResult',
    'RuleStatus',
    'RulesConfig',
    'RulesEngine',
    'RunResult',
    'SheetModeResolver',
    'build_strategies',
]
