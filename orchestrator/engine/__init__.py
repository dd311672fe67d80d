# ============================================================================
# ORCHESTRATOR ENGINE
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Core - Engine components
# PURPOSE: Node executors, condition evaluation, templating and timing
# CREATED: 14 SEP 2026
# ============================================================================
"""
Orchestrator Engine Components

- templates: Sandboxed Jinja2 message rendering
- evaluator: Condition evaluation and reply keyword matching
- timing: Wake instants and secondary trigger windows
- executors: One executor per node kind
"""

from orchestrator.engine.templates import (
    TemplateRenderer,
    get_renderer,
    render_template,
)
from orchestrator.engine.evaluator import (
    ConditionEvaluator,
    InputMatcher,
)
from orchestrator.engine.timing import (
    compute_wake,
    secondary_window,
    utcnow,
)
from orchestrator.engine.executors import (
    ExecutionContext,
    NodeOutcome,
    OutcomeKind,
    get_executor,
    missing_executors,
    register_executor,
)

__all__ = [
    # Templates
    "TemplateRenderer",
    "get_renderer",
    "render_template",
    # Evaluator
    "ConditionEvaluator",
    "InputMatcher",
    # Timing
    "compute_wake",
    "secondary_window",
    "utcnow",
    # Executors
    "ExecutionContext",
    "NodeOutcome",
    "OutcomeKind",
    "get_executor",
    "missing_executors",
    "register_executor",
]
