"""Centralized constants for node types, tool kinds and engine defaults.

This module provides a single source of truth for the string identifiers
shared by the workflow engine, the task coordinator and the tool layer.
"""

from typing import FrozenSet

# =============================================================================
# NODE TYPES
# =============================================================================

NODE_TYPE_TOOL = 'tool'
NODE_TYPE_AGENT_PROCESSOR = 'agent_processor'
NODE_TYPE_INPUT = 'input'
NODE_TYPE_OUTPUT = 'output'

# Nodes that forward their mapped inputs without invoking a tool
PASSTHROUGH_NODE_TYPES: FrozenSet[str] = frozenset([
    NODE_TYPE_INPUT,
    NODE_TYPE_OUTPUT,
])

# =============================================================================
# TOOL KINDS
# =============================================================================

TOOL_KIND_FUNCTION = 'function'
TOOL_KIND_HTTP = 'http'
TOOL_KIND_AGENT_PROCESSOR = 'agent_processor'

# Built-in processor used when an agent_processor node has no toolId
AGENT_PROCESSOR_TOOL_ID = 'agent_processor'

# HTTP methods that never carry a request body
BODYLESS_HTTP_METHODS: FrozenSet[str] = frozenset([
    'GET',
    'HEAD',
])

# =============================================================================
# ENGINE DEFAULTS
# =============================================================================

# Key under which the workflow's top-level input is seeded into node outputs
INPUT_NODE_KEY = '__input__'

DEFAULT_WORKFLOW_TIMEOUT_MS = 300_000

# Node config flag that lets the run proceed past a failing node
CONTINUE_ON_ERROR_KEY = 'continueOnError'

# =============================================================================
# SCHEDULER
# =============================================================================

CRON_JOB_PREFIX = 'task-cron-'
MIN_INTERVAL_SECONDS = 60
MAX_INTERVAL_SECONDS = 86_400
