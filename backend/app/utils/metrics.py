# /app/utils/metrics.py

from prometheus_client import Counter, Histogram

# This file defines all Prometheus metrics used for monitoring the process engine.
# Centralizing them here makes them easy to find and manage.

# Process Engine Metrics
process_runs_counter = Counter('process_runs_total', 'Process turns by resulting status', ['process_id', 'status'])
process_steps_counter = Counter('process_steps_total', 'Steps entered by the executor', ['process_id', 'step_type'])
intent_matches_counter = Counter('intent_matches_total', 'Messages routed to a process', ['process_id', 'trigger_type'])
tool_calls_counter = Counter('tool_calls_total', 'Entity resolver tool calls', ['tool', 'status'])

# Chat Metrics
fallback_chat_counter = Counter('fallback_chat_total', 'Messages delegated to the language model', ['status'])
ai_requests_counter = Counter('ai_requests_total', 'Total AI requests', ['model', 'status'])

# Storage Metrics
session_store_operations = Counter('session_store_operations_total', 'Session store operations', ['backend', 'operation', 'status'])

# Performance Metrics
response_time_histogram = Histogram('response_time_seconds', 'Response time in seconds', ['endpoint'])
