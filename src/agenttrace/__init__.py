"""
agenttrace: Distributed tracing for multi-agent task-execution hosts.

Turns a host's session, message and tool lifecycle events into a nested
OpenTelemetry trace: one span per session, a phase span wrapping every
delegated sub-agent, and tool activity recorded as span events with
aggregated statistics.
"""

__version__ = "0.1.0"
