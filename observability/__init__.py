"""
Relay observability: structured events and the sinks that receive them.
"""
