"""Guildhall — community marketplace directory.

Members publish listings tagged with an expertise, other members respond,
and listings move through OPEN → IN_PROGRESS → RESOLVED (or are withdrawn).
A companion profile directory indexes members by expertise and on-site
status and keeps their reputation counters in step with listing outcomes.
"""

__version__ = "0.1.0"
