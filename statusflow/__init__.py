"""
StatusFlow - Change-Status / Request resource reference service.

Side effects on a resource are requested by changing its ``status`` (or
posting a change request), never by calling an action endpoint. Slow
changes become long-running operations that callers poll.
"""

__version__ = "0.1.0"
