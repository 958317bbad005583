"""
Test support utilities for coursegrab tests.

Fakes that stand in for the remote reservation system, plus small builders
shared across test modules.  Import them explicitly::

    from tests._support.adapters import RecordingSleep, ScriptedAdapter, make_targets
"""
