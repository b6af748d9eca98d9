"""Terminal rendering for run reports.

Modules
-------
renderer
    ``ReportRenderer`` turns a ``RunReport`` into Rich renderables: the
    step table, the failure list and the final status panel.
"""
