"""State/store layer.

This package holds the retained signal window, the pure consensus policy
and the per-lot consensus snapshots derived from them. Only the stores in
here mutate state; the policy functions are side-effect free.
"""
