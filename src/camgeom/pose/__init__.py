"""
Minimal pose solvers used to bootstrap or verify extrinsics.

Each solver returns a list of `PoseHypothesis` objects; an empty list means the
configuration is degenerate.
"""
