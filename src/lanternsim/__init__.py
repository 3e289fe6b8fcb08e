"""
lanternsim: page-load performance estimation by simulation

Predicts load timing metrics (FCP, LCP, LCP load delay, TTI) for a page
under throttled network/CPU conditions from an unthrottled observation,
without replaying the load.

Core concepts:
- Observed requests and main-thread tasks form a dependency graph
- Observed connection timing calibrates per-origin RTT and server latency
- A discrete-event simulator replays the graph over a bounded connection
  pool and a single CPU lane
- Each metric simulates an optimistic and a pessimistic sub-graph and
  blends the two with calibration coefficients

See DESIGN.md for design notes.
"""

__version__ = "0.1.0"
