"""fishpopdyn: age- and area-structured fish population projection.

Projects numbers-at-age per spatial area forward in annual steps under:
  - Natural and fishing mortality (effort-based, apical-F, or unfished)
  - Spatial effort allocation with partial closures
  - Beverton-Holt or Ricker recruitment with a shared steepness
  - Inter-area movement by age
  - An unfished reference mode that re-derives stock-recruit parameters
    every year

Designed as the numerical core of a management strategy evaluation
harness; catch, depletion, and reporting belong to the caller.
"""

__version__ = "0.1.0"
